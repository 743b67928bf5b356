"""Tests for ResourceService idempotence against the in-memory gateway."""

from __future__ import annotations

import pytest

from command_relay.adapters.memory import InMemoryResourceGateway
from command_relay.commands import ChannelOptions, MessageOptions, RoleOptions
from command_relay.exceptions import ExternalError
from command_relay.ports import IResourceGateway
from command_relay.resources import ResourceService


def test_memory_gateway_satisfies_port(gateway: InMemoryResourceGateway) -> None:
    assert isinstance(gateway, IResourceGateway)


@pytest.mark.asyncio
async def test_ensure_role_twice_by_name_creates_once(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    first = await service.ensure_role("g1", RoleOptions(name="Crew Alpha"))
    second = await service.ensure_role("g1", RoleOptions(name="Crew Alpha"))
    assert first == second
    assert gateway.roles_created == 1


@pytest.mark.asyncio
async def test_ensure_role_matches_name_case_insensitively(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    existing = await service.ensure_role("g1", RoleOptions(name="Crew Alpha"))
    found = await service.ensure_role("g1", RoleOptions(name="crew ALPHA"))
    assert found.id == existing.id
    assert gateway.roles_created == 1


@pytest.mark.asyncio
async def test_ensure_role_by_id(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    existing = await service.ensure_role("g1", RoleOptions(name="A"))
    found = await service.ensure_role("g1", RoleOptions(id=existing.id, name="B"))
    assert found == existing
    assert gateway.roles_created == 1


@pytest.mark.asyncio
async def test_ensure_role_with_stale_id_falls_back_to_create(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    role = await service.ensure_role("g1", RoleOptions(id="999", name="A"))
    assert role.id != "999"
    assert gateway.roles_created == 1


@pytest.mark.asyncio
async def test_roles_are_scoped_per_guild(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    a = await service.ensure_role("g1", RoleOptions(name="Crew"))
    b = await service.ensure_role("g2", RoleOptions(name="Crew"))
    assert a.id != b.id
    assert gateway.roles_created == 2


@pytest.mark.asyncio
async def test_create_requires_privileges() -> None:
    gateway = InMemoryResourceGateway(managed={"other"})
    service = ResourceService(gateway)
    with pytest.raises(ExternalError) as exc_info:
        await service.ensure_role("g1", RoleOptions(name="A"))
    assert exc_info.value.code == "INSUFFICIENT_PRIVILEGES"
    assert exc_info.value.internal is False
    assert gateway.roles_created == 0


@pytest.mark.asyncio
async def test_ensure_channel_matches_name_and_parent(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    category = await service.ensure_channel(
        "g1", ChannelOptions(name="Crews", kind="category")
    )
    first = await service.ensure_channel(
        "g1", ChannelOptions(name="alpha", parent_id=category.id)
    )
    again = await service.ensure_channel(
        "g1", ChannelOptions(name="ALPHA", parent_id=category.id)
    )
    elsewhere = await service.ensure_channel("g1", ChannelOptions(name="alpha"))
    assert again == first
    assert elsewhere.id != first.id
    assert gateway.channels_created == 3


@pytest.mark.asyncio
async def test_ensure_channel_reapplies_overwrites_on_name_match(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    channel = await service.ensure_channel("g1", ChannelOptions(name="ops"))
    overwrites = [{"id": "r1", "allow": "1024"}]
    await service.ensure_channel(
        "g1", ChannelOptions(name="ops", permission_overwrites=overwrites)
    )
    assert gateway.overwrites[channel.id] == overwrites
    assert gateway.channels_created == 1


@pytest.mark.asyncio
async def test_assign_and_remove_have_set_semantics(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    role = await service.ensure_role("g1", RoleOptions(name="A"))
    await service.assign_role("g1", role.id, "m1")
    await service.assign_role("g1", role.id, "m1")
    assert gateway.members[("g1", "m1")] == {role.id}
    await service.remove_role("g1", role.id, "m1")
    await service.remove_role("g1", role.id, "m1")
    assert gateway.members[("g1", "m1")] == set()


@pytest.mark.asyncio
async def test_delete_role_twice_succeeds(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    role = await service.ensure_role("g1", RoleOptions(name="A"))
    channel = await service.ensure_channel("g1", ChannelOptions(name="A"))
    await service.delete_role("g1", role.id)
    await service.delete_role("g1", role.id)
    assert role.id not in gateway.roles
    assert channel.id in gateway.channels


@pytest.mark.asyncio
async def test_delete_channel_twice_succeeds(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    channel = await service.ensure_channel("g1", ChannelOptions(name="ops"))
    await service.delete_channel("g1", channel.id)
    await service.delete_channel("g1", channel.id)
    assert channel.id not in gateway.channels


@pytest.mark.asyncio
async def test_send_and_delete_messages(service: ResourceService) -> None:
    channel = await service.ensure_channel("g1", ChannelOptions(name="ops"))
    sent = await service.send_message("g1", channel.id, MessageOptions(content="hi"))
    assert len(sent) == 1
    deleted = await service.delete_messages("g1", channel.id, [*sent, "missing"])
    assert deleted == sent
    assert await service.delete_messages("g1", channel.id, sent) == []


@pytest.mark.asyncio
async def test_send_direct_message(
    service: ResourceService, gateway: InMemoryResourceGateway
) -> None:
    sent = await service.send_direct_message("u1", MessageOptions(content="hello"))
    assert gateway.direct_messages["u1"] == sent

"""Tests for the command schema."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from command_relay.commands import (
    CrewTarget,
    DeleteMessages,
    EnsureChannel,
    EnsureRole,
    RoleEnsured,
    SendDirectMessage,
    action_routing_key,
    parse_command,
    parse_response,
    response_routing_key,
)


def test_parse_ensure_role_with_target() -> None:
    command = parse_command(
        {
            "type": "role.ensure",
            "guild_id": "g1",
            "role": {"name": "Crew Alpha"},
            "target": {"type": "crew", "crew_id": "c1", "field": "role"},
        }
    )
    assert isinstance(command, EnsureRole)
    assert command.role.name == "Crew Alpha"
    assert command.role.mentionable is True
    assert isinstance(command.target, CrewTarget)
    assert command.target.field == "role"


def test_parse_channel_defaults() -> None:
    command = parse_command(
        {"type": "channel.ensure", "guild_id": "g1", "channel": {"name": "ops"}}
    )
    assert isinstance(command, EnsureChannel)
    assert command.channel.kind == "text"
    assert command.channel.parent_id is None
    assert command.target is None


def test_single_message_id_becomes_list() -> None:
    command = parse_command(
        {
            "type": "message.delete",
            "guild_id": "g1",
            "channel_id": "ch1",
            "message_ids": "m1",
        }
    )
    assert isinstance(command, DeleteMessages)
    assert command.message_ids == ["m1"]


def test_direct_message() -> None:
    command = parse_command(
        {"type": "dm.send", "user_id": "u1", "message": {"content": "hi"}}
    )
    assert isinstance(command, SendDirectMessage)
    assert command.message.embeds == []


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "role.explode", "guild_id": "g1"},
        {"type": "role.ensure", "guild_id": "g1", "role": {"name": ""}},
        {"type": "role.assign", "guild_id": "g1", "role_id": "r1"},
        {"guild_id": "g1"},
        "not-an-object",
        None,
    ],
)
def test_invalid_payloads_are_rejected(payload: object) -> None:
    with pytest.raises(ValidationError):
        parse_command(payload)


def test_unknown_target_type_is_rejected() -> None:
    with pytest.raises(ValidationError):
        parse_command(
            {
                "type": "role.delete",
                "guild_id": "g1",
                "role_id": "r1",
                "target": {"type": "planet", "planet_id": "p"},
            }
        )


def test_response_routing_key() -> None:
    response = RoleEnsured(
        guild_id="g1", role_id="r1", target=CrewTarget(crew_id="c1")
    )
    assert response.routing_key == "response.crew.role.ensure"
    assert RoleEnsured(guild_id="g1", role_id="r1").routing_key is None


def test_parse_response() -> None:
    response = parse_response(
        {
            "type": "role.ensure",
            "guild_id": "g1",
            "role_id": "r1",
            "target": {"type": "team", "team_id": "t1"},
        }
    )
    assert isinstance(response, RoleEnsured)
    assert response.routing_key == "response.team.role.ensure"


def test_routing_key_helpers() -> None:
    assert action_routing_key("channel.ensure") == "action.channel.ensure"
    assert response_routing_key("crew_member", "role.assign") == (
        "response.crew_member.role.assign"
    )

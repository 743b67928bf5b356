"""ResourceService — idempotent operations against the external system.

Every operation here may be re-run with identical input after a partial
success (resource created, acknowledgement lost) and converges to the same
state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import ExternalError

if TYPE_CHECKING:
    from .commands import ChannelOptions, MessageOptions, RoleOptions
    from .ports import IResourceGateway

logger = logging.getLogger("command_relay.resources")


@dataclass(frozen=True)
class RoleRecord:
    id: str
    guild_id: str
    name: str


@dataclass(frozen=True)
class ChannelRecord:
    id: str
    guild_id: str
    name: str
    parent_id: str | None = None


def _same_name(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


class ResourceService:
    """Ensure / assign / remove / delete / send, built on gateway primitives."""

    def __init__(self, gateway: IResourceGateway) -> None:
        self._gateway = gateway

    async def _require_manage(self, guild_id: str) -> None:
        if not await self._gateway.can_manage(guild_id):
            raise ExternalError(
                "INSUFFICIENT_PRIVILEGES",
                "Bot requires additional privileges",
                ["MANAGE_ROLES", "MANAGE_CHANNELS"],
                internal=False,
            )

    async def ensure_role(self, guild_id: str, options: RoleOptions) -> RoleRecord:
        """Return the role by id, else by case-insensitive name, else create it."""
        if options.id:
            role = await self._gateway.get_role(guild_id, options.id)
            if role is not None:
                return role

        for role in await self._gateway.list_roles(guild_id):
            if _same_name(role.name, options.name):
                return role

        await self._require_manage(guild_id)
        role = await self._gateway.create_role(guild_id, options)
        logger.info("Created role %s (%s) in guild %s", role.name, role.id, guild_id)
        return role

    async def ensure_channel(
        self, guild_id: str, options: ChannelOptions
    ) -> ChannelRecord:
        """Return the channel by id, else by name under the same parent, else
        create it.

        A channel found by name gets the requested permission overwrites
        re-applied; one found by id is returned untouched.
        """
        if options.id:
            channel = await self._gateway.get_channel(guild_id, options.id)
            if channel is not None:
                return channel

        for channel in await self._gateway.list_channels(guild_id):
            if (
                _same_name(channel.name, options.name)
                and channel.parent_id == options.parent_id
            ):
                if options.permission_overwrites:
                    await self._gateway.set_permission_overwrites(
                        guild_id, channel.id, options.permission_overwrites
                    )
                return channel

        await self._require_manage(guild_id)
        channel = await self._gateway.create_channel(guild_id, options)
        logger.info(
            "Created channel %s (%s) in guild %s", channel.name, channel.id, guild_id
        )
        return channel

    async def assign_role(self, guild_id: str, role_id: str, member_id: str) -> None:
        await self._gateway.add_member_role(guild_id, member_id, role_id)

    async def remove_role(self, guild_id: str, role_id: str, member_id: str) -> None:
        await self._gateway.remove_member_role(guild_id, member_id, role_id)

    async def delete_role(self, guild_id: str, role_id: str) -> None:
        if await self._gateway.get_role(guild_id, role_id) is None:
            logger.debug("Role %s already absent from guild %s", role_id, guild_id)
            return
        await self._gateway.delete_role(guild_id, role_id)

    async def delete_channel(self, guild_id: str, channel_id: str) -> None:
        if await self._gateway.get_channel(guild_id, channel_id) is None:
            logger.debug(
                "Channel %s already absent from guild %s", channel_id, guild_id
            )
            return
        await self._gateway.delete_channel(guild_id, channel_id)

    async def send_message(
        self, guild_id: str, channel_id: str, message: MessageOptions
    ) -> list[str]:
        return await self._gateway.send_message(guild_id, channel_id, message)

    async def delete_messages(
        self, guild_id: str, channel_id: str, message_ids: list[str]
    ) -> list[str]:
        """Delete what still exists; returns the ids actually deleted."""
        return await self._gateway.delete_messages(guild_id, channel_id, message_ids)

    async def send_direct_message(
        self, user_id: str, message: MessageOptions
    ) -> list[str]:
        return await self._gateway.send_direct_message(user_id, message)

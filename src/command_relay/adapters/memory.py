"""In-memory implementation of IResourceGateway for testing and local runs."""

from __future__ import annotations

import itertools
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ..exceptions import ExternalError
from ..resources import ChannelRecord, RoleRecord

if TYPE_CHECKING:
    from ..commands import ChannelOptions, MessageOptions, RoleOptions


class InMemoryResourceGateway:
    """
    Dict-backed external system.

    Tracks how many roles and channels were created so tests can assert that
    repeated "ensure" commands converge without duplicates. ``managed``
    holds the guilds the bot may create resources in; ``None`` means all.
    """

    def __init__(self, managed: set[str] | None = None) -> None:
        self._ids = itertools.count(1)
        self.managed = managed
        self.roles: dict[str, RoleRecord] = {}
        self.channels: dict[str, ChannelRecord] = {}
        self.members: dict[tuple[str, str], set[str]] = defaultdict(set)
        self.overwrites: dict[str, list[dict[str, Any]]] = {}
        self.messages: dict[str, str] = {}  # message id -> channel id
        self.direct_messages: dict[str, list[str]] = defaultdict(list)
        self.roles_created = 0
        self.channels_created = 0

    def _next_id(self) -> str:
        return str(next(self._ids))

    # ── Permissions ─────────────────────────────────────────────────

    async def can_manage(self, guild_id: str) -> bool:
        return self.managed is None or guild_id in self.managed

    # ── Roles ───────────────────────────────────────────────────────

    async def get_role(self, guild_id: str, role_id: str) -> RoleRecord | None:
        role = self.roles.get(role_id)
        return role if role is not None and role.guild_id == guild_id else None

    async def list_roles(self, guild_id: str) -> list[RoleRecord]:
        return [r for r in self.roles.values() if r.guild_id == guild_id]

    async def create_role(self, guild_id: str, options: RoleOptions) -> RoleRecord:
        role = RoleRecord(id=self._next_id(), guild_id=guild_id, name=options.name)
        self.roles[role.id] = role
        self.roles_created += 1
        return role

    async def delete_role(self, guild_id: str, role_id: str) -> None:
        if await self.get_role(guild_id, role_id) is None:
            raise ExternalError("UNKNOWN_ROLE", f"Role {role_id} not found")
        del self.roles[role_id]
        for (guild, _member), roles in self.members.items():
            if guild == guild_id:
                roles.discard(role_id)

    async def add_member_role(
        self, guild_id: str, member_id: str, role_id: str
    ) -> None:
        if await self.get_role(guild_id, role_id) is None:
            raise ExternalError("UNKNOWN_ROLE", f"Role {role_id} not found")
        self.members[(guild_id, member_id)].add(role_id)

    async def remove_member_role(
        self, guild_id: str, member_id: str, role_id: str
    ) -> None:
        self.members[(guild_id, member_id)].discard(role_id)

    # ── Channels ────────────────────────────────────────────────────

    async def get_channel(
        self, guild_id: str, channel_id: str
    ) -> ChannelRecord | None:
        channel = self.channels.get(channel_id)
        if channel is None or channel.guild_id != guild_id:
            return None
        return channel

    async def list_channels(self, guild_id: str) -> list[ChannelRecord]:
        return [c for c in self.channels.values() if c.guild_id == guild_id]

    async def create_channel(
        self, guild_id: str, options: ChannelOptions
    ) -> ChannelRecord:
        channel = ChannelRecord(
            id=self._next_id(),
            guild_id=guild_id,
            name=options.name,
            parent_id=options.parent_id,
        )
        self.channels[channel.id] = channel
        if options.permission_overwrites:
            self.overwrites[channel.id] = list(options.permission_overwrites)
        self.channels_created += 1
        return channel

    async def set_permission_overwrites(
        self,
        guild_id: str,
        channel_id: str,
        overwrites: list[dict[str, Any]],
    ) -> None:
        if await self.get_channel(guild_id, channel_id) is None:
            raise ExternalError("UNKNOWN_CHANNEL", f"Channel {channel_id} not found")
        self.overwrites[channel_id] = list(overwrites)

    async def delete_channel(self, guild_id: str, channel_id: str) -> None:
        if await self.get_channel(guild_id, channel_id) is None:
            raise ExternalError("UNKNOWN_CHANNEL", f"Channel {channel_id} not found")
        del self.channels[channel_id]
        self.overwrites.pop(channel_id, None)
        for child_id, child in list(self.channels.items()):
            if child.parent_id == channel_id:
                self.channels[child_id] = replace(child, parent_id=None)

    # ── Messages ────────────────────────────────────────────────────

    async def send_message(
        self, guild_id: str, channel_id: str, message: MessageOptions
    ) -> list[str]:
        if await self.get_channel(guild_id, channel_id) is None:
            raise ExternalError("UNKNOWN_CHANNEL", f"Channel {channel_id} not found")
        message_id = self._next_id()
        self.messages[message_id] = channel_id
        return [message_id]

    async def delete_messages(
        self, guild_id: str, channel_id: str, message_ids: list[str]
    ) -> list[str]:
        deleted = []
        for message_id in message_ids:
            if self.messages.get(message_id) == channel_id:
                del self.messages[message_id]
                deleted.append(message_id)
        return deleted

    async def send_direct_message(
        self, user_id: str, message: MessageOptions
    ) -> list[str]:
        message_id = self._next_id()
        self.direct_messages[user_id].append(message_id)
        return [message_id]

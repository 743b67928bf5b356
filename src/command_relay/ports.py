"""IResourceGateway — port of the external system commands act upon."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .commands import ChannelOptions, MessageOptions, RoleOptions
    from .resources import ChannelRecord, RoleRecord


@runtime_checkable
class IResourceGateway(Protocol):
    """
    Port for the external system commands act upon (roles, channels,
    messages inside guilds).

    Adapters translate these primitives to a concrete API. Lookups return
    ``None`` for missing resources instead of raising; everything else
    raises on failure so the worker can retry.
    """

    async def can_manage(self, guild_id: str) -> bool:
        """Whether the bot may create roles and channels in *guild_id*."""
        ...

    async def get_role(self, guild_id: str, role_id: str) -> RoleRecord | None: ...

    async def list_roles(self, guild_id: str) -> list[RoleRecord]: ...

    async def create_role(self, guild_id: str, options: RoleOptions) -> RoleRecord: ...

    async def delete_role(self, guild_id: str, role_id: str) -> None: ...

    async def add_member_role(
        self, guild_id: str, member_id: str, role_id: str
    ) -> None: ...

    async def remove_member_role(
        self, guild_id: str, member_id: str, role_id: str
    ) -> None: ...

    async def get_channel(
        self, guild_id: str, channel_id: str
    ) -> ChannelRecord | None: ...

    async def list_channels(self, guild_id: str) -> list[ChannelRecord]: ...

    async def create_channel(
        self, guild_id: str, options: ChannelOptions
    ) -> ChannelRecord: ...

    async def set_permission_overwrites(
        self,
        guild_id: str,
        channel_id: str,
        overwrites: list[dict[str, Any]],
    ) -> None: ...

    async def delete_channel(self, guild_id: str, channel_id: str) -> None: ...

    async def send_message(
        self, guild_id: str, channel_id: str, message: MessageOptions
    ) -> list[str]:
        """Send *message*; returns the ids of the messages created."""
        ...

    async def delete_messages(
        self, guild_id: str, channel_id: str, message_ids: list[str]
    ) -> list[str]:
        """Delete the given messages; returns the ids that existed."""
        ...

    async def send_direct_message(
        self, user_id: str, message: MessageOptions
    ) -> list[str]: ...

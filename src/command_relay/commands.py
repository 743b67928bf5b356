"""Command schema — closed tagged unions of requests, responses and targets.

Every request names one action against the external system. Its optional
``target`` says which subscriber cares about the outcome; the worker routes
the matching response to ``response.{target.type}.{command.type}``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# ── Targets ──────────────────────────────────────────────────────────


class _Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str | None = None


class GuildTarget(_Target):
    type: Literal["guild"] = "guild"
    guild_id: str


class UserTarget(_Target):
    type: Literal["user"] = "user"
    user_id: str


class TeamTarget(_Target):
    type: Literal["team"] = "team"
    team_id: str


class CrewTarget(_Target):
    type: Literal["crew"] = "crew"
    crew_id: str


class CrewMemberTarget(_Target):
    type: Literal["crew_member"] = "crew_member"
    crew_id: str
    member_id: str


Target = Annotated[
    Union[GuildTarget, UserTarget, TeamTarget, CrewTarget, CrewMemberTarget],
    Field(discriminator="type"),
]

# ── Creation options ─────────────────────────────────────────────────


class RoleOptions(BaseModel):
    """Role to ensure; ``id`` is an already-known identifier, if any."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str = Field(..., min_length=1)
    color: int | None = None
    hoist: bool = False
    mentionable: bool = True


class ChannelOptions(BaseModel):
    """Channel to ensure; ``id`` is an already-known identifier, if any."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str = Field(..., min_length=1)
    kind: Literal["text", "voice", "category", "forum"] = "text"
    parent_id: str | None = None
    topic: str | None = None
    permission_overwrites: list[dict[str, Any]] | None = None


class MessageOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str | None = None
    embeds: list[dict[str, Any]] = Field(default_factory=list)


# ── Requests ─────────────────────────────────────────────────────────


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: Target | None = None


class EnsureRole(_Command):
    type: Literal["role.ensure"] = "role.ensure"
    guild_id: str
    role: RoleOptions


class AssignRole(_Command):
    type: Literal["role.assign"] = "role.assign"
    guild_id: str
    role_id: str
    member_id: str


class RemoveRole(_Command):
    type: Literal["role.remove"] = "role.remove"
    guild_id: str
    role_id: str
    member_id: str


class DeleteRole(_Command):
    type: Literal["role.delete"] = "role.delete"
    guild_id: str
    role_id: str


class EnsureChannel(_Command):
    type: Literal["channel.ensure"] = "channel.ensure"
    guild_id: str
    channel: ChannelOptions


class DeleteChannel(_Command):
    type: Literal["channel.delete"] = "channel.delete"
    guild_id: str
    channel_id: str


class SendMessage(_Command):
    type: Literal["message.send"] = "message.send"
    guild_id: str
    channel_id: str
    message: MessageOptions


class DeleteMessages(_Command):
    type: Literal["message.delete"] = "message.delete"
    guild_id: str
    channel_id: str
    message_ids: list[str]

    @field_validator("message_ids", mode="before")
    @classmethod
    def _single_id_to_list(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value


class SendDirectMessage(_Command):
    type: Literal["dm.send"] = "dm.send"
    user_id: str
    message: MessageOptions


CommandRequest = Annotated[
    Union[
        EnsureRole,
        AssignRole,
        RemoveRole,
        DeleteRole,
        EnsureChannel,
        DeleteChannel,
        SendMessage,
        DeleteMessages,
        SendDirectMessage,
    ],
    Field(discriminator="type"),
]

# ── Responses ────────────────────────────────────────────────────────


class CommandResponseBase(BaseModel):
    """Outcome of one command; mirrors its request with resolved identifiers."""

    model_config = ConfigDict(frozen=True)

    type: str
    target: Target | None = None

    @property
    def routing_key(self) -> str | None:
        """Where interested subscribers receive this response, if anywhere."""
        if self.target is None:
            return None
        return response_routing_key(self.target.type, self.type)


class RoleEnsured(CommandResponseBase):
    type: Literal["role.ensure"] = "role.ensure"
    guild_id: str
    role_id: str


class RoleAssigned(CommandResponseBase):
    type: Literal["role.assign"] = "role.assign"
    guild_id: str
    role_id: str
    member_id: str


class RoleRemoved(CommandResponseBase):
    type: Literal["role.remove"] = "role.remove"
    guild_id: str
    role_id: str
    member_id: str


class RoleDeleted(CommandResponseBase):
    type: Literal["role.delete"] = "role.delete"
    guild_id: str
    role_id: str


class ChannelEnsured(CommandResponseBase):
    type: Literal["channel.ensure"] = "channel.ensure"
    guild_id: str
    channel_id: str


class ChannelDeleted(CommandResponseBase):
    type: Literal["channel.delete"] = "channel.delete"
    guild_id: str
    channel_id: str


class MessageSent(CommandResponseBase):
    type: Literal["message.send"] = "message.send"
    guild_id: str
    channel_id: str
    message_ids: list[str]


class MessagesDeleted(CommandResponseBase):
    type: Literal["message.delete"] = "message.delete"
    guild_id: str
    channel_id: str
    message_ids: list[str]


class DirectMessageSent(CommandResponseBase):
    type: Literal["dm.send"] = "dm.send"
    user_id: str
    message_ids: list[str]


CommandResponse = Annotated[
    Union[
        RoleEnsured,
        RoleAssigned,
        RoleRemoved,
        RoleDeleted,
        ChannelEnsured,
        ChannelDeleted,
        MessageSent,
        MessagesDeleted,
        DirectMessageSent,
    ],
    Field(discriminator="type"),
]

_requests: TypeAdapter[Any] = TypeAdapter(CommandRequest)
_responses: TypeAdapter[Any] = TypeAdapter(CommandResponse)


def parse_command(payload: Any) -> Any:
    """Validate *payload* into one ``CommandRequest`` variant.

    Raises pydantic's ``ValidationError`` for unknown or malformed commands.
    """
    return _requests.validate_python(payload)


def parse_response(payload: Any) -> Any:
    """Validate *payload* into one ``CommandResponse`` variant."""
    return _responses.validate_python(payload)


def action_routing_key(command_type: str) -> str:
    """Routing key callers publish a command under, e.g. ``action.role.ensure``."""
    return f"action.{command_type}"


def response_routing_key(target_type: str, command_type: str) -> str:
    """e.g. ``response.crew.role.ensure``."""
    return f"response.{target_type}.{command_type}"

"""ResourceCommandHandler — routes each command variant to its operation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError
from typing_extensions import assert_never

from .commands import (
    AssignRole,
    ChannelDeleted,
    ChannelEnsured,
    DeleteChannel,
    DeleteMessages,
    DeleteRole,
    DirectMessageSent,
    EnsureChannel,
    EnsureRole,
    MessageSent,
    MessagesDeleted,
    RemoveRole,
    RoleAssigned,
    RoleDeleted,
    RoleEnsured,
    RoleRemoved,
    SendDirectMessage,
    SendMessage,
    parse_command,
)
from .exceptions import InvalidCommandError

if TYPE_CHECKING:
    from .commands import CommandRequest, CommandResponseBase
    from .envelope import CommandEnvelope
    from .resources import ResourceService

logger = logging.getLogger("command_relay.worker")


class ResourceCommandHandler:
    """Callable handler for :class:`~command_relay.rabbitmq.worker.CommandWorker`.

    Validates the envelope payload against the closed command union and runs
    the matching :class:`ResourceService` operation. The returned response
    mirrors the request, with resolved identifiers and the same target.
    """

    def __init__(self, service: ResourceService) -> None:
        self._service = service

    async def __call__(self, envelope: CommandEnvelope) -> CommandResponseBase:
        try:
            command = parse_command(envelope.payload)
        except ValidationError as e:
            raise InvalidCommandError(
                None,
                f"Invalid command on {envelope.routing_key}",
                str(e),
                internal=False,
            ) from e

        logger.debug("Processing %s (%s)", command.type, envelope.correlation_id)
        response = await self.dispatch(command)
        logger.info("Processed %s (%s)", command.type, envelope.correlation_id)
        return response

    async def dispatch(self, command: CommandRequest) -> CommandResponseBase:
        service = self._service
        match command:
            case EnsureRole():
                role = await service.ensure_role(command.guild_id, command.role)
                return RoleEnsured(
                    guild_id=command.guild_id,
                    role_id=role.id,
                    target=command.target,
                )
            case AssignRole():
                await service.assign_role(
                    command.guild_id, command.role_id, command.member_id
                )
                return RoleAssigned(
                    guild_id=command.guild_id,
                    role_id=command.role_id,
                    member_id=command.member_id,
                    target=command.target,
                )
            case RemoveRole():
                await service.remove_role(
                    command.guild_id, command.role_id, command.member_id
                )
                return RoleRemoved(
                    guild_id=command.guild_id,
                    role_id=command.role_id,
                    member_id=command.member_id,
                    target=command.target,
                )
            case DeleteRole():
                await service.delete_role(command.guild_id, command.role_id)
                return RoleDeleted(
                    guild_id=command.guild_id,
                    role_id=command.role_id,
                    target=command.target,
                )
            case EnsureChannel():
                channel = await service.ensure_channel(
                    command.guild_id, command.channel
                )
                return ChannelEnsured(
                    guild_id=command.guild_id,
                    channel_id=channel.id,
                    target=command.target,
                )
            case DeleteChannel():
                await service.delete_channel(command.guild_id, command.channel_id)
                return ChannelDeleted(
                    guild_id=command.guild_id,
                    channel_id=command.channel_id,
                    target=command.target,
                )
            case SendMessage():
                sent = await service.send_message(
                    command.guild_id, command.channel_id, command.message
                )
                return MessageSent(
                    guild_id=command.guild_id,
                    channel_id=command.channel_id,
                    message_ids=sent,
                    target=command.target,
                )
            case DeleteMessages():
                deleted = await service.delete_messages(
                    command.guild_id, command.channel_id, command.message_ids
                )
                return MessagesDeleted(
                    guild_id=command.guild_id,
                    channel_id=command.channel_id,
                    message_ids=deleted,
                    target=command.target,
                )
            case SendDirectMessage():
                sent = await service.send_direct_message(
                    command.user_id, command.message
                )
                return DirectMessageSent(
                    user_id=command.user_id,
                    message_ids=sent,
                    target=command.target,
                )
            case _:
                assert_never(command)

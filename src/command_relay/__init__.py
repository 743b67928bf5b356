"""Reliable command dispatch over RabbitMQ — RPC, retry ladder, error trace."""

from __future__ import annotations

from .commands import (
    CommandRequest,
    CommandResponse,
    CommandResponseBase,
    action_routing_key,
    parse_command,
    parse_response,
    response_routing_key,
)
from .config import RelaySettings
from .dispatch import ResourceCommandHandler
from .envelope import CommandEnvelope, EnvelopeHeaders
from .exceptions import (
    CommandError,
    ExternalError,
    InfrastructureError,
    InternalError,
    InvalidCommandError,
    MessagingConnectionError,
    MessagingError,
    MessagingSerializationError,
    RelayError,
    RemoteCommandError,
    RpcTimeoutError,
)
from .pending import PendingReplies
from .ports import IResourceGateway
from .resources import ChannelRecord, ResourceService, RoleRecord
from .response import ErrorPayload, ResponsePayload
from .retry import BackoffPolicy
from .serialization import EnvelopeSerializer
from .topology import Topology, delay_queue_name
from .trace import ErrorTraceRecord

__all__ = [
    "BackoffPolicy",
    "ChannelRecord",
    "CommandEnvelope",
    "CommandError",
    "CommandRequest",
    "CommandResponse",
    "CommandResponseBase",
    "EnvelopeHeaders",
    "EnvelopeSerializer",
    "ErrorPayload",
    "ErrorTraceRecord",
    "ExternalError",
    "IResourceGateway",
    "InfrastructureError",
    "InternalError",
    "InvalidCommandError",
    "MessagingConnectionError",
    "MessagingError",
    "MessagingSerializationError",
    "PendingReplies",
    "RelayError",
    "RelaySettings",
    "RemoteCommandError",
    "ResourceCommandHandler",
    "ResourceService",
    "ResponsePayload",
    "RoleRecord",
    "RpcTimeoutError",
    "Topology",
    "action_routing_key",
    "delay_queue_name",
    "parse_command",
    "parse_response",
    "response_routing_key",
]

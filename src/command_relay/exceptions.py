"""Exceptions for command-relay."""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .response import ErrorPayload


class RelayError(Exception):
    """Root exception for the entire command-relay package."""


class InfrastructureError(RelayError):
    """Base class for all infrastructure-related errors."""


class MessagingError(InfrastructureError):
    """Base class for all messaging-related infrastructure errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the message broker fails."""


class MessagingSerializationError(MessagingError):
    """Raised when message serialization or deserialization fails."""


# ── Command errors ───────────────────────────────────────────────────


class CommandError(RelayError):
    """Error that crosses the broker with a stable machine-readable code.

    ``internal`` marks errors whose message is not meant for end users; the
    code is always safe to show.
    """

    default_code = "COMMAND_FAILED"

    def __init__(
        self,
        code: str | None = None,
        message: str = "",
        cause: Any = None,
        *,
        internal: bool = True,
    ) -> None:
        self.code = code or self.default_code
        self.message = message
        # Preserve the root cause when wrapping another command error
        self.cause = cause.cause if isinstance(cause, CommandError) else cause
        self.internal = internal
        super().__init__(f"[{self.code}] {message}" if message else self.code)

    def cause_text(self) -> str | None:
        """Render the cause as text for the wire."""
        if self.cause is None:
            return None
        if isinstance(self.cause, str):
            return self.cause
        if isinstance(self.cause, BaseException):
            return "".join(traceback.format_exception(self.cause)).rstrip()
        return repr(self.cause)

    def to_payload(self) -> ErrorPayload:
        """Convert to the ``error`` member of a response body."""
        from .response import ErrorPayload

        return ErrorPayload(
            code=self.code,
            message=self.message,
            cause=self.cause_text(),
            internal=self.internal,
        )

    @classmethod
    def from_payload(cls, payload: ErrorPayload) -> CommandError:
        """Rebuild an error of this class from a response body."""
        return cls(
            payload.code,
            payload.message or "",
            payload.cause,
            internal=payload.internal,
        )


class InternalError(CommandError):
    """Raised for failures inside this subsystem (e.g. a rejected publish)."""

    default_code = "INTERNAL_SERVER_ERROR"


class ExternalError(CommandError):
    """Raised when the external system refuses or fails an operation."""

    default_code = "EXTERNAL_API_ERROR"


class InvalidCommandError(CommandError):
    """Raised when a command payload does not match any known variant."""

    default_code = "VALIDATION_FAILED"


class RpcTimeoutError(CommandError):
    """Raised when no response arrived within the request's expiration.

    Distinct from exhaustion: the worker may still be retrying in the
    background.
    """

    default_code = "RPC_TIMEOUT"

    def __init__(self, correlation_id: str, expiration_ms: int) -> None:
        self.correlation_id = correlation_id
        self.expiration_ms = expiration_ms
        super().__init__(
            None,
            f"No response for {correlation_id} within {expiration_ms}ms",
        )


class RemoteCommandError(CommandError):
    """Raised by the RPC client when the worker reported an error."""

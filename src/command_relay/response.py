"""Response bodies sent back to RPC callers."""

from __future__ import annotations

import traceback
from typing import Any

from pydantic import BaseModel, ConfigDict

from .exceptions import CommandError


class ErrorPayload(BaseModel):
    """The ``error`` member of a response body."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str | None = None
    cause: Any = None
    internal: bool = True

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorPayload:
        """Describe *exc*; command errors keep their own code."""
        if isinstance(exc, CommandError):
            return exc.to_payload()
        return cls(
            code=type(exc).__name__,
            message=str(exc),
            cause="".join(traceback.format_exception(exc)).rstrip(),
            internal=True,
        )


class ResponsePayload(BaseModel):
    """``{content}`` on success or ``{error}`` on failure."""

    model_config = ConfigDict(frozen=True)

    content: Any = None
    error: ErrorPayload | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, content: Any) -> ResponsePayload:
        return cls(content=content)

    @classmethod
    def failure(cls, exc: BaseException) -> ResponsePayload:
        return cls(error=ErrorPayload.from_exception(exc))

    def to_wire(self) -> dict[str, Any]:
        """Body dict with exactly one of ``content`` / ``error``."""
        if self.error is not None:
            return {"error": self.error.model_dump(mode="json")}
        return {"content": self.content}

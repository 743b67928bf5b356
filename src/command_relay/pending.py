"""PendingReplies — correlation id -> waiter registry for RPC callers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from .exceptions import InternalError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .response import ResponsePayload

logger = logging.getLogger("command_relay.client")


class PendingReplies:
    """Maps each in-flight correlation id to the future its caller awaits.

    Slots are reserved with :meth:`reserve`, which removes the entry on every
    exit path (reply, error, timeout or cancellation).
    """

    def __init__(self) -> None:
        self._waiters: dict[str, asyncio.Future[ResponsePayload]] = {}

    def __len__(self) -> int:
        return len(self._waiters)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._waiters

    @asynccontextmanager
    async def reserve(
        self, correlation_id: str
    ) -> AsyncIterator[asyncio.Future[ResponsePayload]]:
        """Register a waiter for *correlation_id* for the duration of the block."""
        if correlation_id in self._waiters:
            raise InternalError(
                "DUPLICATE_CORRELATION_ID",
                f"A request with correlation id {correlation_id} is already pending",
            )
        future: asyncio.Future[ResponsePayload] = (
            asyncio.get_running_loop().create_future()
        )
        self._waiters[correlation_id] = future
        try:
            yield future
        finally:
            self._waiters.pop(correlation_id, None)
            if not future.done():
                future.cancel()

    def resolve(self, correlation_id: str, response: ResponsePayload) -> bool:
        """Hand *response* to its waiter; False if nobody is waiting."""
        future = self._waiters.get(correlation_id)
        if future is None or future.done():
            logger.debug("Dropping reply for unknown request %s", correlation_id)
            return False
        future.set_result(response)
        return True

    def fail_all(self, exc: BaseException) -> int:
        """Fail every pending waiter with *exc* (used on shutdown)."""
        failed = 0
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(exc)
                failed += 1
        return failed

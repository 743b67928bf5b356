"""ErrorTraceSink — terminal consumer of commands that ran out of retries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..topology import Topology
from ..trace import ErrorTraceRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from ..config import RelaySettings
    from .connection import RabbitMQConnectionManager

logger = logging.getLogger("command_relay.errors")


class ErrorTraceSink:
    """Consumes the bounded error queue and reports each record.

    Every record is logged as one JSON document at WARNING. Callers may pass
    an async ``on_trace`` callback to forward records elsewhere (alerting,
    storage); it runs after logging and its failures are logged, not raised.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        *,
        topology: Topology | None = None,
        on_trace: (
            Callable[[ErrorTraceRecord], Coroutine[Any, Any, None]] | None
        ) = None,
        prefetch_count: int = 10,
        channel_name: str = "error-trace",
    ) -> None:
        self._connection = connection
        self._topology = topology or Topology()
        self._on_trace = on_trace
        self._prefetch_count = prefetch_count
        self._channel_name = channel_name
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    @classmethod
    def from_settings(
        cls,
        connection: RabbitMQConnectionManager,
        settings: RelaySettings,
        **kwargs: Any,
    ) -> ErrorTraceSink:
        return cls(
            connection,
            topology=settings.topology(),
            prefetch_count=settings.prefetch_count,
            **kwargs,
        )

    async def start(self) -> None:
        channel = await self._connection.get_channel(
            self._channel_name, prefetch_count=self._prefetch_count
        )
        self._queue = await self._topology.declare_queue(
            channel, self._topology.error_queue
        )
        self._consumer_tag = await self._queue.consume(self.on_message)

    async def stop(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        self._queue = None
        self._consumer_tag = None

    async def on_message(self, raw: AbstractIncomingMessage) -> None:
        async with raw.process(requeue=False, ignore_processed=True):
            record = ErrorTraceRecord.from_message(raw)
            logger.warning("Command failed permanently: %s", record.to_json())
            if self._on_trace is not None:
                try:
                    await self._on_trace(record)
                except Exception:  # noqa: BLE001
                    logger.exception(
                        "on_trace callback failed for %s", record.correlation_id
                    )
            await raw.ack()

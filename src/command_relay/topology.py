"""Declarative broker topology: exchanges, queues and delay-queue naming."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aio_pika

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractQueue

    from .config import RelaySettings
    from .retry import BackoffPolicy

logger = logging.getLogger("command_relay.topology")


@dataclass(frozen=True)
class ExchangeSpec:
    """A durable exchange (topic unless stated otherwise)."""

    name: str
    type: aio_pika.ExchangeType = aio_pika.ExchangeType.TOPIC
    durable: bool = True


@dataclass(frozen=True)
class QueueSpec:
    """A queue, optionally bound to an exchange with one binding key."""

    name: str
    exchange: ExchangeSpec | None = None
    binding_key: str | None = None
    durable: bool = True
    arguments: dict[str, Any] = field(default_factory=dict)


def delay_queue_name(exchange: str, routing_key: str, retry_count: int) -> str:
    """Name of the delay queue holding retry ``retry_count`` of a route."""
    return f"{exchange}-{routing_key}-wait-{retry_count}"


@dataclass(frozen=True)
class Topology:
    """The exchanges and shared queues every component agrees on.

    - ``command``: where callers publish commands and workers publish
      responses.
    - ``retry``: dead-letter target of worker queues.
    - ``errors``: dead-letter target of the retry queue.
    """

    command: ExchangeSpec = field(default_factory=lambda: ExchangeSpec("command"))
    retry: ExchangeSpec = field(default_factory=lambda: ExchangeSpec("retry"))
    errors: ExchangeSpec = field(default_factory=lambda: ExchangeSpec("errors"))
    retry_queue_name: str = "retry-triage"
    error_queue_name: str = "error-trace"
    error_queue_max_length: int = 10_000

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> Topology:
        return cls(
            command=ExchangeSpec(settings.command_exchange),
            retry=ExchangeSpec(settings.retry_exchange),
            errors=ExchangeSpec(settings.errors_exchange),
            retry_queue_name=settings.retry_queue,
            error_queue_name=settings.error_queue,
            error_queue_max_length=settings.error_queue_max_length,
        )

    @property
    def exchanges(self) -> tuple[ExchangeSpec, ...]:
        return (self.command, self.retry, self.errors)

    @property
    def retry_queue(self) -> QueueSpec:
        """Failed deliveries land here; rejected ones flow on to ``errors``."""
        return QueueSpec(
            name=self.retry_queue_name,
            exchange=self.retry,
            binding_key="#",
            arguments={"x-dead-letter-exchange": self.errors.name},
        )

    @property
    def error_queue(self) -> QueueSpec:
        """Bounded terminal queue; the oldest record is dropped on overflow."""
        return QueueSpec(
            name=self.error_queue_name,
            exchange=self.errors,
            binding_key="#",
            arguments={"x-max-length": self.error_queue_max_length},
        )

    def worker_queue(self, name: str, binding_key: str) -> QueueSpec:
        """A worker queue on the command exchange, dead-lettering to ``retry``."""
        return QueueSpec(
            name=name,
            exchange=self.command,
            binding_key=binding_key,
            arguments={"x-dead-letter-exchange": self.retry.name},
        )

    def delay_queue(
        self,
        exchange: str,
        routing_key: str,
        retry_count: int,
        backoff: BackoffPolicy,
    ) -> QueueSpec:
        """Unbound queue whose expired messages return to the original route."""
        return QueueSpec(
            name=delay_queue_name(exchange, routing_key, retry_count),
            arguments={
                "x-message-ttl": backoff.delay_ms(retry_count),
                "x-expires": backoff.queue_expires_ms(retry_count),
                "x-dead-letter-exchange": exchange,
                "x-dead-letter-routing-key": routing_key,
            },
        )

    async def declare_exchange(
        self, channel: AbstractChannel, spec: ExchangeSpec
    ) -> AbstractExchange:
        return await channel.declare_exchange(
            spec.name,
            spec.type,
            durable=spec.durable,
        )

    async def declare_queue(
        self, channel: AbstractChannel, spec: QueueSpec
    ) -> AbstractQueue:
        """Declare *spec* (and bind it when it names an exchange)."""
        queue = await channel.declare_queue(
            spec.name,
            durable=spec.durable,
            arguments=spec.arguments or None,
        )
        if spec.exchange is not None:
            exchange = await self.declare_exchange(channel, spec.exchange)
            await queue.bind(exchange, routing_key=spec.binding_key or "#")
        return queue

    async def declare(self, channel: AbstractChannel) -> None:
        """Declare all exchanges plus the retry and error queues."""
        for spec in self.exchanges:
            await self.declare_exchange(channel, spec)
        await self.declare_queue(channel, self.retry_queue)
        await self.declare_queue(channel, self.error_queue)
        logger.info(
            "Declared topology: exchanges=%s queues=%s",
            [e.name for e in self.exchanges],
            [self.retry_queue_name, self.error_queue_name],
        )

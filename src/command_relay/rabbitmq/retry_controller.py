"""RetryController — broker-native delayed redelivery ladder.

Worker queues dead-letter failed deliveries to the ``retry`` exchange. The
controller consumes them from the retry queue and either parks each one in
a per-attempt delay queue, whose TTL dead-letters it back to the original
route, or rejects it so the retry queue dead-letters it onto ``errors``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aio_pika.exceptions import AMQPError

from ..exceptions import InternalError, MessagingSerializationError
from ..retry import BackoffPolicy
from ..serialization import EnvelopeSerializer
from ..topology import Topology
from .publisher import CommandPublisher

if TYPE_CHECKING:
    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from ..config import RelaySettings
    from .connection import RabbitMQConnectionManager

logger = logging.getLogger("command_relay.retry")


class RetryController:
    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        *,
        topology: Topology | None = None,
        backoff: BackoffPolicy | None = None,
        serializer: EnvelopeSerializer | None = None,
        prefetch_count: int = 10,
        channel_name: str = "retry-controller",
        delay_channel_name: str = "retry-delay",
    ) -> None:
        """Configure the controller.

        Args:
            connection: Shared connection manager.
            topology: Exchange and queue names; default Topology().
            backoff: Delay law and retry limit; default BackoffPolicy().
            serializer: Envelope codec; default EnvelopeSerializer().
            prefetch_count: QoS prefetch of the consuming channel.
            channel_name: Channel the retry queue is consumed on.
            delay_channel_name: Channel delay queues are declared and
                published on, kept apart so a failed declare cannot close
                the consuming channel.
        """
        self._connection = connection
        self._topology = topology or Topology()
        self._backoff = backoff or BackoffPolicy()
        self._serializer = serializer or EnvelopeSerializer()
        self._prefetch_count = prefetch_count
        self._channel_name = channel_name
        self._delay_channel_name = delay_channel_name
        self._publisher = CommandPublisher(
            connection, channel_name=delay_channel_name, serializer=self._serializer
        )
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    @classmethod
    def from_settings(
        cls, connection: RabbitMQConnectionManager, settings: RelaySettings
    ) -> RetryController:
        return cls(
            connection,
            topology=settings.topology(),
            backoff=settings.backoff_policy(),
            serializer=EnvelopeSerializer(settings.rpc_timeout_ms),
            prefetch_count=settings.prefetch_count,
        )

    async def start(self) -> None:
        """Declare the topology and start consuming the retry queue."""
        channel = await self._connection.get_channel(
            self._channel_name, prefetch_count=self._prefetch_count
        )
        await self._topology.declare(channel)
        self._queue = await self._topology.declare_queue(
            channel, self._topology.retry_queue
        )
        self._consumer_tag = await self._queue.consume(self.on_message)
        logger.info(
            "Retry controller consuming %s (%r)",
            self._topology.retry_queue_name,
            self._backoff,
        )

    async def stop(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        self._queue = None
        self._consumer_tag = None

    async def on_message(self, raw: AbstractIncomingMessage) -> None:
        async with raw.process(requeue=False, ignore_processed=True):
            await self.handle(raw)

    async def handle(self, raw: AbstractIncomingMessage) -> None:
        """Schedule the next attempt of *raw*, or reject it as terminal."""
        try:
            envelope = self._serializer.from_incoming(raw)
        except MessagingSerializationError:
            logger.exception("Rejecting unparseable message %s", raw.message_id)
            await raw.reject(requeue=False)
            return

        exchange = envelope.headers.first_death_exchange
        if not exchange:
            logger.warning(
                "Rejecting %s: no first-death exchange to return it to",
                envelope.correlation_id,
            )
            await raw.reject(requeue=False)
            return

        if not self._backoff.should_retry(envelope.retry_count):
            logger.warning(
                "Giving up on %s (%s) after %d retries",
                envelope.correlation_id,
                envelope.headers.first_death_routing_key,
                envelope.retry_count,
            )
            await raw.reject(requeue=False)
            return

        attempt = envelope.next_attempt()
        routing_key = attempt.headers.first_death_routing_key or ""
        spec = self._topology.delay_queue(
            exchange, routing_key, attempt.retry_count, self._backoff
        )
        delay = self._backoff.delay_ms(attempt.retry_count)
        try:
            channel = await self._connection.get_channel(self._delay_channel_name)
            await self._topology.declare_queue(channel, spec)
            await self._publisher.publish_to_queue(
                spec.name, attempt, expiration_ms=delay
            )
        except (AMQPError, InternalError):
            logger.exception(
                "Could not schedule retry %d of %s via %s",
                attempt.retry_count,
                envelope.correlation_id,
                spec.name,
            )
            await raw.reject(requeue=False)
            return

        await raw.ack()
        logger.info(
            "Scheduled retry %d of %s (%s/%s) in %dms",
            attempt.retry_count,
            envelope.correlation_id,
            exchange,
            routing_key,
            delay,
        )

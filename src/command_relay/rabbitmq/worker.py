"""CommandWorker — consumes commands, runs a handler, routes the outcome."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..commands import CommandResponseBase
from ..correlation import set_correlation_id
from ..dispatch import ResourceCommandHandler
from ..exceptions import InternalError, MessagingSerializationError
from ..response import ResponsePayload
from ..retry import BackoffPolicy
from ..serialization import EnvelopeSerializer
from ..topology import Topology
from .publisher import CommandPublisher

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from ..config import RelaySettings
    from ..envelope import CommandEnvelope
    from ..resources import ResourceService
    from .connection import RabbitMQConnectionManager

    CommandHandler = Callable[[CommandEnvelope], Coroutine[Any, Any, Any]]

logger = logging.getLogger("command_relay.worker")


def _settings_kwargs(settings: RelaySettings) -> dict[str, Any]:
    return {
        "topology": settings.topology(),
        "queue_name": settings.worker_queue,
        "binding_key": settings.worker_binding_key,
        "backoff": settings.backoff_policy(),
        "serializer": EnvelopeSerializer(settings.rpc_timeout_ms),
        "prefetch_count": settings.prefetch_count,
    }


class CommandWorker:
    """Generic command consumer.

    The handler receives each :class:`CommandEnvelope` and returns the
    result. On success the result is routed to its target (when it is a
    command response carrying one) and to the caller's reply queue (for
    RPCs), then the delivery is acknowledged. On failure the delivery is
    negatively acknowledged without requeue, so the worker queue
    dead-letters it to the retry exchange; an RPC failing its last attempt
    additionally gets an error reply.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        handler: CommandHandler,
        *,
        topology: Topology | None = None,
        queue_name: str = "command-processing",
        binding_key: str = "action.#",
        backoff: BackoffPolicy | None = None,
        serializer: EnvelopeSerializer | None = None,
        prefetch_count: int = 10,
        channel_name: str | None = None,
    ) -> None:
        """Configure the worker.

        Args:
            connection: Shared connection manager.
            handler: Async callable (envelope) -> result.
            topology: Exchange and queue names; default Topology().
            queue_name: Durable queue this worker consumes.
            binding_key: Key binding the queue to the command exchange.
            backoff: Only ``max_retry`` is used, to spot the last attempt.
            serializer: Envelope codec; default EnvelopeSerializer().
            prefetch_count: QoS prefetch.
            channel_name: Channel name; defaults to the queue name.
        """
        self._connection = connection
        self._handler = handler
        self._topology = topology or Topology()
        self._queue_name = queue_name
        self._binding_key = binding_key
        self._backoff = backoff or BackoffPolicy()
        self._serializer = serializer or EnvelopeSerializer()
        self._prefetch_count = prefetch_count
        self._channel_name = channel_name or queue_name
        self._publisher = CommandPublisher(
            connection,
            channel_name=f"{self._channel_name}-publisher",
            serializer=self._serializer,
        )
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    @classmethod
    def from_settings(
        cls,
        connection: RabbitMQConnectionManager,
        handler: CommandHandler,
        settings: RelaySettings,
    ) -> CommandWorker:
        return cls(connection, handler, **_settings_kwargs(settings))

    async def start(self) -> None:
        """Declare the topology and the worker queue, then start consuming."""
        channel = await self._connection.get_channel(
            self._channel_name, prefetch_count=self._prefetch_count
        )
        await self._topology.declare(channel)
        self._queue = await self._topology.declare_queue(
            channel,
            self._topology.worker_queue(self._queue_name, self._binding_key),
        )
        self._consumer_tag = await self._queue.consume(self.on_message)
        logger.info(
            "Worker consuming %s (%s/%s)",
            self._queue_name,
            self._topology.command.name,
            self._binding_key,
        )

    async def stop(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        self._queue = None
        self._consumer_tag = None

    async def on_message(self, raw: AbstractIncomingMessage) -> None:
        async with raw.process(requeue=False, ignore_processed=True):
            try:
                envelope = self._serializer.from_incoming(raw)
            except MessagingSerializationError:
                logger.exception("Rejecting unparseable command %s", raw.message_id)
                await raw.nack(requeue=False)
                return

            set_correlation_id(envelope.correlation_id)
            try:
                await self.handle(envelope, raw)
            finally:
                set_correlation_id(None)

    async def handle(
        self, envelope: CommandEnvelope, raw: AbstractIncomingMessage
    ) -> None:
        try:
            result = await self._handler(envelope)
        except Exception as e:  # noqa: BLE001
            logger.exception(
                "Command %s (%s) failed on attempt %d",
                envelope.routing_key,
                envelope.correlation_id,
                envelope.retry_count + 1,
            )
            exhausted = self._backoff.is_exhausted(envelope.retry_count)
            if envelope.reply_to and exhausted:
                await self._reply(
                    envelope.reply_to, envelope, ResponsePayload.failure(e)
                )
            await raw.nack(requeue=False)
            return

        await self._route(envelope, result)
        if envelope.reply_to:
            await self._reply(
                envelope.reply_to, envelope, ResponsePayload.success(result)
            )
        await raw.ack()

    async def _route(self, envelope: CommandEnvelope, result: Any) -> None:
        """Publish *result* to subscribers of its target, if it names one."""
        if not isinstance(result, CommandResponseBase):
            return
        routing_key = result.routing_key
        if routing_key is None:
            logger.debug("No target for %s; response not routed", result.type)
            return
        await self._publisher.emit(
            self._topology.command.name,
            routing_key,
            result.model_dump(mode="json"),
            correlation_id=envelope.correlation_id,
        )

    async def _reply(
        self, reply_to: str, envelope: CommandEnvelope, response: ResponsePayload
    ) -> None:
        """Answer the RPC caller; an undeliverable reply is logged, not retried."""
        try:
            await self._publisher.reply(
                reply_to,
                response,
                correlation_id=envelope.correlation_id,
                expiration_ms=envelope.expiration_ms,
            )
        except InternalError:
            logger.exception(
                "Could not reply to %s (%s)", reply_to, envelope.correlation_id
            )


class ResourceCommandWorker(CommandWorker):
    """CommandWorker running commands against a :class:`ResourceService`."""

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        service: ResourceService,
        **kwargs: Any,
    ) -> None:
        super().__init__(connection, ResourceCommandHandler(service), **kwargs)

    @classmethod
    def for_service(
        cls,
        connection: RabbitMQConnectionManager,
        service: ResourceService,
        settings: RelaySettings,
    ) -> ResourceCommandWorker:
        return cls(connection, service, **_settings_kwargs(settings))

"""CommandPublisher — confirmed publishing of envelopes, replies and events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aio_pika
from aio_pika.exceptions import DeliveryError

from ..exceptions import InternalError
from ..serialization import EnvelopeSerializer

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractExchange

    from ..envelope import CommandEnvelope
    from ..response import ResponsePayload
    from .connection import RabbitMQConnectionManager

logger = logging.getLogger("command_relay.rabbitmq")


class CommandPublisher:
    """Publishes on one named channel of a shared connection.

    Named exchanges are declared (durable topic) the first time they are
    used; the empty name is the broker's default exchange, which routes by
    queue name. Publishes are mandatory unless stated otherwise, so an
    unroutable message is reported like a broker nack.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        *,
        channel_name: str = "publisher",
        serializer: EnvelopeSerializer | None = None,
    ) -> None:
        self._connection = connection
        self._channel_name = channel_name
        self._serializer = serializer or EnvelopeSerializer()
        self._channel: AbstractChannel | None = None
        self._exchanges: dict[str, AbstractExchange] = {}

    async def _exchange(self, name: str) -> AbstractExchange:
        channel = await self._connection.get_channel(self._channel_name)
        if channel is not self._channel:
            # Reopened channel; cached exchanges belong to the old one
            self._channel = channel
            self._exchanges = {}
        if not name:
            return channel.default_exchange
        exchange = self._exchanges.get(name)
        if exchange is None:
            exchange = await channel.declare_exchange(
                name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
            self._exchanges[name] = exchange
        return exchange

    async def send(
        self,
        message: aio_pika.Message,
        *,
        exchange: str,
        routing_key: str,
        mandatory: bool = True,
    ) -> None:
        """Publish *message* and wait for the broker's confirmation.

        Raises:
            InternalError: ``PUBLISH_REJECTED`` when the broker nacks or
                returns the message.
        """
        target = await self._exchange(exchange)
        try:
            await target.publish(message, routing_key=routing_key, mandatory=mandatory)
        except DeliveryError as e:
            raise InternalError(
                "PUBLISH_REJECTED",
                f"Broker rejected message for {exchange or '<default>'}/{routing_key}",
                e,
            ) from e

    async def publish(
        self,
        envelope: CommandEnvelope,
        *,
        expiration_ms: int | None = None,
    ) -> None:
        """Publish *envelope* to its own exchange and routing key."""
        await self.send(
            self._serializer.to_message(envelope, expiration_ms=expiration_ms),
            exchange=envelope.exchange,
            routing_key=envelope.routing_key,
        )

    async def publish_to_queue(
        self,
        queue_name: str,
        envelope: CommandEnvelope,
        *,
        expiration_ms: int | None = None,
    ) -> None:
        """Publish *envelope* straight into *queue_name* via the default exchange."""
        await self.send(
            self._serializer.to_message(envelope, expiration_ms=expiration_ms),
            exchange="",
            routing_key=queue_name,
        )

    async def reply(
        self,
        reply_to: str,
        response: ResponsePayload,
        *,
        correlation_id: str,
        expiration_ms: int | None = None,
    ) -> None:
        """Send *response* to an RPC caller's reply queue."""
        await self.send(
            self._serializer.response_message(
                response,
                correlation_id=correlation_id,
                expiration_ms=expiration_ms,
            ),
            exchange="",
            routing_key=reply_to,
            mandatory=False,
        )

    async def emit(
        self,
        exchange: str,
        routing_key: str,
        body: object,
        *,
        correlation_id: str | None = None,
    ) -> None:
        """Publish *body* to topic subscribers; having none is not an error."""
        await self.send(
            self._serializer.event_message(body, correlation_id=correlation_id),
            exchange=exchange,
            routing_key=routing_key,
            mandatory=False,
        )
        logger.debug("Emitted %s/%s", exchange, routing_key)

"""RpcClient — request/response and fire-and-forget publishing of commands."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..correlation import generate_correlation_id
from ..envelope import CommandEnvelope
from ..exceptions import (
    MessagingConnectionError,
    MessagingSerializationError,
    RemoteCommandError,
    RpcTimeoutError,
)
from ..pending import PendingReplies
from ..serialization import EnvelopeSerializer
from .publisher import CommandPublisher

if TYPE_CHECKING:
    from types import TracebackType

    from aio_pika.abc import AbstractIncomingMessage, AbstractQueue

    from ..config import RelaySettings
    from .connection import RabbitMQConnectionManager

logger = logging.getLogger("command_relay.client")


class RpcClient:
    """Submits commands to workers over the broker.

    :meth:`request` publishes with ``reply_to`` bound to this client's
    exclusive reply queue and suspends the calling task until the correlated
    reply arrives or the expiration elapses. :meth:`publish` returns once the
    broker confirmed the message.

    Call :meth:`start` before use and :meth:`close` on shutdown, or use the
    client as an async context manager.
    """

    def __init__(
        self,
        connection: RabbitMQConnectionManager,
        *,
        expiration_ms: int = 1000,
        serializer: EnvelopeSerializer | None = None,
        channel_name: str = "rpc-client",
    ) -> None:
        """Configure the client.

        Args:
            connection: Shared connection manager.
            expiration_ms: Default RPC timeout and message expiration.
            serializer: Envelope codec; default EnvelopeSerializer().
            channel_name: Name of the channel this client owns.
        """
        if expiration_ms <= 0:
            raise ValueError("expiration_ms must be > 0")
        self._connection = connection
        self._expiration_ms = expiration_ms
        self._serializer = serializer or EnvelopeSerializer(expiration_ms)
        self._channel_name = channel_name
        self._publisher = CommandPublisher(
            connection, channel_name=channel_name, serializer=self._serializer
        )
        self.pending = PendingReplies()
        self._reply_queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    @classmethod
    def from_settings(
        cls, connection: RabbitMQConnectionManager, settings: RelaySettings
    ) -> RpcClient:
        return cls(connection, expiration_ms=settings.rpc_timeout_ms)

    @property
    def reply_queue_name(self) -> str:
        if self._reply_queue is None:
            raise MessagingConnectionError("RpcClient not started; call start() first")
        return self._reply_queue.name

    async def start(self) -> None:
        """Declare the reply queue and start consuming replies. Idempotent."""
        if self._reply_queue is not None:
            return
        channel = await self._connection.get_channel(self._channel_name)
        queue = await channel.declare_queue(exclusive=True, auto_delete=True)
        self._consumer_tag = await queue.consume(self.on_reply, no_ack=True)
        self._reply_queue = queue
        logger.debug("Consuming replies on %s", queue.name)

    async def close(self) -> None:
        """Stop consuming replies and fail every request still waiting."""
        queue, self._reply_queue = self._reply_queue, None
        if queue is not None and self._consumer_tag is not None:
            await queue.cancel(self._consumer_tag)
        self._consumer_tag = None
        failed = self.pending.fail_all(MessagingConnectionError("RpcClient closed"))
        if failed:
            logger.warning("Closed RpcClient with %d pending request(s)", failed)

    async def __aenter__(self) -> RpcClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def request(
        self,
        exchange: str,
        routing_key: str,
        payload: Any,
        *,
        correlation_id: str | None = None,
        expiration_ms: int | None = None,
    ) -> Any:
        """Send a command and wait for its response.

        Returns:
            The ``content`` of the response.

        Raises:
            RpcTimeoutError: No response within ``expiration_ms``.
            RemoteCommandError: The worker answered with an error.
            InternalError: The broker rejected the request.
        """
        if expiration_ms is None:
            expiration_ms = self._expiration_ms
        envelope = CommandEnvelope(
            exchange=exchange,
            routing_key=routing_key,
            payload=payload,
            correlation_id=correlation_id or generate_correlation_id(),
            reply_to=self.reply_queue_name,
            expiration_ms=expiration_ms,
        )
        async with self.pending.reserve(envelope.correlation_id) as future:
            await self._publisher.publish(envelope)
            try:
                response = await asyncio.wait_for(future, expiration_ms / 1000)
            except asyncio.TimeoutError as e:
                logger.warning(
                    "Request %s on %s/%s timed out after %dms",
                    envelope.correlation_id,
                    exchange,
                    routing_key,
                    expiration_ms,
                )
                raise RpcTimeoutError(envelope.correlation_id, expiration_ms) from e

        if response.error is not None:
            raise RemoteCommandError.from_payload(response.error)
        return response.content

    async def publish(
        self,
        exchange: str,
        routing_key: str,
        payload: Any,
        *,
        correlation_id: str | None = None,
        expiration_ms: int | None = None,
    ) -> None:
        """Send a command without waiting for a response.

        Raises:
            InternalError: ``PUBLISH_REJECTED`` when the broker nacked or
                could not route the message.
        """
        envelope = CommandEnvelope(
            exchange=exchange,
            routing_key=routing_key,
            payload=payload,
            correlation_id=correlation_id or generate_correlation_id(),
            expiration_ms=(
                self._expiration_ms if expiration_ms is None else expiration_ms
            ),
        )
        await self._publisher.publish(envelope)

    async def on_reply(self, raw: AbstractIncomingMessage) -> None:
        """Route a reply to the request waiting on its correlation id."""
        if not raw.correlation_id:
            logger.warning("Dropping reply without correlation id")
            return
        try:
            response = self._serializer.decode_response(raw.body)
        except MessagingSerializationError:
            logger.exception("Dropping undecodable reply %s", raw.correlation_id)
            return
        self.pending.resolve(raw.correlation_id, response)

    async def health_check(self) -> bool:
        """Return True if the connection is healthy."""
        return await self._connection.health_check()

"""EnvelopeSerializer — CommandEnvelope <-> AMQP message with JSON bodies."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import aio_pika

from .correlation import generate_correlation_id
from .envelope import (
    EXPIRATION_MS,
    FIRST_DEATH_EXCHANGE,
    FIRST_DEATH_ROUTING_KEY,
    OWNED_HEADERS,
    RETRY_COUNT,
    CommandEnvelope,
    EnvelopeHeaders,
)
from .exceptions import MessagingSerializationError
from .response import ResponsePayload

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aio_pika.abc import AbstractIncomingMessage

CONTENT_TYPE = "application/json"


def _json_serializer(obj: Any) -> Any:
    """Serialize datetime and other non-JSON types."""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def header_text(value: Any) -> str | None:
    """Header values may arrive as bytes depending on the publisher."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _deaths(headers: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Broker ``x-death`` records, most recent first."""
    x_death = headers.get("x-death")
    if not isinstance(x_death, list):
        return []
    return [record for record in x_death if isinstance(record, dict)]


def original_exchange(headers: Mapping[str, Any]) -> str | None:
    """Exchange the message was published to before it was dead-lettered.

    Brokers that rebuild ``x-first-death-exchange`` from their own death
    history report the default exchange (``""``) once a message has passed
    through a delay queue. The oldest ``x-death`` record with a named
    exchange is then the rejection on the original route.
    """
    explicit = header_text(headers.get(FIRST_DEATH_EXCHANGE))
    if explicit:
        return explicit
    for record in reversed(_deaths(headers)):
        exchange = header_text(record.get("exchange"))
        if exchange:
            return exchange
    return None


def original_routing_key(headers: Mapping[str, Any]) -> str | None:
    """Routing key the message had before it was first dead-lettered."""
    explicit = header_text(headers.get(FIRST_DEATH_ROUTING_KEY))
    if explicit:
        return explicit
    for record in _deaths(headers):
        keys = record.get("routing-keys")
        if isinstance(keys, list) and keys:
            return header_text(keys[0])
    return None


class EnvelopeSerializer:
    """Encode envelopes as AMQP messages and decode deliveries back.

    ``default_expiration_ms`` is used for deliveries that carry no
    ``x-expiration-ms`` header (e.g. published by a foreign client).
    """

    def __init__(self, default_expiration_ms: int = 1000) -> None:
        self._default_expiration_ms = default_expiration_ms

    def encode_body(self, body: Any) -> bytes:
        """Encode any JSON-compatible value to bytes."""
        try:
            return json.dumps(body, default=_json_serializer).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def decode_body(self, raw: bytes) -> Any:
        """Decode JSON bytes; an empty body decodes to ``None``."""
        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MessagingSerializationError(str(e)) from e

    def to_message(
        self,
        envelope: CommandEnvelope,
        *,
        expiration_ms: int | None = None,
    ) -> aio_pika.Message:
        """Build the AMQP message for *envelope*.

        ``expiration_ms`` overrides the per-message TTL (used by delay queues);
        the caller's own expiration always travels in ``x-expiration-ms``.
        """
        return aio_pika.Message(
            body=self.encode_body(envelope.payload),
            content_type=CONTENT_TYPE,
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            correlation_id=envelope.correlation_id,
            reply_to=envelope.reply_to,
            expiration=timedelta(milliseconds=expiration_ms or envelope.expiration_ms),
            headers={
                **envelope.headers.to_amqp(),
                EXPIRATION_MS: envelope.expiration_ms,
            },
        )

    def from_incoming(self, raw: AbstractIncomingMessage) -> CommandEnvelope:
        """Decode a delivery into a CommandEnvelope."""
        headers = dict(raw.headers or {})
        try:
            first_death_exchange = original_exchange(headers)
            first_death_routing_key = original_routing_key(headers)
            if first_death_exchange and not first_death_routing_key:
                first_death_routing_key = raw.routing_key
            return CommandEnvelope(
                exchange=raw.exchange or "",
                routing_key=raw.routing_key or "",
                payload=self.decode_body(raw.body),
                correlation_id=raw.correlation_id or generate_correlation_id(),
                reply_to=raw.reply_to or None,
                expiration_ms=int(
                    headers.get(EXPIRATION_MS) or self._default_expiration_ms
                ),
                headers=EnvelopeHeaders(
                    retry_count=int(headers.get(RETRY_COUNT) or 0),
                    first_death_exchange=first_death_exchange,
                    first_death_routing_key=first_death_routing_key,
                    extra={
                        k: v for k, v in headers.items() if k not in OWNED_HEADERS
                    },
                ),
            )
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def response_message(
        self,
        response: ResponsePayload,
        *,
        correlation_id: str,
        expiration_ms: int | None = None,
    ) -> aio_pika.Message:
        """Build the reply message for an RPC caller."""
        return aio_pika.Message(
            body=self.encode_body(response.to_wire()),
            content_type=CONTENT_TYPE,
            correlation_id=correlation_id,
            expiration=(
                timedelta(milliseconds=expiration_ms) if expiration_ms else None
            ),
        )

    def event_message(
        self, body: Any, *, correlation_id: str | None = None
    ) -> aio_pika.Message:
        """Build a non-expiring message for topic subscribers (e.g. responses
        routed by target)."""
        return aio_pika.Message(
            body=self.encode_body(body),
            content_type=CONTENT_TYPE,
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            correlation_id=correlation_id,
        )

    def decode_response(self, raw: bytes) -> ResponsePayload:
        """Decode a reply body into a ResponsePayload."""
        data = self.decode_body(raw)
        if not isinstance(data, dict):
            raise MessagingSerializationError(
                f"Response body must be an object, got {type(data).__name__}"
            )
        try:
            return ResponsePayload.model_validate(data)
        except ValueError as e:
            raise MessagingSerializationError(str(e)) from e

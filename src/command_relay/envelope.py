"""CommandEnvelope — immutable unit placed on the broker."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .correlation import generate_correlation_id

FIRST_DEATH_EXCHANGE = "x-first-death-exchange"
FIRST_DEATH_ROUTING_KEY = "x-first-death-routing-key"
RETRY_COUNT = "x-retry-count"
EXPIRATION_MS = "x-expiration-ms"

#: Headers owned by the envelope model; everything else is carried in ``extra``.
OWNED_HEADERS = frozenset(
    {FIRST_DEATH_EXCHANGE, FIRST_DEATH_ROUTING_KEY, RETRY_COUNT, EXPIRATION_MS}
)


class EnvelopeHeaders(BaseModel):
    """Retry bookkeeping carried in AMQP headers.

    The broker's dead-letter mechanics populate the first-death fields; only
    the retry controller increments ``retry_count``.
    """

    model_config = ConfigDict(frozen=True)

    retry_count: int = Field(default=0, ge=0)
    first_death_exchange: str | None = None
    first_death_routing_key: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_amqp(self) -> dict[str, Any]:
        """Render as an AMQP header table (unset fields are omitted)."""
        headers: dict[str, Any] = {**self.extra, RETRY_COUNT: self.retry_count}
        if self.first_death_exchange is not None:
            headers[FIRST_DEATH_EXCHANGE] = self.first_death_exchange
        if self.first_death_routing_key is not None:
            headers[FIRST_DEATH_ROUTING_KEY] = self.first_death_routing_key
        return headers


class CommandEnvelope(BaseModel):
    """Payload plus routing metadata and headers.

    ``correlation_id`` identifies one in-flight RPC at a time;
    ``reply_to`` is set only for RPCs.
    """

    model_config = ConfigDict(frozen=True)

    exchange: str
    routing_key: str
    payload: Any = None
    correlation_id: str = Field(default_factory=generate_correlation_id)
    reply_to: str | None = None
    expiration_ms: int = Field(..., gt=0)
    headers: EnvelopeHeaders = Field(default_factory=EnvelopeHeaders)

    @property
    def retry_count(self) -> int:
        return self.headers.retry_count

    @property
    def is_rpc(self) -> bool:
        return bool(self.reply_to)

    def next_attempt(self) -> CommandEnvelope:
        """Return a copy with ``retry_count`` incremented by one.

        The first-death routing key is pinned so later bounces keep pointing
        at the original route.
        """
        headers = self.headers.model_copy(
            update={
                "retry_count": self.headers.retry_count + 1,
                "first_death_routing_key": (
                    self.headers.first_death_routing_key or self.routing_key
                ),
            }
        )
        return self.model_copy(update={"headers": headers})

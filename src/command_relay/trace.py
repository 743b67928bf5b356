"""ErrorTraceRecord — what operators see about a command that gave up."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from .envelope import RETRY_COUNT
from .serialization import header_text, original_exchange, original_routing_key

if TYPE_CHECKING:
    from aio_pika.abc import AbstractIncomingMessage


@dataclass(frozen=True)
class ErrorTraceRecord:
    exchange: str | None
    routing_key: str | None
    correlation_id: str | None
    retry_count: int
    reply_to: str | None = None
    first_death_queue: str | None = None
    first_death_reason: str | None = None
    death_count: int = 0

    @classmethod
    def from_message(cls, raw: AbstractIncomingMessage) -> ErrorTraceRecord:
        """Build a record from a delivery on the error queue.

        The original route comes from the first-death headers; the broker's
        ``x-death`` list supplies the queue, reason and number of deaths.
        """
        headers = dict(raw.headers or {})
        deaths = headers.get("x-death")
        death_count = 0
        if isinstance(deaths, list):
            for record in deaths:
                if isinstance(record, dict):
                    death_count += int(record.get("count") or 1)
        try:
            retry_count = int(headers.get(RETRY_COUNT) or 0)
        except (TypeError, ValueError):
            retry_count = 0
        return cls(
            exchange=original_exchange(headers) or raw.exchange,
            routing_key=original_routing_key(headers) or raw.routing_key,
            correlation_id=raw.correlation_id,
            retry_count=retry_count,
            reply_to=raw.reply_to,
            first_death_queue=header_text(headers.get("x-first-death-queue")),
            first_death_reason=header_text(headers.get("x-first-death-reason")),
            death_count=death_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

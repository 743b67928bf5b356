"""Pytest fixtures: aio-pika doubles and an in-memory external system."""

from __future__ import annotations

import contextlib
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from command_relay.adapters.memory import InMemoryResourceGateway
from command_relay.resources import ResourceService


def make_channel() -> MagicMock:
    """Channel double whose declared exchanges and queues are mocks too."""
    channel = MagicMock()
    channel.is_closed = False

    exchanges: dict[str, MagicMock] = {}

    async def declare_exchange(name: str, *args: Any, **kwargs: Any) -> MagicMock:
        if name not in exchanges:
            exchange = MagicMock()
            exchange.name = name
            exchange.publish = AsyncMock()
            exchanges[name] = exchange
        return exchanges[name]

    queues: dict[str | None, MagicMock] = {}

    async def declare_queue(name: str | None = None, **kwargs: Any) -> MagicMock:
        if name not in queues:
            queue = MagicMock()
            queue.name = name or "amq.gen-reply"
            queue.arguments = kwargs.get("arguments")
            queue.bind = AsyncMock()
            queue.consume = AsyncMock(return_value=f"ctag-{queue.name}")
            queue.cancel = AsyncMock()
            queues[name] = queue
        return queues[name]

    channel.declare_exchange = AsyncMock(side_effect=declare_exchange)
    channel.declare_queue = AsyncMock(side_effect=declare_queue)
    channel.set_qos = AsyncMock()
    channel.default_exchange = MagicMock()
    channel.default_exchange.publish = AsyncMock()
    channel.exchanges = exchanges
    channel.queues = queues
    return channel


@pytest.fixture
def channel() -> MagicMock:
    return make_channel()


@pytest.fixture
def mock_connection(channel: MagicMock) -> MagicMock:
    """Connection manager double; every named channel is the same mock."""
    conn = MagicMock()
    conn.connect = AsyncMock()
    conn.close = AsyncMock()
    conn.health_check = AsyncMock(return_value=True)
    conn.get_channel = AsyncMock(return_value=channel)
    return conn


def make_incoming(
    body: Any = None,
    *,
    exchange: str = "command",
    routing_key: str = "action.role.ensure",
    correlation_id: str | None = "corr-1",
    reply_to: str | None = None,
    headers: dict[str, Any] | None = None,
    raw_body: bytes | None = None,
) -> MagicMock:
    """Incoming message double; ``process()`` is a no-op async context."""
    raw = MagicMock()
    raw.body = raw_body if raw_body is not None else json.dumps(body).encode()
    raw.exchange = exchange
    raw.routing_key = routing_key
    raw.correlation_id = correlation_id
    raw.reply_to = reply_to
    raw.message_id = "msg-1"
    raw.headers = headers or {}
    raw.ack = AsyncMock()
    raw.nack = AsyncMock()
    raw.reject = AsyncMock()
    raw.process = MagicMock(side_effect=lambda **_: contextlib.nullcontext())
    return raw


@pytest.fixture
def gateway() -> InMemoryResourceGateway:
    return InMemoryResourceGateway()


@pytest.fixture
def service(gateway: InMemoryResourceGateway) -> ResourceService:
    return ResourceService(gateway)


@pytest.fixture
def incoming() -> Any:
    return make_incoming

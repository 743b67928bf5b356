"""Tests for PendingReplies."""

from __future__ import annotations

import asyncio

import pytest

from command_relay.exceptions import InternalError, MessagingConnectionError
from command_relay.pending import PendingReplies
from command_relay.response import ResponsePayload


@pytest.mark.asyncio
async def test_resolve_delivers_response() -> None:
    pending = PendingReplies()
    async with pending.reserve("c1") as future:
        assert "c1" in pending
        assert pending.resolve("c1", ResponsePayload.success("pong")) is True
        assert (await future).content == "pong"
    assert "c1" not in pending
    assert len(pending) == 0


@pytest.mark.asyncio
async def test_duplicate_correlation_id_is_refused() -> None:
    pending = PendingReplies()
    async with pending.reserve("c1"):
        with pytest.raises(InternalError) as exc_info:
            async with pending.reserve("c1"):
                pass
    assert exc_info.value.code == "DUPLICATE_CORRELATION_ID"


@pytest.mark.asyncio
async def test_slot_released_when_block_raises() -> None:
    pending = PendingReplies()
    with pytest.raises(RuntimeError):
        async with pending.reserve("c1") as future:
            raise RuntimeError("publish failed")
    assert len(pending) == 0
    assert future.cancelled()


@pytest.mark.asyncio
async def test_unknown_and_late_replies_are_dropped() -> None:
    pending = PendingReplies()
    assert pending.resolve("nobody", ResponsePayload.success(1)) is False
    async with pending.reserve("c1"):
        assert pending.resolve("c1", ResponsePayload.success(1)) is True
        assert pending.resolve("c1", ResponsePayload.success(2)) is False


@pytest.mark.asyncio
async def test_fail_all() -> None:
    pending = PendingReplies()
    async with pending.reserve("a") as fa, pending.reserve("b") as fb:
        assert pending.fail_all(MessagingConnectionError("closed")) == 2
        with pytest.raises(MessagingConnectionError):
            await fa
        with pytest.raises(MessagingConnectionError):
            await fb


@pytest.mark.asyncio
async def test_cancellation_releases_slot() -> None:
    pending = PendingReplies()

    async def wait() -> None:
        async with pending.reserve("c1") as future:
            await future

    task = asyncio.create_task(wait())
    await asyncio.sleep(0)
    assert "c1" in pending
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert "c1" not in pending

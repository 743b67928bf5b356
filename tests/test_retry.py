"""Tests for BackoffPolicy."""

from __future__ import annotations

import pytest

from command_relay.retry import BackoffPolicy


def test_delay_law() -> None:
    policy = BackoffPolicy(base=2, multiplier=1000)
    assert policy.delay_ms(0) == 1000
    assert policy.delay_ms(1) == 2000
    assert policy.delay_ms(2) == 4000
    assert policy.delay_ms(3) == 8000


def test_ladder_with_defaults() -> None:
    assert BackoffPolicy().ladder() == [2000, 4000, 8000]


def test_delays_strictly_increase_for_base_above_one() -> None:
    policy = BackoffPolicy(base=1.5, multiplier=100, max_retry=8)
    ladder = policy.ladder()
    assert all(a < b for a, b in zip(ladder, ladder[1:]))


def test_base_of_one_is_rejected() -> None:
    # x-expires would equal x-message-ttl and the delay queue could vanish
    # with its message still in it
    with pytest.raises(ValueError, match="base must be > 1"):
        BackoffPolicy(base=1, multiplier=500)


def test_should_retry() -> None:
    policy = BackoffPolicy(max_retry=3)
    assert policy.should_retry(0) is True
    assert policy.should_retry(2) is True
    assert policy.should_retry(3) is False
    assert policy.should_retry(7) is False


def test_zero_max_retry_never_retries() -> None:
    policy = BackoffPolicy(max_retry=0)
    assert policy.should_retry(0) is False
    assert policy.is_exhausted(0) is True
    assert policy.ladder() == []


def test_is_exhausted() -> None:
    policy = BackoffPolicy(max_retry=3)
    assert policy.is_exhausted(2) is False
    assert policy.is_exhausted(3) is True


def test_queue_expiry_is_delay_times_base() -> None:
    policy = BackoffPolicy(base=2, multiplier=1000)
    assert policy.queue_expires_ms(1) == 4000
    assert policy.queue_expires_ms(3) == 16000


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"base": 0.5}, "base"),
        ({"multiplier": 0}, "multiplier"),
        ({"max_retry": -1}, "max_retry"),
    ],
)
def test_invalid_configuration_raises(kwargs: dict, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        BackoffPolicy(**kwargs)


def test_negative_retry_count_raises() -> None:
    with pytest.raises(ValueError, match="retry_count"):
        BackoffPolicy().delay_ms(-1)

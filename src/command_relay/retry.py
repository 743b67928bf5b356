"""BackoffPolicy — exponential backoff law for the redelivery ladder."""

from __future__ import annotations


class BackoffPolicy:
    """Exponential backoff over a bounded number of retries.

    The delay before retry ``n`` is ``multiplier * base ** n`` milliseconds.
    Delay queues additionally expire after ``delay * base`` milliseconds of
    idleness; the two knobs are independent. ``base`` must exceed 1: with
    ``base == 1`` a delay queue would expire together with its message, and
    the broker drops messages of a deleted queue without dead-lettering them.
    """

    def __init__(
        self,
        *,
        base: float = 2,
        multiplier: float = 1000,
        max_retry: int = 3,
    ) -> None:
        """Configure the backoff law.

        Args:
            base: Growth factor between consecutive retries.
            multiplier: Scale of the delays, in milliseconds.
            max_retry: Number of retries after the original attempt.
        """
        if base <= 1:
            raise ValueError("base must be > 1")
        if multiplier <= 0:
            raise ValueError("multiplier must be > 0")
        if max_retry < 0:
            raise ValueError("max_retry must be >= 0")
        self.base = base
        self.multiplier = multiplier
        self.max_retry = max_retry

    def should_retry(self, retry_count: int) -> bool:
        """Return True if a message already retried ``retry_count`` times may
        be scheduled once more."""
        return retry_count >= 0 and retry_count + 1 <= self.max_retry

    def is_exhausted(self, retry_count: int) -> bool:
        """Return True if a failure at ``retry_count`` is the last attempt."""
        return retry_count >= self.max_retry

    def delay_ms(self, retry_count: int) -> int:
        """Delay (ms) a message waits before its ``retry_count``-th retry."""
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        return int(self.multiplier * self.base**retry_count)

    def queue_expires_ms(self, retry_count: int) -> int:
        """Idle expiry (ms) of the delay queue used for ``retry_count``."""
        return int(self.delay_ms(retry_count) * self.base)

    def ladder(self) -> list[int]:
        """Delays of every retry, in order."""
        return [self.delay_ms(n) for n in range(1, self.max_retry + 1)]

    def __repr__(self) -> str:
        return (
            f"BackoffPolicy(base={self.base}, multiplier={self.multiplier}, "
            f"max_retry={self.max_retry})"
        )

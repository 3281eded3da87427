"""Retry policy for optimistic session writes."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from planning_poker.domain.errors import TransientStoreError, WriteConflictError

_RETRYABLE: tuple[type[Exception], ...] = (WriteConflictError, TransientStoreError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with a linearly growing backoff.

    Attempts are numbered from 1. After a failed attempt ``n`` the caller
    waits ``base_delay_seconds * n`` before trying again, unless ``n`` has
    reached ``max_attempts``.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    retryable: tuple[type[Exception], ...] = _RETRYABLE
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Return the delay after a failed attempt."""
        return self.base_delay_seconds * attempt

    def is_retryable(self, exc: BaseException) -> bool:
        """Return True when the error should trigger another attempt."""
        return isinstance(exc, self.retryable)

    def should_retry(self, attempt: int, exc: BaseException) -> bool:
        """Return True when another attempt is allowed after this failure."""
        return attempt < self.max_attempts and self.is_retryable(exc)

    async def backoff(self, attempt: int) -> None:
        """Wait before the next attempt."""
        delay = self.delay_for(attempt)
        if delay > 0:
            await self.sleep(delay)

"""Exponential backoff for model generation.

Every exception raised by the wrapped call counts as transient except
`PermanentError`, which stops retrying at once. A wrapped configuration
error is re-raised as itself; anything else becomes a `GenerationError`. Task
cancellation (`asyncio.CancelledError`) is never caught, so a cancelled
request stops retrying immediately.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from auracle.config import RetrySettings
from auracle.errors import ConfigurationError, GenerationError, PermanentError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Delay schedule: initial * multiplier^n, capped, jittered, bounded by total elapsed time."""

    initial_interval: float = 0.5
    multiplier: float = 1.5
    randomization: float = 0.5
    max_interval: float = 60.0
    max_elapsed: float = 900.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            initial_interval=settings.initial_interval,
            multiplier=settings.multiplier,
            randomization=settings.randomization,
            max_interval=settings.max_interval,
            max_elapsed=settings.max_elapsed,
        )

    def delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        base = min(self.max_interval, self.initial_interval * (self.multiplier**attempt))
        if self.randomization <= 0:
            return base
        spread = base * self.randomization
        return base - spread + (2 * spread * rand())


OnRetry = Callable[[int, Exception, float], None]


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: OnRetry | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Run `operation` until it succeeds, fails permanently, or the elapsed budget runs out."""
    started = clock()
    attempt = 0
    while True:
        try:
            return await operation()
        except PermanentError as exc:
            if isinstance(exc.cause, ConfigurationError):
                raise exc.cause from None
            raise GenerationError(str(exc.cause)) from exc.cause
        except Exception as exc:
            wait = policy.delay(attempt)
            if clock() - started + wait > policy.max_elapsed:
                logger.warning("retry.exhausted attempts={} error={}", attempt + 1, exc)
                raise GenerationError(f"giving up after {attempt + 1} attempts: {exc}") from exc
            if on_retry is not None:
                on_retry(attempt + 1, exc, wait)
            logger.info("retry.scheduled attempt={} wait={:.3f}s error={}", attempt + 1, wait, exc)
            attempt += 1
            await sleep(wait)

"""Retry utilities (exponential backoff + jitter) for coroutines."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 2  # total attempts = 1 + retries
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    jitter: float = 0.2  # 20% jitter


def _sleep_seconds(attempt: int, policy: RetryPolicy) -> float:
    # attempt starts at 1 for the first retry sleep
    delay = policy.base_delay_seconds * (2 ** (attempt - 1))
    delay = min(delay, policy.max_delay_seconds)
    # jitter in range [1-jitter, 1+jitter]
    factor = 1.0 + random.uniform(-policy.jitter, policy.jitter)
    return max(0.0, delay * factor)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[T], bool],
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn() until should_retry(result) is false or attempts run out.

    Returns the last result either way; fn is expected to report failure in its
    return value rather than by raising.
    """
    attempts = 1 + max(policy.retries, 0)
    result = await fn()
    for attempt in range(1, attempts):
        if not should_retry(result):
            break
        await sleep(_sleep_seconds(attempt, policy))
        result = await fn()
    return result

"""Retry with exponential backoff for HTTP-backed tools."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: float = 0.25


def calculate_backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay before retry number ``attempt`` (1-based), with +/- jitter."""

    delay = min(policy.initial_delay * policy.multiplier ** (attempt - 1), policy.max_delay)
    spread = delay * policy.jitter * (random.random() * 2 - 1)
    return max(0.0, delay + spread)


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
) -> T:
    """Run ``operation``, retrying transient HTTP failures."""

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if attempt > policy.max_retries or not is_retryable_error(exc):
                raise
            delay = calculate_backoff_delay(attempt, policy)
            logger.info(
                "%s attempt %d failed (%s); retrying in %.2fs",
                label,
                attempt,
                exc.__class__.__name__,
                delay,
            )
            await asyncio.sleep(delay)


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RetryPolicy",
    "calculate_backoff_delay",
    "is_retryable_error",
    "with_retry",
]

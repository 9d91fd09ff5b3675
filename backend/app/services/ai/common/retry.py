"""Retry/backoff for vision provider calls.

Transient failures (rate limiting, temporary unavailability, timeouts) are
retried with bounded exponential backoff plus jitter.  Everything else is
fatal and propagates on the first occurrence.  The policy bounds the number of
attempts, not wall-clock time.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from app.core.config import Settings, get_settings
from app.services.room_scan.errors import (
    ProviderFatalError,
    ProviderRetryExhaustedError,
    ProviderTransientError,
    RoomScanError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
TRANSIENT_MARKERS = ("rate limit", "quota", "temporarily", "unavailable", "timeout", "timed out", "overloaded")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 4
    base_delay_ms: int = 500
    max_delay_ms: int = 8000
    jitter_ms: int = 150

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=max(1, settings.room_scan_max_attempts),
            base_delay_ms=max(0, settings.room_scan_backoff_base_ms),
            max_delay_ms=max(0, settings.room_scan_backoff_max_ms),
            jitter_ms=max(0, settings.room_scan_backoff_jitter_ms),
        )


def compute_backoff_ms(policy: RetryPolicy, attempt: int) -> float:
    """Delay before retrying after failed *attempt* (1-based)."""
    exponential = policy.base_delay_ms * (2 ** max(0, attempt - 1))
    jitter = random.uniform(0, policy.jitter_ms) if policy.jitter_ms else 0.0
    return min(policy.max_delay_ms, exponential) + jitter


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, ProviderTransientError):
        return True
    if isinstance(exc, (ProviderFatalError, RoomScanError)):
        return False
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True
    status = _status_of(exc)
    if status is not None:
        return status in TRANSIENT_STATUSES
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    context: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying transient failures per *policy*.

    Raises ``ProviderRetryExhaustedError`` (chained to the last transient
    error) once ``policy.max_attempts`` attempts have failed transiently.
    """
    max_attempts = max(1, policy.max_attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            if not is_transient_error(exc):
                raise
            if attempt >= max_attempts:
                raise ProviderRetryExhaustedError(
                    f"Vision provider unavailable after {attempt} attempts",
                    attempts=attempt,
                ) from exc

            backoff_ms = compute_backoff_ms(policy, attempt)
            logger.warning(
                "Room scan provider retry attempt=%d backoff_ms=%.0f status=%s error=%s context=%s",
                attempt,
                backoff_ms,
                _status_of(exc),
                exc,
                context or {},
            )
            await sleep(backoff_ms / 1000)

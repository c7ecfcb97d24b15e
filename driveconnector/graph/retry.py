"""
Retry/backoff policy for upstream calls.

A policy pairs a status predicate (which responses are transient) with a
delay function (how long to wait before the next attempt). The same policy
object is applied to every call made by the upstream client.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Callable, Mapping, Optional

from driveconnector.core.config import RetryConfig


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


def parse_retry_after(value: Optional[str], now_fn: Callable[[], float] = time.time) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("2") and HTTP-date forms. Returns None when the
    header is absent or unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - now_fn())


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped exponential backoff with jitter, overridden by Retry-After.

    ``max_retries`` is the total number of attempts for one call.
    """

    max_retries: int = 3
    base_delay_ms: float = 1000.0
    max_delay_ms: float = 30000.0
    max_jitter_ms: float = 1000.0
    retry_on: Callable[[int], bool] = is_transient_status
    random_fn: Callable[[], float] = field(default=random.random, compare=False)
    now_fn: Callable[[], float] = field(default=time.time, compare=False)

    @classmethod
    def from_config(cls, config: RetryConfig, **overrides) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            max_jitter_ms=config.max_jitter_ms,
            **overrides,
        )

    def attempts_remain(self, attempt: int) -> bool:
        return attempt + 1 < self.max_retries

    def should_retry(self, status_code: int, attempt: int) -> bool:
        return self.retry_on(status_code) and self.attempts_remain(attempt)

    def backoff_ms(self, attempt: int) -> float:
        jitter = self.random_fn() * self.max_jitter_ms
        return min((2 ** attempt) * self.base_delay_ms + jitter, self.max_delay_ms)

    def delay_seconds(self, attempt: int, headers: Optional[Mapping[str, str]] = None) -> float:
        if headers is not None:
            hinted = parse_retry_after(headers.get("retry-after"), self.now_fn)
            if hinted is not None:
                return hinted
        return self.backoff_ms(attempt) / 1000.0

"""Exponential-backoff retry policy for upstream calls.

The policy is a small value object so it can be unit tested with a fake
``sleep`` and an arbitrary retry predicate.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .logging_setup import get_logger

_logger = get_logger("statement_analysis.retry")


def _never(_exc: BaseException) -> bool:
    return False


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry ``fn`` while ``is_retryable(exc)`` holds, up to ``max_attempts`` calls.

    Delay before retry ``n`` (1-based) is ``base_delay * multiplier ** (n - 1)``,
    optionally jittered by ``±jitter_pct``. Non-retryable errors propagate on the
    first occurrence; the last retryable error propagates once attempts run out.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 2.0
    jitter_pct: float = 0.0
    is_retryable: Callable[[BaseException], bool] = _never
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    label: str = "call"

    def delay_for(self, attempt_no: int) -> float:
        base = self.base_delay * (self.multiplier ** max(0, attempt_no - 1))
        if self.jitter_pct <= 0:
            return base
        jitter = base * self.jitter_pct
        return max(0.0, base + random.uniform(-jitter, jitter))

    def call[T](self, fn: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as e:  # noqa: BLE001 - classified below, re-raised
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    if attempt > 1:
                        _logger.error(
                            "%s:retry_exhausted attempts=%d error=%s",
                            self.label,
                            attempt,
                            e.__class__.__name__,
                        )
                    raise
                delay = self.delay_for(attempt)
                _logger.warning(
                    "%s:retry attempt=%d delay_s=%.2f error=%s",
                    self.label,
                    attempt,
                    delay,
                    e.__class__.__name__,
                )
                self.sleep(delay)
                attempt += 1


__all__ = ["RetryPolicy"]

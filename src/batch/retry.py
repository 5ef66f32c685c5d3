# src/batch/retry.py — v2
"""Failure classification and retry policy for page scans.

Classification is a pure function of the failure reason: markers are
matched case-insensitively as substrings, permanent markers first.
Anything unrecognised is permanent, so unknown errors are never retried.
Delays are fixed per category rather than exponential; rate limiting
reflects the scan service's throughput ceiling and waits longer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FailureCategory = Literal["rate_limit", "transient", "permanent", "unknown"]

PERMANENT_MARKERS: tuple[str, ...] = (
    "PAGE_NOT_FOUND",
    "ACCESS_DENIED",
    "INVALID_CONTENT",
)
RETRYABLE_MARKERS: tuple[str, ...] = (
    "TIMEOUT",
    "NETWORK_ERROR",
    "RATE_LIMITED",
    "429",
    "TOO MANY REQUESTS",
    "BROWSERLESS",
    "BROWSER_SERVICE_ERROR",
)
RATE_LIMIT_MARKERS: tuple[str, ...] = ("429", "RATE", "TOO MANY REQUESTS")


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget and delays. ``max_attempts`` includes the first attempt."""

    max_attempts: int = 3
    rate_limit_delay_s: float = 10.0
    transient_delay_s: float = 5.0


DEFAULT_RETRY_CONFIG = RetryConfig()


@dataclass(frozen=True)
class RetryDecision:
    retryable: bool
    delay_s: float
    category: FailureCategory


def classify_failure(reason: str | None, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> RetryDecision:
    """Map a failure reason to a retry decision."""
    normalized = (reason or "").upper()

    if any(marker in normalized for marker in PERMANENT_MARKERS):
        return RetryDecision(retryable=False, delay_s=0.0, category="permanent")

    if any(marker in normalized for marker in RETRYABLE_MARKERS):
        if any(marker in normalized for marker in RATE_LIMIT_MARKERS):
            return RetryDecision(
                retryable=True, delay_s=config.rate_limit_delay_s, category="rate_limit",
            )
        return RetryDecision(
            retryable=True, delay_s=config.transient_delay_s, category="transient",
        )

    return RetryDecision(retryable=False, delay_s=0.0, category="unknown")

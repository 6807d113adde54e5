"""Token-bucket rate limiting and text validation for visitor input."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from roomrelay.core.errors import RateLimitError, ValidationError
from roomrelay.models.policy import RateLimit

DEFAULT_LIMITS: dict[str, RateLimit] = {
    "knock": RateLimit(max_per_hour=3),
    "message": RateLimit(max_per_minute=20),
    "general": RateLimit(max_per_minute=10),
}

MAX_TEXT_LENGTH = 1000

_SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"document\.", re.IGNORECASE),
    re.compile(r"window\.", re.IGNORECASE),
]


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: float | None = None


@dataclass(frozen=True)
class Validation:
    valid: bool
    error: str | None = None


class TokenBucketRateLimiter:
    """Per-key token bucket rate limiter.

    The bucket holds as many tokens as the coarsest configured window
    allows (``max_per_hour`` wins over ``max_per_minute``, which wins over
    ``max_per_second``) and refills evenly across that window.

    **Concurrency note:** This implementation relies on the CPython single-threaded
    asyncio model. ``acquire`` reads and writes ``_buckets`` with no ``await``
    between the check and the set, making the token update atomic within a
    single event-loop iteration.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        prune_interval: float = 60.0,
    ) -> None:
        # key -> (tokens, last_refill_time, capacity, refill_per_second)
        self._buckets: dict[str, tuple[float, float, float, float]] = {}
        self._clock = clock
        self._prune_interval = prune_interval
        self._last_prune = clock()

    @staticmethod
    def _shape(rate_limit: RateLimit) -> tuple[float, float]:
        """Return ``(capacity, refill_per_second)`` for *rate_limit*."""
        if rate_limit.max_per_hour is not None:
            return rate_limit.max_per_hour, rate_limit.max_per_hour / 3600.0
        if rate_limit.max_per_minute is not None:
            return rate_limit.max_per_minute, rate_limit.max_per_minute / 60.0
        if rate_limit.max_per_second is not None:
            return rate_limit.max_per_second, rate_limit.max_per_second
        return float("inf"), float("inf")

    def _refill(self, key: str, capacity: float, rate: float, now: float) -> float:
        """Refill tokens and return current count."""
        tokens, last_refill, _, _ = self._buckets.get(key, (capacity, now, capacity, rate))
        return min(tokens + (now - last_refill) * rate, capacity)

    def _prune(self, now: float) -> None:
        """Forget buckets that have refilled completely; they equal a fresh key."""
        if now - self._last_prune < self._prune_interval:
            return
        self._last_prune = now
        for key, (tokens, last_refill, capacity, rate) in list(self._buckets.items()):
            if tokens + (now - last_refill) * rate >= capacity:
                del self._buckets[key]

    def acquire(self, key: str, rate_limit: RateLimit) -> RateDecision:
        """Try to take a token. Denials carry the seconds until the next token."""
        capacity, rate = self._shape(rate_limit)
        if rate == float("inf"):
            return RateDecision(allowed=True)

        now = self._clock()
        self._prune(now)
        tokens = self._refill(key, capacity, rate, now)
        if tokens >= 1.0:
            self._buckets[key] = (tokens - 1.0, now, capacity, rate)
            return RateDecision(allowed=True)
        self._buckets[key] = (tokens, now, capacity, rate)
        return RateDecision(allowed=False, retry_after=(1.0 - tokens) / rate)

    @property
    def size(self) -> int:
        """Number of keys currently tracked."""
        return len(self._buckets)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)


class SecurityGate:
    """Pass/fail gate consulted before any visitor action touches state."""

    def __init__(
        self,
        limits: dict[str, RateLimit] | None = None,
        *,
        max_text_length: int = MAX_TEXT_LENGTH,
        limiter: TokenBucketRateLimiter | None = None,
    ) -> None:
        self._limits = {**DEFAULT_LIMITS, **(limits or {})}
        self._max_text_length = max_text_length
        self._limiter = limiter or TokenBucketRateLimiter()

    def check_rate(self, key: str, kind: str = "general") -> RateDecision:
        rate_limit = self._limits.get(kind, self._limits["general"])
        return self._limiter.acquire(f"{key}:{kind}", rate_limit)

    def validate_text(self, text: object) -> Validation:
        if not isinstance(text, str) or not text.strip():
            return Validation(valid=False, error="Invalid message format")
        if len(text) > self._max_text_length:
            return Validation(valid=False, error="Message too long")
        for pattern in _SUSPICIOUS_PATTERNS:
            if pattern.search(text):
                return Validation(valid=False, error="Message contains suspicious content")
        return Validation(valid=True)

    def enforce(self, key: str, kind: str = "general") -> None:
        """Raise ``RateLimitError`` when *key* is over its *kind* limit."""
        decision = self.check_rate(key, kind)
        if not decision.allowed:
            raise RateLimitError(
                f"Rate limit exceeded for {kind}", retry_after=decision.retry_after
            )

    def require_valid(self, text: object) -> str:
        """Return *text* stripped, or raise ``ValidationError``."""
        validation = self.validate_text(text)
        if not validation.valid:
            raise ValidationError(validation.error or "Invalid message")
        return str(text).strip()

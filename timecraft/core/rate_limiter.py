"""
Rate limiting and cost controls for hosted model requests.

Keeps a sliding-window ledger of successful requests and enforces caps in
order of precedence:
1. Per-minute cap - Prevents rapid-fire abuse
2. Per-hour cap - Bounds sustained usage
3. Per-day cap - Bounds daily spend
"""

import logging
import math
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from timecraft.config.loader import RateLimitConfig
from timecraft.storage.models import LedgerEntry, deserialize_ledger, serialize_ledger
from timecraft.storage.repository import InMemoryLedgerStore, LedgerStore
from .pricing import DEFAULT_COST_PER_MILLION_TOKENS, estimate_cost

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

DEFAULT_TOKENS_PER_REQUEST = 650


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check."""
    allowed: bool
    reason: Optional[str] = None
    reset_in: Optional[int] = None  # seconds until a slot frees up


@dataclass(frozen=True)
class UsageStats:
    """Request counts and spend for the current windows."""
    requests_last_minute: int
    requests_last_hour: int
    requests_last_day: int
    total_tokens_today: int
    estimated_cost_today: float


class RateLimiter:
    """Sliding-window admission control over a persisted request ledger.

    The ledger is compacted (entries older than 24 hours dropped) before
    every read or write and saved after every mutation. Storage failures
    are logged and never raised: a limiter that cannot persist still
    limits within the current process.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        store: Optional[LedgerStore] = None,
        clock: Callable[[], float] = time.time,
        cost_per_million_tokens=DEFAULT_COST_PER_MILLION_TOKENS
    ):
        """Initialize the limiter and load any persisted ledger.

        Args:
            config: Request caps (defaults to 10/min, 60/hour, 200/day)
            store: Ledger storage backend (defaults to in-memory)
            clock: Returns the current time in epoch seconds
            cost_per_million_tokens: Blended price used by usage stats
        """
        self.config = config or RateLimitConfig()
        self.store = store if store is not None else InMemoryLedgerStore()
        self.clock = clock
        self.cost_per_million_tokens = cost_per_million_tokens
        self._requests: List[LedgerEntry] = []
        self._lock = threading.Lock()
        self._load()

    def can_make_request(self) -> RateLimitDecision:
        """Check whether another request fits within all three caps."""
        with self._lock:
            now = self._now_ms()
            self._clean_old_requests(now)

            windows = (
                (MINUTE_MS, self.config.max_requests_per_minute, "minute"),
                (HOUR_MS, self.config.max_requests_per_hour, "hour"),
                (DAY_MS, self.config.max_requests_per_day, "day"),
            )
            for window_ms, cap, unit in windows:
                in_window = self._timestamps_since(now - window_ms)
                if len(in_window) >= cap:
                    reset_in = math.ceil((min(in_window) + window_ms - now) / 1000)
                    return RateLimitDecision(
                        allowed=False,
                        reason=f"Rate limit: {cap} requests per {unit}",
                        reset_in=reset_in
                    )

            return RateLimitDecision(allowed=True)

    def log_request(self, tokens_used: int = DEFAULT_TOKENS_PER_REQUEST) -> None:
        """Record one successful request."""
        with self._lock:
            now = self._now_ms()
            self._clean_old_requests(now)
            self._requests.append(LedgerEntry(timestamp=now, tokens_used=tokens_used))
            self._save()

    def get_usage_stats(self) -> UsageStats:
        """Get request counts per window and the estimated spend today."""
        with self._lock:
            now = self._now_ms()
            self._clean_old_requests(now)

            day_cutoff = now - DAY_MS
            total_tokens = sum(
                r.tokens_used for r in self._requests if r.timestamp > day_cutoff
            )

            return UsageStats(
                requests_last_minute=len(self._timestamps_since(now - MINUTE_MS)),
                requests_last_hour=len(self._timestamps_since(now - HOUR_MS)),
                requests_last_day=len(self._timestamps_since(day_cutoff)),
                total_tokens_today=total_tokens,
                estimated_cost_today=estimate_cost(total_tokens, self.cost_per_million_tokens)
            )

    def reset(self) -> None:
        """Clear the ledger."""
        with self._lock:
            self._requests = []
            self._save()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _timestamps_since(self, cutoff: int) -> List[int]:
        return [r.timestamp for r in self._requests if r.timestamp > cutoff]

    def _clean_old_requests(self, now: int) -> None:
        cutoff = now - DAY_MS
        kept = [r for r in self._requests if r.timestamp > cutoff]
        if len(kept) != len(self._requests):
            self._requests = kept
            self._save()

    def _save(self) -> None:
        try:
            self.store.save(serialize_ledger(self._requests))
        except (sqlite3.Error, OSError) as e:
            logger.error("Failed to save rate limit data: %s", e)

    def _load(self) -> None:
        try:
            stored = self.store.load()
            if stored:
                self._requests = deserialize_ledger(stored)
        except (sqlite3.Error, OSError, ValueError) as e:
            logger.error("Failed to load rate limit data: %s", e)
            self._requests = []
            return

        with self._lock:
            self._clean_old_requests(self._now_ms())


# Global rate limiter instance
_default_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter(
    config: Optional[RateLimitConfig] = None,
    store: Optional[LedgerStore] = None
) -> RateLimiter:
    """Get the process-wide rate limiter.

    The instance is created on first call; later calls return it unchanged
    and ignore any config or store passed in.

    Args:
        config: Request caps used only on first construction
        store: Ledger storage used only on first construction

    Returns:
        The shared RateLimiter
    """
    global _default_rate_limiter
    if _default_rate_limiter is None:
        _default_rate_limiter = RateLimiter(config, store)
    return _default_rate_limiter


def format_reset_time(seconds: int) -> str:
    """Format a reset delay for display, e.g. "45 seconds" or "2 minutes"."""
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = math.ceil(minutes / 60)
    return f"{hours} hour{'s' if hours != 1 else ''}"

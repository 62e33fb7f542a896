from __future__ import annotations

import heapq
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reset_at: float


class FixedWindowRateLimiter:
    """Per-key fixed-window counter with an optional lockout penalty.

    Once a key goes over ``max_attempts`` inside its window, the entry's expiry
    is pushed out to ``lockout_seconds`` from now. Expired entries are dropped
    lazily on the next access to the key, or in bulk when the store grows past
    ``max_entries``.
    """

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: float = 60,
        lockout_seconds: Optional[float] = None,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self._limit = max(1, int(max_attempts))
        self._window_seconds = float(window_seconds)
        self._lockout_seconds = float(window_seconds if lockout_seconds is None else lockout_seconds)
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, RateLimitEntry] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def __len__(self) -> int:
        return len(self._entries)

    def check_and_record(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                entry = RateLimitEntry(count=0, reset_at=now + self._window_seconds)
                self._entries[key] = entry
                if len(self._entries) > self._max_entries:
                    self._evict(now, keep=key)

            entry.count += 1

            if entry.count > self._limit:
                entry.reset_at = now + self._lockout_seconds
                return RateLimitDecision(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    retry_after=max(1, math.ceil(entry.reset_at - now)),
                    reset_at=entry.reset_at,
                )

            return RateLimitDecision(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - entry.count,
                retry_after=0,
                reset_at=entry.reset_at,
            )

    def peek(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= self._clock():
                return None
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def _purge(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.reset_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def _evict(self, now: float, *, keep: str) -> None:
        # Caller holds the lock.
        self._purge(now)
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        victims = heapq.nsmallest(
            overflow,
            (k for k in self._entries if k != keep),
            key=lambda k: self._entries[k].reset_at,
        )
        for k in victims:
            del self._entries[k]

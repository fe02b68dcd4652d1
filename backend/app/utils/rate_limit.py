import time
from collections import deque
from threading import Lock

_MAX_BUCKETS = 50_000
_PRUNE_INTERVAL_SECONDS = 60

SENDER_WINDOW_SECONDS = 60


def sender_key(sender_id: str) -> str:
    return f"whatsapp:sender:{sender_id}"


def _trim(hits: deque[float], cutoff: float) -> None:
    while hits and hits[0] <= cutoff:
        hits.popleft()


class SlidingWindowRateLimiter:
    """Per-key sliding-window counter. ``allow`` returns ``(allowed, hits_in_window)``."""

    def __init__(
        self,
        *,
        max_buckets: int = _MAX_BUCKETS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._buckets: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets
        self._prune_interval_seconds = max(1, int(prune_interval_seconds))
        self._last_prune_at = 0.0

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        if limit <= 0 or window_seconds <= 0:
            return True, 0
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            # Prune periodically, and immediately past the hard bucket cap.
            if len(self._buckets) > self._max_buckets or (now - self._last_prune_at) >= self._prune_interval_seconds:
                self._prune_stale(cutoff)
                self._last_prune_at = now

            hits = self._buckets.setdefault(key, deque())
            _trim(hits, cutoff)
            if len(hits) >= limit:
                return False, len(hits)
            hits.append(now)
            return True, len(hits)

    def allow_sender(self, sender_id: str, per_minute: int) -> bool:
        allowed, _ = self.allow(sender_key(sender_id), per_minute, SENDER_WINDOW_SECONDS)
        return allowed

    def _prune_stale(self, cutoff: float) -> None:
        """Drop buckets with no hits after *cutoff* (called under lock)."""
        for key in list(self._buckets):
            hits = self._buckets[key]
            _trim(hits, cutoff)
            if not hits:
                del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_prune_at = 0.0


rate_limiter = SlidingWindowRateLimiter()

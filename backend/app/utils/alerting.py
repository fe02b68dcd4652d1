import logging
import time
from collections import deque
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600
DEFAULT_THRESHOLDS = {
    "MEDIA_FETCH_FAILED": 5,
    "EXTRACTION_SERVICE_FAILED": 5,
    "RASTERIZATION_FAILED": 5,
    "DOWNSTREAM_SUBMIT_FAILED": 3,
    "WEBHOOK_VERIFY_REJECTED": 5,
    "REPLY_SEND_FAILED": 10,
    "RATE_LIMIT_BLOCKED": 20,
}


class FailureAlertTracker:
    """Counts failures per category in a sliding window and logs an ALERT at each threshold multiple."""

    def __init__(self, window_seconds: int, thresholds: dict[str, int]) -> None:
        self._window_seconds = window_seconds
        self._thresholds = thresholds
        self._buckets: dict[str, deque[float]] = {}
        self._lock = Lock()

    def record(self, action: str, metadata: Optional[dict] = None) -> int:
        """Record one failure; returns the current count in the window (0 if untracked)."""
        if action not in self._thresholds:
            return 0
        limit = self._thresholds[action]
        now = time.monotonic()
        with self._lock:
            bucket = self._buckets.get(action)
            if bucket is None:
                bucket = deque()
                self._buckets[action] = bucket
            cutoff = now - self._window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            bucket.append(now)
            count = len(bucket)
            # Alert at threshold and at every multiple of threshold
            if count >= limit and count % limit == 0:
                logger.warning(
                    "ALERT failure=%s count=%s window_seconds=%s metadata=%s",
                    action,
                    count,
                    self._window_seconds,
                    metadata or {},
                )
        return count

    def count(self, action: str) -> int:
        now = time.monotonic()
        with self._lock:
            bucket = self._buckets.get(action)
            if not bucket:
                return 0
            cutoff = now - self._window_seconds
            return sum(1 for ts in bucket if ts > cutoff)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


alert_tracker = FailureAlertTracker(DEFAULT_WINDOW_SECONDS, DEFAULT_THRESHOLDS)

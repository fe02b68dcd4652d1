"""In-memory store of unconfirmed receipts, at most one per sender.

``put``/``take``/``peek``/``clear`` are plain synchronous dict operations and
therefore atomic on the event loop: ``take`` can hand a record out only
once. Callers that read, await, then write (the conversation service) hold
``locked(sender_id)`` for the whole sequence so events from one sender are
applied in order while other senders proceed in parallel.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional

from app.schemas.receipt import CanonicalRecord, ConversationState, PendingEntry

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class _KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped once no task holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class PendingStore:
    def __init__(self, *, ttl_seconds: int = 0) -> None:
        self._entries: dict[str, PendingEntry] = {}
        self._locks = _KeyedLocks()
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None

    def locked(self, sender_id: str):
        """Async context manager serializing work for one sender."""
        return self._locks.hold(sender_id)

    def _expired(self, entry: PendingEntry, now: datetime) -> bool:
        return self._ttl is not None and entry.created_at + self._ttl <= now

    def _live(self, sender_id: str, now: Optional[datetime] = None) -> Optional[PendingEntry]:
        entry = self._entries.get(sender_id)
        if entry is None:
            return None
        if self._expired(entry, now or _now_utc()):
            del self._entries[sender_id]
            logger.info("Pending entry expired for sender")
            return None
        return entry

    def put(self, sender_id: str, record: CanonicalRecord, *, now: Optional[datetime] = None) -> Optional[PendingEntry]:
        """Store *record* for *sender_id*, replacing any earlier entry.

        Returns the replaced live entry, if there was one.
        """
        previous = self._live(sender_id, now)
        self._entries[sender_id] = PendingEntry(sender_id=sender_id, record=record, created_at=now or _now_utc())
        return previous

    def take(self, sender_id: str, *, now: Optional[datetime] = None) -> Optional[PendingEntry]:
        """Remove and return the sender's entry; ``None`` when nothing is pending."""
        entry = self._live(sender_id, now)
        if entry is None:
            return None
        del self._entries[sender_id]
        return entry

    def peek(self, sender_id: str, *, now: Optional[datetime] = None) -> Optional[PendingEntry]:
        return self._live(sender_id, now)

    def clear(self, sender_id: str) -> bool:
        return self._entries.pop(sender_id, None) is not None

    def state_of(self, sender_id: str, *, now: Optional[datetime] = None) -> ConversationState:
        if self._live(sender_id, now) is None:
            return ConversationState.IDLE
        return ConversationState.AWAITING_CONFIRMATION

    def purge_expired(self, *, now: Optional[datetime] = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        if self._ttl is None:
            return 0
        now = now or _now_utc()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

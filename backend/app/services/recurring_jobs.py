from __future__ import annotations

import asyncio
import logging

from app.core.config import get_settings
from app.core.dependencies import get_pending_store

logger = logging.getLogger(__name__)


def expire_pending_receipts() -> int:
    """
    Idempotent cleanup: drops pending receipts older than the configured TTL.
    No-op while the TTL is disabled (0).
    """
    return get_pending_store().purge_expired()


async def _pending_expiry_loop(*, interval_seconds: int) -> None:
    # Backoff on errors to avoid tight loops.
    error_sleep = max(10, min(60, interval_seconds))
    while True:
        try:
            expired_count = expire_pending_receipts()
            if expired_count:
                logger.info("Expired pending receipts: %s", expired_count)
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Pending expiry worker error")
            await asyncio.sleep(error_sleep)


def start_pending_expiry_worker() -> asyncio.Task | None:
    """
    Starts an in-process sweep loop when a pending TTL is configured.
    Callers keep the returned task if they need explicit cancellation.
    """
    settings = get_settings()
    if settings.pending_ttl_seconds <= 0:
        return None
    interval = int(settings.pending_sweep_interval_seconds or 300)
    interval = int(max(15, min(3600, interval)))
    return asyncio.create_task(_pending_expiry_loop(interval_seconds=interval))

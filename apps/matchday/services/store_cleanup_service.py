"""
Idempotency cleanup service: expires old idempotency records of the store.

Background worker that polls every hour. Records older than
IDEMPOTENCY_KEY_TTL_HOURS are deleted, except archive keys, which guard
exactly-once archiving and grow only with history itself.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from matchday.services.history_service import ARCHIVE_KEY_PREFIX
from matchday.services.store import ReplicatedStore, get_replicated_store
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Replays of a mutation are deduplicated for this long
IDEMPOTENCY_KEY_TTL_HOURS = int(os.getenv("IDEMPOTENCY_KEY_TTL_HOURS", "24"))

# How often the worker purges expired records (seconds)
POLL_INTERVAL_SECONDS = 3600  # 1 hour

RETAINED_KEY_PREFIXES = (ARCHIVE_KEY_PREFIX,)


class IdempotencyCleanupService:
    """Background service that purges expired idempotency records."""

    def __init__(
        self,
        store: Optional[ReplicatedStore] = None,
        ttl_hours: int = IDEMPOTENCY_KEY_TTL_HOURS,
    ):
        self._store = store
        self.ttl = timedelta(hours=ttl_hours)
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def store(self) -> ReplicatedStore:
        if self._store is None:
            self._store = get_replicated_store()
        return self._store

    def start(self) -> None:
        """Start the background cleanup worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Idempotency cleanup worker started")

    def stop(self) -> None:
        """Stop the background cleanup worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Idempotency cleanup worker stopped")

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.purge_expired()
            except Exception as e:
                logger.error(f"Error in idempotency cleanup worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete the records older than the TTL.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of records deleted
        """
        cutoff = (now or utcnow()) - self.ttl
        purged = await self.store.purge_idempotency_records(cutoff, keep_prefixes=RETAINED_KEY_PREFIXES)
        if purged:
            logger.info(f"Purged {purged} expired idempotency record(s)")
        return purged


# Global cleanup service instance
_idempotency_cleanup_service: Optional[IdempotencyCleanupService] = None


def get_idempotency_cleanup_service() -> IdempotencyCleanupService:
    """Get the global idempotency cleanup service instance."""
    global _idempotency_cleanup_service
    if _idempotency_cleanup_service is None:
        _idempotency_cleanup_service = IdempotencyCleanupService()
    return _idempotency_cleanup_service

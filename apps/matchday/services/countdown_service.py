"""
Countdown scheduler: moves a freshly created match from countdown to active.

Background worker that subscribes to ``current-match``. Whenever a match
enters ``countdown`` it waits COUNTDOWN_TICKS ticks of COUNTDOWN_TICK_SECONDS
and then activates it as the system actor. Any number of API instances may
run one; activation is a compare-and-transition, so only the first fires.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

from matchday.services import match_service
from matchday.services.access_service import system_store
from matchday.services.store import ReplicatedStore, get_replicated_store
from matchday.utils.constants import (
    COUNTDOWN_TICK_SECONDS,
    COUNTDOWN_TICKS,
    CURRENT_MATCH_PATH,
    STATUS_COUNTDOWN,
)
from matchday.utils.datetime_utils import now_ms

logger = logging.getLogger(__name__)

# Pause before re-subscribing after the watch loop fails
WATCH_RETRY_SECONDS = 5


class CountdownScheduler:
    """Background service that activates matches when their countdown ends."""

    def __init__(
        self,
        store: Optional[ReplicatedStore] = None,
        ticks: int = COUNTDOWN_TICKS,
        tick_seconds: float = COUNTDOWN_TICK_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self.ticks = ticks
        self.tick_seconds = tick_seconds
        self.clock = clock
        self._watch_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()

    @property
    def store(self) -> ReplicatedStore:
        if self._store is None:
            self._store = get_replicated_store()
        return self._store

    @property
    def pending_matches(self) -> list:
        return sorted(self._pending)

    def start(self) -> None:
        """Start watching the current match."""
        if self._watch_task is None or self._watch_task.done():
            self._stop_event.clear()
            self._watch_task = asyncio.create_task(self._watch_loop())
            logger.info("Countdown scheduler started")

    def stop(self) -> None:
        """Stop watching and drop pending countdowns."""
        self._stop_event.set()
        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
            logger.info("Countdown scheduler stopped")
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

    def schedule(self, match_id: str) -> asyncio.Task:
        """Start the countdown of ``match_id`` unless it is already running."""
        task = self._pending.get(match_id)
        if task is None or task.done():
            task = asyncio.create_task(self._run_countdown(match_id))
            self._pending[match_id] = task
            logger.debug(f"Countdown started for match {match_id}")
        return task

    async def _watch_loop(self) -> None:
        """Main loop: follow current-match and schedule every new countdown."""
        while not self._stop_event.is_set():
            subscription = self.store.subscribe(CURRENT_MATCH_PATH)
            try:
                async for snapshot in subscription:
                    match = snapshot.value
                    if match and match.get("status") == STATUS_COUNTDOWN:
                        self.schedule(match["id"])
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in countdown watch loop: {e}", exc_info=True)
            finally:
                subscription.close()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=WATCH_RETRY_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def _run_countdown(self, match_id: str) -> bool:
        """
        Wait out the countdown, then activate the match.

        Returns:
            True if this scheduler performed the activation
        """
        try:
            for tick in range(self.ticks, 0, -1):
                logger.debug(f"Match {match_id} starts in {tick}")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_seconds)
                    return False
                except asyncio.TimeoutError:
                    pass
            return await match_service.activate_match(
                system_store(self.store), match_id, clock=self.clock
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to activate match {match_id}: {e}", exc_info=True)
            return False
        finally:
            self._pending.pop(match_id, None)


# Global singleton
_countdown_scheduler: Optional[CountdownScheduler] = None


def get_countdown_scheduler() -> CountdownScheduler:
    """Get the global countdown scheduler instance."""
    global _countdown_scheduler
    if _countdown_scheduler is None:
        _countdown_scheduler = CountdownScheduler()
    return _countdown_scheduler

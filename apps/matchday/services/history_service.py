"""
History archive of finished matches.

Each entry is an independent deep copy of the finished match stored under
its own generated key in ``history/``. Entries are never modified after
creation (the access layer rejects writes into ``history/``).
"""

import copy
import logging
from typing import Dict, List

from matchday.services.access_service import GuardedStore
from matchday.services.errors import NotFoundError
from matchday.utils.constants import EVENT_GOAL, EVENT_RED, EVENT_YELLOW, HISTORY_PATH
from matchday.utils.store_paths import join_path

logger = logging.getLogger(__name__)

# Idempotency keys of archive writes; kept for as long as history itself
ARCHIVE_KEY_PREFIX = "archive:"


def _to_entry(entry_id: str, value: Dict) -> Dict:
    return {**value, "id": entry_id}


async def archive(store: GuardedStore, snapshot: Dict) -> Dict:
    """
    Archive a finished match.

    The match id is used as idempotency key, so archiving the same match
    again returns the existing entry instead of creating a second one.

    Args:
        store: Store guarded for the acting user
        snapshot: Full finished match record

    Returns:
        The stored history entry (``id`` is the entry key, ``match_id`` the match's)
    """
    entry = copy.deepcopy(snapshot)
    entry["match_id"] = entry.pop("id")
    entry_id = await store.append_child(
        HISTORY_PATH, entry, idempotency_key=f"{ARCHIVE_KEY_PREFIX}{entry['match_id']}"
    )
    logger.info(f"Archived match {entry['match_id']} as history entry {entry_id}")
    return await get_entry(store, entry_id)


async def list_history(store) -> List[Dict]:
    """All entries, most recently finished first (ties ordered by entry id)."""
    entries = await store.read(HISTORY_PATH) or {}
    return sorted(
        (_to_entry(entry_id, value) for entry_id, value in entries.items()),
        key=lambda e: (-(e.get("end_time") or 0), e["id"]),
    )


async def get_entry(store, entry_id: str) -> Dict:
    """
    Raises:
        NotFoundError: No entry with this id
    """
    value = await store.read(join_path(HISTORY_PATH, entry_id))
    if value is None:
        raise NotFoundError(f"History entry {entry_id} not found")
    return _to_entry(entry_id, value)


async def player_stats(store, user_id: str) -> Dict:
    """Career totals for a player across all archived matches."""
    # Scans every history entry on each call
    stats = {"matches": 0, "goals": 0, "yellow_cards": 0, "red_cards": 0}
    for entry in await list_history(store):
        if user_id not in (entry.get("team1_ids") or []) + (entry.get("team2_ids") or []):
            continue
        stats["matches"] += 1
        for event in entry.get("events") or []:
            if event.get("player_id") != user_id:
                continue
            if event["type"] == EVENT_GOAL:
                stats["goals"] += 1
            elif event["type"] == EVENT_YELLOW:
                stats["yellow_cards"] += 1
            elif event["type"] == EVENT_RED:
                stats["red_cards"] += 1
    return stats

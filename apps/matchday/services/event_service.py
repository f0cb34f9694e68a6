"""
Event ledger: goals and cards of the active match.

Events are appended to ``current-match/events`` with server-generated ids.
A goal's score increment and its event append go out as one conditional
patch, so concurrent operators never lose an increment and the score always
equals the number of goal events per team.
"""

import logging
import uuid
from typing import Callable, Dict

from matchday.services.access_service import GuardedStore
from matchday.services.errors import (
    ConditionFailedError,
    InvalidMatchStateError,
    PlayerNotInMatchError,
)
from matchday.services.store import append, equals, increment
from matchday.utils.constants import (
    CURRENT_MATCH_PATH,
    EVENT_GOAL,
    EVENT_TYPES,
    MS_PER_MINUTE,
    STATUS_ACTIVE,
    TEAM_NUMBERS,
    USERS_PATH,
)
from matchday.utils.datetime_utils import now_ms
from matchday.utils.store_paths import join_path

logger = logging.getLogger(__name__)

# A half can start between reading the match and writing the event
MAX_RECORD_ATTEMPTS = 3


def compute_minute(timestamp: int, start_time: int) -> int:
    """Match minute of ``timestamp`` in the half anchored at ``start_time`` (never below 1)."""
    return max(1, (timestamp - start_time) // MS_PER_MINUTE + 1)


async def record_event(
    store: GuardedStore,
    event_type: str,
    player: Dict,
    clock: Callable[[], int] = now_ms,
) -> Dict:
    """
    Record a goal or card for a player of the active match.

    Args:
        store: Store guarded for the acting user (must be privileged)
        event_type: ``goal``, ``yellow`` or ``red``
        player: ``{"id", "team"}`` and optionally ``"name"``; the name is
            snapshotted from the player's profile when available

    Returns:
        The appended event

    Raises:
        InvalidMatchStateError: No active match
        PlayerNotInMatchError: Player is not on the given team's roster
        ValueError: Unknown event type or team number
    """
    await store.require_privileged()
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Event type must be one of: {', '.join(EVENT_TYPES)}")
    team = player.get("team")
    if team not in TEAM_NUMBERS:
        raise ValueError("Team must be 1 or 2")
    player_id = player.get("id")

    profile_name = await store.read(join_path(USERS_PATH, player_id, "name")) if player_id else None
    player_name = profile_name or player.get("name") or ""
    event_id = uuid.uuid4().hex

    for _ in range(MAX_RECORD_ATTEMPTS):
        match = await store.read(CURRENT_MATCH_PATH)
        if not match or match["status"] != STATUS_ACTIVE:
            raise InvalidMatchStateError("Events can only be recorded while the match is active")
        if player_id not in (match.get(f"team{team}_ids") or []):
            raise PlayerNotInMatchError(f"Player {player_id} is not on team {team}")

        timestamp = clock()
        event = {
            "id": event_id,
            "type": event_type,
            "player_id": player_id,
            "player_name": player_name,
            "team": team,
            "timestamp": timestamp,
            "minute": compute_minute(timestamp, match["start_time"]),
        }
        updates = {join_path(CURRENT_MATCH_PATH, "events"): append(event)}
        if event_type == EVENT_GOAL:
            updates[join_path(CURRENT_MATCH_PATH, "score", f"team{team}")] = increment(1)

        try:
            await store.patch(
                updates,
                conditions={
                    join_path(CURRENT_MATCH_PATH, "id"): equals(match["id"]),
                    join_path(CURRENT_MATCH_PATH, "status"): equals(STATUS_ACTIVE),
                    join_path(CURRENT_MATCH_PATH, "start_time"): equals(match["start_time"]),
                },
                idempotency_key=f"event:{event_id}",
            )
        except ConditionFailedError as e:
            logger.debug(f"Event {event_id} raced a match change ({e.path}), re-reading")
            continue

        logger.info(
            f"Match {match['id']}: {event_type} for {player_id} (team {team}) at minute {event['minute']}"
        )
        return event

    raise InvalidMatchStateError("Match kept changing while recording the event")

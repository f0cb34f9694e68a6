"""
Match lifecycle: countdown -> active -> finished -> (reset) idle.

The current match is the single ``current-match`` document; idle means the
document does not exist. Every transition is a conditional patch guarded on
the match id and the status it leaves, so concurrent operators racing on the
same transition cannot apply it twice.
"""

import logging
import uuid
from typing import Callable, Dict, Optional

from matchday.services import history_service, team_service
from matchday.services.access_service import GuardedStore
from matchday.services.errors import ConditionFailedError, InvalidMatchStateError
from matchday.services.store import equals
from matchday.utils.constants import (
    ALLOWED_HALVES,
    CURRENT_MATCH_PATH,
    MS_PER_MINUTE,
    STATUS_ACTIVE,
    STATUS_COUNTDOWN,
    STATUS_FINISHED,
    TEAM_ASSIGNMENT_PATH,
)
from matchday.utils.datetime_utils import now_ms
from matchday.utils.store_paths import join_path

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _field(name: str) -> str:
    return join_path(CURRENT_MATCH_PATH, name)


def _guard(match_id: str, status: str) -> Dict:
    return {_field("id"): equals(match_id), _field("status"): equals(status)}


async def get_current_match(store) -> Optional[Dict]:
    return await store.read(CURRENT_MATCH_PATH)


async def create_match(
    store: GuardedStore, duration: int, halves: int, clock: Clock = now_ms
) -> Dict:
    """
    Create a match from the current team assignment and start its countdown.

    Args:
        store: Store guarded for the acting user (must be privileged)
        duration: Total playing time in minutes
        halves: 1 or 2

    Returns:
        The new match record (status ``countdown``)

    Raises:
        InvalidMatchStateError: No teams drawn, or a match is already running
        ValueError: Invalid duration or halves
    """
    await store.require_privileged()
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValueError("Duration must be a positive number of minutes")
    if halves not in ALLOWED_HALVES:
        raise ValueError(f"Halves must be one of {ALLOWED_HALVES}")

    assignment = await team_service.get_assignment(store)
    if not assignment:
        raise InvalidMatchStateError("Draw teams before creating a match")

    match = {
        "id": uuid.uuid4().hex,
        "status": STATUS_COUNTDOWN,
        "duration": duration,
        "halves": halves,
        "current_half": 1,
        "start_time": None,
        "end_time": None,
        "score": {"team1": 0, "team2": 0},
        "events": [],
        "team1_ids": sorted(pid for pid, team in assignment.items() if team == 1),
        "team2_ids": sorted(pid for pid, team in assignment.items() if team == 2),
        "created_at": clock(),
    }

    conditions = {TEAM_ASSIGNMENT_PATH: equals(assignment)}
    previous = await get_current_match(store)
    if previous and previous["status"] == STATUS_FINISHED:
        # A finished match is only replaced once it is in history
        await history_service.archive(store, previous)
        conditions.update(_guard(previous["id"], STATUS_FINISHED))
    else:
        conditions[_field("status")] = equals(None)

    try:
        await store.patch({CURRENT_MATCH_PATH: match}, conditions=conditions)
    except ConditionFailedError as e:
        if e.path == TEAM_ASSIGNMENT_PATH:
            raise InvalidMatchStateError("Teams changed while the match was being created")
        raise InvalidMatchStateError("A match is already in progress")

    logger.info(
        f"User {store.actor_id} created match {match['id']} "
        f"({duration} min, {halves} half/halves, {len(match['team1_ids'])}v{len(match['team2_ids'])})"
    )
    return match


async def activate_match(store: GuardedStore, match_id: str, clock: Clock = now_ms) -> bool:
    """
    Countdown expiry: move match ``match_id`` from countdown to active.

    Safe to call from several clients or schedulers at once; only the first
    call changes anything.

    Returns:
        True if this call performed the transition, False if it was a no-op
    """
    await store.require_privileged()
    try:
        await store.patch(
            {
                _field("status"): STATUS_ACTIVE,
                _field("start_time"): clock(),
                _field("current_half"): 1,
            },
            conditions=_guard(match_id, STATUS_COUNTDOWN),
        )
    except ConditionFailedError:
        logger.debug(f"Activation of match {match_id} skipped: already active or gone")
        return False

    logger.info(f"Match {match_id} is live")
    return True


async def advance_half(store: GuardedStore, clock: Clock = now_ms) -> Dict:
    """
    Start the next half; the half clock restarts from now.

    Raises:
        InvalidMatchStateError: Match not active or already in its last half
    """
    await store.require_privileged()
    match = await get_current_match(store)
    if not match or match["status"] != STATUS_ACTIVE:
        raise InvalidMatchStateError("Match is not active")
    current_half = match["current_half"]
    if current_half >= match["halves"]:
        raise InvalidMatchStateError("Match is already in its last half")

    try:
        await store.patch(
            {
                _field("current_half"): current_half + 1,
                _field("start_time"): clock(),
            },
            conditions={
                **_guard(match["id"], STATUS_ACTIVE),
                _field("current_half"): equals(current_half),
            },
        )
    except ConditionFailedError:
        raise InvalidMatchStateError("Match changed while advancing the half")

    logger.info(f"Match {match['id']} half {current_half + 1} started")
    return await get_current_match(store)


async def finish_match(store: GuardedStore, clock: Clock = now_ms) -> Dict:
    """
    Finish the active match and archive it.

    Finishing an already finished match does not create a second history
    entry; it returns the existing one.

    Returns:
        The history entry of the match

    Raises:
        InvalidMatchStateError: No match, or the match is not active
    """
    await store.require_privileged()
    match = await get_current_match(store)
    if not match:
        raise InvalidMatchStateError("No match in progress")
    if match["status"] == STATUS_FINISHED:
        return await history_service.archive(store, match)
    if match["status"] != STATUS_ACTIVE:
        raise InvalidMatchStateError(f"Cannot finish a match in status '{match['status']}'")

    end_time = clock()
    try:
        await store.patch(
            {_field("status"): STATUS_FINISHED, _field("end_time"): end_time},
            conditions=_guard(match["id"], STATUS_ACTIVE),
        )
    except ConditionFailedError:
        current = await get_current_match(store)
        if current and current["id"] == match["id"] and current["status"] == STATUS_FINISHED:
            return await history_service.archive(store, current)
        raise InvalidMatchStateError("Match changed while finishing")

    finished = await get_current_match(store)
    if not finished or finished["id"] != match["id"]:
        finished = {**match, "status": STATUS_FINISHED, "end_time": end_time}

    logger.info(
        f"Match {match['id']} finished "
        f"{finished['score']['team1']}-{finished['score']['team2']}"
    )
    return await history_service.archive(store, finished)


async def reset_match(store: GuardedStore) -> None:
    """
    Close a finished match, returning to idle.

    The archive is ensured first so a match is never dropped unarchived.

    Raises:
        InvalidMatchStateError: No match, or the match is not finished
    """
    await store.require_privileged()
    match = await get_current_match(store)
    if not match or match["status"] != STATUS_FINISHED:
        status = match["status"] if match else None
        raise InvalidMatchStateError(f"Only a finished match can be closed (status: {status})")

    await history_service.archive(store, match)
    try:
        await store.patch({CURRENT_MATCH_PATH: None}, conditions=_guard(match["id"], STATUS_FINISHED))
    except ConditionFailedError:
        logger.debug(f"Match {match['id']} was already closed")
        return
    logger.info(f"User {store.actor_id} closed match {match['id']}")


def match_clock(match: Optional[Dict], now: int) -> Dict:
    """
    Display clock for a match, recomputed from the half anchor.

    Returns:
        ``elapsed_ms`` of the current half and ``half_length_ms``
        (``duration / halves``)
    """
    if not match:
        return {"elapsed_ms": 0, "half_length_ms": 0}

    half_length_ms = match["duration"] * MS_PER_MINUTE // match["halves"]
    start_time = match.get("start_time")
    if start_time is None or match["status"] == STATUS_COUNTDOWN:
        elapsed_ms = 0
    elif match["status"] == STATUS_FINISHED and match.get("end_time") is not None:
        elapsed_ms = max(0, match["end_time"] - start_time)
    else:
        elapsed_ms = max(0, now - start_time)
    return {"elapsed_ms": elapsed_ms, "half_length_ms": half_length_ms}

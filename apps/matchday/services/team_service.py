"""
Team drawing: splits the selected players into two teams at random.

The assignment is a single document ``team-assignment`` mapping player id
to team number. Each draw replaces it wholesale and clears the current match
in the same atomic update.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from matchday.services import user_service
from matchday.services.access_service import GuardedStore
from matchday.services.errors import InsufficientPlayersError, NotFoundError
from matchday.utils.constants import CURRENT_MATCH_PATH, TEAM_ASSIGNMENT_PATH, USERS_PATH

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2

_system_random = random.SystemRandom()


@dataclass
class DrawResult:
    """
    Outcome of a draw request.

    ``needs_confirmation`` is set (and ``assignment`` empty) when an odd
    number of players was selected without ``force``; nothing was written.
    """

    player_count: int
    needs_confirmation: bool = False
    assignment: Dict[str, int] = field(default_factory=dict)


def assign_teams(player_ids: List[str], rng: Optional[random.Random] = None) -> Dict[str, int]:
    """
    Shuffle players (Fisher-Yates) and alternate them between teams 1 and 2.

    Args:
        player_ids: Distinct player ids
        rng: Random source (defaults to the system CSPRNG)

    Returns:
        Mapping player id -> team number; team sizes differ by at most one
    """
    rng = rng or _system_random
    shuffled = list(player_ids)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return {player_id: (index % 2) + 1 for index, player_id in enumerate(shuffled)}


async def draw_teams(
    store: GuardedStore,
    player_ids: Iterable[str],
    force: bool = False,
    rng: Optional[random.Random] = None,
) -> DrawResult:
    """
    Draw two teams from the selected players.

    Args:
        store: Store guarded for the acting user (must be privileged)
        player_ids: Selected player ids (duplicates ignored)
        force: Proceed with an odd number of players
        rng: Random source, for tests

    Returns:
        DrawResult with the published assignment, or needs_confirmation

    Raises:
        UnauthorizedError: Actor is not privileged
        InsufficientPlayersError: Fewer than two players selected
        NotFoundError: A selected id is not a registered user
    """
    await store.require_privileged()

    selected = list(dict.fromkeys(player_ids))
    if len(selected) < MIN_PLAYERS:
        raise InsufficientPlayersError(f"Select at least {MIN_PLAYERS} players to draw teams")

    known = await store.read(USERS_PATH) or {}
    unknown = [player_id for player_id in selected if player_id not in known]
    if unknown:
        raise NotFoundError(f"Unknown player(s): {', '.join(unknown)}")

    if len(selected) % 2 != 0 and not force:
        return DrawResult(player_count=len(selected), needs_confirmation=True)

    assignment = assign_teams(selected, rng)
    await store.patch({TEAM_ASSIGNMENT_PATH: assignment, CURRENT_MATCH_PATH: None})
    logger.info(f"User {store.actor_id} drew teams for {len(selected)} players")
    return DrawResult(player_count=len(selected), assignment=assignment)


async def clear_teams(store: GuardedStore) -> None:
    """Remove the assignment and any current match."""
    await store.require_privileged()
    await store.patch({TEAM_ASSIGNMENT_PATH: None, CURRENT_MATCH_PATH: None})
    logger.info(f"User {store.actor_id} cleared teams")


async def get_assignment(store) -> Dict[str, int]:
    return await store.read(TEAM_ASSIGNMENT_PATH) or {}


async def get_teams(store) -> Dict:
    """
    Current assignment grouped for display.

    Returns:
        ``assignment``, ``team1`` and ``team2`` player profiles, and
        ``unassigned`` players (only once an assignment exists)
    """
    assignment = await get_assignment(store)
    users = await user_service.list_users(store)
    return {
        "assignment": assignment,
        "team1": [u for u in users if assignment.get(u["id"]) == 1],
        "team2": [u for u in users if assignment.get(u["id"]) == 2],
        "unassigned": [u for u in users if assignment and u["id"] not in assignment],
    }

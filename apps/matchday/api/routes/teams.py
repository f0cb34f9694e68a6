"""Team draw route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from matchday.api.auth_dependencies import get_actor_store, get_current_user, get_store
from matchday.api.routes import to_http_exception
from matchday.models.schemas import (
    DrawTeamsRequest,
    DrawTeamsResponse,
    StatusResponse,
    TeamsResponse,
)
from matchday.services import team_service
from matchday.services.access_service import GuardedStore
from matchday.services.errors import MatchdayError
from matchday.services.store import ReplicatedStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams", response_model=TeamsResponse)
async def get_teams(
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    """Current assignment with players grouped by team."""
    try:
        return await team_service.get_teams(store)
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching teams: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching teams: {str(e)}")


@router.post("/api/teams/draw", response_model=DrawTeamsResponse)
async def draw_teams(payload: DrawTeamsRequest, store: GuardedStore = Depends(get_actor_store)):
    """
    Draw two teams from the selected players.

    An odd selection without ``force`` answers ``needs_confirmation`` and
    changes nothing; send it again with ``force: true`` to proceed.
    """
    try:
        result = await team_service.draw_teams(store, payload.player_ids, force=payload.force)
        return {
            "status": "needs_confirmation" if result.needs_confirmation else "drawn",
            "player_count": result.player_count,
            "assignment": result.assignment,
        }
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error drawing teams: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error drawing teams: {str(e)}")


@router.delete("/api/teams", response_model=StatusResponse)
async def clear_teams(store: GuardedStore = Depends(get_actor_store)):
    """Remove the teams and any current match."""
    try:
        await team_service.clear_teams(store)
        return {"status": "success", "message": "Teams cleared"}
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error clearing teams: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error clearing teams: {str(e)}")

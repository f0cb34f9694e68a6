"""Current match and event route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from matchday.api.auth_dependencies import get_actor_store, get_current_user, get_store
from matchday.api.routes import to_http_exception
from matchday.models.schemas import (
    CreateMatchRequest,
    CurrentMatchResponse,
    HistoryEntryResponse,
    MatchEventResponse,
    RecordEventRequest,
    StatusResponse,
)
from matchday.services import event_service, match_service
from matchday.services.access_service import GuardedStore
from matchday.services.errors import InvalidMatchStateError, MatchdayError
from matchday.services.store import ReplicatedStore
from matchday.utils.datetime_utils import now_ms

logger = logging.getLogger(__name__)
router = APIRouter()


def _current_match_response(match: Optional[dict]) -> dict:
    now = now_ms()
    return {"match": match, **match_service.match_clock(match, now), "server_time": now}


@router.get("/api/match", response_model=CurrentMatchResponse)
async def get_current_match(
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    """Current match (null when idle) with the clock of the running half."""
    try:
        return _current_match_response(await match_service.get_current_match(store))
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching match: {str(e)}")


@router.post("/api/match", response_model=CurrentMatchResponse)
async def create_match(payload: CreateMatchRequest, store: GuardedStore = Depends(get_actor_store)):
    """Create a match from the drawn teams; it goes live after the countdown."""
    try:
        match = await match_service.create_match(store, payload.duration, payload.halves)
        return _current_match_response(match)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating match: {str(e)}")


@router.post("/api/match/activate", response_model=CurrentMatchResponse)
async def activate_match(store: GuardedStore = Depends(get_actor_store)):
    """
    End the countdown now. Safe to call repeatedly or concurrently; only the
    first call changes the match.
    """
    try:
        match = await match_service.get_current_match(store)
        if not match:
            raise InvalidMatchStateError("No match in progress")
        await match_service.activate_match(store, match["id"])
        return _current_match_response(await match_service.get_current_match(store))
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error activating match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error activating match: {str(e)}")


@router.post("/api/match/advance-half", response_model=CurrentMatchResponse)
async def advance_half(store: GuardedStore = Depends(get_actor_store)):
    try:
        return _current_match_response(await match_service.advance_half(store))
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error advancing half: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error advancing half: {str(e)}")


@router.post("/api/match/finish", response_model=HistoryEntryResponse)
async def finish_match(store: GuardedStore = Depends(get_actor_store)):
    """Finish the match and return its history entry."""
    try:
        return await match_service.finish_match(store)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error finishing match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error finishing match: {str(e)}")


@router.delete("/api/match", response_model=StatusResponse)
async def reset_match(store: GuardedStore = Depends(get_actor_store)):
    """Close a finished match."""
    try:
        await match_service.reset_match(store)
        return {"status": "success", "message": "Match closed"}
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error closing match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error closing match: {str(e)}")


@router.post("/api/match/events", response_model=MatchEventResponse)
async def record_event(payload: RecordEventRequest, store: GuardedStore = Depends(get_actor_store)):
    """Record a goal or a yellow/red card."""
    try:
        player = {"id": payload.player_id, "team": payload.team, "name": payload.player_name}
        return await event_service.record_event(store, payload.type, player)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error recording event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error recording event: {str(e)}")

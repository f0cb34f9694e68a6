"""Match history route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from matchday.api.auth_dependencies import get_current_user, get_store
from matchday.api.routes import to_http_exception
from matchday.models.schemas import HistoryEntryResponse
from matchday.services import history_service
from matchday.services.errors import MatchdayError
from matchday.services.store import ReplicatedStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/history", response_model=List[HistoryEntryResponse])
async def list_history(
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    """Finished matches, most recent first."""
    try:
        return await history_service.list_history(store)
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing history: {str(e)}")


@router.get("/api/history/{entry_id}", response_model=HistoryEntryResponse)
async def get_history_entry(
    entry_id: str,
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    try:
        return await history_service.get_entry(store, entry_id)
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching history entry: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching history entry: {str(e)}")

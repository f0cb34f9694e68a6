"""User profile, role and photo route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from matchday.api.auth_dependencies import get_actor_store, get_current_user, get_store
from matchday.api.routes import limiter, to_http_exception
from matchday.database.db import get_db_session
from matchday.models.schemas import (
    PhotoResponse,
    PlayerStatsResponse,
    RoleUpdateRequest,
    UserResponse,
    UserUpdate,
)
from matchday.services import history_service, photo_service, user_service
from matchday.services.access_service import GuardedStore
from matchday.services.errors import MatchdayError, NotFoundError
from matchday.services.store import ReplicatedStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/users", response_model=List[UserResponse])
async def list_users(
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    """All registered users ordered by name."""
    try:
        return await user_service.list_users(store)
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing users: {str(e)}")


@router.get("/api/users/me", response_model=UserResponse)
async def get_me(current_user: dict = Depends(get_current_user)):
    return current_user


@router.put("/api/users/me", response_model=UserResponse)
async def update_me(
    payload: UserUpdate,
    current_user: dict = Depends(get_current_user),
    store: GuardedStore = Depends(get_actor_store),
):
    """
    Update the current user's name and/or position.
    Only fields present in the body are changed; a null position clears it.
    """
    try:
        fields = payload.model_dump(exclude_unset=True)
        return await user_service.update_profile(store, current_user["id"], fields)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating profile: {str(e)}")


@router.put("/api/users/me/photo", response_model=PhotoResponse)
@limiter.limit("10/minute")
async def upload_photo(
    request: Request,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
    store: GuardedStore = Depends(get_actor_store),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Upload or replace the current user's photo.

    Accepts JPEG, PNG or WebP images up to 200KB. The profile's
    ``photo_ref`` changes with the content.
    """
    try:
        data = await file.read()
        photo_ref = await photo_service.save_photo(session, current_user["id"], data, file.content_type)
        await session.commit()
        await user_service.update_profile(store, current_user["id"], {"photo_ref": photo_ref})
        return {"photo_ref": photo_ref}
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error uploading photo: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error uploading photo")


@router.get("/api/users/{user_id}/photo")
async def get_photo(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Raw photo bytes of a user."""
    photo = await photo_service.get_photo(session, user_id)
    if photo is None:
        raise HTTPException(status_code=404, detail="Photo not found")
    data, content_type = photo
    return Response(content=data, media_type=content_type)


@router.put("/api/users/{user_id}/role", response_model=UserResponse)
async def set_role(
    user_id: str,
    payload: RoleUpdateRequest,
    store: GuardedStore = Depends(get_actor_store),
):
    """Change another user's role. Privileged only; never your own."""
    try:
        return await user_service.set_role(store, user_id, payload.role)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error setting role: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error setting role: {str(e)}")


@router.get("/api/users/{user_id}/stats", response_model=PlayerStatsResponse)
async def get_stats(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
):
    """Career goals and cards across archived matches."""
    try:
        if await user_service.get_user(store, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        stats = await history_service.player_stats(store, user_id)
        return {"user_id": user_id, **stats}
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error computing stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error computing stats: {str(e)}")

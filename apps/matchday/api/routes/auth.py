"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from matchday.api.auth_dependencies import get_store
from matchday.api.routes import limiter, to_http_exception
from matchday.models.schemas import AuthResponse, LoginRequest, RegisterRequest
from matchday.services import auth_service, user_service
from matchday.services.errors import MatchdayError
from matchday.services.store import ReplicatedStore

logger = logging.getLogger(__name__)
router = APIRouter()


def _auth_response(user: dict) -> AuthResponse:
    access_token = auth_service.create_access_token(data={"user_id": user["id"]})
    return AuthResponse(access_token=access_token, token_type="bearer", user=user)


@router.post("/api/auth/register", response_model=AuthResponse)
@limiter.limit("10/minute")
async def register(
    request: Request, payload: RegisterRequest, store: ReplicatedStore = Depends(get_store)
):
    """Create an account and log it in."""
    try:
        user = await user_service.register(store, payload.name, payload.email, payload.password)
        return _auth_response(user)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error during registration: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error during registration: {str(e)}")


@router.post("/api/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(request: Request, payload: LoginRequest, store: ReplicatedStore = Depends(get_store)):
    """Login with email and password."""
    try:
        user = await user_service.authenticate(store, payload.email, payload.password)
        return _auth_response(user)
    except HTTPException:
        raise
    except MatchdayError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error during login: {str(e)}")

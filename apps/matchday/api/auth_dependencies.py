"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from matchday.services import auth_service, user_service
from matchday.services.access_service import GuardedStore, guard
from matchday.services.store import ReplicatedStore, get_replicated_store

security = HTTPBearer()


def get_store() -> ReplicatedStore:
    """Dependency returning the replicated store (overridden in tests)."""
    return get_replicated_store()


async def resolve_token_user(store: ReplicatedStore, token: str) -> dict:
    """
    Resolve a JWT to the user's current profile.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    payload = auth_service.verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await user_service.get_user(store, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user(
    store: ReplicatedStore = Depends(get_store),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Returns:
        User profile dictionary
    """
    return await resolve_token_user(store, credentials.credentials)


async def get_actor_store(
    user: dict = Depends(get_current_user),
    store: ReplicatedStore = Depends(get_store),
) -> GuardedStore:
    """Store view bound to the current user; all mutations go through the access policy."""
    return guard(store, user["id"])

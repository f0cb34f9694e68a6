"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from matchday.services.errors import (
    ConditionFailedError,
    DuplicateEmailError,
    InsufficientPlayersError,
    InvalidCredentialsError,
    InvalidMatchStateError,
    MatchdayError,
    NotFoundError,
    PlayerNotInMatchError,
    StoreUnavailableError,
    UnauthorizedError,
)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Domain error -> HTTP status
# ---------------------------------------------------------------------------
HTTP_STATUS_BY_ERROR = {
    InvalidCredentialsError: 401,
    DuplicateEmailError: 400,
    InsufficientPlayersError: 400,
    PlayerNotInMatchError: 400,
    UnauthorizedError: 403,
    NotFoundError: 404,
    InvalidMatchStateError: 409,
    ConditionFailedError: 409,
    StoreUnavailableError: 503,
}


def to_http_exception(error: MatchdayError) -> HTTPException:
    """Map a domain error (or a subclass of a mapped one) to an HTTPException."""
    for cls in type(error).__mro__:
        if cls in HTTP_STATUS_BY_ERROR:
            return HTTPException(status_code=HTTP_STATUS_BY_ERROR[cls], detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from matchday.api.routes.auth import router as auth_router  # noqa: E402
from matchday.api.routes.users import router as users_router  # noqa: E402
from matchday.api.routes.teams import router as teams_router  # noqa: E402
from matchday.api.routes.match import router as match_router  # noqa: E402
from matchday.api.routes.history import router as history_router  # noqa: E402
from matchday.api.routes.live import router as live_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(teams_router)
router.include_router(match_router)
router.include_router(history_router)
router.include_router(live_router)

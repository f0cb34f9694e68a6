"""
Match Day API Server

FastAPI server for pickup match days: players, team draws, the live match
and its history. Live state is streamed over WebSocket from the replicated store.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from matchday.api.routes import router, limiter as routes_limiter
from matchday.database import db
from matchday.services import redis_service
from matchday.services.countdown_service import get_countdown_scheduler
from matchday.services.store import get_replicated_store
from matchday.services.store_cleanup_service import get_idempotency_cleanup_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Match Day API...")

    # Initialize database (create tables if they don't exist)
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Relay store changes from other instances (no-op without Redis)
    try:
        get_replicated_store().broker.start()
    except Exception as e:
        logger.error(f"Failed to start store change listener: {e}", exc_info=True)

    # Start countdown scheduler (countdown -> active)
    try:
        get_countdown_scheduler().start()
    except Exception as e:
        logger.error(f"Failed to start countdown scheduler: {e}", exc_info=True)

    # Start idempotency record expiry
    try:
        get_idempotency_cleanup_service().start()
    except Exception as e:
        logger.error(f"Failed to start idempotency cleanup: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Match Day API...")

    try:
        get_countdown_scheduler().stop()
    except Exception as e:
        logger.error(f"Error stopping countdown scheduler: {e}", exc_info=True)

    try:
        get_idempotency_cleanup_service().stop()
    except Exception as e:
        logger.error(f"Error stopping idempotency cleanup: {e}", exc_info=True)

    # Ends every open live subscription
    try:
        get_replicated_store().broker.stop()
    except Exception as e:
        logger.error(f"Error stopping store change listener: {e}", exc_info=True)

    try:
        await redis_service.close_redis_connection()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="Match Day API",
    description="API for drawing teams, running live matches and browsing match history",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

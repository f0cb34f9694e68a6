"""Live store subscription over WebSocket and health check."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from matchday.api.auth_dependencies import get_store, resolve_token_user
from matchday.models.schemas import HealthResponse
from matchday.services.store import ReplicatedStore
from matchday.services.websocket_manager import WEBSOCKET_TIMEOUT_SECONDS, get_websocket_manager
from matchday.utils.constants import SUBSCRIBABLE_ROOTS
from matchday.utils.store_paths import split_path

logger = logging.getLogger(__name__)
router = APIRouter()


def _is_subscribable(path: str) -> bool:
    try:
        return split_path(path)[0] in SUBSCRIBABLE_ROOTS
    except ValueError:
        return False


@router.websocket("/api/ws/live")
async def websocket_live(websocket: WebSocket, store: ReplicatedStore = Depends(get_store)):
    """
    WebSocket endpoint streaming snapshots of one store path.

    Requires JWT token and path in query parameters: ?token=<jwt>&path=current-match
    Each message is ``{"type": "snapshot", "path", "value", "server_time"}``;
    the first one carries the current value.
    """
    await websocket.accept()

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008, reason="Missing authentication token")
        return
    try:
        user = await resolve_token_user(store, token)
    except HTTPException as e:
        await websocket.close(code=1008, reason=e.detail)
        return

    path = websocket.query_params.get("path", "")
    if not _is_subscribable(path):
        await websocket.close(code=1008, reason=f"Cannot subscribe to '{path}'")
        return

    user_id = user["id"]
    manager = get_websocket_manager()
    await manager.connect(user_id, websocket)
    subscription = store.subscribe(path)
    forwarder = asyncio.create_task(manager.forward(websocket, subscription))

    try:
        while not forwarder.done():
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS)
                await manager.update_activity(websocket)

                # Client sends "ping", server responds "pong"
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                # Closes every connection past the timeout, this one included
                await manager.cleanup_stale_connections()
                if not manager.is_connected(websocket):
                    logger.info(f"Live connection timeout for user {user_id}, closed")
                    break
                try:
                    await websocket.send_text("ping")
                except Exception:
                    break
    except WebSocketDisconnect:
        logger.info(f"Live connection disconnected for user {user_id}")
    except Exception as e:
        logger.error(f"Live connection error for user {user_id}: {e}")
    finally:
        forwarder.cancel()
        subscription.close()
        await manager.disconnect(user_id, websocket)


@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}

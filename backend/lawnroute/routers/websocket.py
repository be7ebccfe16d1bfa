"""
WebSocket Router
Real-time route progress via WebSocket connections
"""

import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.database import get_database
from lawnroute.services.progress_tracker import ProgressTracker
from lawnroute.services.websocket_manager import ProgressConnectionManager, get_websocket_manager, WSMessage
from lawnroute.utils.security import verify_token

router = APIRouter()
logger = logging.getLogger(__name__)


async def _send_snapshot(
    websocket: WebSocket,
    manager: ProgressConnectionManager,
    tracker: ProgressTracker,
    business_id: str
) -> None:
    progress = await tracker.get_progress(business_id)
    message = WSMessage(
        type="snapshot",
        data={
            "business_id": business_id,
            "progress": [p.model_dump(mode="json") for p in progress]
        }
    )
    await manager.send_personal(websocket, message)


@router.websocket("/progress/{business_id}")
async def progress_websocket(
    websocket: WebSocket,
    business_id: str,
    token: str = Query(...),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    WebSocket endpoint for live route progress dashboards.

    Connect with: ws://host/ws/progress/{business_id}?token={jwt_token}

    Receives messages:
    - snapshot: Progress of every crew, sent on connect and on refresh
    - route_progress: Recomputed progress for one or more crews
    - crew_location: Crew position updates
    - stop_status: Stops marked done or reopened

    Accepts:
    - {"type": "ping"} answered with pong
    - {"type": "refresh"} answered with a new snapshot
    """
    token_data = verify_token(token)
    if token_data is None or token_data.business_id != business_id:
        await websocket.close(code=4001, reason="Unauthorized")
        return

    manager = get_websocket_manager()
    tracker = ProgressTracker(db, ws_manager=manager)
    await manager.connect(websocket, business_id, token_data.user_id)

    try:
        await _send_snapshot(websocket, manager, tracker, business_id)

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "data": {"message": "Invalid JSON"}})
                continue

            message_type = message.get("type") if isinstance(message, dict) else None
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
            elif message_type == "refresh":
                await _send_snapshot(websocket, manager, tracker, business_id)

    except WebSocketDisconnect:
        logger.info(f"Progress dashboard disconnected: {business_id}")
    finally:
        manager.disconnect(websocket)


@router.get("/status")
async def websocket_status():
    """Get WebSocket connection status"""
    manager = get_websocket_manager()
    return {
        "success": True,
        "data": {
            "total_connections": manager.get_connection_count(),
            "businesses": manager.active_business_ids()
        }
    }

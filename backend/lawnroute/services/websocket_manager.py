"""
WebSocket Connection Manager
Handles real-time connections for route progress dashboards
"""

import logging
from typing import Dict, Set, Optional, Any
from datetime import datetime
from fastapi import WebSocket
from pydantic import BaseModel, Field

from lawnroute.models.common import utc_now

logger = logging.getLogger(__name__)


class WSMessage(BaseModel):
    """WebSocket message format"""
    type: str  # route_progress, crew_location, stop_status, snapshot, pong, error
    data: Any
    timestamp: datetime = Field(default_factory=utc_now)


class ProgressConnectionManager:
    """
    Manages WebSocket connections for live route progress.

    Dashboards connect per business; every broadcast goes to all of the
    business's open sockets and sockets that fail to receive are dropped.
    """

    def __init__(self):
        # business_id -> set of WebSocket connections
        self.business_connections: Dict[str, Set[WebSocket]] = {}
        # WebSocket -> (business_id, user_id)
        self.connection_info: Dict[WebSocket, tuple] = {}

    async def connect(self, websocket: WebSocket, business_id: str, user_id: Optional[str] = None) -> None:
        """Connect a progress dashboard"""
        await websocket.accept()

        if business_id not in self.business_connections:
            self.business_connections[business_id] = set()

        self.business_connections[business_id].add(websocket)
        self.connection_info[websocket] = (business_id, user_id)

        logger.info(f"Business {business_id} connected. Total: {len(self.business_connections[business_id])}")

    def disconnect(self, websocket: WebSocket) -> None:
        """Disconnect a WebSocket"""
        if websocket not in self.connection_info:
            return

        business_id, user_id = self.connection_info[websocket]

        if business_id in self.business_connections:
            self.business_connections[business_id].discard(websocket)
            if not self.business_connections[business_id]:
                del self.business_connections[business_id]

        del self.connection_info[websocket]
        logger.info(f"Disconnected: business={business_id}, user={user_id}")

    async def send_personal(self, websocket: WebSocket, message: WSMessage) -> None:
        await websocket.send_text(message.model_dump_json())

    async def broadcast_to_business(self, business_id: str, message: WSMessage) -> None:
        """Send message to all connections in a business"""
        if business_id not in self.business_connections:
            return

        disconnected = set()
        message_json = message.model_dump_json()

        for websocket in list(self.business_connections[business_id]):
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.warning(f"Failed to send to websocket: {e}")
                disconnected.add(websocket)

        for ws in disconnected:
            self.disconnect(ws)

    async def broadcast_route_progress(self, business_id: str, progress: list[dict]) -> None:
        """Broadcast recomputed progress for every crew"""
        await self.broadcast_to_business(business_id, WSMessage(type="route_progress", data=progress))

    async def broadcast_crew_location(
        self,
        business_id: str,
        crew_id: str,
        lat: float,
        lng: float,
        employee_count: int
    ) -> None:
        """Broadcast crew location update"""
        message = WSMessage(
            type="crew_location",
            data={
                "crew_id": crew_id,
                "lat": lat,
                "lng": lng,
                "employee_count": employee_count
            }
        )
        await self.broadcast_to_business(business_id, message)

    async def broadcast_stop_status(
        self,
        business_id: str,
        route_id: str,
        customer_id: str,
        completed: bool,
        crew_id: Optional[str] = None
    ) -> None:
        """Broadcast a stop being marked done or reopened"""
        message = WSMessage(
            type="stop_status",
            data={
                "route_id": route_id,
                "customer_id": customer_id,
                "crew_id": crew_id,
                "completed": completed
            }
        )
        await self.broadcast_to_business(business_id, message)

    def active_business_ids(self) -> list[str]:
        """Businesses with at least one open dashboard"""
        return list(self.business_connections.keys())

    def get_connection_count(self, business_id: Optional[str] = None) -> int:
        """Get number of active connections"""
        if business_id:
            return len(self.business_connections.get(business_id, set()))
        return len(self.connection_info)


# Global connection manager instance
manager = ProgressConnectionManager()


def get_websocket_manager() -> ProgressConnectionManager:
    """Get the global WebSocket manager"""
    return manager

"""
Progress Broadcast Tasks
Periodic push of recomputed route progress to connected dashboards
"""

import asyncio
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.config import get_settings
from lawnroute.database import Database
from lawnroute.services.progress_tracker import ProgressTracker
from lawnroute.services.websocket_manager import ProgressConnectionManager, get_websocket_manager

logger = logging.getLogger(__name__)


class ProgressBroadcaster:
    """
    Background broadcaster for live route progress.

    Time-based progress moves even when no crew reports anything, so every
    interval today's progress is recomputed for each business that has a
    dashboard open and pushed to it.
    """

    def __init__(
        self,
        interval_seconds: Optional[int] = None,
        db: Optional[AsyncIOMotorDatabase] = None,
        ws_manager: Optional[ProgressConnectionManager] = None
    ):
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._interval = interval_seconds or get_settings().PROGRESS_UPDATE_INTERVAL_SECONDS
        self._db = db
        self._ws_manager = ws_manager

    async def start(self):
        """Start the broadcaster"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Progress broadcaster started")

    async def stop(self):
        """Stop the broadcaster"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Progress broadcaster stopped")

    async def _run(self):
        """Main broadcast loop"""
        while self._running:
            try:
                await self.broadcast_once()
            except Exception as e:
                logger.error(f"Progress broadcast error: {str(e)}")

            await asyncio.sleep(self._interval)

    async def broadcast_once(self) -> int:
        """Push progress to every business with an open dashboard"""
        ws_manager = self._ws_manager if self._ws_manager is not None else get_websocket_manager()
        business_ids = ws_manager.active_business_ids()
        if not business_ids:
            return 0

        db = self._db if self._db is not None else Database.get_db()
        tracker = ProgressTracker(db, ws_manager=ws_manager)
        sent = 0
        for business_id in business_ids:
            try:
                progress = await tracker.get_progress(business_id)
                await ws_manager.broadcast_route_progress(
                    business_id, [p.model_dump(mode="json") for p in progress]
                )
                sent += 1
            except Exception as e:
                logger.error(f"Progress broadcast failed for {business_id}: {str(e)}")

        return sent

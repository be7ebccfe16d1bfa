"""
Progress Tracker Service
Stores crew positions and stop completions, and serves live progress
"""

from datetime import datetime, timezone
from typing import Optional, Sequence
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.config import Settings, get_settings
from lawnroute.models.common import utc_now
from lawnroute.models.progress import CrewPosition, ProgressSummary, RouteProgress, TimedLocation
from lawnroute.models.route import Route, RouteStatus
from lawnroute.models.schedule import VisitStatus
from lawnroute.services.geo import group_nearby_positions
from lawnroute.services.progress import RouteProgressCalculator, get_progress_summary
from lawnroute.services.routing import RoutingService
from lawnroute.services.websocket_manager import ProgressConnectionManager, get_websocket_manager
from lawnroute.utils.exceptions import ResourceNotFoundError, ValidationException

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Service for real-time route progress"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        settings: Optional[Settings] = None,
        calculator: Optional[RouteProgressCalculator] = None,
        ws_manager: Optional[ProgressConnectionManager] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.calculator = calculator or RouteProgressCalculator(self.settings)
        self.ws_manager = ws_manager or get_websocket_manager()
        self.routing = RoutingService(db, self.settings)

    def today(self) -> str:
        return datetime.now(self.calculator.tz).date().isoformat()

    # ============== Crew Positions ==============

    async def update_crew_location(
        self,
        business_id: str,
        crew_id: str,
        lat: float,
        lng: float,
        employee_count: int = 1
    ) -> CrewPosition:
        """Record where a crew is and mirror it onto the crew document"""
        crew = await self.db.crews.find_one({
            "crew_id": crew_id,
            "business_id": business_id,
            "deleted_at": None
        })
        if not crew:
            raise ResourceNotFoundError("Crew", crew_id)

        now = utc_now()
        position = CrewPosition(
            crew_id=crew_id,
            location=TimedLocation(lat=lat, lng=lng, timestamp=now),
            employee_count=employee_count
        )

        await self.db.crew_locations.update_one(
            {"crew_id": crew_id},
            {"$set": {
                "business_id": business_id,
                "lat": lat,
                "lng": lng,
                "employee_count": employee_count,
                "timestamp": now
            }},
            upsert=True
        )
        await self.db.crews.update_one(
            {"crew_id": crew_id},
            {"$set": {
                "current_location": {"lat": lat, "lng": lng, "last_updated": now},
                "updated_at": now
            }}
        )

        await self.ws_manager.broadcast_crew_location(business_id, crew_id, lat, lng, employee_count)
        return position

    async def update_employee_positions(
        self,
        business_id: str,
        crew_id: str,
        positions: Sequence[tuple[str, float, float]]
    ) -> CrewPosition:
        """
        Derive the crew position from its employees' positions

        The largest group of employees standing close together is taken as
        the crew; its center and head count become the crew position.
        """
        if not positions:
            raise ValidationException([{
                "field": "positions",
                "message": "At least one employee position is required"
            }])

        groups = group_nearby_positions(positions, self.settings.NEARBY_RADIUS_METERS)
        largest = groups[0]
        if len(groups) > 1:
            logger.info(f"Crew {crew_id} is split into {len(groups)} groups, using the largest ({largest.size})")

        return await self.update_crew_location(
            business_id, crew_id, largest.center[0], largest.center[1], largest.size
        )

    async def get_crew_positions(self, business_id: str, date: Optional[str] = None) -> dict[str, CrewPosition]:
        """Latest position per crew; with a date, only positions reported on that day"""
        docs = await self.db.crew_locations.find({"business_id": business_id}).to_list(length=500)
        positions = {}
        for doc in docs:
            timestamp = doc["timestamp"]
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
            if date and timestamp.astimezone(self.calculator.tz).date().isoformat() != date:
                continue
            positions[doc["crew_id"]] = CrewPosition(
                crew_id=doc["crew_id"],
                location=TimedLocation(lat=doc["lat"], lng=doc["lng"], timestamp=timestamp),
                employee_count=doc.get("employee_count", 1)
            )
        return positions

    # ============== Stop Completion ==============

    async def get_completed_stops(self, business_id: str, route_ids: list[str]) -> dict[str, set[str]]:
        docs = await self.db.route_progress.find({
            "business_id": business_id,
            "route_id": {"$in": route_ids}
        }).to_list(length=len(route_ids) or 1)
        return {doc["route_id"]: set(doc.get("completed_stop_ids", [])) for doc in docs}

    async def _apply_stop_status(
        self,
        business_id: str,
        route_id: str,
        customer_id: str,
        status: VisitStatus
    ) -> tuple[Route, RouteProgress]:
        """
        Set one stop's visit status

        The route_progress completion set drives progress; the route
        document is rewritten to match it.
        """
        route = await self.routing.get_route(business_id, route_id)
        if route.find_stop(customer_id) is None:
            raise ResourceNotFoundError("Stop", customer_id)

        completed = status == VisitStatus.COMPLETED
        operator = "$addToSet" if completed else "$pull"
        await self.db.route_progress.update_one(
            {"route_id": route_id},
            {
                operator: {"completed_stop_ids": customer_id},
                "$set": {
                    "business_id": business_id,
                    "crew_id": route.crew_id,
                    "date": route.date,
                    "updated_at": utc_now()
                }
            },
            upsert=True
        )

        done = (await self.get_completed_stops(business_id, [route_id])).get(route_id, set())
        await self._sync_route(route, done, {customer_id: status})

        await self.ws_manager.broadcast_stop_status(
            business_id, route_id, customer_id, completed, crew_id=route.crew_id
        )

        positions = await self.get_crew_positions(business_id, route.date)
        progress = self.calculator.calculate_route_progress(route, positions.get(route.crew_id), done)
        await self.ws_manager.broadcast_route_progress(business_id, [progress.model_dump(mode="json")])

        logger.info(
            f"Stop {customer_id} on route {route_id} set to {status.value} "
            f"({len(done)}/{len(route.stops)})"
        )
        return route, progress

    async def _sync_route(
        self,
        route: Route,
        done: set[str],
        overrides: Optional[dict[str, VisitStatus]] = None
    ) -> None:
        """Mirror completions onto the route's stops and status"""
        overrides = overrides or {}
        for stop in route.stops:
            if stop.customer_id in overrides:
                stop.status = overrides[stop.customer_id]
            elif stop.customer_id in done:
                stop.status = VisitStatus.COMPLETED
            elif stop.status == VisitStatus.COMPLETED:
                stop.status = VisitStatus.PENDING

        if route.stops and len(done) == len(route.stops):
            route.status = RouteStatus.COMPLETED
        elif done or route.status == RouteStatus.COMPLETED:
            route.status = RouteStatus.ACTIVE

        await self.db.routes.update_one(
            {"route_id": route.route_id},
            {"$set": {
                "stops": [stop.model_dump() for stop in route.stops],
                "status": route.status.value,
                "updated_at": utc_now()
            }}
        )

    async def mark_stop_completed(self, business_id: str, route_id: str, customer_id: str) -> RouteProgress:
        _, progress = await self._apply_stop_status(business_id, route_id, customer_id, VisitStatus.COMPLETED)
        return progress

    async def mark_stop_incomplete(self, business_id: str, route_id: str, customer_id: str) -> RouteProgress:
        _, progress = await self._apply_stop_status(business_id, route_id, customer_id, VisitStatus.PENDING)
        return progress

    async def update_stop_status(
        self,
        business_id: str,
        route_id: str,
        customer_id: str,
        status: VisitStatus
    ) -> Route:
        """Set any visit status on a stop, returning the updated route"""
        route, _ = await self._apply_stop_status(business_id, route_id, customer_id, status)
        return route

    # ============== Progress Queries ==============

    async def get_progress(self, business_id: str, date: Optional[str] = None) -> list[RouteProgress]:
        """Progress of every crew with a route on the date (today by default)"""
        date = date or self.today()
        routes = await self.routing.get_routes_for_date(business_id, date)
        if not routes:
            return []

        positions = await self.get_crew_positions(business_id, date)
        completed = await self.get_completed_stops(business_id, [r.route_id for r in routes])
        progress = self.calculator.calculate_all_crew_progress(routes, positions, completed)
        return list(progress.values())

    async def get_crew_progress(self, business_id: str, crew_id: str, date: Optional[str] = None) -> RouteProgress:
        date = date or self.today()
        route = await self.routing.get_route_by_date(business_id, crew_id, date)
        if route is None:
            raise ResourceNotFoundError("Route")

        positions = await self.get_crew_positions(business_id, date)
        completed = await self.get_completed_stops(business_id, [route.route_id])
        return self.calculator.calculate_route_progress(
            route, positions.get(crew_id), completed.get(route.route_id, set())
        )

    async def get_summary(self, business_id: str, date: Optional[str] = None) -> ProgressSummary:
        return get_progress_summary(await self.get_progress(business_id, date))

"""
Routes API Router
Route optimization and route lookups for crew schedules
"""

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List
from pydantic import BaseModel, Field

from lawnroute.database import get_database
from lawnroute.middleware.auth import get_current_business_id, require_planner
from lawnroute.models.common import DATE_PATTERN, TIME_PATTERN
from lawnroute.models.route import RouteStatus
from lawnroute.models.schedule import VisitStatus
from lawnroute.services.progress_tracker import ProgressTracker
from lawnroute.services.routing import RoutingService
from lawnroute.utils.security import TokenData

router = APIRouter()


# ============== Request Models ==============

class OptimizeRouteRequest(BaseModel):
    customer_ids: List[str] = Field(min_length=1)
    start_lat: Optional[float] = Field(None, ge=-90, le=90)
    start_lng: Optional[float] = Field(None, ge=-180, le=180)
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    respect_priority: bool = False


class ScheduleRouteRequest(BaseModel):
    start_lat: Optional[float] = Field(None, ge=-90, le=90)
    start_lng: Optional[float] = Field(None, ge=-180, le=180)
    respect_priority: bool = False


class RouteStatusUpdate(BaseModel):
    status: RouteStatus


class StopStatusUpdate(BaseModel):
    status: VisitStatus


def _start_location(lat: Optional[float], lng: Optional[float]) -> Optional[tuple[float, float]]:
    if lat is None or lng is None:
        return None
    return (lat, lng)


# ============== Endpoints ==============

@router.post(
    "/optimize",
    response_model=dict,
    summary="Optimize stop order for a set of customers"
)
async def optimize_route(
    request: OptimizeRouteRequest,
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    Calculate the visiting order for a set of customers.
    Optionally provide a start location (e.g., the yard) and start time.
    Nothing is stored.
    """
    routing_service = RoutingService(db)

    result = await routing_service.optimize_customers(
        business_id=business_id,
        customer_ids=request.customer_ids,
        start_location=_start_location(request.start_lat, request.start_lng),
        start_time=request.start_time,
        respect_priority=request.respect_priority
    )

    return {
        "success": True,
        "data": result.to_dict()
    }


@router.post(
    "/schedules/{schedule_id}",
    response_model=dict,
    summary="Create the optimized route for a schedule"
)
async def create_schedule_route(
    schedule_id: str,
    request: Optional[ScheduleRouteRequest] = None,
    principal: TokenData = Depends(require_planner),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Sequence the schedule's customers, store the route and write ETAs back"""
    request = request or ScheduleRouteRequest()
    routing_service = RoutingService(db)

    route = await routing_service.create_optimized_route(
        business_id=business_id,
        schedule_id=schedule_id,
        start_location=_start_location(request.start_lat, request.start_lng),
        respect_priority=request.respect_priority
    )

    return {
        "success": True,
        "data": route.model_dump(mode="json")
    }


@router.get(
    "/schedules/{schedule_id}",
    response_model=dict,
    summary="Get the route for a schedule"
)
async def get_schedule_route(
    schedule_id: str,
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    route = await RoutingService(db).get_route_for_schedule(business_id, schedule_id)
    return {
        "success": True,
        "data": route.model_dump(mode="json")
    }


@router.get(
    "/daily",
    response_model=dict,
    summary="Get all crew routes on a date"
)
async def get_daily_routes(
    date: str = Query(..., pattern=DATE_PATTERN, description="Date in YYYY-MM-DD format"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    routes = await RoutingService(db).get_routes_for_date(business_id, date)
    return {
        "success": True,
        "data": {
            "date": date,
            "routes": [route.model_dump(mode="json") for route in routes],
            "count": len(routes)
        }
    }


@router.get(
    "/crews/{crew_id}",
    response_model=dict,
    summary="Get a crew's route for a date"
)
async def get_crew_route(
    crew_id: str,
    date: str = Query(..., pattern=DATE_PATTERN, description="Date in YYYY-MM-DD format"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Returns null data when the crew has no route that day"""
    route = await RoutingService(db).get_route_by_date(business_id, crew_id, date)
    return {
        "success": True,
        "data": route.model_dump(mode="json") if route else None
    }


@router.get(
    "/crews/{crew_id}/history",
    response_model=dict,
    summary="Get a crew's routes over a date range"
)
async def get_crew_route_history(
    crew_id: str,
    start_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    end_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    routes = await RoutingService(db).get_crew_routes(business_id, crew_id, start_date, end_date)
    return {
        "success": True,
        "data": [route.model_dump(mode="json") for route in routes],
        "count": len(routes)
    }


@router.patch(
    "/{route_id}/status",
    response_model=dict,
    summary="Update route status"
)
async def update_route_status(
    route_id: str,
    update: RouteStatusUpdate,
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    route = await RoutingService(db).update_route_status(business_id, route_id, update.status)
    return {
        "success": True,
        "data": route.model_dump(mode="json")
    }


@router.patch(
    "/{route_id}/stops/{customer_id}",
    response_model=dict,
    summary="Update a stop's status"
)
async def update_stop_status(
    route_id: str,
    customer_id: str,
    update: StopStatusUpdate,
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    route = await ProgressTracker(db).update_stop_status(business_id, route_id, customer_id, update.status)
    return {
        "success": True,
        "data": route.model_dump(mode="json")
    }


@router.get(
    "/travel-time",
    response_model=dict,
    summary="Get travel time between two points"
)
async def get_travel_time(
    origin_lat: float = Query(..., ge=-90, le=90, description="Origin latitude"),
    origin_lng: float = Query(..., ge=-180, le=180, description="Origin longitude"),
    dest_lat: float = Query(..., ge=-90, le=90, description="Destination latitude"),
    dest_lng: float = Query(..., ge=-180, le=180, description="Destination longitude"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Get travel time and distance between two coordinates"""
    result = await RoutingService(db).get_travel_time(
        origin=(origin_lat, origin_lng),
        destination=(dest_lat, dest_lng)
    )

    return {
        "success": True,
        "data": result
    }


@router.get(
    "/navigation-links",
    response_model=dict,
    summary="Get navigation app URLs for a location"
)
async def get_navigation_links(
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
    label: Optional[str] = Query(None, description="Location label/name"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Get deep links for Google Maps, Apple Maps, and Waze"""
    routing_service = RoutingService(db)

    return {
        "success": True,
        "data": {
            "google_maps": routing_service.get_google_maps_url(lat, lng),
            "apple_maps": routing_service.get_apple_maps_url(lat, lng, label),
            "waze": routing_service.get_waze_url(lat, lng),
        }
    }

"""
Route Model
Optimized, sequenced stops for a crew schedule
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from lawnroute.models.common import (
    BaseDocument, DATE_PATTERN, TIME_PATTERN, GeoPoint, generate_id, utc_now
)
from lawnroute.models.schedule import Priority, VisitStatus


class RouteStatus(str, Enum):
    DRAFT = "draft"
    OPTIMIZED = "optimized"
    ACTIVE = "active"
    COMPLETED = "completed"


class RouteStop(BaseModel):
    """A single sequenced stop"""
    customer_id: str
    customer_name: str
    address: str = ""
    lat: float
    lng: float
    sequence: int = Field(ge=1)
    estimated_arrival: str = Field(pattern=TIME_PATTERN)
    estimated_duration: int = 30  # minutes
    travel_time_minutes: int = 0
    travel_distance_meters: float = 0.0
    service_type: str = ""
    priority: Priority = Priority.MEDIUM
    status: VisitStatus = VisitStatus.PENDING


class Route(BaseDocument):
    """Route document model"""
    route_id: str = Field(default_factory=lambda: generate_id("rte"))
    business_id: str
    schedule_id: Optional[str] = None
    crew_id: str
    date: str = Field(pattern=DATE_PATTERN)
    stops: list[RouteStop] = Field(default_factory=list)
    total_distance: float = 0.0  # meters, stop to stop
    total_duration: int = 0  # minutes, first arrival to last departure
    start_location: Optional[GeoPoint] = None
    optimized_at: datetime = Field(default_factory=utc_now)
    status: RouteStatus = RouteStatus.DRAFT

    def find_stop(self, customer_id: str) -> Optional[RouteStop]:
        for stop in self.stops:
            if stop.customer_id == customer_id:
                return stop
        return None

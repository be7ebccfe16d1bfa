"""
Route Progress Models
Computed progress snapshots and crew positions
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from lawnroute.models.common import utc_now
from lawnroute.models.route import RouteStop


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"


class TimedLocation(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: datetime = Field(default_factory=utc_now)


class CrewPosition(BaseModel):
    """Where a crew is and how many employees are there"""
    crew_id: str
    location: TimedLocation
    employee_count: int = Field(1, ge=0)


class RouteProgress(BaseModel):
    """Progress of one crew along its route"""
    crew_id: str
    route_id: str
    date: str

    stops_completed: int
    total_stops: int
    progress_percentage: int

    distance_traveled: int  # meters
    total_distance: float  # meters
    distance_progress: int

    time_elapsed: int  # minutes
    estimated_total_time: int  # minutes
    time_progress: int

    current_stop: Optional[RouteStop] = None
    next_stop: Optional[RouteStop] = None
    current_location: Optional[TimedLocation] = None

    average_time_per_stop: int  # minutes
    estimated_completion_time: datetime
    is_on_schedule: bool
    delay_minutes: int

    status: ProgressStatus
    last_updated: datetime


class ProgressSummary(BaseModel):
    """Dashboard roll-up across crews"""
    total_crews: int = 0
    active_crews: int = 0
    completed_routes: int = 0
    average_progress: int = 0
    delayed_crews: int = 0
    on_time_crews: int = 0
    total_distance_traveled: int = 0
    total_time_elapsed: int = 0
    average_time_per_stop: int = 0
    total_distance_display: str = "0 m"
    total_time_display: str = "0m"
    average_time_per_stop_display: str = "0m"

"""
LawnRoute Data Models
Pydantic models for MongoDB documents
"""

from lawnroute.models.common import GeoPoint, generate_id, utc_now
from lawnroute.models.customer import (
    Customer, CustomerStatus, DayOfWeek, ServiceFrequency,
    ServicePreferences, ServiceRecord, ServiceRecordStatus
)
from lawnroute.models.crew import (
    Crew, CrewAssignment, CrewEmployee, CrewLocation, CrewService,
    EmployeeRole, MemberStatus, SERVICE_TYPES
)
from lawnroute.models.schedule import (
    Priority, Schedule, ScheduleStatus, ScheduledCustomer, VisitStatus
)
from lawnroute.models.route import Route, RouteStatus, RouteStop
from lawnroute.models.progress import (
    CrewPosition, ProgressStatus, ProgressSummary, RouteProgress, TimedLocation
)

__all__ = [
    # Common
    "GeoPoint", "generate_id", "utc_now",
    # Customer
    "Customer", "CustomerStatus", "DayOfWeek", "ServiceFrequency",
    "ServicePreferences", "ServiceRecord", "ServiceRecordStatus",
    # Crew
    "Crew", "CrewAssignment", "CrewEmployee", "CrewLocation", "CrewService",
    "EmployeeRole", "MemberStatus", "SERVICE_TYPES",
    # Schedule
    "Priority", "Schedule", "ScheduleStatus", "ScheduledCustomer", "VisitStatus",
    # Route
    "Route", "RouteStatus", "RouteStop",
    # Progress
    "CrewPosition", "ProgressStatus", "ProgressSummary", "RouteProgress", "TimedLocation",
]

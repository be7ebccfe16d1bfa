"""
Crew Model
Field crews, their employees, service days and live position
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from lawnroute.models.common import BaseDocument, TIME_PATTERN, generate_id, utc_now
from lawnroute.models.customer import DayOfWeek


# Service types a crew can be assigned to
SERVICE_TYPES = [
    "lawn-mowing",
    "edging",
    "blowing",
    "detail",
    "riding-mow",
    "fertilization",
    "weed-control",
    "irrigation",
    "tree-trimming",
    "general",
]


class EmployeeRole(str, Enum):
    """Role of an employee within a crew"""
    DRIVER = "driver"
    OPERATOR = "operator"
    HELPER = "helper"
    SUPERVISOR = "supervisor"
    MANAGER = "manager"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CrewEmployee(BaseModel):
    """Employee assigned to a crew"""
    employee_id: str
    name: str
    email: Optional[str] = None
    role: EmployeeRole = EmployeeRole.HELPER
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: datetime = Field(default_factory=utc_now)


class CrewService(BaseModel):
    """A service type the crew performs on given days"""
    service_type: str
    days: list[DayOfWeek] = Field(default_factory=list)
    is_active: bool = True


class CrewLocation(BaseModel):
    """Last reported crew position"""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    last_updated: datetime = Field(default_factory=utc_now)


class Vehicle(BaseModel):
    type: str = "truck"
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = None


class Crew(BaseDocument):
    """Crew document model"""
    crew_id: str = Field(default_factory=lambda: generate_id("crew"))
    business_id: str

    name: str
    description: Optional[str] = None
    employees: list[CrewEmployee] = Field(default_factory=list)
    services: list[CrewService] = Field(default_factory=list)
    status: MemberStatus = MemberStatus.ACTIVE
    current_location: Optional[CrewLocation] = None
    vehicle: Optional[Vehicle] = None
    is_active: bool = True

    work_start: str = Field("08:00", pattern=TIME_PATTERN)
    work_end: str = Field("17:00", pattern=TIME_PATTERN)

    @property
    def active_employee_count(self) -> int:
        return sum(1 for emp in self.employees if emp.status == MemberStatus.ACTIVE)

    def works_on(self, day: DayOfWeek) -> bool:
        """Whether the crew runs any service on the given day

        Crews that list no services are general crews and work every day.
        """
        if not self.services:
            return True
        return any(service.is_active and day in service.days for service in self.services)


class CrewAssignment(BaseModel):
    """Assignment of a user to a crew for a service type"""
    crew_id: str = ""
    service_type: str = ""
    title: Optional[str] = None

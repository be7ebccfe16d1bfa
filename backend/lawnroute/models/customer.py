"""
Customer Model
Lawn-care customers with service preferences and history
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from lawnroute.models.common import BaseDocument, TIME_PATTERN, generate_id


class CustomerStatus(str, Enum):
    """Customer account status"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class DayOfWeek(str, Enum):
    """Days of the week, Monday first to match date.weekday()"""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return list(cls)[value.weekday()]


class ServiceFrequency(str, Enum):
    """How often a customer is serviced"""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    ONE_TIME = "one_time"


class ServiceRecordStatus(str, Enum):
    """Outcome of a service visit"""
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ServicePreferences(BaseModel):
    """When and how often the customer wants service"""
    preferred_days: list[DayOfWeek] = Field(default_factory=list)
    preferred_time_start: str = Field("08:00", pattern=TIME_PATTERN)
    preferred_time_end: str = Field("17:00", pattern=TIME_PATTERN)
    service_frequency: ServiceFrequency = ServiceFrequency.WEEKLY
    special_instructions: Optional[str] = None


class ServiceRecord(BaseModel):
    """A past (or in-flight) service visit"""
    record_id: str = Field(default_factory=lambda: generate_id("svc"))
    date: datetime
    service: str
    notes: Optional[str] = None
    completed_by: Optional[str] = None
    crew_id: Optional[str] = None
    duration: Optional[int] = None  # minutes
    status: ServiceRecordStatus = ServiceRecordStatus.COMPLETED


class Customer(BaseDocument):
    """Customer document model"""
    customer_id: str = Field(default_factory=lambda: generate_id("cus"))
    business_id: str

    name: str
    address: str
    zip_code: Optional[str] = None
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    notes: str = ""
    service_requested: str = ""

    status: CustomerStatus = CustomerStatus.ACTIVE
    service_preferences: ServicePreferences = Field(default_factory=ServicePreferences)
    service_history: list[ServiceRecord] = Field(default_factory=list)
    last_service_date: Optional[datetime] = None
    estimated_duration_minutes: Optional[int] = Field(None, gt=0)

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @property
    def location(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    def last_completed_service(self) -> Optional[datetime]:
        """Most recent completed visit, falling back to the denormalized field"""
        completed = [
            record.date for record in self.service_history
            if record.status == ServiceRecordStatus.COMPLETED
        ]
        if completed:
            return max(completed)
        return self.last_service_date

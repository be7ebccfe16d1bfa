"""
Schedule Model
A crew's working day and the customers assigned to it
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from lawnroute.models.common import BaseDocument, DATE_PATTERN, TIME_PATTERN, generate_id


class Priority(str, Enum):
    """Visit priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScheduleStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VisitStatus(str, Enum):
    """Status of a customer visit within a schedule or route"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScheduledCustomer(BaseModel):
    """Customer slot within a schedule"""
    customer_id: str
    estimated_start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    estimated_duration: int = Field(30, gt=0)  # minutes
    priority: Priority = Priority.MEDIUM
    status: VisitStatus = VisitStatus.PENDING
    actual_start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    actual_end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    notes: Optional[str] = None


class Schedule(BaseDocument):
    """Schedule document model"""
    schedule_id: str = Field(default_factory=lambda: generate_id("sch"))
    business_id: str
    crew_id: str
    date: str = Field(pattern=DATE_PATTERN)
    start_time: str = Field("08:00", pattern=TIME_PATTERN)
    end_time: str = Field("17:00", pattern=TIME_PATTERN)
    status: ScheduleStatus = ScheduleStatus.SCHEDULED
    assigned_customers: list[ScheduledCustomer] = Field(default_factory=list)
    notes: Optional[str] = None

    def active_customers(self) -> list[ScheduledCustomer]:
        """Assigned customers that still need a visit slot"""
        return [c for c in self.assigned_customers if c.status != VisitStatus.CANCELLED]

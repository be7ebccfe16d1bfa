"""
Customer Prioritization Service
Decides which customers are due for service on a date and ranks them
"""

from datetime import date
from typing import Optional, Iterable
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.models.customer import Customer, CustomerStatus, DayOfWeek, ServiceFrequency
from lawnroute.models.schedule import Priority, VisitStatus

logger = logging.getLogger(__name__)

SERVICE_INTERVAL_DAYS = {
    ServiceFrequency.WEEKLY: 7,
    ServiceFrequency.BIWEEKLY: 14,
    ServiceFrequency.MONTHLY: 30,
    ServiceFrequency.ONE_TIME: None,
}

# A customer whose preferred day falls this close before the interval ends is pulled forward
DUE_SOON_DAYS = 2

PRIORITY_BASE_SCORE = {
    Priority.HIGH: 300,
    Priority.MEDIUM: 200,
    Priority.LOW: 100,
}
MAX_OVERDUE_BONUS = 99
PREFERRED_DAY_BONUS = 10


def service_interval_days(frequency: ServiceFrequency) -> Optional[int]:
    return SERVICE_INTERVAL_DAYS.get(frequency)


class CustomerAssessment:
    """How urgently a customer needs service on a given date"""

    def __init__(
        self,
        customer: Customer,
        days_since_service: Optional[int],
        days_overdue: Optional[int],
        is_preferred_day: bool,
        is_due: bool,
        priority: Priority,
        score: int
    ):
        self.customer = customer
        self.days_since_service = days_since_service
        self.days_overdue = days_overdue
        self.is_preferred_day = is_preferred_day
        self.is_due = is_due
        self.priority = priority
        self.score = score

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer.customer_id,
            "name": self.customer.name,
            "address": self.customer.address,
            "lat": self.customer.lat,
            "lng": self.customer.lng,
            "service_frequency": self.customer.service_preferences.service_frequency.value,
            "days_since_service": self.days_since_service,
            "days_overdue": self.days_overdue,
            "is_preferred_day": self.is_preferred_day,
            "is_due": self.is_due,
            "priority": self.priority.value,
            "score": self.score,
        }


def assess_customer(customer: Customer, target_date: date) -> CustomerAssessment:
    """
    Assess a single customer for a service date

    Never-serviced customers are always due and high priority. Otherwise a
    customer is due once its interval has elapsed, or up to DUE_SOON_DAYS
    early when the date is one of its preferred days. One-time customers
    that have been serviced are never due again.
    """
    preferences = customer.service_preferences
    interval = service_interval_days(preferences.service_frequency)
    is_preferred_day = DayOfWeek.from_date(target_date) in preferences.preferred_days

    last_service = customer.last_completed_service()
    days_since: Optional[int] = None
    days_overdue: Optional[int] = None

    if last_service is None:
        is_due = True
        priority = Priority.HIGH
    else:
        days_since = (target_date - last_service.date()).days
        if interval is None:
            is_due = False
            priority = Priority.LOW
        else:
            days_overdue = days_since - interval
            if days_overdue >= 0:
                is_due = True
                priority = Priority.HIGH if days_overdue * 2 >= interval else Priority.MEDIUM
            else:
                is_due = is_preferred_day and days_overdue >= -DUE_SOON_DAYS
                priority = Priority.LOW

    score = PRIORITY_BASE_SCORE[priority]
    if days_overdue is not None and days_overdue > 0:
        score += min(days_overdue, MAX_OVERDUE_BONUS)
    if is_preferred_day:
        score += PREFERRED_DAY_BONUS

    return CustomerAssessment(
        customer=customer,
        days_since_service=days_since,
        days_overdue=days_overdue,
        is_preferred_day=is_preferred_day,
        is_due=is_due,
        priority=priority,
        score=score,
    )


def rank_customers(
    customers: Iterable[Customer],
    target_date: date,
    include_not_due: bool = False
) -> list[CustomerAssessment]:
    """Assess active customers and order them by score, highest first"""
    assessments = [
        assess_customer(customer, target_date)
        for customer in customers
        if customer.status == CustomerStatus.ACTIVE
    ]
    if not include_not_due:
        assessments = [a for a in assessments if a.is_due]

    assessments.sort(key=lambda a: (-a.score, a.customer.name))
    return assessments


class PrioritizationService:
    """Service for picking the customers to work on a date"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_scheduled_customer_ids(self, business_id: str, target_date: date) -> set[str]:
        """Customers already holding a slot on a live schedule for the date"""
        schedules = await self.db.schedules.find({
            "business_id": business_id,
            "date": target_date.isoformat(),
            "status": {"$ne": "cancelled"},
            "deleted_at": None
        }).to_list(length=200)

        scheduled = set()
        for schedule in schedules:
            for entry in schedule.get("assigned_customers", []):
                if entry.get("status") != VisitStatus.CANCELLED.value:
                    scheduled.add(entry["customer_id"])
        return scheduled

    async def get_available_customers(
        self,
        business_id: str,
        target_date: date,
        include_not_due: bool = False
    ) -> list[CustomerAssessment]:
        """
        Rank active customers that are not yet scheduled for the date

        Args:
            business_id: Business ID
            target_date: Service date
            include_not_due: Also return customers that are not due yet

        Returns:
            Assessments ordered by score, highest first
        """
        scheduled = await self.get_scheduled_customer_ids(business_id, target_date)

        docs = await self.db.customers.find({
            "business_id": business_id,
            "status": CustomerStatus.ACTIVE.value,
            "deleted_at": None
        }).to_list(length=5000)

        customers = [Customer(**doc) for doc in docs if doc["customer_id"] not in scheduled]
        ranked = rank_customers(customers, target_date, include_not_due=include_not_due)

        logger.info(
            f"Prioritized {len(ranked)} of {len(docs)} customers for {business_id} on {target_date}"
        )
        return ranked

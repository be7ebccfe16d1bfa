"""
Crew Assignment Service
Zip-code clustering of customers and load-balanced crew assignment
"""

from datetime import date
from typing import Optional, Iterable
import logging
import re

from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.config import Settings, get_settings
from lawnroute.models.crew import Crew, CrewAssignment, SERVICE_TYPES
from lawnroute.models.customer import Customer, DayOfWeek
from lawnroute.models.schedule import Schedule, ScheduledCustomer
from lawnroute.services.geo import centroid, distance_between
from lawnroute.services.prioritization import PrioritizationService
from lawnroute.services.routing import RoutingService, StopRequest

logger = logging.getLogger(__name__)

ZIP_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
UNKNOWN_ZIP = "unknown"


def extract_zip_code(address: str) -> Optional[str]:
    """Last 5-digit zip (ZIP+4 accepted) found in a free-form address"""
    matches = ZIP_PATTERN.findall(address or "")
    return matches[-1] if matches else None


def customer_zip(customer: Customer) -> str:
    zip_code = (customer.zip_code or "").strip()
    if zip_code:
        return zip_code[:5]
    return extract_zip_code(customer.address) or UNKNOWN_ZIP


class ZipCluster:
    """Customers sharing a zip code"""

    def __init__(self, zip_code: str, customers: list[Customer], workload_minutes: int):
        self.zip_code = zip_code
        self.customers = customers
        self.workload_minutes = workload_minutes
        self.center = centroid(c.location for c in customers)

    @property
    def customer_ids(self) -> list[str]:
        return [c.customer_id for c in self.customers]

    def to_dict(self) -> dict:
        return {
            "zip_code": self.zip_code,
            "customer_ids": self.customer_ids,
            "customer_count": len(self.customers),
            "center": {"lat": self.center[0], "lng": self.center[1]} if self.center else None,
            "workload_minutes": self.workload_minutes,
        }


class CrewPlan:
    """Clusters handed to one crew for the day"""

    def __init__(self, crew: Crew, capacity_minutes: int):
        self.crew = crew
        self.capacity_minutes = capacity_minutes
        self.clusters: list[ZipCluster] = []

    @property
    def workload_minutes(self) -> int:
        return sum(cluster.workload_minutes for cluster in self.clusters)

    @property
    def over_capacity(self) -> bool:
        return self.workload_minutes > self.capacity_minutes

    @property
    def customers(self) -> list[Customer]:
        return [customer for cluster in self.clusters for customer in cluster.customers]

    def to_dict(self) -> dict:
        return {
            "crew_id": self.crew.crew_id,
            "crew_name": self.crew.name,
            "zip_codes": [cluster.zip_code for cluster in self.clusters],
            "customer_ids": [c.customer_id for c in self.customers],
            "workload_minutes": self.workload_minutes,
            "capacity_minutes": self.capacity_minutes,
            "over_capacity": self.over_capacity,
        }


class AssignmentResult:
    def __init__(self, plans: list[CrewPlan], unassigned: list[ZipCluster]):
        self.plans = plans
        self.unassigned = unassigned

    def to_dict(self) -> dict:
        return {
            "crews": [plan.to_dict() for plan in self.plans],
            "unassigned": [cluster.to_dict() for cluster in self.unassigned],
        }


def cluster_by_zip(
    customers: Iterable[Customer],
    durations: dict[str, int],
    default_duration: int = 30
) -> list[ZipCluster]:
    """
    Group customers by zip code

    Clusters are ordered by workload (largest first), then zip code.
    Customers keep their incoming order within a cluster.
    """
    grouped: dict[str, list[Customer]] = {}
    for customer in customers:
        grouped.setdefault(customer_zip(customer), []).append(customer)

    clusters = [
        ZipCluster(
            zip_code=zip_code,
            customers=members,
            workload_minutes=sum(durations.get(c.customer_id, default_duration) for c in members)
        )
        for zip_code, members in grouped.items()
    ]
    clusters.sort(key=lambda c: (-c.workload_minutes, c.zip_code))
    return clusters


def eligible_crews(crews: Iterable[Crew], day: DayOfWeek) -> list[Crew]:
    """Active, staffed crews that work on the given day"""
    return [
        crew for crew in crews
        if crew.is_active and crew.active_employee_count > 0 and crew.works_on(day)
    ]


def _distance_to_cluster(crew: Crew, cluster: ZipCluster) -> float:
    if crew.current_location is None or cluster.center is None:
        return float("inf")
    return distance_between(
        (crew.current_location.lat, crew.current_location.lng),
        cluster.center
    )


def assign_clusters_to_crews(
    clusters: list[ZipCluster],
    crews: Iterable[Crew],
    day: DayOfWeek,
    capacity_minutes: int
) -> AssignmentResult:
    """
    Hand whole zip clusters to crews, least-loaded crew first

    Ties on workload go to the crew closest to the cluster center, then by
    crew name. Capacity is advisory: crews past it are flagged, not skipped.
    """
    available = eligible_crews(crews, day)
    if not available:
        return AssignmentResult(plans=[], unassigned=list(clusters))

    plans = [CrewPlan(crew, capacity_minutes) for crew in available]

    for cluster in clusters:
        target = min(
            plans,
            key=lambda p: (p.workload_minutes, _distance_to_cluster(p.crew, cluster), p.crew.name)
        )
        target.clusters.append(cluster)

    return AssignmentResult(plans=plans, unassigned=[])


def validate_crew_assignment(assignment: CrewAssignment) -> list[dict]:
    """Return field errors for a crew assignment, empty when it is valid"""
    errors = []
    if not assignment.crew_id.strip():
        errors.append({"field": "crew_id", "message": "Crew is required"})
    if not assignment.service_type.strip():
        errors.append({"field": "service_type", "message": "Service type is required"})
    elif assignment.service_type not in SERVICE_TYPES:
        errors.append({
            "field": "service_type",
            "message": f"Unknown service type '{assignment.service_type}'"
        })
    return errors


class CrewAssignmentService:
    """Service for distributing a day's customers across crews"""

    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.prioritization = PrioritizationService(db)
        self.routing = RoutingService(db, self.settings)

    def _duration(self, customer: Customer) -> int:
        return customer.estimated_duration_minutes or self.settings.DEFAULT_STOP_DURATION_MINUTES

    async def get_crews(self, business_id: str) -> list[Crew]:
        docs = await self.db.crews.find({
            "business_id": business_id,
            "deleted_at": None
        }).sort("name", 1).to_list(length=200)
        return [Crew(**doc) for doc in docs]

    async def get_zip_clusters(self, business_id: str, target_date: date) -> list[ZipCluster]:
        """Cluster the customers due on a date"""
        ranked = await self.prioritization.get_available_customers(business_id, target_date)
        customers = [a.customer for a in ranked]
        durations = {c.customer_id: self._duration(c) for c in customers}
        return cluster_by_zip(customers, durations, self.settings.DEFAULT_STOP_DURATION_MINUTES)

    async def plan_day(
        self,
        business_id: str,
        target_date: date,
        create_schedules: bool = False,
        start_location: Optional[tuple[float, float]] = None,
        respect_priority: bool = False
    ) -> dict:
        """
        Plan a working day

        Ranks due customers, clusters them by zip, assigns clusters to crews
        and sequences each crew's stops. With create_schedules, one schedule
        per crew is stored with the estimated start times.

        Returns:
            Dict with the per-crew plans and any unassigned clusters
        """
        ranked = await self.prioritization.get_available_customers(business_id, target_date)
        priorities = {a.customer.customer_id: a.priority for a in ranked}
        customers = [a.customer for a in ranked]
        durations = {c.customer_id: self._duration(c) for c in customers}

        clusters = cluster_by_zip(customers, durations, self.settings.DEFAULT_STOP_DURATION_MINUTES)
        crews = await self.get_crews(business_id)
        result = assign_clusters_to_crews(
            clusters,
            crews,
            DayOfWeek.from_date(target_date),
            self.settings.CREW_DAY_CAPACITY_MINUTES
        )

        crew_plans = []
        for plan in result.plans:
            plan_data = plan.to_dict()
            plan_data.update({"stops": [], "total_distance": 0.0, "total_duration": 0, "schedule_id": None})

            if plan.customers:
                crew_start = start_location
                if crew_start is None and plan.crew.current_location is not None:
                    crew_start = (plan.crew.current_location.lat, plan.crew.current_location.lng)

                requests = [
                    StopRequest(
                        customer=customer,
                        duration_minutes=durations[customer.customer_id],
                        priority=priorities[customer.customer_id]
                    )
                    for customer in plan.customers
                ]
                sequenced = await self.routing.sequence_stops(
                    requests,
                    start_location=crew_start,
                    start_time=plan.crew.work_start,
                    respect_priority=respect_priority
                )
                plan_data.update(sequenced.to_dict())

                if create_schedules:
                    schedule = Schedule(
                        business_id=business_id,
                        crew_id=plan.crew.crew_id,
                        date=target_date.isoformat(),
                        start_time=plan.crew.work_start,
                        end_time=plan.crew.work_end,
                        assigned_customers=[
                            ScheduledCustomer(
                                customer_id=stop.customer_id,
                                estimated_start_time=stop.estimated_arrival,
                                estimated_duration=stop.estimated_duration,
                                priority=stop.priority
                            )
                            for stop in sequenced.stops
                        ]
                    )
                    await self.db.schedules.insert_one(schedule.model_dump())
                    plan_data["schedule_id"] = schedule.schedule_id

            crew_plans.append(plan_data)

        if result.unassigned:
            logger.warning(
                f"No eligible crews for {business_id} on {target_date}: "
                f"{len(result.unassigned)} clusters unassigned"
            )

        logger.info(
            f"Planned {len(customers)} customers across {len(result.plans)} crews "
            f"for {business_id} on {target_date}"
        )

        return {
            "date": target_date.isoformat(),
            "customer_count": len(customers),
            "crews": crew_plans,
            "unassigned": [cluster.to_dict() for cluster in result.unassigned],
            "schedules_created": create_schedules,
        }

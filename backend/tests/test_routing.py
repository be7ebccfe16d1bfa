"""
Route Optimization Tests
Nearest-neighbor sequencing, ETAs and route persistence
"""

import pytest
import pytest_asyncio

from lawnroute.config import Settings
from lawnroute.models.customer import Customer
from lawnroute.models.route import RouteStatus
from lawnroute.models.schedule import Priority, VisitStatus
from lawnroute.services.geo import haversine_distance
from lawnroute.services.routing import RoutingService, StopRequest
from lawnroute.utils.exceptions import (
    ResourceNotFoundError, RouteOptimizationError
)

from conftest import BUSINESS_ID


def _matrix(distances):
    return [[{"distance_meters": d, "duration_minutes": 0} for d in row] for row in distances]


@pytest.fixture
def settings():
    return Settings(ROUTING_PROVIDER="haversine", AVERAGE_SPEED_KPH=30.0, DEFAULT_ROUTE_START_TIME="08:00")


@pytest.fixture
def service(mock_db, settings):
    return RoutingService(mock_db, settings)


@pytest.fixture
def customers(sample_customers):
    return {doc["customer_id"]: Customer(**doc) for doc in sample_customers}


class TestNearestNeighbor:
    """Tests for the greedy ordering"""

    def test_empty_matrix(self):
        assert RoutingService.nearest_neighbor_order([]) == []

    def test_visits_closest_first(self):
        matrix = _matrix([
            [0, 5, 1, 9],
            [5, 0, 4, 2],
            [1, 4, 0, 6],
            [9, 2, 6, 0],
        ])
        assert RoutingService.nearest_neighbor_order(matrix) == [0, 2, 1, 3]

    def test_ties_go_to_lowest_index(self):
        matrix = _matrix([
            [0, 3, 3],
            [3, 0, 3],
            [3, 3, 0],
        ])
        assert RoutingService.nearest_neighbor_order(matrix) == [0, 1, 2]

    def test_tiers_are_exhausted_in_order(self):
        matrix = _matrix([
            [0, 1, 5, 6],
            [1, 0, 4, 5],
            [5, 4, 0, 1],
            [6, 5, 1, 0],
        ])
        # Index 3 is in the first tier even though 1 is nearer to the start
        order = RoutingService.nearest_neighbor_order(matrix, tiers=[[3], [1, 2]])
        assert order == [0, 3, 2, 1]


class TestSequenceStops:
    """Tests for stop sequencing and ETAs"""

    @pytest.mark.asyncio
    async def test_no_requests(self, service):
        result = await service.sequence_stops([])
        assert result.stops == []
        assert result.total_distance == 0
        assert result.total_duration == 0

    @pytest.mark.asyncio
    async def test_starts_at_first_customer_without_start_location(self, service, customers):
        requests = [
            StopRequest(customers["cus_a"], 30),
            StopRequest(customers["cus_c"], 30),
            StopRequest(customers["cus_b"], 30),
        ]
        result = await service.sequence_stops(requests)

        assert [s.customer_id for s in result.stops] == ["cus_a", "cus_b", "cus_c"]
        assert [s.sequence for s in result.stops] == [1, 2, 3]
        # ~855 m legs at 30 km/h round to 2 minutes
        assert [s.estimated_arrival for s in result.stops] == ["08:00", "08:32", "09:04"]
        assert result.stops[0].travel_time_minutes == 0
        assert result.total_duration == 94

        a, c = customers["cus_a"], customers["cus_c"]
        assert result.total_distance == pytest.approx(haversine_distance(a.lat, a.lng, c.lat, c.lng), rel=1e-6)

    @pytest.mark.asyncio
    async def test_start_location_adds_depot_leg(self, service, customers):
        requests = [
            StopRequest(customers["cus_a"], 30),
            StopRequest(customers["cus_c"], 30),
            StopRequest(customers["cus_b"], 30),
        ]
        result = await service.sequence_stops(requests, start_location=(39.70, -104.86), start_time="07:30")

        assert [s.customer_id for s in result.stops] == ["cus_c", "cus_b", "cus_a"]
        # Depot leg ~1.7 km is 3 minutes
        assert result.stops[0].estimated_arrival == "07:33"
        assert result.stops[0].travel_time_minutes == 3
        # Depot leg is not part of the stop-to-stop distance
        c, a = customers["cus_c"], customers["cus_a"]
        assert result.total_distance == pytest.approx(haversine_distance(c.lat, c.lng, a.lat, a.lng), rel=1e-6)
        assert result.total_duration == 94

    @pytest.mark.asyncio
    async def test_durations_push_later_arrivals(self, service, customers):
        requests = [
            StopRequest(customers["cus_a"], 60),
            StopRequest(customers["cus_b"], 15),
        ]
        result = await service.sequence_stops(requests)

        assert [s.estimated_arrival for s in result.stops] == ["08:00", "09:02"]
        assert result.total_duration == 77

    @pytest.mark.asyncio
    async def test_respect_priority(self, service, customers):
        requests = [
            StopRequest(customers["cus_a"], 30, Priority.LOW),
            StopRequest(customers["cus_b"], 30, Priority.MEDIUM),
            StopRequest(customers["cus_c"], 30, Priority.HIGH),
        ]
        result = await service.sequence_stops(requests, respect_priority=True)

        assert [s.customer_id for s in result.stops] == ["cus_c", "cus_b", "cus_a"]
        assert [s.priority for s in result.stops] == [Priority.HIGH, Priority.MEDIUM, Priority.LOW]

    @pytest.mark.asyncio
    async def test_osrm_failure_falls_back_to_haversine(self, mock_db, customers, monkeypatch):
        service = RoutingService(mock_db, Settings(ROUTING_PROVIDER="osrm"))

        async def failing_matrix(locations):
            return None

        monkeypatch.setattr(service, "get_distance_matrix_osrm", failing_matrix)
        matrix = await service.build_distance_matrix([customers["cus_a"].location, customers["cus_b"].location])

        assert matrix[0][1]["estimated"] is True
        assert matrix[0][1]["distance_meters"] == pytest.approx(855.5, rel=1e-2)


class TestRoutePersistence:
    """Tests for optimized routes stored against schedules"""

    @pytest_asyncio.fixture
    async def seeded(self, mock_db, sample_customers, sample_schedule):
        for doc in sample_customers:
            await mock_db.customers.insert_one(doc)
        await mock_db.schedules.insert_one(sample_schedule)
        return mock_db

    @pytest.mark.asyncio
    async def test_create_optimized_route(self, service, seeded):
        route = await service.create_optimized_route(BUSINESS_ID, "sch_test123")

        # The cancelled entry (cus_d) is not routed
        assert [s.customer_id for s in route.stops] == ["cus_a", "cus_b", "cus_c"]
        assert route.status == RouteStatus.OPTIMIZED
        assert route.crew_id == "crew_alpha"
        assert route.date == "2024-06-03"
        assert await seeded.routes.count_documents({"schedule_id": "sch_test123"}) == 1

        schedule = await seeded.schedules.find_one({"schedule_id": "sch_test123"})
        times = {e["customer_id"]: e["estimated_start_time"] for e in schedule["assigned_customers"]}
        assert times == {"cus_a": "08:00", "cus_b": "08:32", "cus_c": "09:04", "cus_d": None}

    @pytest.mark.asyncio
    async def test_reoptimizing_replaces_route(self, service, seeded):
        first = await service.create_optimized_route(BUSINESS_ID, "sch_test123")
        second = await service.create_optimized_route(BUSINESS_ID, "sch_test123", start_location=(39.70, -104.86))

        assert await seeded.routes.count_documents({"schedule_id": "sch_test123"}) == 1
        stored = await service.get_route_for_schedule(BUSINESS_ID, "sch_test123")
        assert stored.route_id == second.route_id == first.route_id
        assert stored.start_location.lng == -104.86

    @pytest.mark.asyncio
    async def test_reoptimizing_keeps_completed_stops(self, service, seeded):
        first = await service.create_optimized_route(BUSINESS_ID, "sch_test123")
        await seeded.route_progress.insert_one({
            "route_id": first.route_id,
            "business_id": BUSINESS_ID,
            "completed_stop_ids": ["cus_b"],
        })

        second = await service.create_optimized_route(BUSINESS_ID, "sch_test123", start_location=(39.70, -104.86))

        assert second.route_id == first.route_id
        assert second.find_stop("cus_b").status == VisitStatus.COMPLETED
        assert second.find_stop("cus_a").status == VisitStatus.PENDING
        assert second.status == RouteStatus.ACTIVE
        stored = await service.get_route(BUSINESS_ID, first.route_id)
        assert stored.find_stop("cus_b").status == VisitStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_missing_schedule(self, service, mock_db):
        with pytest.raises(ResourceNotFoundError) as exc:
            await service.create_optimized_route(BUSINESS_ID, "sch_missing")
        assert exc.value.code == "SCHEDULE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_schedule_without_customers(self, service, mock_db, sample_schedule):
        sample_schedule["assigned_customers"] = []
        await mock_db.schedules.insert_one(sample_schedule)

        with pytest.raises(RouteOptimizationError):
            await service.create_optimized_route(BUSINESS_ID, "sch_test123")

    @pytest.mark.asyncio
    async def test_other_business_cannot_route_schedule(self, service, seeded):
        with pytest.raises(ResourceNotFoundError):
            await service.create_optimized_route("bus_other", "sch_test123")

    @pytest.mark.asyncio
    async def test_lookups(self, service, seeded):
        route = await service.create_optimized_route(BUSINESS_ID, "sch_test123")

        by_date = await service.get_route_by_date(BUSINESS_ID, "crew_alpha", "2024-06-03")
        assert by_date.route_id == route.route_id
        assert await service.get_route_by_date(BUSINESS_ID, "crew_alpha", "2024-06-04") is None

        history = await service.get_crew_routes(BUSINESS_ID, "crew_alpha", "2024-06-01", "2024-06-30")
        assert [r.route_id for r in history] == [route.route_id]
        assert await service.get_crew_routes(BUSINESS_ID, "crew_alpha", "2024-07-01", "2024-07-31") == []

        on_date = await service.get_routes_for_date(BUSINESS_ID, "2024-06-03")
        assert len(on_date) == 1

    @pytest.mark.asyncio
    async def test_update_route_status(self, service, seeded):
        route = await service.create_optimized_route(BUSINESS_ID, "sch_test123")

        updated = await service.update_route_status(BUSINESS_ID, route.route_id, RouteStatus.ACTIVE)
        assert updated.status == RouteStatus.ACTIVE

        with pytest.raises(ResourceNotFoundError):
            await service.update_route_status(BUSINESS_ID, "rte_missing", RouteStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_optimize_customers_unknown_id(self, service, seeded):
        with pytest.raises(ResourceNotFoundError) as exc:
            await service.optimize_customers(BUSINESS_ID, ["cus_a", "cus_nope"])
        assert exc.value.code == "CUSTOMER_NOT_FOUND"


class TestTravelAndLinks:
    """Tests for travel time and navigation links"""

    @pytest.mark.asyncio
    async def test_haversine_travel_time_is_flagged_estimated(self, service):
        result = await service.get_travel_time((39.70, -104.90), (39.70, -104.88))
        assert result["estimated"] is True
        assert result["duration_minutes"] == 3

    def test_navigation_links(self, service):
        assert service.get_google_maps_url(39.7, -104.9) == (
            "https://www.google.com/maps/dir/?api=1&destination=39.7,-104.9&travelmode=driving"
        )
        assert service.get_apple_maps_url(39.7, -104.9, "Baker Home").endswith("&q=Baker%20Home")
        assert service.get_waze_url(39.7, -104.9) == "https://waze.com/ul?ll=39.7,-104.9&navigate=yes"

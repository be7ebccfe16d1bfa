"""
Progress Tracker Tests
Crew positions, stop completion and dashboard broadcasts
"""

import json
from datetime import datetime, timezone
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from lawnroute.config import Settings
from lawnroute.models.route import Route, RouteStatus, RouteStop
from lawnroute.models.schedule import VisitStatus
from lawnroute.services.progress_tracker import ProgressTracker
from lawnroute.services.websocket_manager import ProgressConnectionManager
from lawnroute.utils.exceptions import ResourceNotFoundError, ValidationException

from conftest import BUSINESS_ID


def _fake_socket():
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock()
    return websocket


def _sent_types(websocket):
    return [json.loads(call.args[0])["type"] for call in websocket.send_text.await_args_list]


@pytest.fixture
def ws_manager():
    return ProgressConnectionManager()


@pytest_asyncio.fixture
async def tracker(mock_db, make_crew, ws_manager):
    await mock_db.crews.insert_one(make_crew("crew_alpha", "Alpha"))
    route = Route(
        route_id="rte_test",
        business_id=BUSINESS_ID,
        crew_id="crew_alpha",
        date="2024-06-03",
        status=RouteStatus.OPTIMIZED,
        total_duration=60,
        stops=[
            RouteStop(customer_id="cus_a", customer_name="A", lat=39.70, lng=-104.90,
                      sequence=1, estimated_arrival="08:00"),
            RouteStop(customer_id="cus_b", customer_name="B", lat=39.70, lng=-104.89,
                      sequence=2, estimated_arrival="08:32"),
        ]
    )
    await mock_db.routes.insert_one(route.model_dump())
    return ProgressTracker(mock_db, Settings(NEARBY_RADIUS_METERS=100), ws_manager=ws_manager)


async def _stored_route(mock_db) -> Route:
    return Route(**await mock_db.routes.find_one({"route_id": "rte_test"}))


class TestCrewLocation:
    @pytest.mark.asyncio
    async def test_update_crew_location(self, tracker, mock_db):
        position = await tracker.update_crew_location(BUSINESS_ID, "crew_alpha", 39.71, -104.95, 3)

        assert position.employee_count == 3
        stored = await mock_db.crew_locations.find_one({"crew_id": "crew_alpha"})
        assert stored["lat"] == 39.71
        assert stored["business_id"] == BUSINESS_ID

        crew = await mock_db.crews.find_one({"crew_id": "crew_alpha"})
        assert crew["current_location"]["lng"] == -104.95

        # A second report updates rather than duplicates
        await tracker.update_crew_location(BUSINESS_ID, "crew_alpha", 39.72, -104.96)
        assert await mock_db.crew_locations.count_documents({"crew_id": "crew_alpha"}) == 1

    @pytest.mark.asyncio
    async def test_unknown_crew(self, tracker):
        with pytest.raises(ResourceNotFoundError) as exc:
            await tracker.update_crew_location(BUSINESS_ID, "crew_missing", 39.7, -104.9)
        assert exc.value.code == "CREW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_employee_positions_use_largest_group(self, tracker):
        position = await tracker.update_employee_positions(BUSINESS_ID, "crew_alpha", [
            ("e1", 39.70000, -104.90000),
            ("e2", 39.70010, -104.90000),
            ("e3", 39.70000, -104.90010),
            ("e4", 39.80000, -104.90000),
        ])
        assert position.employee_count == 3
        assert position.location.lat == pytest.approx(39.70003, abs=1e-5)

    @pytest.mark.asyncio
    async def test_employee_positions_required(self, tracker):
        with pytest.raises(ValidationException):
            await tracker.update_employee_positions(BUSINESS_ID, "crew_alpha", [])

    @pytest.mark.asyncio
    async def test_location_is_broadcast(self, tracker, ws_manager):
        websocket = _fake_socket()
        await ws_manager.connect(websocket, BUSINESS_ID)

        await tracker.update_crew_location(BUSINESS_ID, "crew_alpha", 39.71, -104.95)
        assert _sent_types(websocket) == ["crew_location"]


class TestStopCompletion:
    @pytest.mark.asyncio
    async def test_marking_is_idempotent(self, tracker, mock_db):
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        progress = await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")

        assert progress.stops_completed == 1
        doc = await mock_db.route_progress.find_one({"route_id": "rte_test"})
        assert doc["completed_stop_ids"] == ["cus_a"]
        assert doc["crew_id"] == "crew_alpha"

        route = await _stored_route(mock_db)
        assert route.status == RouteStatus.ACTIVE
        assert route.find_stop("cus_a").status == "completed"
        assert route.find_stop("cus_b").status == "pending"

    @pytest.mark.asyncio
    async def test_last_stop_completes_route_and_unmark_reopens(self, tracker, mock_db):
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        progress = await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_b")
        assert progress.stops_completed == 2
        assert (await _stored_route(mock_db)).status == RouteStatus.COMPLETED

        progress = await tracker.mark_stop_incomplete(BUSINESS_ID, "rte_test", "cus_b")
        assert progress.stops_completed == 1
        route = await _stored_route(mock_db)
        assert route.status == RouteStatus.ACTIVE
        assert route.find_stop("cus_b").status == "pending"

    @pytest.mark.asyncio
    async def test_stop_status_update_feeds_progress(self, tracker, mock_db):
        route = await tracker.update_stop_status(BUSINESS_ID, "rte_test", "cus_a", VisitStatus.COMPLETED)
        assert route.find_stop("cus_a").status == VisitStatus.COMPLETED

        progress = await tracker.get_crew_progress(BUSINESS_ID, "crew_alpha", "2024-06-03")
        assert progress.stops_completed == 1

        # A later completion keeps the earlier one
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_b")
        stored = await _stored_route(mock_db)
        assert stored.find_stop("cus_a").status == VisitStatus.COMPLETED
        assert stored.status == RouteStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_other_stop_status_clears_completion(self, tracker, mock_db):
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        route = await tracker.update_stop_status(BUSINESS_ID, "rte_test", "cus_a", VisitStatus.IN_PROGRESS)

        assert route.find_stop("cus_a").status == VisitStatus.IN_PROGRESS
        doc = await mock_db.route_progress.find_one({"route_id": "rte_test"})
        assert doc["completed_stop_ids"] == []

        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_b")
        stored = await _stored_route(mock_db)
        assert stored.find_stop("cus_a").status == VisitStatus.IN_PROGRESS
        assert stored.status == RouteStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_stop_or_route(self, tracker):
        with pytest.raises(ResourceNotFoundError) as exc:
            await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_zzz")
        assert exc.value.code == "STOP_NOT_FOUND"

        with pytest.raises(ResourceNotFoundError) as exc:
            await tracker.mark_stop_completed(BUSINESS_ID, "rte_missing", "cus_a")
        assert exc.value.code == "ROUTE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_completion_is_broadcast(self, tracker, ws_manager):
        websocket = _fake_socket()
        await ws_manager.connect(websocket, BUSINESS_ID)

        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        assert _sent_types(websocket) == ["stop_status", "route_progress"]

    @pytest.mark.asyncio
    async def test_dead_socket_is_dropped(self, tracker, ws_manager):
        websocket = _fake_socket()
        websocket.send_text.side_effect = RuntimeError("closed")
        await ws_manager.connect(websocket, BUSINESS_ID)

        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        assert ws_manager.get_connection_count(BUSINESS_ID) == 0


class TestProgressQueries:
    @pytest.mark.asyncio
    async def test_get_progress_for_date(self, tracker, mock_db):
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        # 10:00 in New York on the route date
        await mock_db.crew_locations.insert_one({
            "crew_id": "crew_alpha",
            "business_id": BUSINESS_ID,
            "lat": 39.70,
            "lng": -104.895,
            "employee_count": 2,
            "timestamp": datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc),
        })

        progress = await tracker.get_progress(BUSINESS_ID, "2024-06-03")
        assert len(progress) == 1
        assert progress[0].stops_completed == 1
        assert progress[0].current_location.lng == -104.895

        assert await tracker.get_progress(BUSINESS_ID, "2024-06-04") == []

    @pytest.mark.asyncio
    async def test_position_from_another_day_is_ignored(self, tracker, mock_db):
        await tracker.update_crew_location(BUSINESS_ID, "crew_alpha", 39.70, -104.895)

        progress = await tracker.get_crew_progress(BUSINESS_ID, "crew_alpha", "2024-06-03")
        assert progress.current_location is None
        assert progress.current_stop.customer_id == "cus_a"

        positions = await tracker.get_crew_positions(BUSINESS_ID, tracker.today())
        assert positions["crew_alpha"].location.lng == -104.895

    @pytest.mark.asyncio
    async def test_naive_timestamps_are_utc(self, tracker, mock_db):
        # Motor returns naive UTC datetimes; 02:00 UTC is still June 2nd in New York
        await mock_db.crew_locations.insert_one({
            "crew_id": "crew_alpha",
            "business_id": BUSINESS_ID,
            "lat": 39.70,
            "lng": -104.895,
            "timestamp": datetime(2024, 6, 3, 2, 0),
        })

        assert await tracker.get_crew_positions(BUSINESS_ID, "2024-06-03") == {}
        positions = await tracker.get_crew_positions(BUSINESS_ID, "2024-06-02")
        assert positions["crew_alpha"].employee_count == 1

    @pytest.mark.asyncio
    async def test_get_crew_progress(self, tracker):
        progress = await tracker.get_crew_progress(BUSINESS_ID, "crew_alpha", "2024-06-03")
        assert progress.route_id == "rte_test"

        with pytest.raises(ResourceNotFoundError):
            await tracker.get_crew_progress(BUSINESS_ID, "crew_alpha", "2024-06-04")

    @pytest.mark.asyncio
    async def test_summary(self, tracker):
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_a")
        await tracker.mark_stop_completed(BUSINESS_ID, "rte_test", "cus_b")

        summary = await tracker.get_summary(BUSINESS_ID, "2024-06-03")
        assert summary.total_crews == 1
        assert summary.completed_routes == 1

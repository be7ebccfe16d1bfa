"""
Test configuration and fixtures
"""

import copy
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from fastapi.testclient import TestClient


_MISSING = object()


def _get_path(doc: dict, key: str):
    current = doc
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _sort_key(value):
    if value is _MISSING or value is None:
        return (0, "")
    return (1, value)


# Mock database
class MockCollection:
    """In-memory stand-in for a Motor collection"""

    def __init__(self):
        self.data = {}
        self.counter = 0

    async def find_one(self, query: dict = None, *args, **kwargs):
        for doc in self.data.values():
            if self._match(doc, query or {}):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict = None, *args, **kwargs):
        results = [
            copy.deepcopy(doc) for doc in self.data.values()
            if self._match(doc, query or {})
        ]
        return MockCursor(results)

    async def insert_one(self, doc: dict):
        self.counter += 1
        doc_id = doc.get("_id") or f"mock_id_{self.counter}"
        stored = copy.deepcopy(doc)
        stored["_id"] = doc_id
        self.data[doc_id] = stored
        return MagicMock(inserted_id=doc_id)

    async def insert_many(self, docs: list):
        ids = [(await self.insert_one(doc)).inserted_id for doc in docs]
        return MagicMock(inserted_ids=ids)

    async def update_one(self, query: dict, update: dict, upsert: bool = False, **kwargs):
        for doc in self.data.values():
            if self._match(doc, query):
                self._apply(doc, update)
                return MagicMock(modified_count=1, matched_count=1, upserted_id=None)

        if upsert:
            doc = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
            self._apply(doc, update)
            result = await self.insert_one(doc)
            return MagicMock(modified_count=0, matched_count=0, upserted_id=result.inserted_id)

        return MagicMock(modified_count=0, matched_count=0, upserted_id=None)

    async def update_many(self, query: dict, update: dict, **kwargs):
        count = 0
        for doc in self.data.values():
            if self._match(doc, query):
                self._apply(doc, update)
                count += 1
        return MagicMock(modified_count=count, matched_count=count)

    async def find_one_and_update(self, query: dict, update: dict, return_document: bool = False, **kwargs):
        for doc in self.data.values():
            if self._match(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update)
                return copy.deepcopy(doc) if return_document else before
        return None

    async def delete_one(self, query: dict):
        for doc_id, doc in list(self.data.items()):
            if self._match(doc, query):
                del self.data[doc_id]
                return MagicMock(deleted_count=1)
        return MagicMock(deleted_count=0)

    async def delete_many(self, query: dict):
        removed = [doc_id for doc_id, doc in self.data.items() if self._match(doc, query)]
        for doc_id in removed:
            del self.data[doc_id]
        return MagicMock(deleted_count=len(removed))

    async def count_documents(self, query: dict = None):
        return sum(1 for doc in self.data.values() if self._match(doc, query or {}))

    async def create_index(self, *args, **kwargs):
        return "mock_index"

    @staticmethod
    def _apply(doc: dict, update: dict) -> None:
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, value in update.get("$addToSet", {}).items():
            values = doc.setdefault(key, [])
            if value not in values:
                values.append(value)
        for key, value in update.get("$pull", {}).items():
            doc[key] = [v for v in doc.get(key, []) if v != value]

    def _match(self, doc: dict, query: dict) -> bool:
        for key, value in query.items():
            if key.startswith("$"):
                continue
            current = _get_path(doc, key)

            if isinstance(value, dict) and any(k.startswith("$") for k in value):
                for op, op_val in value.items():
                    if op == "$exists":
                        if (current is not _MISSING) != bool(op_val):
                            return False
                    elif op == "$ne" and current == op_val:
                        return False
                    elif op == "$eq" and current != op_val:
                        return False
                    elif op == "$in" and current not in op_val:
                        return False
                    elif op == "$nin" and current in op_val:
                        return False
                    elif op == "$gte" and (current is _MISSING or current < op_val):
                        return False
                    elif op == "$lte" and (current is _MISSING or current > op_val):
                        return False
            elif value is None:
                # Mongo matches missing fields against null
                if current is not _MISSING and current is not None:
                    return False
            elif current is _MISSING or current != value:
                return False
        return True


class MockCursor:
    """Mock MongoDB cursor"""

    def __init__(self, data: list):
        self._data = data
        self._skip = 0
        self._limit = None

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def sort(self, key, direction: int = 1):
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, order in reversed(keys):
            self._data.sort(key=lambda d: _sort_key(_get_path(d, field)), reverse=order < 0)
        return self

    async def to_list(self, length: int = None):
        data = self._data[self._skip:]
        if self._limit:
            data = data[:self._limit]
        if length:
            data = data[:length]
        return data


class MockDatabase:
    """Mock MongoDB database"""

    def __init__(self):
        self._collections = {}

    def __getattr__(self, name: str):
        if name.startswith("_"):
            return super().__getattribute__(name)
        if name not in self._collections:
            self._collections[name] = MockCollection()
        return self._collections[name]


BUSINESS_ID = "bus_test123"


@pytest.fixture
def mock_db():
    """Create a mock database"""
    return MockDatabase()


@pytest.fixture
def make_customer():
    """Factory for customer documents"""
    def _make(customer_id: str, name: str, lat: float, lng: float, **overrides):
        doc = {
            "customer_id": customer_id,
            "business_id": BUSINESS_ID,
            "name": name,
            "address": f"{name} Lane, Denver, CO 80202",
            "lat": lat,
            "lng": lng,
            "status": "active",
            "service_requested": "lawn-mowing",
            "service_preferences": {
                "preferred_days": [],
                "service_frequency": "weekly"
            },
            "service_history": [],
            "last_service_date": None,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "updated_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "deleted_at": None
        }
        doc.update(overrides)
        return doc
    return _make


@pytest.fixture
def sample_customers(make_customer):
    """Four customers spaced along one street, west to east"""
    return [
        make_customer("cus_a", "Alvarez", 39.7000, -104.9000),
        make_customer("cus_c", "Chen", 39.7000, -104.8800),
        make_customer("cus_b", "Baker", 39.7000, -104.8900),
        make_customer("cus_d", "Dunn", 39.7000, -104.8700),
    ]


@pytest.fixture
def make_crew():
    """Factory for crew documents"""
    def _make(crew_id: str, name: str, **overrides):
        doc = {
            "crew_id": crew_id,
            "business_id": BUSINESS_ID,
            "name": name,
            "employees": [
                {"employee_id": f"{crew_id}_emp1", "name": "Sam", "role": "operator", "status": "active"}
            ],
            "services": [],
            "status": "active",
            "is_active": True,
            "current_location": None,
            "work_start": "08:00",
            "work_end": "17:00",
            "deleted_at": None
        }
        doc.update(overrides)
        return doc
    return _make


@pytest.fixture
def sample_schedule():
    """Schedule for crew_alpha on a Monday"""
    return {
        "schedule_id": "sch_test123",
        "business_id": BUSINESS_ID,
        "crew_id": "crew_alpha",
        "date": "2024-06-03",
        "start_time": "08:00",
        "end_time": "17:00",
        "status": "scheduled",
        "assigned_customers": [
            {"customer_id": "cus_a", "estimated_duration": 30, "priority": "medium", "status": "pending"},
            {"customer_id": "cus_c", "estimated_duration": 30, "priority": "medium", "status": "pending"},
            {"customer_id": "cus_b", "estimated_duration": 30, "priority": "medium", "status": "pending"},
            {"customer_id": "cus_d", "estimated_duration": 45, "priority": "medium", "status": "cancelled"},
        ],
        "deleted_at": None
    }


@pytest.fixture
def manager_headers():
    from lawnroute.utils.security import create_access_token
    token = create_access_token("user_manager", "manager", business_id=BUSINESS_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def operator_headers():
    from lawnroute.utils.security import create_access_token
    token = create_access_token("user_operator", "operator", business_id=BUSINESS_ID, crew_id="crew_alpha")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(mock_db):
    """TestClient wired to the mock database (lifespan is not run)"""
    from lawnroute.database import get_database
    from lawnroute.main import app

    app.dependency_overrides[get_database] = lambda: mock_db
    yield TestClient(app)
    app.dependency_overrides.clear()

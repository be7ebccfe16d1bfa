"""
Route Optimization Service
Nearest-neighbor sequencing of crew stops with ETAs, using haversine
distances or the OSRM table service
"""

import httpx
import logging
from dataclasses import dataclass
from typing import Optional, Dict, List, Any, Sequence, Tuple
from urllib.parse import quote
from motor.motor_asyncio import AsyncIOMotorDatabase

from lawnroute.config import Settings, get_settings
from lawnroute.models.common import GeoPoint, generate_id, utc_now
from lawnroute.models.customer import Customer
from lawnroute.models.route import Route, RouteStatus, RouteStop
from lawnroute.models.schedule import Priority, Schedule, VisitStatus
from lawnroute.services.geo import haversine_distance, travel_minutes
from lawnroute.utils.exceptions import ResourceNotFoundError, RouteOptimizationError
from lawnroute.utils.formatting import parse_hhmm, to_hhmm

logger = logging.getLogger(__name__)

PRIORITY_ORDER = [Priority.HIGH, Priority.MEDIUM, Priority.LOW]

Location = Tuple[float, float]


@dataclass
class StopRequest:
    """A customer to visit, with how long and how urgently"""
    customer: Customer
    duration_minutes: int
    priority: Priority = Priority.MEDIUM


@dataclass
class SequencedRoute:
    """Output of the sequencer, before it is persisted"""
    stops: List[RouteStop]
    total_distance: float
    total_duration: int
    start_location: Optional[Location] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stops": [stop.model_dump() for stop in self.stops],
            "total_distance": round(self.total_distance, 1),
            "total_duration": self.total_duration,
            "start_location": (
                {"lat": self.start_location[0], "lng": self.start_location[1]}
                if self.start_location else None
            ),
        }


class RoutingService:
    """Service for route optimization and travel time calculations"""

    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.use_google = bool(self.settings.GOOGLE_MAPS_API_KEY)

    # ============== Distance/Time Calculations ==============

    def _leg(self, distance_meters: float, estimated: bool = True) -> Dict[str, Any]:
        return {
            "distance_meters": distance_meters,
            "duration_minutes": travel_minutes(distance_meters, self.settings.AVERAGE_SPEED_KPH),
            "estimated": estimated,
        }

    def haversine_matrix(self, locations: Sequence[Location]) -> List[List[Dict[str, Any]]]:
        """Pairwise straight-line distance matrix"""
        matrix = []
        for i, loc1 in enumerate(locations):
            row = []
            for j, loc2 in enumerate(locations):
                if i == j:
                    row.append(self._leg(0.0))
                else:
                    row.append(self._leg(haversine_distance(loc1[0], loc1[1], loc2[0], loc2[1])))
            matrix.append(row)
        return matrix

    async def get_distance_matrix_osrm(
        self,
        locations: Sequence[Location]
    ) -> Optional[List[List[Dict[str, Any]]]]:
        """Get distance/duration matrix using OSRM Table service"""
        coords = ";".join(f"{loc[1]},{loc[0]}" for loc in locations)  # OSRM uses lon,lat
        url = f"{self.settings.OSRM_BASE_URL}/table/v1/driving/{coords}"
        params = {"annotations": "duration,distance"}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params=params, timeout=30.0)
                response.raise_for_status()
                data = response.json()

            durations = data["durations"]
            distances = data["distances"]
            matrix = []
            for i, dur_row in enumerate(durations):
                row = []
                for j, duration in enumerate(dur_row):
                    row.append({
                        "distance_meters": float(distances[i][j] or 0),
                        "duration_minutes": round((duration or 0) / 60),
                        "estimated": False,
                    })
                matrix.append(row)
            return matrix
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"OSRM matrix request failed: {e}")
            return None

    async def build_distance_matrix(self, locations: Sequence[Location]) -> List[List[Dict[str, Any]]]:
        """Distance matrix from the configured provider, haversine as fallback"""
        if len(locations) < 2:
            return self.haversine_matrix(locations)

        if self.settings.ROUTING_PROVIDER == "osrm":
            matrix = await self.get_distance_matrix_osrm(locations)
            if matrix is not None:
                return matrix
            logger.warning("Falling back to haversine distance matrix")

        return self.haversine_matrix(locations)

    async def get_travel_time_osrm(self, origin: Location, destination: Location) -> Dict[str, Any]:
        """Get travel time and distance using OSRM"""
        origin_str = f"{origin[1]},{origin[0]}"
        dest_str = f"{destination[1]},{destination[0]}"

        url = f"{self.settings.OSRM_BASE_URL}/route/v1/driving/{origin_str};{dest_str}"
        params = {"overview": "full", "geometries": "geojson"}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params=params, timeout=10.0)

                if response.status_code == 200:
                    data = response.json()
                    if data.get("routes"):
                        route = data["routes"][0]
                        return {
                            "duration_minutes": round(route["duration"] / 60),
                            "distance_meters": route["distance"],
                            "geometry": route.get("geometry"),
                            "estimated": False,
                        }
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"OSRM request failed: {e}")

        # Fallback to straight-line estimate
        distance = haversine_distance(origin[0], origin[1], destination[0], destination[1])
        return {**self._leg(distance), "geometry": None}

    async def get_travel_time_google(self, origin: Location, destination: Location) -> Dict[str, Any]:
        """Get travel time and distance using Google Directions API"""
        url = "https://maps.googleapis.com/maps/api/directions/json"
        params = {
            "origin": f"{origin[0]},{origin[1]}",
            "destination": f"{destination[0]},{destination[1]}",
            "key": self.settings.GOOGLE_MAPS_API_KEY,
            "mode": "driving",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params=params, timeout=10.0)

                if response.status_code == 200:
                    data = response.json()
                    if data.get("routes"):
                        leg = data["routes"][0]["legs"][0]
                        return {
                            "duration_minutes": round(leg["duration"]["value"] / 60),
                            "distance_meters": leg["distance"]["value"],
                            "polyline": data["routes"][0].get("overview_polyline", {}).get("points"),
                            "estimated": False,
                        }
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.error(f"Google Directions request failed: {e}")

        return await self.get_travel_time_osrm(origin, destination)

    async def get_travel_time(self, origin: Location, destination: Location) -> Dict[str, Any]:
        """Get travel time using available API"""
        if self.use_google:
            return await self.get_travel_time_google(origin, destination)
        if self.settings.ROUTING_PROVIDER == "osrm":
            return await self.get_travel_time_osrm(origin, destination)
        distance = haversine_distance(origin[0], origin[1], destination[0], destination[1])
        return self._leg(distance)

    # ============== Route Optimization ==============

    @staticmethod
    def nearest_neighbor_order(
        matrix: List[List[Dict[str, Any]]],
        start_index: int = 0,
        tiers: Optional[List[List[int]]] = None
    ) -> List[int]:
        """
        Greedy nearest-neighbor walk over the matrix by distance.

        The walk begins at start_index. When tiers are given, every index of a
        tier is visited before the next tier, each tier continuing from where
        the previous one ended. Ties go to the lowest index.
        """
        n = len(matrix)
        if n == 0:
            return []

        if tiers is None:
            tiers = [[i for i in range(n) if i != start_index]]

        route = [start_index]
        current = start_index

        for tier in tiers:
            remaining = sorted(i for i in tier if i != start_index)
            while remaining:
                nearest = remaining[0]
                nearest_dist = float("inf")
                for j in remaining:
                    dist = matrix[current][j]["distance_meters"]
                    if dist < nearest_dist:
                        nearest = j
                        nearest_dist = dist
                route.append(nearest)
                remaining.remove(nearest)
                current = nearest

        return route

    async def sequence_stops(
        self,
        requests: List[StopRequest],
        start_location: Optional[Location] = None,
        start_time: Optional[str] = None,
        respect_priority: bool = False
    ) -> SequencedRoute:
        """
        Order stops by nearest neighbor and compute arrival times.

        Without a start location the walk starts at the first customer. The
        first arrival is the start time plus the depot leg; every later
        arrival is the previous departure plus the leg between stops.
        """
        if not requests:
            return SequencedRoute(stops=[], total_distance=0.0, total_duration=0,
                                  start_location=start_location)

        if respect_priority:
            requests = sorted(requests, key=lambda r: PRIORITY_ORDER.index(r.priority))

        has_start = start_location is not None
        offset = 1 if has_start else 0
        points: List[Location] = ([start_location] if has_start else []) + \
            [r.customer.location for r in requests]

        matrix = await self.build_distance_matrix(points)

        tiers = None
        if respect_priority:
            tiers = [
                [i + offset for i, r in enumerate(requests) if r.priority == priority]
                for priority in PRIORITY_ORDER
            ]

        order = self.nearest_neighbor_order(matrix, start_index=0, tiers=tiers)
        visit = [idx for idx in order if not (has_start and idx == 0)]

        clock = parse_hhmm(start_time or self.settings.DEFAULT_ROUTE_START_TIME)
        first_arrival: Optional[int] = None
        total_distance = 0.0
        prev_idx = 0
        stops: List[RouteStop] = []

        for idx in visit:
            request = requests[idx - offset]
            customer = request.customer
            leg = matrix[prev_idx][idx]
            if not stops and not has_start:
                leg = {"distance_meters": 0.0, "duration_minutes": 0}

            clock += leg["duration_minutes"]
            if first_arrival is None:
                first_arrival = clock
            if stops:
                total_distance += leg["distance_meters"]

            stops.append(RouteStop(
                customer_id=customer.customer_id,
                customer_name=customer.name,
                address=customer.address,
                lat=customer.lat,
                lng=customer.lng,
                sequence=len(stops) + 1,
                estimated_arrival=to_hhmm(clock),
                estimated_duration=request.duration_minutes,
                travel_time_minutes=leg["duration_minutes"],
                travel_distance_meters=round(leg["distance_meters"], 1),
                service_type=customer.service_requested,
                priority=request.priority,
                status=VisitStatus.PENDING,
            ))

            clock += request.duration_minutes
            prev_idx = idx

        return SequencedRoute(
            stops=stops,
            total_distance=total_distance,
            total_duration=clock - first_arrival,
            start_location=start_location,
        )

    # ============== Persistence ==============

    async def _load_customers(self, business_id: str, customer_ids: List[str]) -> Dict[str, Customer]:
        docs = await self.db.customers.find({
            "business_id": business_id,
            "customer_id": {"$in": customer_ids},
            "deleted_at": None
        }).to_list(length=len(customer_ids) or 1)
        return {doc["customer_id"]: Customer(**doc) for doc in docs}

    def _default_duration(self, customer: Customer) -> int:
        return customer.estimated_duration_minutes or self.settings.DEFAULT_STOP_DURATION_MINUTES

    async def optimize_customers(
        self,
        business_id: str,
        customer_ids: List[str],
        start_location: Optional[Location] = None,
        start_time: Optional[str] = None,
        respect_priority: bool = False
    ) -> SequencedRoute:
        """Sequence an ad-hoc list of customers without persisting anything"""
        customers = await self._load_customers(business_id, customer_ids)
        missing = [cid for cid in customer_ids if cid not in customers]
        if missing:
            raise ResourceNotFoundError("Customer", missing[0])

        requests = [
            StopRequest(customer=customers[cid], duration_minutes=self._default_duration(customers[cid]))
            for cid in dict.fromkeys(customer_ids)
        ]
        return await self.sequence_stops(requests, start_location, start_time, respect_priority)

    async def create_optimized_route(
        self,
        business_id: str,
        schedule_id: str,
        start_location: Optional[Location] = None,
        respect_priority: bool = False
    ) -> Route:
        """
        Build and store the optimized route for a schedule.

        Any earlier route for the schedule is replaced, and the computed
        arrival times are written back onto the schedule's customers.
        """
        doc = await self.db.schedules.find_one({
            "schedule_id": schedule_id,
            "business_id": business_id,
            "deleted_at": None
        })
        if not doc:
            raise ResourceNotFoundError("Schedule", schedule_id)

        schedule = Schedule(**doc)
        entries = schedule.active_customers()
        if not entries:
            raise RouteOptimizationError(
                "Schedule has no customers to route",
                details={"schedule_id": schedule_id}
            )

        customers = await self._load_customers(business_id, [e.customer_id for e in entries])
        requests = []
        for entry in entries:
            customer = customers.get(entry.customer_id)
            if customer is None:
                logger.warning(f"Schedule {schedule_id} references missing customer {entry.customer_id}")
                continue
            requests.append(StopRequest(
                customer=customer,
                duration_minutes=entry.estimated_duration,
                priority=entry.priority
            ))

        if not requests:
            raise RouteOptimizationError(
                "None of the scheduled customers could be found",
                details={"schedule_id": schedule_id}
            )

        sequenced = await self.sequence_stops(
            requests,
            start_location=start_location,
            start_time=schedule.start_time,
            respect_priority=respect_priority
        )

        previous = await self.db.routes.find_one({"schedule_id": schedule_id, "business_id": business_id})

        route = Route(
            route_id=previous["route_id"] if previous else generate_id("rte"),
            business_id=business_id,
            schedule_id=schedule.schedule_id,
            crew_id=schedule.crew_id,
            date=schedule.date,
            stops=sequenced.stops,
            total_distance=round(sequenced.total_distance, 1),
            total_duration=sequenced.total_duration,
            start_location=GeoPoint(lat=start_location[0], lng=start_location[1]) if start_location else None,
            status=RouteStatus.OPTIMIZED,
        )

        if previous:
            await self._restore_completions(route)

        await self.db.routes.delete_many({"schedule_id": schedule_id, "business_id": business_id})
        await self.db.routes.insert_one(route.model_dump())

        arrivals = {stop.customer_id: stop.estimated_arrival for stop in route.stops}
        updated_entries = []
        for entry in schedule.assigned_customers:
            if entry.customer_id in arrivals:
                entry.estimated_start_time = arrivals[entry.customer_id]
            updated_entries.append(entry.model_dump())

        await self.db.schedules.update_one(
            {"schedule_id": schedule_id, "business_id": business_id},
            {"$set": {"assigned_customers": updated_entries, "updated_at": utc_now()}}
        )

        logger.info(
            f"Optimized route {route.route_id} for schedule {schedule_id}: "
            f"{len(route.stops)} stops, {route.total_distance:.0f} m, {route.total_duration} min"
        )
        return route

    async def _restore_completions(self, route: Route) -> None:
        """Re-apply stops already completed on the route being replaced"""
        progress = await self.db.route_progress.find_one({"route_id": route.route_id})
        done = set(progress.get("completed_stop_ids", [])) if progress else set()
        done &= {stop.customer_id for stop in route.stops}
        if not done:
            return

        for stop in route.stops:
            if stop.customer_id in done:
                stop.status = VisitStatus.COMPLETED
        route.status = RouteStatus.COMPLETED if len(done) == len(route.stops) else RouteStatus.ACTIVE

    async def get_route(self, business_id: str, route_id: str) -> Route:
        doc = await self.db.routes.find_one({"route_id": route_id, "business_id": business_id})
        if not doc:
            raise ResourceNotFoundError("Route", route_id)
        return Route(**doc)

    async def get_route_for_schedule(self, business_id: str, schedule_id: str) -> Route:
        doc = await self.db.routes.find_one({"schedule_id": schedule_id, "business_id": business_id})
        if not doc:
            raise ResourceNotFoundError("Route")
        return Route(**doc)

    async def get_route_by_date(self, business_id: str, crew_id: str, date: str) -> Optional[Route]:
        """Most recently optimized route for a crew on a date"""
        docs = await self.db.routes.find({
            "business_id": business_id,
            "crew_id": crew_id,
            "date": date
        }).sort("optimized_at", -1).limit(1).to_list(length=1)
        return Route(**docs[0]) if docs else None

    async def get_crew_routes(
        self,
        business_id: str,
        crew_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> List[Route]:
        query: Dict[str, Any] = {"business_id": business_id, "crew_id": crew_id}
        if start_date and end_date:
            query["date"] = {"$gte": start_date, "$lte": end_date}

        docs = await self.db.routes.find(query).sort("date", 1).to_list(length=500)
        return [Route(**doc) for doc in docs]

    async def get_routes_for_date(self, business_id: str, date: str) -> List[Route]:
        docs = await self.db.routes.find({
            "business_id": business_id,
            "date": date
        }).sort("crew_id", 1).to_list(length=200)
        return [Route(**doc) for doc in docs]

    async def update_route_status(self, business_id: str, route_id: str, status: RouteStatus) -> Route:
        result = await self.db.routes.find_one_and_update(
            {"route_id": route_id, "business_id": business_id},
            {"$set": {"status": status.value, "updated_at": utc_now()}},
            return_document=True
        )
        if not result:
            raise ResourceNotFoundError("Route", route_id)
        return Route(**result)

    # ============== Navigation Links ==============

    def get_google_maps_url(self, lat: float, lng: float) -> str:
        """Generate Google Maps navigation URL"""
        return f"https://www.google.com/maps/dir/?api=1&destination={lat},{lng}&travelmode=driving"

    def get_apple_maps_url(self, lat: float, lng: float, label: Optional[str] = None) -> str:
        """Generate Apple Maps navigation URL"""
        if label:
            return f"http://maps.apple.com/?daddr={lat},{lng}&dirflg=d&q={quote(label)}"
        return f"http://maps.apple.com/?daddr={lat},{lng}&dirflg=d"

    def get_waze_url(self, lat: float, lng: float) -> str:
        """Generate Waze navigation URL"""
        return f"https://waze.com/ul?ll={lat},{lng}&navigate=yes"

"""
Route Progress Calculator
Blends stop, distance and time progress into one figure per crew
"""

from datetime import datetime, timedelta
from typing import Optional, Iterable
from zoneinfo import ZoneInfo

from lawnroute.config import Settings, get_settings
from lawnroute.models.progress import (
    CrewPosition, ProgressStatus, ProgressSummary, RouteProgress
)
from lawnroute.models.route import Route, RouteStop
from lawnroute.services.geo import haversine_distance
from lawnroute.utils.formatting import (
    format_distance, format_minutes, parse_hhmm, round_half_up
)

PROGRESS_WEIGHTS = {
    "stops": 0.4,
    "distance": 0.3,
    "time": 0.3,
}


def _stop_distance(a: RouteStop, b: RouteStop) -> float:
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


class RouteProgressCalculator:
    """
    Computes progress snapshots for routes.

    The calculator holds no state besides its settings, so one instance can
    serve every request. Pass `now` explicitly to get reproducible numbers.
    """

    def __init__(self, settings: Optional[Settings] = None, timezone: Optional[str] = None):
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(timezone or self.settings.BUSINESS_TIMEZONE)

    def route_start(self, route: Route) -> Optional[datetime]:
        """Route date at the first stop's estimated arrival, in business time"""
        if not route.stops:
            return None
        first = min(route.stops, key=lambda s: s.sequence)
        day = datetime.strptime(route.date, "%Y-%m-%d")
        return day.replace(tzinfo=self.tz) + timedelta(minutes=parse_hhmm(first.estimated_arrival))

    def calculate_route_progress(
        self,
        route: Route,
        crew_position: Optional[CrewPosition] = None,
        completed_stop_ids: Iterable[str] = (),
        now: Optional[datetime] = None
    ) -> RouteProgress:
        """Calculate the progress snapshot of one crew's route"""
        now = now or datetime.now(self.tz)
        stops = sorted(route.stops, key=lambda s: s.sequence)
        total_stops = len(stops)
        completed = {stop.customer_id for stop in stops} & set(completed_stop_ids)
        stops_completed = len(completed)

        start = self.route_start(route)
        time_elapsed = max(0.0, (now - start).total_seconds() / 60) if start else 0.0

        stop_percentage = stops_completed / total_stops * 100 if total_stops else 0.0
        distance_traveled = self._distance_traveled(stops, completed, crew_position)
        distance_percentage = (
            round_half_up(min(100.0, distance_traveled / route.total_distance * 100))
            if route.total_distance > 0 else 0
        )
        time_percentage = (
            round_half_up(min(100.0, time_elapsed / route.total_duration * 100))
            if route.total_duration > 0 else 0
        )

        overall = (
            stop_percentage * PROGRESS_WEIGHTS["stops"] +
            distance_percentage * PROGRESS_WEIGHTS["distance"] +
            time_percentage * PROGRESS_WEIGHTS["time"]
        )

        current_stop = self._current_stop(stops, completed, crew_position)
        next_stop = self._next_stop(stops, completed, current_stop)

        average_time = time_elapsed / stops_completed if stops_completed else 0.0
        delay = self._delay(route, total_stops, stops_completed, time_elapsed)
        is_on_schedule = delay <= self.settings.ON_TIME_THRESHOLD_MINUTES

        per_stop = average_time
        if not stops_completed and total_stops:
            per_stop = route.total_duration / total_stops
        estimated_completion = now + timedelta(minutes=(total_stops - stops_completed) * per_stop)

        if total_stops and stops_completed == total_stops:
            status = ProgressStatus.COMPLETED
        elif not is_on_schedule:
            status = ProgressStatus.DELAYED
        elif stops_completed == 0:
            status = ProgressStatus.NOT_STARTED
        else:
            status = ProgressStatus.IN_PROGRESS

        return RouteProgress(
            crew_id=route.crew_id,
            route_id=route.route_id,
            date=route.date,
            stops_completed=stops_completed,
            total_stops=total_stops,
            progress_percentage=round_half_up(overall),
            distance_traveled=round_half_up(distance_traveled),
            total_distance=route.total_distance,
            distance_progress=distance_percentage,
            time_elapsed=round_half_up(time_elapsed),
            estimated_total_time=route.total_duration,
            time_progress=time_percentage,
            current_stop=current_stop,
            next_stop=next_stop,
            current_location=crew_position.location if crew_position else None,
            average_time_per_stop=round_half_up(average_time),
            estimated_completion_time=estimated_completion,
            is_on_schedule=is_on_schedule,
            delay_minutes=round_half_up(delay),
            status=status,
            last_updated=now,
        )

    def calculate_all_crew_progress(
        self,
        routes: Iterable[Route],
        positions: Optional[dict[str, CrewPosition]] = None,
        completed: Optional[dict[str, set[str]]] = None,
        now: Optional[datetime] = None
    ) -> dict[str, RouteProgress]:
        """Progress keyed by crew id; positions by crew id, completions by route id"""
        positions = positions or {}
        completed = completed or {}
        now = now or datetime.now(self.tz)
        return {
            route.crew_id: self.calculate_route_progress(
                route,
                positions.get(route.crew_id),
                completed.get(route.route_id, set()),
                now
            )
            for route in routes
        }

    @staticmethod
    def _distance_traveled(
        stops: list[RouteStop],
        completed: set[str],
        crew_position: Optional[CrewPosition]
    ) -> float:
        traveled = 0.0
        for i in range(len(stops) - 1):
            if stops[i + 1].customer_id in completed:
                traveled += _stop_distance(stops[i], stops[i + 1])

        if crew_position is None:
            return traveled

        last_done = None
        for i, stop in enumerate(stops):
            if stop.customer_id in completed:
                last_done = i

        if last_done is not None and last_done < len(stops) - 1:
            last_stop = stops[last_done]
            partial = haversine_distance(
                last_stop.lat, last_stop.lng,
                crew_position.location.lat, crew_position.location.lng
            )
            traveled += min(partial, _stop_distance(last_stop, stops[last_done + 1]))

        return traveled

    @staticmethod
    def _current_stop(
        stops: list[RouteStop],
        completed: set[str],
        crew_position: Optional[CrewPosition]
    ) -> Optional[RouteStop]:
        remaining = [stop for stop in stops if stop.customer_id not in completed]
        if not remaining:
            return None
        if crew_position is None:
            return remaining[0]

        lat, lng = crew_position.location.lat, crew_position.location.lng
        closest = remaining[0]
        closest_distance = haversine_distance(lat, lng, closest.lat, closest.lng)
        for stop in remaining[1:]:
            distance = haversine_distance(lat, lng, stop.lat, stop.lng)
            if distance < closest_distance:
                closest = stop
                closest_distance = distance
        return closest

    @staticmethod
    def _next_stop(
        stops: list[RouteStop],
        completed: set[str],
        current_stop: Optional[RouteStop]
    ) -> Optional[RouteStop]:
        if current_stop is None:
            return None
        for stop in stops:
            if stop.sequence > current_stop.sequence and stop.customer_id not in completed:
                return stop
        return None

    @staticmethod
    def _delay(route: Route, total_stops: int, stops_completed: int, time_elapsed: float) -> float:
        if total_stops == 0 or route.total_duration <= 0:
            return 0.0

        expected = min(1.0, time_elapsed / route.total_duration)
        actual = stops_completed / total_stops
        if actual >= expected:
            return 0.0

        missing_stops = expected * total_stops - stops_completed
        return missing_stops * (route.total_duration / total_stops)


def get_progress_summary(progress: Iterable[RouteProgress]) -> ProgressSummary:
    """Roll crew progress up into dashboard totals"""
    progress = list(progress)
    if not progress:
        return ProgressSummary()

    total_distance = sum(p.distance_traveled for p in progress)
    total_time = sum(p.time_elapsed for p in progress)
    total_completed = sum(p.stops_completed for p in progress)
    average_per_stop = total_time / total_completed if total_completed else 0

    return ProgressSummary(
        total_crews=len(progress),
        active_crews=sum(
            1 for p in progress
            if p.status in (ProgressStatus.IN_PROGRESS, ProgressStatus.DELAYED)
        ),
        completed_routes=sum(1 for p in progress if p.status == ProgressStatus.COMPLETED),
        average_progress=round_half_up(sum(p.progress_percentage for p in progress) / len(progress)),
        delayed_crews=sum(1 for p in progress if p.status == ProgressStatus.DELAYED),
        on_time_crews=sum(1 for p in progress if p.is_on_schedule),
        total_distance_traveled=total_distance,
        total_time_elapsed=total_time,
        average_time_per_stop=round_half_up(average_per_stop),
        total_distance_display=format_distance(total_distance),
        total_time_display=format_minutes(total_time),
        average_time_per_stop_display=format_minutes(average_per_stop),
    )

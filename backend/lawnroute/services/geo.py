"""
Geographic helpers
Great-circle distances and position grouping
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

EARTH_RADIUS_METERS = 6371e3


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lng2 - lng1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def distance_between(a: Sequence[float], b: Sequence[float]) -> float:
    """Haversine distance between two (lat, lng) pairs"""
    return haversine_distance(a[0], a[1], b[0], b[1])


def travel_minutes(distance_meters: float, speed_kph: float) -> int:
    """Straight-line driving estimate in whole minutes"""
    if distance_meters <= 0 or speed_kph <= 0:
        return 0
    return round(distance_meters / 1000 / speed_kph * 60)


def centroid(points: Iterable[Sequence[float]]) -> Optional[tuple[float, float]]:
    """Mean latitude/longitude of the points (fine at neighborhood scale)"""
    points = list(points)
    if not points:
        return None
    lat = sum(p[0] for p in points) / len(points)
    lng = sum(p[1] for p in points) / len(points)
    return (lat, lng)


@dataclass
class PositionGroup:
    """Cluster of positions that are close together"""
    center: tuple[float, float]
    member_ids: list[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.member_ids)


def group_nearby_positions(
    positions: Sequence[tuple[str, float, float]],
    radius_meters: float
) -> list[PositionGroup]:
    """
    Group (id, lat, lng) positions that lie within radius of a seed position

    Each position not yet grouped seeds a new group and absorbs every later
    ungrouped position within the radius of the seed. Groups are returned
    largest first; equal sizes keep their seed order.
    """
    grouped = [False] * len(positions)
    groups: list[tuple[int, PositionGroup]] = []

    for i, (seed_id, seed_lat, seed_lng) in enumerate(positions):
        if grouped[i]:
            continue
        grouped[i] = True
        members = [(seed_id, seed_lat, seed_lng)]

        for j in range(i + 1, len(positions)):
            if grouped[j]:
                continue
            other_id, other_lat, other_lng = positions[j]
            if haversine_distance(seed_lat, seed_lng, other_lat, other_lng) <= radius_meters:
                grouped[j] = True
                members.append((other_id, other_lat, other_lng))

        group = PositionGroup(
            center=centroid((m[1], m[2]) for m in members),
            member_ids=[m[0] for m in members]
        )
        groups.append((i, group))

    groups.sort(key=lambda item: (-item[1].size, item[0]))
    return [group for _, group in groups]

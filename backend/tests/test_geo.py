"""
Geo and formatting helper tests
"""

import pytest

from lawnroute.services.geo import (
    centroid, group_nearby_positions, haversine_distance, travel_minutes
)
from lawnroute.utils.formatting import (
    format_distance, format_minutes, parse_hhmm, round_half_up, to_hhmm
)


class TestHaversine:
    """Tests for great-circle distance"""

    def test_same_point_is_zero(self):
        assert haversine_distance(39.7392, -104.9903, 39.7392, -104.9903) == 0

    def test_one_degree_of_longitude_at_equator(self):
        assert haversine_distance(0, 0, 0, 1) == pytest.approx(111195, rel=1e-3)

    def test_symmetric(self):
        a = haversine_distance(39.70, -104.90, 39.75, -104.80)
        b = haversine_distance(39.75, -104.80, 39.70, -104.90)
        assert a == pytest.approx(b)

    def test_travel_minutes(self):
        # 15 km at 30 km/h
        assert travel_minutes(15000, 30) == 30
        assert travel_minutes(0, 30) == 0
        assert travel_minutes(-5, 30) == 0


class TestGrouping:
    """Tests for employee position grouping"""

    def test_centroid_of_nothing(self):
        assert centroid([]) is None

    def test_centroid(self):
        assert centroid([(0, 0), (2, 4)]) == (1, 2)

    def test_largest_group_first(self):
        positions = [
            ("straggler", 39.7100, -104.9000),
            ("e1", 39.70000, -104.90000),
            ("e2", 39.70010, -104.90000),
            ("e3", 39.70000, -104.90010),
        ]
        groups = group_nearby_positions(positions, 100)

        assert len(groups) == 2
        assert groups[0].size == 3
        assert groups[0].member_ids == ["e1", "e2", "e3"]
        assert groups[1].member_ids == ["straggler"]
        assert groups[0].center[0] == pytest.approx(39.70003, abs=1e-5)

    def test_equal_sizes_keep_seed_order(self):
        positions = [("a", 39.70, -104.90), ("b", 39.80, -104.90)]
        groups = group_nearby_positions(positions, 100)
        assert [g.member_ids for g in groups] == [["a"], ["b"]]


class TestFormatting:
    """Tests for display helpers"""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2
        assert round_half_up(0.5) == 1

    def test_format_minutes(self):
        assert format_minutes(65) == "1h 5m"
        assert format_minutes(45) == "45m"
        assert format_minutes(120) == "2h 0m"

    def test_format_distance(self):
        assert format_distance(2300) == "2.3 km"
        assert format_distance(850) == "850 m"

    def test_clock_conversion(self):
        assert parse_hhmm("08:32") == 512
        assert to_hhmm(512) == "08:32"
        assert to_hhmm(24 * 60 + 5) == "00:05"

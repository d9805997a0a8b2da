"""지리 계산 유틸리티 테스트.

Geo math tests — Haversine distance, bearing, polygon containment.
"""

import math

import pytest

from timeclock.utils.geo import (
    EARTH_RADIUS_KM,
    bearing_deg,
    distance_m,
    haversine_km,
    point_in_polygon,
)

# 정사각형 링 [경도, 위도] — Square ring in GeoJSON order
SQUARE = [[9.69, 4.04], [9.71, 4.04], [9.71, 4.06], [9.69, 4.06]]


class TestHaversine:
    """대원 거리 테스트."""

    def test_identical_points(self):
        """같은 좌표는 거리 0."""
        assert haversine_km(4.05, 9.70, 4.05, 9.70) == 0.0

    def test_symmetric(self):
        """거리는 대칭."""
        a = haversine_km(4.05, 9.70, 4.50, 9.90)
        b = haversine_km(4.50, 9.90, 4.05, 9.70)
        assert a == pytest.approx(b, abs=1e-12)

    def test_one_degree_of_latitude(self):
        """자오선 1도는 약 111.19km."""
        expected = EARTH_RADIUS_KM * math.pi / 180
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)

    def test_douala_trip(self):
        """작업 현장 간 거리 약 55km."""
        assert haversine_km(4.05, 9.70, 4.50, 9.90) == pytest.approx(54.7, abs=0.5)

    def test_antipodal_points(self):
        """대척점 거리는 반 둘레."""
        assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_KM, rel=1e-9)

    def test_distance_in_meters(self):
        """미터 단위 변환."""
        assert distance_m(0.0, 0.0, 0.0, 0.001) == pytest.approx(haversine_km(0.0, 0.0, 0.0, 0.001) * 1000)


class TestBearing:
    """방위각 테스트."""

    def test_north(self):
        assert bearing_deg(0.0, 0.0, 1.0, 0.0) == pytest.approx(0.0, abs=1e-9)

    def test_east_on_equator(self):
        assert bearing_deg(0.0, 0.0, 0.0, 1.0) == pytest.approx(90.0, abs=1e-9)

    def test_west_is_normalized(self):
        """서쪽은 270도로 정규화."""
        assert bearing_deg(0.0, 0.0, 0.0, -1.0) == pytest.approx(270.0, abs=1e-9)


class TestPolygon:
    """다각형 포함 판정 테스트."""

    def test_inside(self):
        assert point_in_polygon(4.05, 9.70, SQUARE) is True

    def test_outside(self):
        assert point_in_polygon(4.10, 9.70, SQUARE) is False

    def test_closed_ring(self):
        """닫힌 링도 동일하게 처리."""
        closed = SQUARE + [SQUARE[0]]
        assert point_in_polygon(4.05, 9.70, closed) is True
        assert point_in_polygon(4.05, 9.80, closed) is False

    def test_degenerate_ring(self):
        """꼭짓점 3개 미만은 항상 외부."""
        assert point_in_polygon(4.05, 9.70, SQUARE[:2]) is False

    def test_concave_polygon(self):
        """오목 다각형의 움푹한 부분은 외부."""
        # U자 모양 — U shape opening to the north
        ring = [[0, 0], [3, 0], [3, 3], [2, 3], [2, 1], [1, 1], [1, 3], [0, 3]]
        assert point_in_polygon(2.0, 1.5, ring) is False
        assert point_in_polygon(0.5, 0.5, ring) is True
        assert point_in_polygon(2.0, 0.5, ring) is True

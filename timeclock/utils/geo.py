"""지리 계산 유틸리티 — 대원 거리, 방위각, 지오펜스 판정.

Geographic math helpers: great-circle distance (Haversine), initial bearing
and point-in-polygon testing. Pure functions on WGS-84 degrees with no I/O.
"""

import math
from typing import Sequence

# 지구 평균 반지름(km) — Mean Earth radius used by the Haversine formula
EARTH_RADIUS_KM: float = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """두 좌표 간 대원 거리를 km 단위로 계산합니다.

    Great-circle distance between two points in kilometers.
    Symmetric, zero for identical points, and never negative.

    Args:
        lat1: 첫 번째 위도 (First latitude, degrees)
        lon1: 첫 번째 경도 (First longitude, degrees)
        lat2: 두 번째 위도 (Second latitude, degrees)
        lon2: 두 번째 경도 (Second longitude, degrees)

    Returns:
        float: 거리(km) (Distance in kilometers)
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # 부동소수점 오차로 1을 넘는 경우 방지 — Clamp rounding error above 1
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """두 좌표 간 거리(미터) — Distance in meters."""
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """초기 방위각을 0~360도로 계산합니다.

    Initial bearing from the first point toward the second, in degrees
    clockwise from true north, normalized to [0, 360).
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lon = math.radians(lon2 - lon1)
    y = math.sin(d_lon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def point_in_polygon(latitude: float, longitude: float, ring: Sequence[Sequence[float]]) -> bool:
    """점이 다각형 내부에 있는지 ray casting으로 판정합니다.

    Ray-casting point-in-polygon test on a ring of [longitude, latitude]
    pairs (GeoJSON order, x = longitude, y = latitude). The ring may be
    open or closed. Fewer than three vertices never contain a point.

    Args:
        latitude: 검사할 위도 (Point latitude)
        longitude: 검사할 경도 (Point longitude)
        ring: 외곽 링 좌표 목록 (Outer ring of [lng, lat] pairs)

    Returns:
        bool: 내부 여부 (True when the point lies inside the ring)
    """
    if len(ring) < 3:
        return False

    inside: bool = False
    x, y = longitude, latitude
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = float(ring[i][0]), float(ring[i][1])
        xj, yj = float(ring[j][0]), float(ring[j][1])
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside

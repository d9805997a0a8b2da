"""이상 탐지 서비스 — 중복, 이동 속도, 지오펜스, 의심 패턴.

Anomaly detection for punches: duplicate submissions, physically
impossible travel between consecutive punches, geofence violations, and a
trailing-window scan for impossible-speed patterns. Detection never
raises for a found anomaly; results are returned as data.
"""

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.config import settings
from timeclock.models.time_entry import TimeEntry
from timeclock.repositories.site_repository import Geofence, site_repository
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.utils.clock import ensure_utc, utc_now
from timeclock.utils.geo import bearing_deg, distance_m, haversine_km, point_in_polygon


class ZeroElapsedPolicy(str, enum.Enum):
    """경과 시간 0일 때의 처리 방식 — Handling of two punches at the same instant.

    flag_as_anomaly: 허용 오차를 넘는 이동은 무한 속도로 이상 처리
        (Movement beyond tolerance in zero time is an anomaly with infinite speed)
    min_elapsed_floor: 경과 시간을 최소값으로 보정 후 계산
        (Clamp elapsed time to MIN_ELAPSED_SECONDS before dividing)
    """

    FLAG_AS_ANOMALY = "flag_as_anomaly"
    MIN_ELAPSED_FLOOR = "min_elapsed_floor"


ZERO_ELAPSED_POLICY: ZeroElapsedPolicy = ZeroElapsedPolicy.FLAG_AS_ANOMALY
# GPS 흔들림 허용 거리(km) — GPS jitter tolerated for same-instant punches
ZERO_ELAPSED_DISTANCE_TOLERANCE_KM: float = 0.05
MIN_ELAPSED_SECONDS: int = 60

# 이상 유형 및 심각도 — Anomaly types and severities
IMPOSSIBLE_SPEED: str = "impossible_speed"
GEOFENCING_VIOLATION: str = "geofencing_violation"
DUPLICATE_ENTRY: str = "duplicate_entry"

SEVERITY: dict[str, str] = {
    IMPOSSIBLE_SPEED: "high",
    GEOFENCING_VIOLATION: "medium",
    DUPLICATE_ENTRY: "medium",
}

# 사기 점수 가중치 — Fraud score weights, total capped at 100
FRAUD_WEIGHTS: dict[str, int] = {
    "mock_location": 40,
    IMPOSSIBLE_SPEED: 30,
    DUPLICATE_ENTRY: 20,
    GEOFENCING_VIOLATION: 10,
}


@dataclass
class SpeedAnomalyResult:
    """이동 속도 검사 결과 — Outcome of a speed check between two punches.

    Attributes:
        has_anomaly: 이상 여부 (Speed above the ceiling)
        previous_entry: 직전 펀치 (Predecessor entry or None)
        current_entry: 검사 대상 펀치 (Checked entry or None)
        calculated_speed: 계산 속도 km/h (Speed in km/h, inf for zero-time jumps)
        distance_km: 이동 거리 km (Haversine distance)
        time_diff_minutes: 경과 시간(분) (Elapsed minutes)
        bearing_deg: 이동 방위각 (Heading from the previous punch, degrees from north)
    """

    has_anomaly: bool
    previous_entry: TimeEntry | None = None
    current_entry: TimeEntry | None = None
    calculated_speed: float | None = None
    distance_km: float | None = None
    time_diff_minutes: float | None = None
    bearing_deg: float | None = None


@dataclass
class GeofenceResult:
    """지오펜스 검사 결과 — Outcome of a geofence check.

    Attributes:
        violation: 위반 여부 (Point outside every defined boundary)
        distance_from_center: 중심까지 거리(미터) (Meters to the site center, None without a center)
        site_radius: 현장 허용 반경(미터) (Site radius in meters)
        inside_polygon: 다각형 내부 여부 (None without a polygon)
    """

    violation: bool
    distance_from_center: float | None = None
    site_radius: float | None = None
    inside_polygon: bool | None = None


@dataclass
class SuspiciousPattern:
    """의심 패턴 — A flagged entry from a pattern scan."""

    entry: TimeEntry
    anomaly_type: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class Anomaly:
    """단일 이상 항목 — One typed anomaly with its severity."""

    anomaly_type: str
    severity: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class AnomalyReport:
    """펀치 이상 보고서 — Combined anomaly report for one entry."""

    entry_id: UUID | None
    anomalies: list[Anomaly]
    fraud_score: int
    speed: SpeedAnomalyResult
    geofence: GeofenceResult
    duplicates: list[TimeEntry]

    @property
    def has_anomalies(self) -> bool:
        return bool(self.anomalies)


def _finite(value: float | None) -> float | None:
    # JSON에는 inf가 없음 — JSON has no infinity
    if value is None or not math.isfinite(value):
        return None
    return round(value, 6)


def evaluate_speed(
    previous: TimeEntry | None,
    current: TimeEntry | None,
    max_speed_kmh: float | None = None,
    policy: ZeroElapsedPolicy | None = None,
) -> SpeedAnomalyResult:
    """두 펀치 사이의 이동 속도를 평가합니다.

    Evaluate travel speed from previous to current.

    Args:
        previous: 직전 펀치 (Predecessor; None means nothing to compare)
        current: 검사 대상 펀치 (Checked entry; None means no anomaly)
        max_speed_kmh: 최대 허용 속도, 기본값 설정값 (Ceiling in km/h)
        policy: 경과 시간 0 처리 방식, 기본값 ZERO_ELAPSED_POLICY

    Returns:
        SpeedAnomalyResult: 검사 결과 (Result with speed, distance and elapsed minutes)
    """
    if current is None or previous is None:
        return SpeedAnomalyResult(has_anomaly=False, previous_entry=previous, current_entry=current)

    ceiling: float = settings.MAX_SPEED_KMH if max_speed_kmh is None else max_speed_kmh
    policy = policy or ZERO_ELAPSED_POLICY

    distance: float = haversine_km(previous.latitude, previous.longitude, current.latitude, current.longitude)
    bearing: float = bearing_deg(previous.latitude, previous.longitude, current.latitude, current.longitude)
    seconds: float = (ensure_utc(current.clocked_at) - ensure_utc(previous.clocked_at)).total_seconds()
    seconds = abs(seconds)

    if policy == ZeroElapsedPolicy.MIN_ELAPSED_FLOOR:
        seconds = max(seconds, float(MIN_ELAPSED_SECONDS))

    if seconds == 0:
        jumped: bool = distance > ZERO_ELAPSED_DISTANCE_TOLERANCE_KM
        return SpeedAnomalyResult(
            has_anomaly=jumped,
            previous_entry=previous,
            current_entry=current,
            calculated_speed=math.inf if jumped else 0.0,
            distance_km=distance,
            time_diff_minutes=0.0,
            bearing_deg=bearing,
        )

    speed: float = distance / (seconds / 3600.0)
    return SpeedAnomalyResult(
        has_anomaly=speed > ceiling,
        previous_entry=previous,
        current_entry=current,
        calculated_speed=speed,
        distance_km=distance,
        time_diff_minutes=seconds / 60.0,
        bearing_deg=bearing,
    )


def evaluate_geofence(latitude: float, longitude: float, gps_accuracy: float | None, geofence: Geofence | None) -> GeofenceResult:
    """좌표가 지오펜스 밖인지 판정합니다.

    A point is inside when it lies inside the polygon or within
    radius + gps_accuracy meters of the center. Without any geofence there
    is no violation.
    """
    if geofence is None or not geofence.is_defined:
        return GeofenceResult(violation=False)

    inside_polygon: bool | None = None
    if geofence.has_polygon:
        inside_polygon = point_in_polygon(latitude, longitude, geofence.polygon)

    distance: float | None = None
    inside_radius: bool = False
    if geofence.has_center:
        distance = distance_m(latitude, longitude, geofence.center_latitude, geofence.center_longitude)
        inside_radius = distance <= geofence.radius_m + (gps_accuracy or 0.0)

    return GeofenceResult(
        violation=not (inside_polygon or inside_radius),
        distance_from_center=distance,
        site_radius=geofence.radius_m,
        inside_polygon=inside_polygon,
    )


def is_mock_location(device_info: dict[str, Any] | None) -> bool:
    """단말이 모의 위치를 보고했는지 — Whether the device reported a mocked location."""
    if not isinstance(device_info, dict):
        return False
    return bool(device_info.get("mock_location_detected") or device_info.get("is_mock_location"))


def fraud_score(
    *,
    mock_location: bool = False,
    impossible_speed: bool = False,
    duplicate: bool = False,
    geofence_violation: bool = False,
) -> int:
    """신호 조합으로 0~100 사기 점수를 계산합니다 — Fraud score in [0, 100]."""
    score: int = 0
    if mock_location:
        score += FRAUD_WEIGHTS["mock_location"]
    if impossible_speed:
        score += FRAUD_WEIGHTS[IMPOSSIBLE_SPEED]
    if duplicate:
        score += FRAUD_WEIGHTS[DUPLICATE_ENTRY]
    if geofence_violation:
        score += FRAUD_WEIGHTS[GEOFENCING_VIOLATION]
    return min(score, 100)


class AnomalyService:
    """이상 탐지 서비스.

    Anomaly detection over stored punches. Rejected entries are never
    used as comparison partners.
    """

    async def detect_duplicates(
        self,
        db: AsyncSession,
        user_id: UUID,
        clocked_at: datetime,
        tolerance_minutes: int | None = None,
        exclude_id: UUID | None = None,
    ) -> Sequence[TimeEntry]:
        """허용 범위 내 중복 펀치를 찾습니다.

        Find the user's non-rejected entries with clocked_at inside
        [clocked_at - tolerance, clocked_at + tolerance], both ends inclusive.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 사용자 UUID (User UUID)
            clocked_at: 기준 시각 (Candidate time)
            tolerance_minutes: 허용 범위(분), 기본값 설정값 (Window half-width in minutes)
            exclude_id: 제외할 펀치 UUID (Entry to leave out, usually the candidate)

        Returns:
            Sequence[TimeEntry]: 중복 후보 목록 (Entries inside the window)
        """
        tolerance = settings.DUPLICATE_TOLERANCE_MINUTES if tolerance_minutes is None else tolerance_minutes
        center: datetime = ensure_utc(clocked_at)
        window = timedelta(minutes=tolerance)
        return await time_entry_repository.get_in_window(
            db, user_id, center - window, center + window, exclude_id=exclude_id
        )

    async def detect_speed_anomaly(
        self,
        db: AsyncSession,
        entry: TimeEntry | None,
        max_speed_kmh: float | None = None,
    ) -> SpeedAnomalyResult:
        """직전 펀치 대비 이동 속도 이상을 검사합니다.

        Compare entry with the user's most recent non-rejected entry
        strictly before it. No predecessor or no entry means no anomaly.
        """
        if entry is None:
            return SpeedAnomalyResult(has_anomaly=False)

        previous: TimeEntry | None = await time_entry_repository.get_previous_entry(
            db, entry.user_id, ensure_utc(entry.clocked_at), exclude_id=entry.id
        )
        return evaluate_speed(previous, entry, max_speed_kmh)

    async def detect_geofence_violation(
        self,
        db: AsyncSession,
        entry: TimeEntry | None,
    ) -> GeofenceResult:
        """펀치 좌표가 현장 지오펜스를 벗어났는지 검사합니다.

        Check entry coordinates against its site's geofence. A missing entry,
        an unknown site or a site without geofence is not a violation.
        """
        if entry is None:
            return GeofenceResult(violation=False)
        geofence: Geofence | None = await site_repository.get_geofence(db, entry.site_id)
        return evaluate_geofence(entry.latitude, entry.longitude, entry.gps_accuracy, geofence)

    async def scan_suspicious_patterns(
        self,
        db: AsyncSession,
        user_id: UUID,
        window_days: int | None = None,
        now: datetime | None = None,
    ) -> list[SuspiciousPattern]:
        """최근 기간의 이동 속도 이상 패턴을 스캔합니다.

        Scan the user's entries received in the trailing window in
        chronological order. Each entry is compared with its predecessor in
        the window, the first one with the prior entry in the store. Alerts
        are left to the caller.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 사용자 UUID (User UUID)
            window_days: 스캔 기간(일), 기본값 설정값 (Trailing window in days)
            now: 기준 시각, 기본값 utc_now() (Reference time)

        Returns:
            list[SuspiciousPattern]: 탐지된 패턴 목록 (Flagged entries)
        """
        days = settings.SUSPICIOUS_WINDOW_DAYS if window_days is None else window_days
        since: datetime = (ensure_utc(now) if now is not None else utc_now()) - timedelta(days=days)
        entries: Sequence[TimeEntry] = await time_entry_repository.get_received_since(db, user_id, since)

        patterns: list[SuspiciousPattern] = []
        for index, entry in enumerate(entries):
            if index == 0:
                previous = await time_entry_repository.get_previous_entry(
                    db, user_id, ensure_utc(entry.clocked_at), exclude_id=entry.id
                )
            else:
                previous = entries[index - 1]

            result: SpeedAnomalyResult = evaluate_speed(previous, entry)
            if result.has_anomaly:
                patterns.append(
                    SuspiciousPattern(
                        entry=entry,
                        anomaly_type=IMPOSSIBLE_SPEED,
                        details=self._speed_details(result),
                    )
                )
        return patterns

    async def detect_anomalies(
        self,
        db: AsyncSession,
        entry: TimeEntry,
    ) -> AnomalyReport:
        """속도, 지오펜스, 중복 검사를 한 번에 수행합니다.

        Run the speed, geofence and duplicate checks for one entry and
        combine them into typed anomalies with a fraud score.
        """
        speed: SpeedAnomalyResult = await self.detect_speed_anomaly(db, entry)
        geofence: GeofenceResult = await self.detect_geofence_violation(db, entry)
        duplicates: Sequence[TimeEntry] = await self.detect_duplicates(
            db, entry.user_id, entry.clocked_at, exclude_id=entry.id
        )

        anomalies: list[Anomaly] = []
        if speed.has_anomaly:
            anomalies.append(Anomaly(IMPOSSIBLE_SPEED, SEVERITY[IMPOSSIBLE_SPEED], self._speed_details(speed)))
        if geofence.violation:
            anomalies.append(
                Anomaly(
                    GEOFENCING_VIOLATION,
                    SEVERITY[GEOFENCING_VIOLATION],
                    {
                        "distance_from_center": _finite(geofence.distance_from_center),
                        "site_radius": geofence.site_radius,
                        "inside_polygon": geofence.inside_polygon,
                    },
                )
            )
        if duplicates:
            anomalies.append(
                Anomaly(
                    DUPLICATE_ENTRY,
                    SEVERITY[DUPLICATE_ENTRY],
                    {"duplicate_ids": [str(d.id) for d in duplicates]},
                )
            )

        score: int = fraud_score(
            mock_location=is_mock_location(entry.device_info),
            impossible_speed=speed.has_anomaly,
            duplicate=bool(duplicates),
            geofence_violation=geofence.violation,
        )
        return AnomalyReport(
            entry_id=entry.id,
            anomalies=anomalies,
            fraud_score=score,
            speed=speed,
            geofence=geofence,
            duplicates=list(duplicates),
        )

    @staticmethod
    def _speed_details(result: SpeedAnomalyResult) -> dict[str, Any]:
        return {
            "previous_entry_id": str(result.previous_entry.id) if result.previous_entry else None,
            "calculated_speed": _finite(result.calculated_speed),
            "distance_km": _finite(result.distance_km),
            "time_diff_minutes": _finite(result.time_diff_minutes),
            "bearing_deg": _finite(result.bearing_deg),
        }

    def build_report_response(self, report: AnomalyReport) -> dict[str, Any]:
        """이상 보고서를 응답 딕셔너리로 변환합니다 — Serialize an anomaly report."""
        return {
            "entry_id": str(report.entry_id) if report.entry_id else None,
            "has_anomalies": report.has_anomalies,
            "fraud_score": report.fraud_score,
            "anomalies": [
                {"type": a.anomaly_type, "severity": a.severity, "details": a.details}
                for a in report.anomalies
            ],
        }

    def build_pattern_response(self, pattern: SuspiciousPattern) -> dict[str, Any]:
        return {
            "entry_id": str(pattern.entry.id),
            "clocked_at": ensure_utc(pattern.entry.clocked_at),
            "anomaly_type": pattern.anomaly_type,
            "details": pattern.details,
        }


# 싱글턴 인스턴스 — Singleton instance
anomaly_service: AnomalyService = AnomalyService()

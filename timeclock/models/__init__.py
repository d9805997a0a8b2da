"""SQLAlchemy ORM 모델 패키지 — 모든 도메인 모델의 중앙 임포트 지점.

SQLAlchemy ORM models package — Central import point for all domain models.
Importing from this package ensures all models are registered with the
SQLAlchemy metadata, which is required for Alembic migrations and
relationship resolution.

Modules:
    site: 현장 및 지오펜스 (Sites registry with geofence)
    time_entry: 출퇴근 펀치 기록 (Punch events, type/status enumerations)
"""

from timeclock.models.site import Site
from timeclock.models.time_entry import PointageStatus, PointageType, TimeEntry

__all__ = [
    "Site",
    "PointageStatus", "PointageType", "TimeEntry",
]

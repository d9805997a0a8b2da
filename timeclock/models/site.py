"""현장(사이트) 관련 SQLAlchemy ORM 모델 정의.

Site SQLAlchemy ORM model definitions.
Sites are owned by the sites registry; this service only reads their geofence.

Tables:
    - sites: 작업 현장 및 지오펜스 (Work sites with their geofence)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from timeclock.database import Base


class Site(Base):
    """현장 모델 — 지오펜스(중심+반경, 다각형)를 가진 작업 현장.

    Site model — A work site with its permitted geographic boundary.
    The geofence is a center point with a radius, an optional polygon, or both.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        name: 현장 이름 (Site display name)
        latitude: 중심 위도 (Geofence center latitude)
        longitude: 중심 경도 (Geofence center longitude)
        geofence_radius: 허용 반경(미터) (Allowed radius around the center, meters)
        geofence_polygon: 외곽 링 [[경도, 위도], ...] (Outer ring in GeoJSON order)
        is_active: 활성 상태 (Whether the site accepts punches)
        created_at: 생성 일시 UTC (Creation timestamp)
        updated_at: 수정 일시 UTC (Last update timestamp)
    """

    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    # 허용 반경 — Radius tolerance in meters around the center point
    geofence_radius: Mapped[int] = mapped_column(Integer, default=100)
    # 다각형 — Closed or open ring of [longitude, latitude] pairs
    geofence_polygon: Mapped[list[list[float]] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

"""출퇴근 기록(펀치) 관련 SQLAlchemy ORM 모델 정의.

Time entry (punch event) SQLAlchemy ORM model definitions.
One row per punch submitted by a field worker: clock-in/out, pause
boundaries, and external missions, whether recorded online or offline.

Tables:
    - time_entries: 출퇴근 펀치 기록 (Punch events per user and work session)
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from timeclock.database import Base


class PointageType(str, enum.Enum):
    """펀치 유형 — Punch classification."""

    CLOCK_IN = "clock_in"
    PAUSE_START = "pause_start"
    PAUSE_END = "pause_end"
    CLOCK_OUT = "clock_out"
    EXTERNAL_MISSION = "external_mission"


class PointageStatus(str, enum.Enum):
    """펀치 처리 상태 — Punch review status.

    draft: 오프라인 생성 후 동기화 대기 (Offline entry not yet marked as synced)
    pending: 관리자 검토 대기 (Awaiting review)
    accepted: 승인됨 (Approved)
    corrected: 관리자 수정됨 (Corrected by an administrator)
    accounted: 급여 반영 완료, 최종 상태 (Included in payroll, final)
    rejected: 반려됨, 비교 대상에서 제외 (Rejected, excluded from anomaly comparisons)
    """

    DRAFT = "draft"
    PENDING = "pending"
    ACCEPTED = "accepted"
    CORRECTED = "corrected"
    ACCOUNTED = "accounted"
    REJECTED = "rejected"


class TimeEntry(Base):
    """출퇴근 펀치 모델 — 작업자가 제출한 단일 펀치 이벤트.

    Time entry model — One punch event submitted by a worker.
    clocked_at and the submitted location hold the worker's claim and are
    never overwritten; administrator corrections are written to the real_*
    columns.

    Attributes:
        id: 고유 식별자 UUID (Store-assigned identifier)
        guid: 공개 토큰 (Public random token exposed to clients)
        session_id: 근무 세션 ID (Work period grouping)
        user_id: 작업자 ID (Worker who punched)
        site_id: 현장 FK (Site where the punch happened)
        pointage_type: 펀치 유형 (clock_in, pause_start, pause_end, clock_out, external_mission)
        pointage_status: 처리 상태 (draft, pending, accepted, corrected, accounted, rejected)
        clocked_at: 작업자 주장 시각 (Worker's claimed time, immutable)
        real_clocked_at: 관리자 수정 시각 (Administrator-corrected time)
        server_received_at: 서버 수신 시각 (Set once at ingestion)
        latitude: 위도 (WGS-84 degrees)
        longitude: 경도 (WGS-84 degrees)
        gps_accuracy: GPS 정확도(미터) (Reported accuracy in meters)
        real_latitude, real_longitude, real_gps_accuracy, real_site_id:
            관리자 수정 위치 (Administrator-corrected location, submitted values kept)
        device_info: 단말 정보 JSON (Device metadata)
        ip_address: 요청 IP (Client IP address)
        user_agent: 요청 User-Agent (Client user agent)
        created_offline: 오프라인 생성 여부 (Created through offline sync)
        local_id: 클라이언트 로컬 ID (Client-assigned id for offline dedup)
        sync_attempts: 동기화 시도 횟수 (Offline sync retry counter)
        last_sync_attempt: 마지막 동기화 시도 (Last sync attempt timestamp)
        memo_id: 메모 참조 (Justification memo reference)
        correction_reason: 수정/반려 사유 (Reason for correction or rejection)
        corrected_by: 수정자 ID (Administrator who corrected the entry)
        corrected_at: 수정 일시 (Correction timestamp)
        updated_at: 수정 일시 UTC (Last update timestamp)

    Constraints:
        uq_time_entries_user_local_id: 동일 사용자+로컬 ID 중복 불가
            (One server entry per offline local id per user)
    """

    __tablename__ = "time_entries"

    # 펀치 고유 식별자 — Time entry unique identifier (UUID v4, auto-generated)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 공개 토큰 — Random 32-char hex token shared with clients
    guid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # 근무 세션 — Work session the punch belongs to (owned by the sessions service)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    # 작업자 — Worker who submitted the punch (owned by the users service)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    # 현장 FK — Site registry entry providing the geofence
    site_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False)
    pointage_type: Mapped[str] = mapped_column(String(20), nullable=False)
    pointage_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PointageStatus.PENDING.value)
    # 작업자 주장 시각 — Never overwritten, even by corrections
    clocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 관리자 수정 시각 — Corrected time lives here, not in clocked_at
    real_clocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # 서버 수신 시각 — Set once at ingestion
    server_received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    gps_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    # 관리자 수정 위치 — Corrected location; the submitted coordinates above are kept
    real_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    real_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    real_gps_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    real_site_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=True)
    device_info: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    # 오프라인 동기화 — Offline bookkeeping, only the batch synchronizer sets created_offline
    created_offline: Mapped[bool] = mapped_column(Boolean, default=False)
    local_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sync_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    memo_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrected_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    corrected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # 수정 일시 — Last modification timestamp (UTC, auto-updated)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "local_id", name="uq_time_entries_user_local_id"),
        Index("ix_time_entries_user_clocked_at", "user_id", "clocked_at"),
        Index("ix_time_entries_session_clocked_at", "session_id", "clocked_at"),
    )

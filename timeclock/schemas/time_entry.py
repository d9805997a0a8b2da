"""펀치 기록 Pydantic 요청/응답 스키마 정의.

Time entry Pydantic request/response schema definitions.
Request schemas keep types loose and every field optional so that the
field validator, not Pydantic, reports all violations of a payload at once.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


# === 요청 (Requests) ===

class TimeEntryCreate(BaseModel):
    """온라인 펀치 생성 요청 스키마.

    Online punch creation request schema.

    Attributes:
        session_id: 근무 세션 UUID (Work session identifier)
        user_id: 작업자 UUID (Worker identifier)
        site_id: 현장 UUID (Site identifier)
        pointage_type: 펀치 유형 (clock_in, pause_start, pause_end, clock_out, external_mission)
        clocked_at: 작업자 주장 시각 (Claimed time, ISO-8601)
        latitude: 위도 (Latitude in degrees)
        longitude: 경도 (Longitude in degrees)
        gps_accuracy: GPS 정확도(미터) (Accuracy in meters, optional)
        device_info: 단말 정보 (Device metadata object, optional)
        memo_id: 메모 UUID (Justification memo, optional)
    """

    session_id: str | None = None
    user_id: str | None = None
    site_id: str | None = None
    pointage_type: str | None = None
    clocked_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    gps_accuracy: float | None = None
    device_info: Any = None  # JSON 객체여야 함 — Must be a JSON object
    ip_address: str | None = None  # 없으면 요청 IP 사용 (Defaults to the request client IP)
    user_agent: str | None = None  # 없으면 요청 헤더 사용 (Defaults to the User-Agent header)
    memo_id: str | None = None


class SyncRequest(BaseModel):
    """오프라인 일괄 동기화 요청 스키마.

    Offline batch sync request. Items are kept as raw objects so that one
    malformed item is reported in its own result instead of failing the batch.

    Attributes:
        user_id: 업로드 사용자 UUID (Uploading user)
        items: 오프라인 펀치 목록, 각 항목은 local_id 포함 (Offline punches, each with a local_id)
    """

    user_id: UUID
    items: list[Any] = Field(default_factory=list)


class TimeEntryUpdate(BaseModel):
    """펀치 부분 수정 요청 스키마 — Partial update of the mutable fields."""

    pointage_status: str | None = None
    real_clocked_at: datetime | None = None
    sync_attempts: int | None = None
    last_sync_attempt: datetime | None = None
    memo_id: str | None = None
    correction_reason: str | None = None


class CorrectionRequest(BaseModel):
    """관리자 수정 요청 스키마.

    Administrator correction request. clocked_at and the location fields
    are stored in the real_* columns; the submitted values are kept.

    Attributes:
        corrected_by: 수정자 UUID (Administrator identifier)
        reason: 수정 사유 (Correction reason, required)
    """

    corrected_by: UUID
    reason: str | None = None
    clocked_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    gps_accuracy: float | None = None
    site_id: str | None = None
    memo_id: str | None = None


class RejectRequest(BaseModel):
    """반려 요청 스키마 — Rejection with a required reason."""

    reason: str | None = None
    rejected_by: UUID | None = None


class ApproveRequest(BaseModel):
    """승인 요청 스키마 — Approval, optionally naming the approver."""

    approved_by: UUID | None = None


class SyncAttemptsRequest(BaseModel):
    """동기화 시도 기록 요청 스키마 — Omit attempts to increment by one."""

    attempts: int | None = None


class BulkStatusRequest(BaseModel):
    """일괄 상태 변경 요청 스키마.

    Bulk status change request. Entries that cannot make the transition
    are skipped and reported.

    Attributes:
        entry_ids: 대상 펀치 UUID 목록, 최대 500 (Entries to change, at most 500)
        pointage_status: 목표 상태 (Target status)
        reason: 사유, 반려 시 필수 (Reason, required for rejected)
        changed_by: 변경자 UUID, 선택 (Acting administrator)
    """

    entry_ids: list[UUID] = Field(min_length=1, max_length=500)
    pointage_status: str
    reason: str | None = None
    changed_by: UUID | None = None


# === 응답 (Responses) ===

class TimeEntryResponse(BaseModel):
    """펀치 기록 응답 스키마.

    Time entry response schema. clocked_at and the location are the
    worker's claim; the real_* fields hold corrected values when present.
    """

    id: str
    guid: str
    session_id: str
    user_id: str
    site_id: str
    pointage_type: str
    pointage_status: str
    clocked_at: datetime
    real_clocked_at: datetime | None = None
    server_received_at: datetime | None = None
    latitude: float
    longitude: float
    gps_accuracy: float | None = None
    real_latitude: float | None = None
    real_longitude: float | None = None
    real_gps_accuracy: float | None = None
    real_site_id: str | None = None
    device_info: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_offline: bool = False
    local_id: str | None = None
    sync_attempts: int = 0
    sync_exhausted: bool = False  # 재시도 중단 여부 — Client should stop retrying
    last_sync_attempt: datetime | None = None
    memo_id: str | None = None
    correction_reason: str | None = None
    corrected_by: str | None = None
    corrected_at: datetime | None = None
    updated_at: datetime | None = None


class AnomalyItem(BaseModel):
    """단일 이상 항목 — One anomaly with severity and details."""

    type: str  # impossible_speed, geofencing_violation, duplicate_entry
    severity: str  # high, medium
    details: dict[str, Any] = Field(default_factory=dict)


class AnomalyReportResponse(BaseModel):
    """이상 보고서 응답 스키마 — Anomaly report for one entry."""

    entry_id: str | None = None
    has_anomalies: bool
    fraud_score: int  # 0~100
    anomalies: list[AnomalyItem] = Field(default_factory=list)


class TimeEntryCreateResponse(BaseModel):
    """펀치 생성 응답 — Created entry with its anomaly report."""

    entry: TimeEntryResponse
    anomalies: AnomalyReportResponse


class SyncItemResponse(BaseModel):
    local_id: str | None = None
    status: str  # success, conflict, error
    detail: Any = None
    entry_id: str | None = None
    existing_id: str | None = None


class SyncResponse(BaseModel):
    """일괄 동기화 응답 — success + errors + conflicts == processed."""

    processed: int
    success: int
    errors: int
    conflicts: int
    results: list[SyncItemResponse] = Field(default_factory=list)


class OriginalValuesResponse(BaseModel):
    """작업자 제출 원래 값 응답 — Values as the worker submitted them."""

    clocked_at: datetime
    latitude: float
    longitude: float
    gps_accuracy: float | None = None
    site_id: str
    pointage_type: str


class BulkStatusSkipped(BaseModel):
    entry_id: str
    reason: str  # not_found, invalid_transition:<current status>


class BulkStatusResponse(BaseModel):
    """일괄 상태 변경 응답 — Updated count and skipped entries."""

    updated: int
    updated_ids: list[str] = Field(default_factory=list)
    skipped: list[BulkStatusSkipped] = Field(default_factory=list)


class CanClockOutResponse(BaseModel):
    session_id: str
    can_clock_out: bool


class SuspiciousPatternResponse(BaseModel):
    """의심 패턴 응답 — Entry flagged by a pattern scan."""

    entry_id: str
    clocked_at: datetime
    anomaly_type: str
    details: dict[str, Any] = Field(default_factory=dict)


class StatisticsResponse(BaseModel):
    """펀치 통계 응답 스키마.

    Attributes:
        total_entries: 전체 펀치 수 (Total entries)
        offline_entries: 오프라인 생성 펀치 수 (Entries created offline)
        pending_validation: 검토 대기 펀치 수 (Entries pending review)
        by_type: 유형별 개수 (Counts per punch type)
        by_status: 상태별 개수 (Counts per status)
    """

    total_entries: int
    offline_entries: int
    pending_validation: int
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)

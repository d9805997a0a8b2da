"""관리자 펀치 라우터 — 펀치 검토 및 관리 API.

Admin Time Entry Router — Endpoints for reviewing punches: listing,
detail, original values, update, correction, rejection, approval, bulk
status changes, sync bookkeeping, anomaly reports, statistics and trash.
"""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.database import get_db
from timeclock.schemas.common import MessageResponse, PaginatedResponse
from timeclock.schemas.time_entry import (
    AnomalyReportResponse,
    ApproveRequest,
    BulkStatusRequest,
    BulkStatusResponse,
    CorrectionRequest,
    OriginalValuesResponse,
    RejectRequest,
    StatisticsResponse,
    SuspiciousPatternResponse,
    SyncAttemptsRequest,
    TimeEntryResponse,
    TimeEntryUpdate,
)
from timeclock.services.anomaly_service import anomaly_service
from timeclock.services.correction_service import correction_service, get_original_values
from timeclock.services.sync_service import sync_service
from timeclock.services.time_entry_service import time_entry_service
from timeclock.utils.clock import ensure_utc

router: APIRouter = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_time_entries(
    db: Annotated[AsyncSession, Depends(get_db)],
    user_id: Annotated[UUID | None, Query()] = None,
    session_id: Annotated[UUID | None, Query()] = None,
    site_id: Annotated[UUID | None, Query()] = None,
    status: Annotated[str | None, Query(description="Comma separated statuses")] = None,
    pointage_type: Annotated[str | None, Query()] = None,
    created_offline: Annotated[bool | None, Query()] = None,
    date_from: Annotated[datetime | None, Query()] = None,
    date_to: Annotated[datetime | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=500)] = 50,
) -> dict:
    """펀치 목록을 필터링하여 조회합니다.

    List time entries with optional filters, newest first.

    Args:
        db: 비동기 데이터베이스 세션 (Async database session)
        user_id: 사용자 UUID 필터, 선택 (Optional user filter)
        session_id: 세션 UUID 필터, 선택 (Optional session filter)
        site_id: 현장 UUID 필터, 선택 (Optional site filter)
        status: 상태 필터, 쉼표 구분 (Optional comma separated status filter)
        pointage_type: 펀치 유형 필터, 선택 (Optional punch type filter)
        created_offline: 오프라인 생성 여부 필터 (Optional offline flag filter)
        date_from: 시작 시각, 포함 (Optional clocked_at lower bound)
        date_to: 종료 시각, 포함 (Optional clocked_at upper bound)
        page: 페이지 번호 (Page number)
        per_page: 페이지당 항목 수, 최대 500 (Items per page, max 500)

    Returns:
        dict: 페이지네이션된 펀치 목록 (Paginated entry list)
    """
    entries, total = await time_entry_service.list_entries(
        db,
        page=page,
        per_page=per_page,
        user_id=user_id,
        session_id=session_id,
        site_id=site_id,
        statuses=[s.strip() for s in status.split(",") if s.strip()] if status else None,
        pointage_type=pointage_type,
        created_offline=created_offline,
        date_from=ensure_utc(date_from),
        date_to=ensure_utc(date_to),
    )

    return {
        "items": [time_entry_service.build_response(e) for e in entries],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.get("/statistics/overview", response_model=StatisticsResponse)
async def get_statistics(
    db: Annotated[AsyncSession, Depends(get_db)],
    user_id: Annotated[UUID | None, Query()] = None,
    site_id: Annotated[UUID | None, Query()] = None,
    date_from: Annotated[datetime | None, Query()] = None,
    date_to: Annotated[datetime | None, Query()] = None,
) -> dict:
    """펀치 통계를 조회합니다 — Totals and breakdowns by type and status."""
    return await time_entry_service.get_statistics(
        db,
        user_id=user_id,
        site_id=site_id,
        date_from=ensure_utc(date_from),
        date_to=ensure_utc(date_to),
    )


@router.post("/status/bulk", response_model=BulkStatusResponse)
async def bulk_update_status(
    data: BulkStatusRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """여러 펀치의 상태를 한 번에 변경합니다.

    Move several entries to one status. Entries whose current status does
    not allow the change are skipped and listed in the response.

    Args:
        data: 일괄 변경 요청 (Entry ids, target status, reason and actor)
        db: 비동기 데이터베이스 세션 (Async database session)

    Returns:
        dict: 변경 결과 (Updated count, updated ids and skipped entries)
    """
    result = await correction_service.bulk_update_status(
        db,
        data.entry_ids,
        data.pointage_status,
        changed_by=data.changed_by,
        reason=data.reason,
    )
    await db.commit()

    return result


@router.get("/users/{user_id}/anomalies", response_model=list[SuspiciousPatternResponse])
async def scan_user_anomalies(
    user_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    window_days: Annotated[int | None, Query(ge=1, le=365)] = None,
) -> list[dict]:
    """사용자의 최근 이동 속도 이상 패턴을 스캔합니다.

    Scan a user's recent entries for impossible-speed patterns. No alert
    is created; the caller decides what to do with the findings.
    """
    patterns = await anomaly_service.scan_suspicious_patterns(db, user_id, window_days)
    return [anomaly_service.build_pattern_response(p) for p in patterns]


@router.get("/{entry_id}", response_model=TimeEntryResponse)
async def get_time_entry(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치 상세를 조회합니다 — Time entry detail."""
    entry = await time_entry_service.get_entry(db, entry_id)
    return time_entry_service.build_response(entry)


@router.get("/{entry_id}/original", response_model=OriginalValuesResponse)
async def get_time_entry_original(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """작업자가 제출한 원래 값을 조회합니다 — Submitted values, whatever was corrected since."""
    entry = await time_entry_service.get_entry(db, entry_id)
    original = get_original_values(entry)
    original["site_id"] = str(original["site_id"])
    return original


@router.patch("/{entry_id}", response_model=TimeEntryResponse)
async def update_time_entry(
    entry_id: UUID,
    data: TimeEntryUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치의 변경 가능한 필드를 수정합니다.

    Update the mutable fields of a time entry.

    Args:
        entry_id: 펀치 UUID (Entry UUID)
        data: 수정 데이터 (Fields to change)
        db: 비동기 데이터베이스 세션 (Async database session)

    Returns:
        dict: 수정된 펀치 (Updated entry)
    """
    entry = await time_entry_service.update_entry(db, entry_id, data.model_dump(exclude_unset=True))
    await db.commit()

    return time_entry_service.build_response(entry)


@router.patch("/{entry_id}/correct", response_model=TimeEntryResponse)
async def correct_time_entry(
    entry_id: UUID,
    data: CorrectionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치를 수정합니다. 주장 시각은 보존되고 수정 시각이 별도로 기록됩니다.

    Correct a time entry. The submitted time and location are kept; new
    values go to the real_* fields.

    Args:
        entry_id: 펀치 UUID (Entry UUID)
        data: 수정 요청 (Correction overrides, administrator and reason)
        db: 비동기 데이터베이스 세션 (Async database session)

    Returns:
        dict: 수정된 펀치 (Corrected entry)
    """
    corrections: dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"corrected_by", "reason"})
    entry = await correction_service.apply_correction(
        db,
        entry_id,
        corrections,
        corrected_by=data.corrected_by,
        reason=data.reason,
    )
    await db.commit()

    return time_entry_service.build_response(entry)


@router.patch("/{entry_id}/reject", response_model=TimeEntryResponse)
async def reject_time_entry(
    entry_id: UUID,
    data: RejectRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치를 반려합니다 — Reject an entry with a reason."""
    entry = await correction_service.reject_entry(db, entry_id, data.reason, rejected_by=data.rejected_by)
    await db.commit()

    return time_entry_service.build_response(entry)


@router.patch("/{entry_id}/approve", response_model=TimeEntryResponse)
async def approve_time_entry(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    data: ApproveRequest | None = None,
) -> dict:
    """펀치를 승인합니다 — Approve an entry."""
    entry = await correction_service.approve_entry(
        db, entry_id, approved_by=data.approved_by if data else None
    )
    await db.commit()

    return time_entry_service.build_response(entry)


@router.patch("/{entry_id}/synced", response_model=TimeEntryResponse)
async def mark_time_entry_synced(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """오프라인 펀치를 동기화 완료로 표시합니다 — Mark an offline entry as synced."""
    entry = await sync_service.mark_entry_as_synced(db, entry_id)
    await db.commit()

    return time_entry_service.build_response(entry)


@router.patch("/{entry_id}/sync-attempts", response_model=TimeEntryResponse)
async def record_sync_attempt(
    entry_id: UUID,
    data: SyncAttemptsRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """동기화 시도를 기록합니다 — Record a sync attempt (increment or set)."""
    entry = await sync_service.update_sync_status(db, entry_id, data.attempts)
    await db.commit()

    return time_entry_service.build_response(entry)


@router.get("/{entry_id}/anomalies", response_model=AnomalyReportResponse)
async def get_time_entry_anomalies(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치의 이상 탐지 결과를 조회합니다 — Speed, geofence and duplicate report."""
    entry = await time_entry_service.get_entry(db, entry_id)
    report = await anomaly_service.detect_anomalies(db, entry)
    return anomaly_service.build_report_response(report)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def trash_time_entry(
    entry_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """펀치를 영구 삭제합니다 — Permanently delete an entry."""
    await time_entry_service.trash_entry(db, entry_id)
    await db.commit()

    return {"message": "펀치 기록이 삭제되었습니다 (Time entry deleted)"}

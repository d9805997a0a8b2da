"""앱 펀치 라우터 — 작업자 단말용 펀치 API.

App Time Entry Router — Endpoints used by the worker's mobile client:
online punch, offline batch sync, clock-out check, and pending offline entries.
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.database import get_db
from timeclock.schemas.time_entry import (
    CanClockOutResponse,
    SyncRequest,
    SyncResponse,
    TimeEntryCreate,
    TimeEntryCreateResponse,
    TimeEntryResponse,
)
from timeclock.services.anomaly_service import anomaly_service
from timeclock.services.sequence_service import sequence_service
from timeclock.services.sync_service import sync_service
from timeclock.services.time_entry_service import time_entry_service

router: APIRouter = APIRouter()


@router.post("", response_model=TimeEntryCreateResponse, status_code=201)
async def create_time_entry(
    data: TimeEntryCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """온라인 펀치를 기록하고 이상 탐지 결과를 함께 반환합니다.

    Record an online punch and return it with its anomaly report.

    Args:
        data: 펀치 요청 데이터 (Punch request data)
        request: 요청 객체, IP/User-Agent 기본값용 (Request, for IP and User-Agent defaults)
        db: 비동기 데이터베이스 세션 (Async database session)

    Returns:
        dict: 생성된 펀치 + 이상 보고서 (Created entry and anomaly report)
    """
    payload: dict[str, Any] = data.model_dump(exclude_unset=True)
    if payload.get("ip_address") is None and request.client is not None:
        payload["ip_address"] = request.client.host
    if payload.get("user_agent") is None and request.headers.get("user-agent"):
        payload["user_agent"] = request.headers["user-agent"]

    entry = await time_entry_service.create_entry(db, payload)
    report = await anomaly_service.detect_anomalies(db, entry)

    return {
        "entry": time_entry_service.build_response(entry),
        "anomalies": anomaly_service.build_report_response(report),
    }


@router.post("/sync", response_model=SyncResponse)
async def sync_offline_entries(
    data: SyncRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """오프라인 펀치 묶음을 동기화합니다.

    Upload a batch of offline punches. Each item gets its own result;
    already-known local ids come back as conflicts.

    Args:
        data: 동기화 요청 (User id and offline items)
        db: 비동기 데이터베이스 세션 (Async database session)

    Returns:
        dict: 처리 결과 (processed, success, errors, conflicts, results)
    """
    report = await sync_service.sync(db, data.user_id, data.items)
    await db.commit()

    return report.to_dict()


@router.get("/sessions/{session_id}/can-clock-out", response_model=CanClockOutResponse)
async def can_clock_out(
    session_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """세션이 지금 퇴근할 수 있는지 확인합니다 — Whether the session may clock out now."""
    allowed: bool = await sequence_service.can_session_clock_out(db, session_id)
    return {"session_id": str(session_id), "can_clock_out": allowed}


@router.get("/sessions/{session_id}/entries", response_model=list[TimeEntryResponse])
async def list_session_entries(
    session_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    """세션의 유효 펀치를 시간순으로 조회합니다 — Session history in order."""
    entries = await time_entry_service.list_session_entries(db, session_id)
    return [time_entry_service.build_response(e) for e in entries]


@router.get("/users/{user_id}/offline", response_model=list[TimeEntryResponse])
async def list_offline_entries(
    user_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    """동기화 완료 전 오프라인 펀치 목록 — Offline entries still in draft."""
    entries = await sync_service.find_offline_entries(db, user_id)
    return [time_entry_service.build_response(e) for e in entries]

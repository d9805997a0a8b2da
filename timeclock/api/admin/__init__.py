"""관리자 API 라우터 패키지 — 모든 관리자 엔드포인트 통합.

Admin API Router package — Aggregates all admin-facing endpoints
into a single router for inclusion in the FastAPI application.

Included routers:
    - time_entries: 펀치 검토, 수정, 반려, 이상 탐지, 통계
      (Punch review, correction, rejection, anomaly detection, statistics)
"""

from fastapi import APIRouter

from timeclock.api.admin.time_entries import router as time_entries_router

admin_router: APIRouter = APIRouter()

admin_router.include_router(time_entries_router, prefix="/time-entries", tags=["Admin Time Entries"])

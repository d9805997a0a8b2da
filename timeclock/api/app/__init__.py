"""앱 API 라우터 패키지 — 작업자 단말 엔드포인트 통합.

App API Router package — Aggregates all worker-facing endpoints
into a single router for inclusion in the FastAPI application.

Included routers:
    - time_entries: 펀치 기록 및 오프라인 동기화 (Punch recording and offline sync)
"""

from fastapi import APIRouter

from timeclock.api.app.time_entries import router as time_entries_router

app_router: APIRouter = APIRouter()

app_router.include_router(time_entries_router, prefix="/time-entries", tags=["App Time Entries"])

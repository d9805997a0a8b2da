"""테스트 인프라 — 임시 DB, 세션, httpx 클라이언트, 펀치 헬퍼 픽스처.

Test infrastructure — Temporary database, session, httpx client and punch
helper fixtures. Uses a per-test SQLite file via aiosqlite by default;
set TEST_DATABASE_URL to run against PostgreSQL instead.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from timeclock.database import Base, get_db
from timeclock.main import app
from timeclock.models import *  # noqa: F401,F403 — register all models with metadata
from timeclock.models.site import Site
from timeclock.models.time_entry import PointageStatus, PointageType, TimeEntry
from timeclock.services.audit_service import audit_service

# 기준 시각 — Fixed reference day in the past so future-time checks never trigger
BASE_TIME: datetime = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
    """BASE_TIME 날짜의 시각 — Time on the reference day."""
    return BASE_TIME.replace(hour=hour, minute=minute) + timedelta(days=day_offset)


# ---------------------------------------------------------------------------
# Function-scoped: 엔진, 세션, 클라이언트
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """테스트용 async 엔진. 매 테스트마다 스키마를 새로 생성합니다."""
    url: str = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")
    eng = create_async_engine(url, echo=False)

    if eng.dialect.name == "sqlite":
        # pysqlite의 암시적 트랜잭션을 끄고 SAVEPOINT를 지원하도록 BEGIN을 직접 발행
        # Disable pysqlite's implicit transactions and emit BEGIN ourselves so SAVEPOINT works.
        # 외래 키 강제 — Foreign keys are enforced as in PostgreSQL.
        @event.listens_for(eng.sync_engine, "connect")
        def _do_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(eng.sync_engine, "begin")
        def _do_begin(conn):
            conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """각 테스트에 격리된 DB 세션을 제공합니다."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI 테스트 클라이언트 — DB 세션을 오버라이드합니다."""
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def audit_events() -> list[dict[str, Any]]:
    """발행된 감사 이벤트를 수집합니다."""
    events: list[dict[str, Any]] = []
    audit_service.subscribe(events.append)
    yield events
    audit_service.unsubscribe(events.append)


# ---------------------------------------------------------------------------
# 헬퍼 픽스처: 테스트용 데이터 생성
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def site(db: AsyncSession) -> Site:
    """반경 지오펜스를 가진 테스트 현장을 생성합니다 (Douala 부근)."""
    s = Site(name="Test Site", latitude=4.05, longitude=9.70, geofence_radius=200)
    db.add(s)
    await db.flush()
    await db.refresh(s)
    return s


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def session_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_entry(db: AsyncSession, site: Site, user_id: uuid.UUID, session_id: uuid.UUID):
    """저장소에 펀치를 직접 삽입하는 팩토리 (검증 우회)."""

    async def _make(
        pointage_type: PointageType = PointageType.CLOCK_IN,
        clocked_at: datetime = BASE_TIME,
        latitude: float = 4.05,
        longitude: float = 9.70,
        **overrides: Any,
    ) -> TimeEntry:
        values: dict[str, Any] = {
            "guid": uuid.uuid4().hex,
            "session_id": session_id,
            "user_id": user_id,
            "site_id": site.id,
            "pointage_type": pointage_type.value,
            "pointage_status": PointageStatus.PENDING.value,
            "clocked_at": clocked_at,
            "server_received_at": datetime.now(timezone.utc),
            "latitude": latitude,
            "longitude": longitude,
        }
        values.update(overrides)
        entry = TimeEntry(**values)
        db.add(entry)
        await db.flush()
        await db.refresh(entry)
        return entry

    return _make


def punch_payload(
    site: Site,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    pointage_type: PointageType,
    clocked_at: datetime,
    latitude: float = 4.05,
    longitude: float = 9.70,
    **extra: Any,
) -> dict[str, Any]:
    """온라인 펀치 생성 요청 데이터를 만듭니다."""
    data: dict[str, Any] = {
        "session_id": str(session_id),
        "user_id": str(user_id),
        "site_id": str(site.id),
        "pointage_type": pointage_type.value,
        "clocked_at": clocked_at.isoformat(),
        "latitude": latitude,
        "longitude": longitude,
    }
    data.update(extra)
    return data

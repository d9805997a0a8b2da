"""펀치 서비스 테스트.

Time entry service tests — validated online create, per-session
serialization, partial updates, listing and statistics.
"""

import asyncio
import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tests.conftest import at, punch_payload
from timeclock.models.site import Site
from timeclock.models.time_entry import PointageStatus, PointageType, TimeEntry
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.services.time_entry_service import TimeEntryService, time_entry_service
from timeclock.utils.clock import ensure_utc
from timeclock.utils.exceptions import (
    InfrastructureError,
    NotFoundError,
    SequenceViolationError,
    StatusTransitionError,
    ValidationError,
)
from timeclock.utils.keyed_lock import KeyedLockRegistry

T = PointageType


class TestKeyedLockRegistry:
    """키 단위 락 테스트."""

    async def test_same_key_is_serialized(self):
        locks = KeyedLockRegistry()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold(("u", "s")):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    async def test_different_keys_run_concurrently(self):
        locks = KeyedLockRegistry()
        inside = asyncio.Event()

        async def first() -> None:
            async with locks.hold("k1"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def second() -> None:
            async with locks.hold("k2"):
                inside.set()

        await asyncio.gather(first(), second())

    async def test_registry_is_emptied(self):
        locks = KeyedLockRegistry()
        async with locks.hold("k"):
            assert len(locks) == 1
        assert len(locks) == 0

    async def test_released_on_error(self):
        locks = KeyedLockRegistry()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0


class TestCreateEntry:
    """온라인 펀치 생성 테스트."""

    async def test_create(self, db: AsyncSession, site, user_id, session_id, audit_events):
        entry = await time_entry_service.create_entry(
            db, punch_payload(site, user_id, session_id, T.CLOCK_IN, at(8), ip_address="10.0.0.7")
        )

        assert entry.pointage_status == PointageStatus.PENDING.value
        assert entry.created_offline is False
        assert entry.sync_attempts == 0
        assert entry.session_id == session_id
        assert ensure_utc(entry.clocked_at) == at(8)
        assert entry.ip_address == "10.0.0.7"
        assert audit_events[-1]["action"] == "time_entry.created"
        assert audit_events[-1]["after"]["pointage_status"] == "pending"

    async def test_unknown_fields_ignored(self, db: AsyncSession, site, user_id, session_id):
        """생성 시 상태/오프라인 필드는 클라이언트가 지정할 수 없음."""
        payload = punch_payload(
            site, user_id, session_id, T.CLOCK_IN, at(8), pointage_status="accepted", created_offline=True
        )
        entry = await time_entry_service.create_entry(db, payload)
        assert entry.pointage_status == PointageStatus.PENDING.value
        assert entry.created_offline is False

    async def test_validation_before_sequence(self, db: AsyncSession, site, user_id, session_id):
        """필드 검증이 순서 검사보다 먼저."""
        payload = punch_payload(site, user_id, session_id, T.CLOCK_OUT, at(8), latitude=-91.0)
        with pytest.raises(ValidationError) as exc_info:
            await time_entry_service.create_entry(db, payload)
        assert exc_info.value.fields == {"latitude"}

    async def test_sequence_violation_persists_nothing(self, db: AsyncSession, site, user_id, session_id):
        with pytest.raises(SequenceViolationError):
            await time_entry_service.create_entry(
                db, punch_payload(site, user_id, session_id, T.PAUSE_END, at(8))
            )
        assert await time_entry_repository.count(db) == 0

    async def test_storage_failure(self, db: AsyncSession, site, user_id, session_id):
        """저장 실패는 503, 락은 해제."""
        service = TimeEntryService(KeyedLockRegistry())
        failure = OperationalError("INSERT INTO time_entries", {}, Exception("connection lost"))

        with patch.object(time_entry_repository, "create", side_effect=failure):
            with pytest.raises(InfrastructureError):
                await service.create_entry(db, punch_payload(site, user_id, session_id, T.CLOCK_IN, at(8)))
        assert len(service.locks) == 0

    async def test_concurrent_clock_in_only_one_wins(self, engine: AsyncEngine, db: AsyncSession, site, user_id, session_id):
        """같은 세션의 동시 출근은 하나만 성공."""
        await db.commit()
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        service = TimeEntryService(KeyedLockRegistry())
        payload = punch_payload(site, user_id, session_id, T.CLOCK_IN, at(8))

        async def submit():
            async with factory() as session:
                return await service.create_entry(session, dict(payload))

        results = await asyncio.gather(submit(), submit(), return_exceptions=True)

        created = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]
        assert len(created) == 1
        assert len(failed) == 1 and isinstance(failed[0], SequenceViolationError)
        assert len(service.locks) == 0


class TestUpdateEntry:
    """부분 수정 테스트."""

    async def test_mutable_fields_only(self, db: AsyncSession, make_entry):
        entry = await make_entry(T.CLOCK_IN, at(8))
        updated = await time_entry_service.update_entry(
            db, entry.id, {"sync_attempts": 3, "latitude": 10.0, "pointage_type": "clock_out"}
        )
        assert updated.sync_attempts == 3
        assert updated.latitude == 4.05
        assert updated.pointage_type == T.CLOCK_IN.value

    async def test_invalid_status(self, db: AsyncSession, make_entry):
        entry = await make_entry(T.CLOCK_IN, at(8))
        with pytest.raises(ValidationError) as exc_info:
            await time_entry_service.update_entry(db, entry.id, {"pointage_status": "archived"})
        assert exc_info.value.fields == {"pointage_status"}

    async def test_illegal_transition(self, db: AsyncSession, make_entry):
        entry = await make_entry(T.CLOCK_IN, at(8), pointage_status=PointageStatus.ACCOUNTED.value)
        with pytest.raises(StatusTransitionError):
            await time_entry_service.update_entry(db, entry.id, {"pointage_status": "pending"})

    async def test_unknown_entry(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await time_entry_service.update_entry(db, uuid.uuid4(), {"sync_attempts": 1})


class TestQueries:
    """조회 및 통계 테스트."""

    async def test_list_session_entries(self, db: AsyncSession, make_entry, session_id):
        await make_entry(T.PAUSE_START, at(12))
        await make_entry(T.CLOCK_IN, at(8))
        await make_entry(T.CLOCK_IN, at(9), session_id=uuid.uuid4())

        entries = await time_entry_service.list_session_entries(db, session_id)
        assert [e.pointage_type for e in entries] == ["clock_in", "pause_start"]

    async def test_statistics_filtered_by_user(self, db: AsyncSession, make_entry, user_id):
        await make_entry(T.CLOCK_IN, at(8))
        await make_entry(T.CLOCK_IN, at(8), user_id=uuid.uuid4())

        stats = await time_entry_service.get_statistics(db, user_id=user_id)
        assert stats["total_entries"] == 1
        assert stats["by_type"] == {"clock_in": 1}

    async def test_build_response(self, make_entry):
        entry = await make_entry(T.CLOCK_IN, at(8))
        response = time_entry_service.build_response(entry)
        assert response["id"] == str(entry.id)
        assert response["clocked_at"] == at(8)
        assert response["memo_id"] is None


class TestSiteRemoval:
    """현장 삭제 시 펀치 보존 테스트."""

    async def test_site_with_entries_cannot_be_deleted(self, db: AsyncSession, make_entry, site):
        entry = await make_entry(T.CLOCK_IN, at(8))
        rejected = await make_entry(T.CLOCK_OUT, at(17), pointage_status=PointageStatus.REJECTED.value)

        with pytest.raises(IntegrityError):
            async with db.begin_nested():
                await db.execute(delete(Site).where(Site.id == site.id))

        assert await time_entry_repository.get_by_id(db, entry.id) is not None
        assert await time_entry_repository.get_by_id(db, rejected.id) is not None

    def test_site_foreign_key_restricts_delete(self):
        (fk,) = TimeEntry.__table__.c.site_id.foreign_keys
        assert fk.ondelete == "RESTRICT"

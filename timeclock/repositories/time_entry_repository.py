"""출퇴근 펀치 레포지토리 — 펀치 기록 관련 DB 쿼리 담당.

Time Entry Repository — Handles all punch related database queries:
session history, time-window lookups for duplicate and speed checks,
offline bookkeeping lookups, filtered listing and statistics.
REJECTED entries stay in the table but are excluded from every lookup
used for sequence and anomaly comparisons.
"""

from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.models.time_entry import PointageStatus, TimeEntry
from timeclock.repositories.base import BaseRepository


class TimeEntryRepository(BaseRepository[TimeEntry]):
    """펀치 기록 레포지토리.

    Time entry repository with session, window, and offline queries.

    Extends:
        BaseRepository[TimeEntry]
    """

    def __init__(self) -> None:
        """레포지토리를 초기화합니다.

        Initialize the time entry repository with TimeEntry model.
        """
        super().__init__(TimeEntry)

    @staticmethod
    def _not_rejected() -> Any:
        return TimeEntry.pointage_status != PointageStatus.REJECTED.value

    async def get_session_history(
        self,
        db: AsyncSession,
        session_id: UUID,
    ) -> Sequence[TimeEntry]:
        """세션의 유효 펀치를 시간순으로 조회합니다.

        Retrieve a session's non-rejected entries in session order
        (clocked_at, then server_received_at).

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            session_id: 근무 세션 UUID (Work session UUID)

        Returns:
            Sequence[TimeEntry]: 시간순 펀치 목록 (Entries in session order)
        """
        query: Select = (
            select(TimeEntry)
            .where(TimeEntry.session_id == session_id, self._not_rejected())
            .order_by(TimeEntry.clocked_at.asc(), TimeEntry.server_received_at.asc())
        )
        result = await db.execute(query)
        return result.scalars().all()

    async def get_in_window(
        self,
        db: AsyncSession,
        user_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> Sequence[TimeEntry]:
        """시간 범위(양끝 포함) 내 사용자의 유효 펀치를 조회합니다.

        Retrieve a user's non-rejected entries with clocked_at in [start, end].

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 사용자 UUID (User UUID)
            start: 범위 시작, 포함 (Window start, inclusive)
            end: 범위 종료, 포함 (Window end, inclusive)
            exclude_id: 제외할 펀치 UUID, 선택 (Entry to leave out, e.g. the candidate itself)

        Returns:
            Sequence[TimeEntry]: 범위 내 펀치 목록 (Entries inside the window)
        """
        query: Select = select(TimeEntry).where(
            TimeEntry.user_id == user_id,
            TimeEntry.clocked_at.between(start, end),
            self._not_rejected(),
        )
        if exclude_id is not None:
            query = query.where(TimeEntry.id != exclude_id)

        result = await db.execute(query.order_by(TimeEntry.clocked_at.asc()))
        return result.scalars().all()

    async def get_previous_entry(
        self,
        db: AsyncSession,
        user_id: UUID,
        before: datetime,
        exclude_id: UUID | None = None,
    ) -> TimeEntry | None:
        """기준 시각 직전의 유효 펀치를 조회합니다.

        Retrieve the user's most recent non-rejected entry strictly before
        the given time.
        """
        query: Select = select(TimeEntry).where(
            TimeEntry.user_id == user_id,
            TimeEntry.clocked_at < before,
            self._not_rejected(),
        )
        if exclude_id is not None:
            query = query.where(TimeEntry.id != exclude_id)

        query = query.order_by(TimeEntry.clocked_at.desc(), TimeEntry.server_received_at.desc()).limit(1)
        result = await db.execute(query)
        return result.scalars().first()

    async def get_received_since(
        self,
        db: AsyncSession,
        user_id: UUID,
        since: datetime,
    ) -> Sequence[TimeEntry]:
        """기준 시각 이후 수신된 사용자의 유효 펀치를 시간순으로 조회합니다.

        Retrieve a user's non-rejected entries received by the server at or
        after since, ordered by clocked_at.
        """
        query: Select = (
            select(TimeEntry)
            .where(
                TimeEntry.user_id == user_id,
                TimeEntry.server_received_at >= since,
                self._not_rejected(),
            )
            .order_by(TimeEntry.clocked_at.asc(), TimeEntry.server_received_at.asc())
        )
        result = await db.execute(query)
        return result.scalars().all()

    async def get_by_local_id(
        self,
        db: AsyncSession,
        user_id: UUID,
        local_id: str,
    ) -> TimeEntry | None:
        """사용자+로컬 ID로 펀치를 조회합니다 — Lookup by (user_id, local_id)."""
        return await self.get_one(db, {"user_id": user_id, "local_id": local_id})

    async def get_offline_drafts(
        self,
        db: AsyncSession,
        user_id: UUID,
    ) -> Sequence[TimeEntry]:
        """동기화 완료 처리되지 않은 오프라인 펀치 목록.

        Retrieve a user's offline entries still waiting to be marked as synced.
        """
        query: Select = (
            select(TimeEntry)
            .where(
                and_(
                    TimeEntry.user_id == user_id,
                    TimeEntry.created_offline.is_(True),
                    TimeEntry.pointage_status == PointageStatus.DRAFT.value,
                )
            )
            .order_by(TimeEntry.clocked_at.asc())
        )
        result = await db.execute(query)
        return result.scalars().all()

    def _filter_conditions(
        self,
        user_id: UUID | None = None,
        session_id: UUID | None = None,
        site_id: UUID | None = None,
        statuses: list[str] | None = None,
        pointage_type: str | None = None,
        created_offline: bool | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[Any]:
        conditions: list[Any] = []
        if user_id is not None:
            conditions.append(TimeEntry.user_id == user_id)
        if session_id is not None:
            conditions.append(TimeEntry.session_id == session_id)
        if site_id is not None:
            conditions.append(TimeEntry.site_id == site_id)
        if statuses:
            conditions.append(TimeEntry.pointage_status.in_(statuses))
        if pointage_type is not None:
            conditions.append(TimeEntry.pointage_type == pointage_type)
        if created_offline is not None:
            conditions.append(TimeEntry.created_offline.is_(created_offline))
        if date_from is not None:
            conditions.append(TimeEntry.clocked_at >= date_from)
        if date_to is not None:
            conditions.append(TimeEntry.clocked_at <= date_to)
        return conditions

    async def get_by_filters(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 50,
        **filters: Any,
    ) -> tuple[Sequence[TimeEntry], int]:
        """필터 조건에 맞는 펀치를 페이지네이션하여 조회합니다.

        Retrieve paginated entries matching the given filters, newest first.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            page: 페이지 번호, 1부터 시작 (Page number, 1-based)
            per_page: 페이지당 항목 수 (Items per page)
            **filters: user_id, session_id, site_id, statuses, pointage_type,
                created_offline, date_from, date_to

        Returns:
            tuple[Sequence[TimeEntry], int]: (펀치 목록, 전체 개수)
                                             (List of entries, total count)
        """
        query: Select = select(TimeEntry).where(*self._filter_conditions(**filters))
        query = query.order_by(TimeEntry.clocked_at.desc(), TimeEntry.server_received_at.desc())
        return await self.get_paginated(db, query, page, per_page)

    async def get_statistics(
        self,
        db: AsyncSession,
        **filters: Any,
    ) -> dict[str, Any]:
        """필터 범위 내 펀치 통계를 집계합니다.

        Aggregate counts over the filtered entries: total, offline, pending
        review, and breakdowns by type and by status.

        Returns:
            dict: total_entries, offline_entries, pending_validation, by_type, by_status
        """
        conditions: list[Any] = self._filter_conditions(**filters)

        total: int = (
            await db.execute(select(func.count(TimeEntry.id)).where(*conditions))
        ).scalar() or 0
        offline: int = (
            await db.execute(
                select(func.count(TimeEntry.id)).where(*conditions, TimeEntry.created_offline.is_(True))
            )
        ).scalar() or 0
        pending: int = (
            await db.execute(
                select(func.count(TimeEntry.id)).where(
                    *conditions, TimeEntry.pointage_status == PointageStatus.PENDING.value
                )
            )
        ).scalar() or 0

        by_type_rows = await db.execute(
            select(TimeEntry.pointage_type, func.count(TimeEntry.id))
            .where(*conditions)
            .group_by(TimeEntry.pointage_type)
        )
        by_status_rows = await db.execute(
            select(TimeEntry.pointage_status, func.count(TimeEntry.id))
            .where(*conditions)
            .group_by(TimeEntry.pointage_status)
        )

        return {
            "total_entries": total,
            "offline_entries": offline,
            "pending_validation": pending,
            "by_type": {row[0]: row[1] for row in by_type_rows.all()},
            "by_status": {row[0]: row[1] for row in by_status_rows.all()},
        }


# 싱글턴 인스턴스 — Singleton instance
time_entry_repository: TimeEntryRepository = TimeEntryRepository()

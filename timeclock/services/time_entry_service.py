"""펀치 기록 서비스 — 검증된 생성/수정, 조회, 통계, 삭제.

Time entry service. Online punches go through field validation, then the
session sequence check, then the insert; the per-(user, session) lock is
held until the row is committed so two concurrent punches for one session
cannot both pass the sequence check.
"""

import secrets
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.models.time_entry import PointageStatus, TimeEntry
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.services.audit_service import audit_service
from timeclock.services.correction_service import STATUS_TRANSITIONS, can_change_status, snapshot
from timeclock.services.sequence_service import sequence_service
from timeclock.services.sync_service import is_sync_exhausted
from timeclock.services.validation_service import ensure_valid
from timeclock.utils.clock import ensure_utc, utc_now
from timeclock.utils.exceptions import InfrastructureError, NotFoundError, StatusTransitionError
from timeclock.utils.keyed_lock import KeyedLockRegistry

# 온라인 생성 시 받는 필드 — Fields accepted on online create
CREATE_FIELDS: tuple[str, ...] = (
    "session_id",
    "user_id",
    "site_id",
    "pointage_type",
    "clocked_at",
    "latitude",
    "longitude",
    "gps_accuracy",
    "device_info",
    "ip_address",
    "user_agent",
    "memo_id",
)

# 생성 후 수정 가능한 필드 — Fields mutable after creation
MUTABLE_FIELDS: tuple[str, ...] = (
    "pointage_status",
    "real_clocked_at",
    "sync_attempts",
    "last_sync_attempt",
    "memo_id",
    "correction_reason",
)


class TimeEntryService:
    """펀치 기록 서비스.

    Validated create/update plus listing, statistics and trash.

    Attributes:
        locks: (사용자, 세션) 단위 락 레지스트리 (Per-(user, session) lock registry)
    """

    def __init__(self, locks: KeyedLockRegistry | None = None) -> None:
        self.locks: KeyedLockRegistry = locks or KeyedLockRegistry()

    async def create_entry(
        self,
        db: AsyncSession,
        data: dict[str, Any],
    ) -> TimeEntry:
        """온라인 펀치를 생성합니다.

        Create an online punch. The entry is committed before the session
        lock is released.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            data: 펀치 데이터 (Punch payload)

        Returns:
            TimeEntry: 생성된 펀치 (Created entry, status pending)

        Raises:
            ValidationError: 필드 검증 실패 (422)
            SequenceViolationError: 순서 규칙 위반 (409)
            InfrastructureError: 저장 실패 (503)
        """
        values: dict[str, Any] = ensure_valid({k: data[k] for k in CREATE_FIELDS if k in data})

        # TODO: 다중 워커 배포 시 pg_advisory_xact_lock으로 교체 (the lock is per process)
        async with self.locks.hold((values["user_id"], values["session_id"])):
            await sequence_service.validate_sequence(db, values["session_id"], values["pointage_type"])

            values.update(
                guid=secrets.token_hex(16),
                pointage_status=PointageStatus.PENDING.value,
                created_offline=False,
                server_received_at=utc_now(),
                sync_attempts=0,
            )
            try:
                entry: TimeEntry = await time_entry_repository.create(db, values)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                raise InfrastructureError(
                    f"펀치 저장 실패 (Failed to persist time entry: {type(exc).__name__})"
                ) from exc

        audit_service.emit("time_entry.created", entry.id, actor_id=entry.user_id, after=snapshot(entry))
        return entry

    async def get_entry(self, db: AsyncSession, entry_id: UUID) -> TimeEntry:
        """펀치 단건 조회 — Raises NotFoundError when missing."""
        entry: TimeEntry | None = await time_entry_repository.get_by_id(db, entry_id)
        if entry is None:
            raise NotFoundError("펀치 기록을 찾을 수 없습니다 (Time entry not found)")
        return entry

    async def update_entry(
        self,
        db: AsyncSession,
        entry_id: UUID,
        data: dict[str, Any],
    ) -> TimeEntry:
        """펀치의 변경 가능한 필드를 부분 수정합니다.

        Partially update the mutable fields. Fields outside MUTABLE_FIELDS
        are ignored; the status/reason pair is validated on the merged state.

        Raises:
            NotFoundError: 펀치가 없을 때 (404)
            ValidationError: 검증 실패 (422)
            InfrastructureError: 저장 실패 (503)
        """
        entry: TimeEntry = await self.get_entry(db, entry_id)
        changes: dict[str, Any] = {k: v for k, v in data.items() if k in MUTABLE_FIELDS}
        new_status: Any = changes.get("pointage_status")
        if (
            new_status in STATUS_TRANSITIONS
            and new_status != entry.pointage_status
            and not can_change_status(entry.pointage_status, new_status)
        ):
            raise StatusTransitionError(
                f"{entry.pointage_status} 상태에서 {new_status}(으)로 변경할 수 없습니다 "
                f"(Cannot move entry from {entry.pointage_status} to {new_status})"
            )

        # 상태와 사유는 함께 검증 — Status and reason are checked together
        payload: dict[str, Any] = dict(changes)
        payload.setdefault("pointage_status", entry.pointage_status)
        payload.setdefault("correction_reason", entry.correction_reason)
        coerced: dict[str, Any] = ensure_valid(payload, partial=True)
        update_data: dict[str, Any] = {k: coerced[k] for k in changes}

        before: dict[str, Any] = snapshot(entry)
        try:
            updated: TimeEntry | None = await time_entry_repository.update(db, entry_id, update_data)
        except SQLAlchemyError as exc:
            raise InfrastructureError(
                f"펀치 저장 실패 (Failed to persist time entry: {type(exc).__name__})"
            ) from exc

        audit_service.emit("time_entry.updated", updated.id, before=before, after=snapshot(updated))
        return updated

    async def list_entries(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 50,
        **filters: Any,
    ) -> tuple[Sequence[TimeEntry], int]:
        """필터링된 펀치 목록 — Paginated, newest first."""
        return await time_entry_repository.get_by_filters(db, page=page, per_page=per_page, **filters)

    async def list_session_entries(self, db: AsyncSession, session_id: UUID) -> Sequence[TimeEntry]:
        return await time_entry_repository.get_session_history(db, session_id)

    async def get_statistics(self, db: AsyncSession, **filters: Any) -> dict[str, Any]:
        """펀치 통계 — total, offline, pending review, by type and by status."""
        return await time_entry_repository.get_statistics(db, **filters)

    async def trash_entry(self, db: AsyncSession, entry_id: UUID, actor_id: UUID | None = None) -> None:
        """펀치를 영구 삭제합니다.

        Permanently delete an entry. This is the only removal path.

        Raises:
            NotFoundError: 펀치가 없을 때 (404)
        """
        entry: TimeEntry = await self.get_entry(db, entry_id)
        before: dict[str, Any] = snapshot(entry)
        await time_entry_repository.delete(db, entry_id)
        audit_service.emit("time_entry.trashed", entry_id, actor_id=actor_id, before=before)

    def build_response(self, entry: TimeEntry) -> dict[str, Any]:
        """펀치를 응답 딕셔너리로 변환합니다.

        Build the response dict for a time entry. Timestamps are returned as
        aware UTC datetimes.
        """
        return {
            "id": str(entry.id),
            "guid": entry.guid,
            "session_id": str(entry.session_id),
            "user_id": str(entry.user_id),
            "site_id": str(entry.site_id),
            "pointage_type": entry.pointage_type,
            "pointage_status": entry.pointage_status,
            "clocked_at": ensure_utc(entry.clocked_at),
            "real_clocked_at": ensure_utc(entry.real_clocked_at),
            "server_received_at": ensure_utc(entry.server_received_at),
            "latitude": entry.latitude,
            "longitude": entry.longitude,
            "gps_accuracy": entry.gps_accuracy,
            "real_latitude": entry.real_latitude,
            "real_longitude": entry.real_longitude,
            "real_gps_accuracy": entry.real_gps_accuracy,
            "real_site_id": str(entry.real_site_id) if entry.real_site_id else None,
            "device_info": entry.device_info,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "created_offline": entry.created_offline,
            "local_id": entry.local_id,
            "sync_attempts": entry.sync_attempts,
            "sync_exhausted": is_sync_exhausted(entry),
            "last_sync_attempt": ensure_utc(entry.last_sync_attempt),
            "memo_id": str(entry.memo_id) if entry.memo_id else None,
            "correction_reason": entry.correction_reason,
            "corrected_by": str(entry.corrected_by) if entry.corrected_by else None,
            "corrected_at": ensure_utc(entry.corrected_at),
            "updated_at": ensure_utc(entry.updated_at),
        }


# 싱글턴 인스턴스 — Singleton instance
time_entry_service: TimeEntryService = TimeEntryService()

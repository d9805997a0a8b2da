"""오프라인 일괄 동기화 서비스.

Offline batch synchronization. Punches recorded without connectivity are
uploaded in batches keyed by the client's local_id. Each item is handled
on its own: the batch never aborts, an already-known local_id is reported
as a conflict instead of being overwritten, and resubmitting a batch is
safe.
"""

import secrets
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.config import settings
from timeclock.models.time_entry import PointageStatus, TimeEntry
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.services.audit_service import audit_service
from timeclock.services.validation_service import FieldViolation, coerce_time_entry, validate_time_entry
from timeclock.utils.clock import utc_now
from timeclock.utils.exceptions import InfrastructureError, NotFoundError, ValidationError

# 항목 처리 결과 — Per-item outcomes
SUCCESS: str = "success"
CONFLICT: str = "conflict"
ERROR: str = "error"

# 클라이언트가 보낼 수 있는 필드 — Fields a client may send per item
SYNC_FIELDS: tuple[str, ...] = (
    "local_id",
    "session_id",
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


@dataclass
class SyncItemResult:
    """항목별 동기화 결과 — Outcome of one batch item."""

    local_id: str | None
    status: str
    detail: Any = None
    entry_id: UUID | None = None
    existing_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"local_id": self.local_id, "status": self.status, "detail": self.detail}
        if self.entry_id is not None:
            result["entry_id"] = str(self.entry_id)
        if self.existing_id is not None:
            result["existing_id"] = str(self.existing_id)
        return result


@dataclass
class SyncReport:
    """일괄 동기화 보고서 — Batch outcome; success + errors + conflicts == processed."""

    processed: int = 0
    success: int = 0
    errors: int = 0
    conflicts: int = 0
    results: list[SyncItemResult] = field(default_factory=list)

    def add(self, item: SyncItemResult) -> None:
        self.processed += 1
        if item.status == SUCCESS:
            self.success += 1
        elif item.status == CONFLICT:
            self.conflicts += 1
        else:
            self.errors += 1
        self.results.append(item)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "success": self.success,
            "errors": self.errors,
            "conflicts": self.conflicts,
            "results": [r.to_dict() for r in self.results],
        }


def is_sync_exhausted(entry: TimeEntry) -> bool:
    """재시도 상한 도달 여부 — Whether the client should stop retrying this entry."""
    return (entry.sync_attempts or 0) >= settings.MAX_SYNC_ATTEMPTS


class SyncService:
    """오프라인 동기화 서비스.

    Offline batch ingestion and sync bookkeeping.
    """

    async def sync(
        self,
        db: AsyncSession,
        user_id: UUID,
        items: Sequence[Any],
    ) -> SyncReport:
        """오프라인 펀치 묶음을 순서대로 처리합니다.

        Process offline items one by one. Each insert runs inside a SAVEPOINT
        so one failing item never undoes the others; the caller commits.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 업로드한 사용자 UUID (Uploading user)
            items: 오프라인 펀치 목록 (Offline items, each with a local_id)

        Returns:
            SyncReport: 처리 결과 (Counts and per-item results)
        """
        report = SyncReport()
        for raw in items:
            report.add(await self._sync_item(db, user_id, raw))
        return report

    async def _sync_item(self, db: AsyncSession, user_id: UUID, raw: Any) -> SyncItemResult:
        if not isinstance(raw, dict):
            return SyncItemResult(local_id=None, status=ERROR, detail="item must be a JSON object")

        local_id: Any = raw.get("local_id")
        if local_id is None or (isinstance(local_id, str) and not local_id.strip()):
            return SyncItemResult(local_id=None, status=ERROR, detail="local_id is required")

        # 동일 로컬 ID는 덮어쓰지 않음 — Never overwrite a known local id
        if isinstance(local_id, str):
            existing: TimeEntry | None = await time_entry_repository.get_by_local_id(db, user_id, local_id)
            if existing is not None:
                return SyncItemResult(
                    local_id=local_id, status=CONFLICT, detail="Entry already exists", existing_id=existing.id
                )

        data: dict[str, Any] = {k: raw[k] for k in SYNC_FIELDS if raw.get(k) is not None}
        data["user_id"] = user_id
        violations: list[FieldViolation] = validate_time_entry(data)
        if violations:
            return SyncItemResult(local_id=local_id, status=ERROR, detail=[v.to_dict() for v in violations])

        now = utc_now()
        values: dict[str, Any] = coerce_time_entry(data)
        values.update(
            guid=secrets.token_hex(16),
            pointage_status=PointageStatus.DRAFT.value,
            created_offline=True,
            server_received_at=now,
            last_sync_attempt=now,
            sync_attempts=0,
        )

        try:
            async with db.begin_nested():
                entry: TimeEntry = await time_entry_repository.create(db, values)
        except IntegrityError as exc:
            # 동시 중복 전송만 충돌 — Only a concurrent delivery of the same local id is a conflict
            existing = await time_entry_repository.get_by_local_id(db, user_id, local_id)
            if existing is not None:
                return SyncItemResult(
                    local_id=local_id, status=CONFLICT, detail="Entry already exists", existing_id=existing.id
                )
            return SyncItemResult(local_id=local_id, status=ERROR, detail=f"{type(exc).__name__}: {str(exc)[:300]}")
        except SQLAlchemyError as exc:
            return SyncItemResult(local_id=local_id, status=ERROR, detail=f"{type(exc).__name__}: {str(exc)[:300]}")

        audit_service.emit("time_entry.synced", entry.id, actor_id=user_id, after={"local_id": local_id})
        return SyncItemResult(local_id=local_id, status=SUCCESS, entry_id=entry.id)

    async def _get_entry(self, db: AsyncSession, entry_id: UUID) -> TimeEntry:
        entry: TimeEntry | None = await time_entry_repository.get_by_id(db, entry_id)
        if entry is None:
            raise NotFoundError("펀치 기록을 찾을 수 없습니다 (Time entry not found)")
        return entry

    async def mark_entry_as_synced(self, db: AsyncSession, entry_id: UUID) -> TimeEntry:
        """오프라인 펀치를 동기화 완료로 표시합니다.

        Clear the offline flag, reset the retry counter and move a draft
        entry to pending review. Calling it again changes nothing.

        Raises:
            NotFoundError: 펀치가 없을 때 (Unknown entry, 404)
            InfrastructureError: 저장 실패 시 (Persistence failure, 503)
        """
        entry: TimeEntry = await self._get_entry(db, entry_id)
        update_data: dict[str, Any] = {"created_offline": False, "sync_attempts": 0}
        if entry.pointage_status == PointageStatus.DRAFT.value:
            update_data["pointage_status"] = PointageStatus.PENDING.value

        try:
            return await time_entry_repository.update(db, entry_id, update_data)
        except SQLAlchemyError as exc:
            raise InfrastructureError(f"동기화 상태 저장 실패 (Failed to mark entry as synced: {type(exc).__name__})") from exc

    async def update_sync_status(
        self,
        db: AsyncSession,
        entry_id: UUID,
        attempts: int | None = None,
    ) -> TimeEntry:
        """동기화 시도 횟수와 시각을 기록합니다.

        Record a sync attempt: the counter becomes attempts, or the previous
        value plus one, and last_sync_attempt becomes now.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            entry_id: 펀치 UUID (Entry UUID)
            attempts: 지정할 시도 횟수, 선택 (Explicit counter value)

        Raises:
            ValidationError: 상한 초과 시 (Counter above MAX_SYNC_ATTEMPTS, 422)
            NotFoundError: 펀치가 없을 때 (Unknown entry, 404)
        """
        entry: TimeEntry = await self._get_entry(db, entry_id)
        new_value: int = attempts if attempts is not None else (entry.sync_attempts or 0) + 1
        violations: list[FieldViolation] = validate_time_entry({"sync_attempts": new_value}, partial=True)
        if violations:
            raise ValidationError(violations)

        try:
            return await time_entry_repository.update(
                db, entry_id, {"sync_attempts": new_value, "last_sync_attempt": utc_now()}
            )
        except SQLAlchemyError as exc:
            raise InfrastructureError(f"동기화 상태 저장 실패 (Failed to update sync status: {type(exc).__name__})") from exc

    async def find_offline_entries(self, db: AsyncSession, user_id: UUID) -> Sequence[TimeEntry]:
        """동기화 완료 전 오프라인 펀치 목록 — Offline entries still in draft."""
        return await time_entry_repository.get_offline_drafts(db, user_id)


# 싱글턴 인스턴스 — Singleton instance
sync_service: SyncService = SyncService()

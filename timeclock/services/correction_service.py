"""관리자 수정/반려/승인 서비스.

Administrative review of punches: correction, rejection and approval.
A correction never overwrites what the worker submitted: the corrected
time is stored in real_clocked_at and a corrected location in the
real_latitude, real_longitude, real_gps_accuracy and real_site_id
columns. Every change is validated against the resulting state before it
is written and is emitted as an audit event with before/after values.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.models.time_entry import PointageStatus, TimeEntry
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.services.audit_service import audit_service
from timeclock.services.validation_service import FieldViolation, coerce_time_entry, ensure_valid
from timeclock.utils.clock import ensure_utc, utc_now
from timeclock.utils.exceptions import InfrastructureError, NotFoundError, StatusTransitionError, ValidationError

# 상태 전이 표 — Allowed review status changes
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    PointageStatus.DRAFT.value: frozenset(
        {PointageStatus.PENDING.value, PointageStatus.REJECTED.value, PointageStatus.CORRECTED.value}
    ),
    PointageStatus.PENDING.value: frozenset(
        {PointageStatus.ACCEPTED.value, PointageStatus.CORRECTED.value, PointageStatus.REJECTED.value}
    ),
    PointageStatus.ACCEPTED.value: frozenset(
        {PointageStatus.CORRECTED.value, PointageStatus.ACCOUNTED.value}
    ),
    PointageStatus.CORRECTED.value: frozenset(
        {PointageStatus.ACCEPTED.value, PointageStatus.REJECTED.value, PointageStatus.CORRECTED.value}
    ),
    # 급여 반영 후 변경 불가 — Accounted entries are final
    PointageStatus.ACCOUNTED.value: frozenset(),
    PointageStatus.REJECTED.value: frozenset({PointageStatus.PENDING.value}),
}

# 관리자가 수정할 수 있는 필드 — Fields an administrator may override
CORRECTABLE_FIELDS: frozenset[str] = frozenset(
    {"clocked_at", "real_clocked_at", "latitude", "longitude", "gps_accuracy", "site_id", "memo_id"}
)

# 위치 수정 대상 컬럼 — Corrected location values go to their own columns
LOCATION_CORRECTIONS: dict[str, str] = {
    "latitude": "real_latitude",
    "longitude": "real_longitude",
    "gps_accuracy": "real_gps_accuracy",
    "site_id": "real_site_id",
}

# 감사 이벤트에 기록할 필드 — Fields captured in audit before/after values
AUDITED_FIELDS: tuple[str, ...] = (
    "pointage_status",
    "clocked_at",
    "real_clocked_at",
    "latitude",
    "longitude",
    "gps_accuracy",
    "site_id",
    "real_latitude",
    "real_longitude",
    "real_gps_accuracy",
    "real_site_id",
    "memo_id",
    "correction_reason",
)


def can_change_status(current: str, target: str) -> bool:
    """상태 전이 허용 여부 — Whether current may move to target."""
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def get_original_values(entry: TimeEntry) -> dict[str, Any]:
    """작업자가 제출한 원래 값 — The worker's submitted values, untouched by corrections."""
    return {
        "clocked_at": ensure_utc(entry.clocked_at),
        "latitude": entry.latitude,
        "longitude": entry.longitude,
        "gps_accuracy": entry.gps_accuracy,
        "site_id": entry.site_id,
        "pointage_type": entry.pointage_type,
    }


def snapshot(entry: TimeEntry) -> dict[str, Any]:
    values: dict[str, Any] = {f: getattr(entry, f) for f in AUDITED_FIELDS}
    for key in ("clocked_at", "real_clocked_at"):
        values[key] = ensure_utc(values[key])
    return values


def entry_state(entry: TimeEntry) -> dict[str, Any]:
    """검증용 현재 상태 딕셔너리 — Current entry state as a validator payload."""
    return {
        "session_id": entry.session_id,
        "user_id": entry.user_id,
        "site_id": entry.site_id,
        "pointage_type": entry.pointage_type,
        "pointage_status": entry.pointage_status,
        "clocked_at": ensure_utc(entry.clocked_at),
        "real_clocked_at": ensure_utc(entry.real_clocked_at),
        "latitude": entry.latitude,
        "longitude": entry.longitude,
        "gps_accuracy": entry.gps_accuracy,
        "memo_id": entry.memo_id,
        "correction_reason": entry.correction_reason,
    }


class CorrectionService:
    """관리자 검토 서비스.

    Correction, rejection, approval and bulk status changes of punches.
    """

    async def _get_entry(self, db: AsyncSession, entry_id: UUID) -> TimeEntry:
        entry: TimeEntry | None = await time_entry_repository.get_by_id(db, entry_id)
        if entry is None:
            raise NotFoundError("펀치 기록을 찾을 수 없습니다 (Time entry not found)")
        return entry

    def _check_transition(self, entry: TimeEntry, target: str) -> None:
        if not can_change_status(entry.pointage_status, target):
            raise StatusTransitionError(
                f"{entry.pointage_status} 상태에서 {target}(으)로 변경할 수 없습니다 "
                f"(Cannot move entry from {entry.pointage_status} to {target})"
            )

    async def _write(
        self,
        db: AsyncSession,
        entry: TimeEntry,
        update_data: dict[str, Any],
    ) -> TimeEntry:
        try:
            updated: TimeEntry | None = await time_entry_repository.update(db, entry.id, update_data)
        except SQLAlchemyError as exc:
            raise InfrastructureError(
                f"펀치 저장 실패 (Failed to persist time entry: {type(exc).__name__})"
            ) from exc
        if updated is None:
            raise NotFoundError("펀치 기록을 찾을 수 없습니다 (Time entry not found)")
        return updated

    async def apply_correction(
        self,
        db: AsyncSession,
        entry_id: UUID,
        corrections: dict[str, Any],
        corrected_by: UUID,
        reason: str | None,
    ) -> TimeEntry:
        """관리자 수정을 적용합니다.

        Apply an administrator correction. Status becomes CORRECTED; a new
        clocked_at or location is written to the real_* columns and the
        original claim is kept. The merged state is validated before
        anything is written.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            entry_id: 펀치 UUID (Entry UUID)
            corrections: 수정 값 (Overrides; keys outside CORRECTABLE_FIELDS are ignored)
            corrected_by: 수정자 UUID (Administrator UUID)
            reason: 수정 사유 (Required correction reason)

        Returns:
            TimeEntry: 수정된 펀치 (Updated entry)

        Raises:
            NotFoundError: 펀치가 없을 때 (404)
            StatusTransitionError: 수정 불가 상태일 때 (e.g. accounted, 409)
            ValidationError: 수정 결과가 유효하지 않을 때 (422)
            InfrastructureError: 저장 실패 시 (503)
        """
        entry: TimeEntry = await self._get_entry(db, entry_id)
        self._check_transition(entry, PointageStatus.CORRECTED.value)

        overrides: dict[str, Any] = {
            k: v for k, v in corrections.items() if k in CORRECTABLE_FIELDS and v is not None
        }
        # 작업자 주장 시각은 보존 — The claimed time is never overwritten
        if "clocked_at" in overrides:
            overrides["real_clocked_at"] = overrides.pop("clocked_at")

        merged: dict[str, Any] = entry_state(entry)
        merged.update(overrides)
        merged["pointage_status"] = PointageStatus.CORRECTED.value
        merged["correction_reason"] = reason
        merged["corrected_by"] = corrected_by
        ensure_valid(merged)

        before: dict[str, Any] = snapshot(entry)
        update_data: dict[str, Any] = coerce_time_entry(
            {
                **overrides,
                "pointage_status": PointageStatus.CORRECTED.value,
                "correction_reason": reason.strip(),
                "corrected_by": corrected_by,
            }
        )
        # 제출 위치는 보존 — The submitted location is never overwritten
        for field, column in LOCATION_CORRECTIONS.items():
            if field in update_data:
                update_data[column] = update_data.pop(field)
        update_data["corrected_at"] = utc_now()

        updated: TimeEntry = await self._write(db, entry, update_data)
        audit_service.emit(
            "time_entry.corrected",
            updated.id,
            actor_id=corrected_by,
            before=before,
            after=snapshot(updated),
            reason=updated.correction_reason,
        )
        return updated

    async def reject_entry(
        self,
        db: AsyncSession,
        entry_id: UUID,
        reason: str | None,
        rejected_by: UUID | None = None,
    ) -> TimeEntry:
        """펀치를 반려합니다.

        Reject an entry. The reason is validated before any state change;
        rejected entries stay stored but are ignored by anomaly checks.

        Raises:
            ValidationError: 사유가 비었거나 너무 길 때 (422)
            StatusTransitionError: 반려 불가 상태일 때 (409)
        """
        ensure_valid(
            {"pointage_status": PointageStatus.REJECTED.value, "correction_reason": reason},
            partial=True,
        )
        entry: TimeEntry = await self._get_entry(db, entry_id)
        self._check_transition(entry, PointageStatus.REJECTED.value)

        before: dict[str, Any] = snapshot(entry)
        updated: TimeEntry = await self._write(
            db,
            entry,
            {"pointage_status": PointageStatus.REJECTED.value, "correction_reason": reason.strip()},
        )
        audit_service.emit(
            "time_entry.rejected",
            updated.id,
            actor_id=rejected_by,
            before=before,
            after=snapshot(updated),
            reason=updated.correction_reason,
        )
        return updated

    async def approve_entry(
        self,
        db: AsyncSession,
        entry_id: UUID,
        approved_by: UUID | None = None,
    ) -> TimeEntry:
        """펀치를 승인합니다 — Move an entry to ACCEPTED."""
        entry: TimeEntry = await self._get_entry(db, entry_id)
        self._check_transition(entry, PointageStatus.ACCEPTED.value)

        before: dict[str, Any] = snapshot(entry)
        updated: TimeEntry = await self._write(db, entry, {"pointage_status": PointageStatus.ACCEPTED.value})
        audit_service.emit(
            "time_entry.approved", updated.id, actor_id=approved_by, before=before, after=snapshot(updated)
        )
        return updated

    async def bulk_update_status(
        self,
        db: AsyncSession,
        entry_ids: list[UUID],
        status: str,
        changed_by: UUID | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """여러 펀치의 상태를 한 번에 변경합니다.

        Move several entries to one status. Each entry goes through the same
        transition table as a single change; unknown entries and illegal
        transitions are skipped and reported, the others are updated.
        Corrections carry overrides and are not available in bulk.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            entry_ids: 대상 펀치 UUID 목록 (Entries to change; repeats are ignored)
            status: 목표 상태 (Target status)
            changed_by: 변경자 UUID, 선택 (Acting administrator)
            reason: 사유, 반려 시 필수 (Reason, required for rejected)

        Returns:
            dict: 변경/건너뜀 결과 (updated count, updated_ids, skipped entries)

        Raises:
            ValidationError: 상태나 사유가 유효하지 않을 때 (422)
            InfrastructureError: 저장 실패 시 (503)
        """
        ensure_valid({"pointage_status": status, "correction_reason": reason}, partial=True)
        if status == PointageStatus.CORRECTED.value:
            raise ValidationError(
                [
                    FieldViolation(
                        "pointage_status",
                        "invalid_choice",
                        "corrected entries must go through the correction endpoint",
                    )
                ]
            )

        updated_ids: list[str] = []
        skipped: list[dict[str, str]] = []
        for entry_id in dict.fromkeys(entry_ids):
            entry: TimeEntry | None = await time_entry_repository.get_by_id(db, entry_id)
            if entry is None:
                skipped.append({"entry_id": str(entry_id), "reason": "not_found"})
                continue
            if not can_change_status(entry.pointage_status, status):
                skipped.append({"entry_id": str(entry_id), "reason": f"invalid_transition:{entry.pointage_status}"})
                continue

            before: dict[str, Any] = snapshot(entry)
            update_data: dict[str, Any] = {"pointage_status": status}
            if reason is not None and reason.strip():
                update_data["correction_reason"] = reason.strip()
            updated: TimeEntry = await self._write(db, entry, update_data)
            audit_service.emit(
                "time_entry.status_changed",
                updated.id,
                actor_id=changed_by,
                before=before,
                after=snapshot(updated),
                reason=update_data.get("correction_reason"),
            )
            updated_ids.append(str(updated.id))

        return {"updated": len(updated_ids), "updated_ids": updated_ids, "skipped": skipped}


# 싱글턴 인스턴스 — Singleton instance
correction_service: CorrectionService = CorrectionService()

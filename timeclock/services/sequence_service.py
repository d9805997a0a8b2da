"""펀치 순서 검증 서비스 — 세션 내 펀치 상태 머신.

Sequence validation for punches inside one work session. The legal
transitions live in the static TRANSITIONS table keyed by the session's
last punch type (None for an empty session).
"""

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.models.time_entry import PointageStatus, PointageType
from timeclock.repositories.time_entry_repository import time_entry_repository
from timeclock.utils.exceptions import SequenceViolationError

# 상태 전이 표 — Legal next punch types per last punch type
TRANSITIONS: dict[PointageType | None, frozenset[PointageType]] = {
    None: frozenset({PointageType.CLOCK_IN}),
    PointageType.CLOCK_IN: frozenset(
        {PointageType.PAUSE_START, PointageType.CLOCK_OUT, PointageType.EXTERNAL_MISSION}
    ),
    PointageType.PAUSE_START: frozenset({PointageType.PAUSE_END}),
    PointageType.PAUSE_END: frozenset(
        {PointageType.PAUSE_START, PointageType.CLOCK_OUT, PointageType.EXTERNAL_MISSION}
    ),
    PointageType.EXTERNAL_MISSION: frozenset({PointageType.CLOCK_OUT}),
    # 퇴근 후 세션 종료 — Clock-out closes the session
    PointageType.CLOCK_OUT: frozenset(),
}


def _type_of(item: Any) -> PointageType:
    value = getattr(item, "pointage_type", item)
    return PointageType(value)


def _is_void(item: Any) -> bool:
    return getattr(item, "pointage_status", None) == PointageStatus.REJECTED.value


def last_type(prior_entries: Iterable[Any]) -> PointageType | None:
    """세션의 마지막 유효 펀치 유형.

    Type of the last non-rejected entry, or None for an empty session.
    prior_entries must already be in session order and may hold entries or
    bare punch types.
    """
    last: PointageType | None = None
    for item in prior_entries:
        if not _is_void(item):
            last = _type_of(item)
    return last


def can_transition(prior_entries: Iterable[Any], proposed: PointageType | str) -> bool:
    """제안된 펀치가 세션 기록 뒤에 올 수 있는지 판정합니다.

    Whether proposed is legal after the session's prior entries.

    Args:
        prior_entries: 세션 순서의 이전 펀치 (Prior entries in session order)
        proposed: 제안 펀치 유형 (Proposed punch type)

    Returns:
        bool: 허용 여부 (True when the transition is legal)
    """
    return PointageType(proposed) in TRANSITIONS[last_type(prior_entries)]


def can_clock_out(prior_entries: Iterable[Any]) -> bool:
    """퇴근 가능 여부 — False for an empty session or an open pause."""
    last = last_type(prior_entries)
    return last is not None and last != PointageType.PAUSE_START


class SequenceService:
    """펀치 순서 검증 서비스.

    Loads session history from the store and applies the transition table.
    """

    async def get_session_history(self, db: AsyncSession, session_id: UUID) -> list[Any]:
        return list(await time_entry_repository.get_session_history(db, session_id))

    async def validate_sequence(
        self,
        db: AsyncSession,
        session_id: UUID,
        proposed: PointageType | str,
    ) -> None:
        """세션에 제안 펀치를 추가할 수 있는지 검증합니다.

        Check that proposed may follow the session's current history.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            session_id: 근무 세션 UUID (Work session UUID)
            proposed: 제안 펀치 유형 (Proposed punch type)

        Raises:
            SequenceViolationError: 허용되지 않는 순서일 때 (Illegal transition, 409)
        """
        history = await self.get_session_history(db, session_id)
        if can_transition(history, proposed):
            return

        proposed_type = PointageType(proposed)
        last = last_type(history)
        if last is None:
            raise SequenceViolationError(
                f"세션의 첫 펀치는 출근이어야 합니다 (A session must start with clock_in, got {proposed_type.value})"
            )
        allowed = ", ".join(sorted(t.value for t in TRANSITIONS[last])) or "none"
        raise SequenceViolationError(
            f"{last.value} 다음에 {proposed_type.value}을(를) 기록할 수 없습니다 "
            f"({proposed_type.value} cannot follow {last.value}; allowed: {allowed})"
        )

    async def can_session_clock_out(self, db: AsyncSession, session_id: UUID) -> bool:
        """세션이 지금 퇴근할 수 있는지 확인합니다 — Whether the session may clock out now."""
        return can_clock_out(await self.get_session_history(db, session_id))


# 싱글턴 인스턴스 — Singleton instance
sequence_service: SequenceService = SequenceService()

"""펀치 순서 검증 테스트.

Sequence validator tests — transition table, clock-out check, and
session history loading through the repository.
"""

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import at
from timeclock.models.time_entry import PointageStatus, PointageType
from timeclock.services.sequence_service import (
    TRANSITIONS,
    can_clock_out,
    can_transition,
    last_type,
    sequence_service,
)
from timeclock.utils.exceptions import SequenceViolationError

T = PointageType

# 허용 직전 유형 표 — Legal predecessors per proposed type
LEGAL_PREDECESSORS = {
    T.CLOCK_IN: {None},
    T.PAUSE_START: {T.CLOCK_IN, T.PAUSE_END},
    T.PAUSE_END: {T.PAUSE_START},
    T.CLOCK_OUT: {T.CLOCK_IN, T.PAUSE_END, T.EXTERNAL_MISSION},
    T.EXTERNAL_MISSION: {T.CLOCK_IN, T.PAUSE_END},
}


def history(*types: PointageType) -> list[SimpleNamespace]:
    return [SimpleNamespace(pointage_type=t.value, pointage_status="pending") for t in types]


class TestTransitionTable:
    """상태 전이 표 테스트."""

    def test_table_covers_every_state(self):
        """모든 상태(빈 세션 포함)가 표에 존재."""
        assert set(TRANSITIONS) == {None, *PointageType}

    @pytest.mark.parametrize("last", [None, *PointageType])
    @pytest.mark.parametrize("proposed", list(PointageType))
    def test_exhaustive(self, last, proposed):
        """모든 (직전, 제안) 조합이 허용 표와 일치."""
        prior = history(last) if last is not None else []
        expected = last in LEGAL_PREDECESSORS[proposed]
        assert can_transition(prior, proposed) is expected

    def test_clock_in_only_on_empty_session(self):
        """출근은 빈 세션에서만 허용."""
        assert can_transition([], T.CLOCK_IN) is True
        for t in PointageType:
            assert can_transition(history(t), T.CLOCK_IN) is False

    def test_clock_out_is_terminal(self):
        assert TRANSITIONS[T.CLOCK_OUT] == frozenset()

    def test_accepts_plain_strings(self):
        """문자열 유형도 허용."""
        assert can_transition(["clock_in"], "pause_start") is True

    def test_rejected_entries_are_ignored(self):
        """반려된 펀치는 세션 기록에서 제외."""
        prior = history(T.CLOCK_IN) + [
            SimpleNamespace(pointage_type="pause_start", pointage_status=PointageStatus.REJECTED.value)
        ]
        assert last_type(prior) == T.CLOCK_IN
        assert can_transition(prior, T.PAUSE_START) is True


class TestCanClockOut:
    """퇴근 가능 여부 테스트."""

    def test_empty_session(self):
        assert can_clock_out([]) is False

    def test_open_pause(self):
        """휴식 중에는 퇴근 불가."""
        assert can_clock_out(history(T.CLOCK_IN, T.PAUSE_START)) is False

    @pytest.mark.parametrize("last", [T.CLOCK_IN, T.PAUSE_END, T.EXTERNAL_MISSION])
    def test_allowed(self, last):
        assert can_clock_out(history(last)) is True


class TestSessionSequence:
    """저장된 세션 기록 기반 검증 테스트."""

    async def test_valid_next_punch(self, db: AsyncSession, make_entry, session_id):
        """출근 후 휴식 시작 허용."""
        await make_entry(T.CLOCK_IN, at(8))
        await sequence_service.validate_sequence(db, session_id, T.PAUSE_START)

    async def test_invalid_next_punch(self, db: AsyncSession, make_entry, session_id):
        """출근 직후 휴식 종료는 409."""
        await make_entry(T.CLOCK_IN, at(8))
        with pytest.raises(SequenceViolationError) as exc_info:
            await sequence_service.validate_sequence(db, session_id, T.PAUSE_END)
        assert exc_info.value.status_code == 409

    async def test_first_punch_must_be_clock_in(self, db: AsyncSession, session_id):
        with pytest.raises(SequenceViolationError):
            await sequence_service.validate_sequence(db, session_id, T.CLOCK_OUT)

    async def test_history_ordered_by_clocked_at(self, db: AsyncSession, make_entry, session_id):
        """삽입 순서가 아니라 clocked_at 순서로 판정."""
        await make_entry(T.PAUSE_START, at(12))
        await make_entry(T.CLOCK_IN, at(8))
        assert await sequence_service.can_session_clock_out(db, session_id) is False
        await sequence_service.validate_sequence(db, session_id, T.PAUSE_END)

    async def test_rejected_entries_excluded(self, db: AsyncSession, make_entry, session_id):
        """반려된 휴식 시작은 무시되어 퇴근 가능."""
        await make_entry(T.CLOCK_IN, at(8))
        await make_entry(T.PAUSE_START, at(12), pointage_status=PointageStatus.REJECTED.value)
        assert await sequence_service.can_session_clock_out(db, session_id) is True

    async def test_other_sessions_do_not_count(self, db: AsyncSession, make_entry, session_id):
        """다른 세션의 펀치는 영향 없음."""
        await make_entry(T.CLOCK_IN, at(8), session_id=uuid.uuid4())
        await sequence_service.validate_sequence(db, session_id, T.CLOCK_IN)

"""감사 이벤트 서비스.

Audit event emitter for time entry state changes. Events go to in-process
listeners (registered with subscribe) and, when configured, to the Axiom
audit dataset. Storing audit history is left to those consumers.
"""

from collections.abc import Callable
from typing import Any
from uuid import UUID

from axiom_py import Client as AxiomClient

from timeclock.config import settings
from timeclock.utils.clock import utc_now

AuditListener = Callable[[dict[str, Any]], None]


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, UUID):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class AuditService:
    """감사 이벤트 발행 서비스.

    Audit emitter fanning events out to listeners and Axiom.

    Attributes:
        listeners: 등록된 리스너 목록 (Registered in-process listeners)
    """

    def __init__(self) -> None:
        self.listeners: list[AuditListener] = []
        self._client: AxiomClient | None = None
        self._dataset: str = settings.AXIOM_AUDIT_DATASET

        if settings.AXIOM_API_TOKEN and settings.AXIOM_AUDIT_DATASET:
            self._client = AxiomClient(token=settings.AXIOM_API_TOKEN)

    def subscribe(self, listener: AuditListener) -> None:
        self.listeners.append(listener)

    def unsubscribe(self, listener: AuditListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit(
        self,
        action: str,
        entry_id: UUID,
        actor_id: UUID | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """감사 이벤트를 발행합니다.

        Build and publish one audit event.

        Args:
            action: 동작 이름 (Action name, e.g. "time_entry.corrected")
            entry_id: 대상 펀치 UUID (Affected time entry)
            actor_id: 수행자 UUID, 선택 (Acting user, optional)
            before: 변경 전 값 (Values before the change)
            after: 변경 후 값 (Values after the change)
            reason: 사유, 선택 (Reason, optional)

        Returns:
            dict: 발행된 이벤트 (The published event)
        """
        event: dict[str, Any] = _jsonable(
            {
                "action": action,
                "entry_id": entry_id,
                "actor_id": actor_id,
                "before": before or {},
                "after": after or {},
                "reason": reason,
                "timestamp": utc_now(),
            }
        )

        for listener in list(self.listeners):
            listener(event)

        if self._client is not None:
            try:
                self._client.ingest_events(self._dataset, [event])
            except Exception:
                pass  # 로깅 실패가 요청 처리에 영향주지 않도록 — Never break a write on log failure

        return event


# 싱글턴 인스턴스 — Singleton instance
audit_service: AuditService = AuditService()

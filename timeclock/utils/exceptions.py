"""커스텀 HTTP 예외 클래스 모듈.

Custom HTTP exception classes module.
Provides pre-configured HTTPException subclasses for the time entry domain.
Services raise these directly, so routers need no exception handlers.

Usage:
    from timeclock.utils.exceptions import NotFoundError, SequenceViolationError
    raise NotFoundError("Time entry not found")
    raise SequenceViolationError("pause_end requires an open pause")
"""

from typing import Any

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """404 Not Found 예외 — 요청한 리소스를 찾을 수 없을 때 사용.

    404 Not Found exception.
    Raised when a requested time entry or site does not exist.

    Args:
        detail: 오류 메시지 (Error message, default: "Resource not found")
    """

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):
    """422 Unprocessable Entity 예외 — 필드 검증 실패 시 사용.

    422 validation exception carrying every field violation found in one pass.
    The response detail is the full violation list so clients can fix all
    fields at once.

    Args:
        violations: 위반 목록 (FieldViolation objects or plain dicts)
    """

    def __init__(self, violations: list[Any]) -> None:
        self.violations: list[Any] = list(violations)
        detail: list[dict[str, Any]] = [
            v if isinstance(v, dict) else v.to_dict() for v in self.violations
        ]
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

    @property
    def fields(self) -> set[str]:
        """위반이 발생한 필드 이름 집합 — Names of the offending fields."""
        return {v["field"] for v in self.detail}


class SequenceViolationError(HTTPException):
    """409 Conflict 예외 — 세션 내 펀치 순서 규칙 위반 시 사용.

    409 Conflict exception.
    Raised when the proposed punch type is not legal after the session's
    last punch (e.g. pause_start while already paused). Nothing is persisted.

    Args:
        detail: 오류 메시지 (Error message)
    """

    def __init__(self, detail: str = "Invalid punch sequence") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class StatusTransitionError(HTTPException):
    """409 Conflict 예외 — 허용되지 않는 상태 전이 시 사용.

    409 Conflict exception.
    Raised when a review action would move an entry to a status that the
    current status does not allow (e.g. correcting an accounted entry).

    Args:
        detail: 오류 메시지 (Error message)
    """

    def __init__(self, detail: str = "Invalid status transition") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InfrastructureError(HTTPException):
    """503 Service Unavailable 예외 — 저장소 장애 시 사용.

    503 exception wrapping persistence failures; callers may retry.

    Args:
        detail: 오류 메시지 (Error message, default: "Storage unavailable")
    """

    def __init__(self, detail: str = "Storage unavailable") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)

"""펀치 필드 검증 서비스.

Field validation for time entries. Every write path (online create,
offline sync item, update, correction, rejection) runs its data through
validate_time_entry, which checks all fields in one pass and returns the
complete list of violations instead of stopping at the first one.
"""

import ipaddress
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from timeclock.config import settings
from timeclock.models.time_entry import PointageStatus, PointageType
from timeclock.utils.clock import ensure_utc, utc_now
from timeclock.utils.exceptions import ValidationError

# 생성 시 필수 필드 — Fields required when creating an entry
REQUIRED_FIELDS: tuple[str, ...] = (
    "session_id",
    "user_id",
    "site_id",
    "pointage_type",
    "clocked_at",
    "latitude",
    "longitude",
)

UUID_FIELDS: tuple[str, ...] = ("session_id", "user_id", "site_id", "memo_id", "corrected_by")
DATETIME_FIELDS: tuple[str, ...] = ("clocked_at", "real_clocked_at", "last_sync_attempt")
LOCAL_ID_MAX_LENGTH: int = 50

# 사유가 필수인 상태 — Statuses that require a correction reason
REASON_REQUIRED_STATUSES: frozenset[str] = frozenset(
    {PointageStatus.CORRECTED.value, PointageStatus.REJECTED.value}
)

_TYPE_VALUES: frozenset[str] = frozenset(t.value for t in PointageType)
_STATUS_VALUES: frozenset[str] = frozenset(s.value for s in PointageStatus)


@dataclass(frozen=True)
class FieldViolation:
    """단일 필드 위반 — One offending field.

    Attributes:
        field: 필드 이름 (Field name)
        code: 위반 코드 (Machine-readable code, e.g. "required", "out_of_range")
        message: 설명 (Human-readable message)
    """

    field: str
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_uuid(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError:
            return None
    return None


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, (PointageType, PointageStatus)) else value


def validate_time_entry(
    data: dict[str, Any],
    *,
    partial: bool = False,
    now: datetime | None = None,
) -> list[FieldViolation]:
    """펀치 데이터의 모든 필드를 검증하고 위반 목록을 반환합니다.

    Validate a time entry payload and return every violation found.
    Only keys present in data are checked for format; with partial=False the
    required fields must also be present and non-null.

    Args:
        data: 검증할 필드 딕셔너리 (Field dict, raw or already typed values)
        partial: 부분 업데이트 여부 (Partial update: skip the required check for absent keys)
        now: 기준 현재 시각, 기본값 utc_now() (Reference time for the future check)

    Returns:
        list[FieldViolation]: 위반 목록, 비어 있으면 유효 (Violations; empty means valid)
    """
    violations: list[FieldViolation] = []
    reference: datetime = ensure_utc(now) if now is not None else utc_now()

    # 필수 필드 — Required fields
    for field in REQUIRED_FIELDS:
        if field in data:
            if data[field] is None or (isinstance(data[field], str) and not data[field].strip()):
                violations.append(FieldViolation(field, "required", f"{field} is required"))
        elif not partial:
            violations.append(FieldViolation(field, "required", f"{field} is required"))

    def present(field: str) -> bool:
        return data.get(field) is not None and not (
            field in REQUIRED_FIELDS and isinstance(data[field], str) and not data[field].strip()
        )

    # UUID 형식 — UUID format
    for field in UUID_FIELDS:
        if present(field) and _parse_uuid(data[field]) is None:
            violations.append(FieldViolation(field, "invalid_uuid", f"{field} must be a valid UUID"))

    # 열거형 — Enumerations
    if present("pointage_type") and _enum_value(data["pointage_type"]) not in _TYPE_VALUES:
        violations.append(
            FieldViolation(
                "pointage_type",
                "invalid_choice",
                f"pointage_type must be one of {sorted(_TYPE_VALUES)}",
            )
        )
    status_value: Any = _enum_value(data.get("pointage_status"))
    if status_value is not None and status_value not in _STATUS_VALUES:
        violations.append(
            FieldViolation(
                "pointage_status",
                "invalid_choice",
                f"pointage_status must be one of {sorted(_STATUS_VALUES)}",
            )
        )

    # 시각 — Timestamps, not later than now + tolerance
    latest_allowed: datetime = reference + timedelta(minutes=settings.FUTURE_CLOCK_TOLERANCE_MINUTES)
    for field in DATETIME_FIELDS:
        if not present(field):
            continue
        parsed = _parse_datetime(data[field])
        if parsed is None:
            violations.append(FieldViolation(field, "invalid_type", f"{field} must be an ISO-8601 datetime"))
        elif field != "last_sync_attempt" and parsed > latest_allowed:
            violations.append(FieldViolation(field, "future_time", f"{field} cannot be in the future"))

    # 좌표 — Coordinates
    for field, bound in (("latitude", 90.0), ("longitude", 180.0)):
        if not present(field):
            continue
        value = data[field]
        if not _is_number(value):
            violations.append(FieldViolation(field, "invalid_type", f"{field} must be a number"))
        elif not -bound <= value <= bound:
            violations.append(
                FieldViolation(field, "out_of_range", f"{field} must be between {-bound:g} and {bound:g}")
            )

    if present("gps_accuracy"):
        value = data["gps_accuracy"]
        if not _is_number(value):
            violations.append(FieldViolation("gps_accuracy", "invalid_type", "gps_accuracy must be a number"))
        elif value < 0:
            violations.append(FieldViolation("gps_accuracy", "out_of_range", "gps_accuracy must be >= 0"))

    # 동기화 시도 횟수 — Sync attempt counter
    if present("sync_attempts"):
        value = data["sync_attempts"]
        if not isinstance(value, int) or isinstance(value, bool):
            violations.append(FieldViolation("sync_attempts", "invalid_type", "sync_attempts must be an integer"))
        elif not 0 <= value <= settings.MAX_SYNC_ATTEMPTS:
            violations.append(
                FieldViolation(
                    "sync_attempts",
                    "out_of_range",
                    f"sync_attempts must be between 0 and {settings.MAX_SYNC_ATTEMPTS}",
                )
            )

    if present("local_id"):
        value = data["local_id"]
        if not isinstance(value, str):
            violations.append(FieldViolation("local_id", "invalid_type", "local_id must be a string"))
        elif not value.strip():
            violations.append(FieldViolation("local_id", "too_short", "local_id cannot be blank"))
        elif len(value) > LOCAL_ID_MAX_LENGTH:
            violations.append(
                FieldViolation("local_id", "too_long", f"local_id must be at most {LOCAL_ID_MAX_LENGTH} characters")
            )

    if present("ip_address"):
        try:
            ipaddress.ip_address(str(data["ip_address"]))
        except ValueError:
            violations.append(FieldViolation("ip_address", "invalid_ip", "ip_address must be a valid IPv4 or IPv6 address"))

    if present("device_info") and not isinstance(data["device_info"], dict):
        violations.append(FieldViolation("device_info", "invalid_type", "device_info must be a JSON object"))

    if present("user_agent") and not isinstance(data["user_agent"], str):
        violations.append(FieldViolation("user_agent", "invalid_type", "user_agent must be a string"))

    if present("created_offline") and not isinstance(data["created_offline"], bool):
        violations.append(FieldViolation("created_offline", "invalid_type", "created_offline must be a boolean"))

    # 수정/반려 사유 — Correction reason
    reason: Any = data.get("correction_reason")
    if reason is not None and not isinstance(reason, str):
        violations.append(FieldViolation("correction_reason", "invalid_type", "correction_reason must be a string"))
    elif status_value in REASON_REQUIRED_STATUSES and (reason is None or not reason.strip()):
        violations.append(
            FieldViolation(
                "correction_reason",
                "required",
                f"correction_reason is required when status is {status_value}",
            )
        )
    elif reason is not None and len(reason) > settings.CORRECTION_REASON_MAX_LENGTH:
        violations.append(
            FieldViolation(
                "correction_reason",
                "too_long",
                f"correction_reason must be at most {settings.CORRECTION_REASON_MAX_LENGTH} characters",
            )
        )

    return violations


def coerce_time_entry(data: dict[str, Any]) -> dict[str, Any]:
    """검증된 데이터를 저장용 타입으로 변환합니다.

    Convert validated values to their storage types: UUID objects, aware
    UTC datetimes, float coordinates, and plain enum strings. Call only
    after validate_time_entry returned no violations.
    """
    coerced: dict[str, Any] = dict(data)
    for field in UUID_FIELDS:
        if coerced.get(field) is not None:
            coerced[field] = _parse_uuid(coerced[field])
    for field in DATETIME_FIELDS:
        if coerced.get(field) is not None:
            coerced[field] = _parse_datetime(coerced[field])
    for field in ("latitude", "longitude", "gps_accuracy"):
        if coerced.get(field) is not None:
            coerced[field] = float(coerced[field])
    for field in ("pointage_type", "pointage_status"):
        if coerced.get(field) is not None:
            coerced[field] = _enum_value(coerced[field])
    if coerced.get("ip_address") is not None:
        coerced["ip_address"] = str(coerced["ip_address"])
    return coerced


def ensure_valid(
    data: dict[str, Any],
    *,
    partial: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """검증 후 위반이 있으면 ValidationError를 발생시킵니다.

    Validate data and return its coerced copy.

    Raises:
        ValidationError: 위반이 하나라도 있을 때 (When any violation is found, 422)
    """
    violations: list[FieldViolation] = validate_time_entry(data, partial=partial, now=now)
    if violations:
        raise ValidationError(violations)
    return coerce_time_entry(data)

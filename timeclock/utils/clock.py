"""시각 유틸리티 — UTC 기준 현재 시각 및 정규화.

Clock helpers. Every timestamp the service stores or compares is an aware
UTC datetime; drivers that hand back naive values (SQLite) are treated as UTC.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """현재 UTC 시각 — Current aware UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """datetime을 aware UTC로 정규화합니다.

    Normalize a datetime to aware UTC. Naive values are assumed to be UTC
    already; aware values are converted.

    Args:
        value: 정규화할 시각, None 허용 (Datetime to normalize, or None)

    Returns:
        datetime | None: UTC 시각 또는 None (UTC datetime or None)
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""펀치 필드 검증 테스트.

Field validator tests — one pass returns every violation.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from timeclock.services.validation_service import ensure_valid, validate_time_entry
from timeclock.utils.exceptions import ValidationError

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def valid_payload(**overrides):
    data = {
        "session_id": str(uuid.uuid4()),
        "user_id": str(uuid.uuid4()),
        "site_id": str(uuid.uuid4()),
        "pointage_type": "clock_in",
        "clocked_at": NOW - timedelta(hours=1),
        "latitude": 4.05,
        "longitude": 9.70,
    }
    data.update(overrides)
    return data


def fields_of(violations):
    return {v.field for v in violations}


def codes_of(violations):
    return {(v.field, v.code) for v in violations}


class TestRequiredFields:
    """필수 필드 테스트."""

    def test_valid_payload(self):
        assert validate_time_entry(valid_payload(), now=NOW) == []

    def test_empty_payload_reports_all_required(self):
        """빈 데이터는 필수 필드 7개 모두 보고."""
        violations = validate_time_entry({}, now=NOW)
        assert fields_of(violations) == {
            "session_id", "user_id", "site_id", "pointage_type", "clocked_at", "latitude", "longitude",
        }
        assert all(v.code == "required" for v in violations)

    def test_null_and_blank_values_are_missing(self):
        violations = validate_time_entry(valid_payload(session_id=None, pointage_type="  "), now=NOW)
        assert codes_of(violations) == {("session_id", "required"), ("pointage_type", "required")}

    def test_partial_skips_absent_fields(self):
        """부분 검증은 없는 필드를 건너뜀."""
        assert validate_time_entry({"latitude": 10.0}, partial=True, now=NOW) == []

    def test_partial_rejects_null_required(self):
        violations = validate_time_entry({"latitude": None}, partial=True, now=NOW)
        assert codes_of(violations) == {("latitude", "required")}


class TestFormats:
    """형식 및 범위 테스트."""

    def test_all_violations_in_one_pass(self):
        """여러 위반을 한 번에 모두 보고."""
        violations = validate_time_entry(
            valid_payload(latitude=91.0, longitude=-181.0, gps_accuracy=-1.0, user_id="not-a-uuid"),
            now=NOW,
        )
        assert codes_of(violations) == {
            ("latitude", "out_of_range"),
            ("longitude", "out_of_range"),
            ("gps_accuracy", "out_of_range"),
            ("user_id", "invalid_uuid"),
        }

    def test_coordinate_bounds_are_inclusive(self):
        assert validate_time_entry(valid_payload(latitude=-90.0, longitude=180.0), now=NOW) == []

    def test_non_numeric_coordinates(self):
        violations = validate_time_entry(valid_payload(latitude="north"), now=NOW)
        assert codes_of(violations) == {("latitude", "invalid_type")}

    def test_unknown_pointage_type(self):
        violations = validate_time_entry(valid_payload(pointage_type="lunch"), now=NOW)
        assert codes_of(violations) == {("pointage_type", "invalid_choice")}

    def test_unknown_status(self):
        violations = validate_time_entry(valid_payload(pointage_status="archived"), now=NOW)
        assert codes_of(violations) == {("pointage_status", "invalid_choice")}

    def test_future_clocked_at(self):
        """허용 오차를 넘는 미래 시각은 거부."""
        violations = validate_time_entry(valid_payload(clocked_at=NOW + timedelta(minutes=5)), now=NOW)
        assert codes_of(violations) == {("clocked_at", "future_time")}

    def test_clock_skew_tolerated(self):
        """1분 이내 단말 시계 오차 허용."""
        assert validate_time_entry(valid_payload(clocked_at=NOW + timedelta(seconds=30)), now=NOW) == []

    def test_iso_string_with_z(self):
        assert validate_time_entry(valid_payload(clocked_at="2025-03-10T08:00:00Z"), now=NOW) == []

    def test_unparsable_datetime(self):
        violations = validate_time_entry(valid_payload(clocked_at="yesterday"), now=NOW)
        assert codes_of(violations) == {("clocked_at", "invalid_type")}

    @pytest.mark.parametrize("value,code", [(11, "out_of_range"), (-1, "out_of_range"), (True, "invalid_type"), (2.5, "invalid_type")])
    def test_sync_attempts(self, value, code):
        violations = validate_time_entry({"sync_attempts": value}, partial=True, now=NOW)
        assert codes_of(violations) == {("sync_attempts", code)}

    def test_sync_attempts_ceiling_allowed(self):
        assert validate_time_entry({"sync_attempts": 10}, partial=True, now=NOW) == []

    def test_local_id_length(self):
        """로컬 ID는 1~50자."""
        assert validate_time_entry(valid_payload(local_id="x" * 50), now=NOW) == []
        too_long = validate_time_entry(valid_payload(local_id="x" * 51), now=NOW)
        assert codes_of(too_long) == {("local_id", "too_long")}
        blank = validate_time_entry(valid_payload(local_id=""), now=NOW)
        assert codes_of(blank) == {("local_id", "too_short")}

    @pytest.mark.parametrize("ip", ["10.0.0.1", "::1", "2001:db8::1"])
    def test_valid_ip(self, ip):
        assert validate_time_entry(valid_payload(ip_address=ip), now=NOW) == []

    def test_invalid_ip(self):
        violations = validate_time_entry(valid_payload(ip_address="999.1.1.1"), now=NOW)
        assert codes_of(violations) == {("ip_address", "invalid_ip")}

    def test_device_info_must_be_object(self):
        violations = validate_time_entry(valid_payload(device_info=["android"]), now=NOW)
        assert codes_of(violations) == {("device_info", "invalid_type")}


class TestCorrectionReason:
    """수정/반려 사유 테스트."""

    @pytest.mark.parametrize("status", ["corrected", "rejected"])
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, status, reason):
        violations = validate_time_entry(
            {"pointage_status": status, "correction_reason": reason}, partial=True, now=NOW
        )
        assert codes_of(violations) == {("correction_reason", "required")}

    def test_reason_not_required_for_pending(self):
        assert validate_time_entry({"pointage_status": "pending"}, partial=True, now=NOW) == []

    def test_reason_too_long(self):
        violations = validate_time_entry(
            {"pointage_status": "rejected", "correction_reason": "x" * 501}, partial=True, now=NOW
        )
        assert codes_of(violations) == {("correction_reason", "too_long")}


class TestEnsureValid:
    """ensure_valid 테스트."""

    def test_raises_with_all_violations(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(valid_payload(latitude=100.0, longitude=200.0), now=NOW)
        assert exc_info.value.status_code == 422
        assert exc_info.value.fields == {"latitude", "longitude"}
        assert len(exc_info.value.detail) == 2

    def test_returns_coerced_values(self):
        """UUID와 UTC datetime으로 변환."""
        payload = valid_payload(clocked_at="2025-03-10T09:00:00+01:00", latitude=4)
        values = ensure_valid(payload, now=NOW)
        assert isinstance(values["user_id"], uuid.UUID)
        assert values["clocked_at"] == datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
        assert values["clocked_at"].tzinfo == timezone.utc
        assert isinstance(values["latitude"], float)

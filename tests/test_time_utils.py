from datetime import UTC, datetime, timedelta, timezone

from backend.app.core.time import ensure_utc, utc_now


def test_utc_now_is_timezone_aware_utc():
    value = utc_now()
    assert value.tzinfo is UTC


def test_ensure_utc_marks_naive_values_as_utc():
    assert ensure_utc(datetime(2030, 1, 1, 9, 30)) == datetime(2030, 1, 1, 9, 30, tzinfo=UTC)


def test_ensure_utc_keeps_aware_values():
    eastern = timezone(timedelta(hours=-5))
    value = datetime(2030, 1, 1, 9, 30, tzinfo=eastern)
    assert ensure_utc(value) is value
    assert ensure_utc(None) is None

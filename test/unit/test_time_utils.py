"""Unit tests for timezone helpers."""

from datetime import datetime, timezone

import pytest

import time_utils
from config import settings


def test_local_date_key_uses_digest_timezone() -> None:
    """Late-evening UTC instants still belong to the previous Chicago day."""
    assert time_utils.local_date_key(datetime(2026, 1, 16, 3, 0, tzinfo=timezone.utc)) == "2026-01-15"
    assert time_utils.local_date_key(datetime(2026, 1, 16, 7, 0, tzinfo=timezone.utc)) == "2026-01-16"


def test_ensure_utc_treats_naive_as_utc() -> None:
    """Naive values are assumed to be UTC."""
    value = time_utils.ensure_utc(datetime(2026, 1, 1, 12, 0))

    assert value == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_as_local_follows_daylight_saving() -> None:
    """The same UTC hour lands on different local hours across DST."""
    winter = time_utils.as_local(datetime(2026, 1, 15, 21, 0, tzinfo=timezone.utc))
    summer = time_utils.as_local(datetime(2026, 7, 15, 20, 0, tzinfo=timezone.utc))

    assert (winter.hour, summer.hour) == (15, 15)


def test_format_local_clock() -> None:
    """Wall-clock rendering drops the leading zero and names the zone."""
    value = datetime(2026, 3, 2, 18, 22, tzinfo=timezone.utc)

    assert time_utils.format_local_clock(value) == "12:22 PM CST"


def test_invalid_timezone_raises(monkeypatch) -> None:
    """An unknown zone name surfaces as a ValueError."""
    monkeypatch.setattr(settings.digest, "timezone", "Nowhere/Town")

    with pytest.raises(ValueError):
        time_utils.get_local_timezone()

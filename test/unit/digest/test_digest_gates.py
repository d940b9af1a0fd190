"""Unit tests for the digest time gate and cooldown lock."""

from contextlib import closing
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from digest.gates import DIGEST_LOCK_KEY, CooldownLock, is_digest_window
from models import SystemJobState

CHICAGO = ZoneInfo("America/Chicago")


def test_window_matches_local_hour_in_standard_time() -> None:
    """21:00 UTC in January is 15:00 CST."""
    assert is_digest_window(datetime(2026, 1, 15, 21, 0, tzinfo=timezone.utc), tz=CHICAGO, target_hour=15)
    assert not is_digest_window(
        datetime(2026, 1, 15, 20, 0, tzinfo=timezone.utc), tz=CHICAGO, target_hour=15
    )


def test_window_follows_daylight_saving() -> None:
    """In July the same local hour is 20:00 UTC, and 21:00 UTC is 16:00 CDT."""
    assert is_digest_window(datetime(2026, 7, 15, 20, 0, tzinfo=timezone.utc), tz=CHICAGO, target_hour=15)
    assert not is_digest_window(
        datetime(2026, 7, 15, 21, 0, tzinfo=timezone.utc), tz=CHICAGO, target_hour=15
    )


def test_window_requires_minute_zero() -> None:
    """Any minute other than zero fails the gate."""
    assert not is_digest_window(
        datetime(2026, 1, 15, 21, 1, tzinfo=timezone.utc), tz=CHICAGO, target_hour=15
    )


def test_window_uses_configured_defaults() -> None:
    """Without overrides the configured zone and hour apply."""
    assert is_digest_window(datetime(2026, 1, 15, 21, 0, tzinfo=timezone.utc))


def test_first_claim_inserts_lock(sqlite_session_factory) -> None:
    """An empty lock table grants the claim and stores the actor."""
    now = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
    lock = CooldownLock(sqlite_session_factory, window=timedelta(minutes=15))

    decision = lock.claim("owner-1", now=now)

    assert decision.allowed is True
    with closing(sqlite_session_factory()) as session:
        row = session.get(SystemJobState, DIGEST_LOCK_KEY)
        assert row.last_run_by == "owner-1"
        assert row.last_run_at == now


def test_claim_within_window_is_rejected_with_wait(sqlite_session_factory) -> None:
    """A second claim inside the window reports the remaining wait."""
    now = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
    lock = CooldownLock(sqlite_session_factory, window=timedelta(minutes=15))
    lock.claim("owner-1", now=now)

    decision = lock.claim("owner-2", now=now + timedelta(minutes=5))

    assert decision.allowed is False
    assert decision.retry_after_seconds == 600
    assert decision.next_available_at == now + timedelta(minutes=15)
    assert decision.last_run_by == "owner-1"
    with closing(sqlite_session_factory()) as session:
        assert session.get(SystemJobState, DIGEST_LOCK_KEY).last_run_by == "owner-1"


def test_claim_after_window_succeeds(sqlite_session_factory) -> None:
    """Once the window elapses the lock moves to the new actor."""
    now = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
    lock = CooldownLock(sqlite_session_factory, window=timedelta(minutes=15))
    lock.claim("owner-1", now=now)

    decision = lock.claim("owner-2", now=now + timedelta(minutes=15))

    assert decision.allowed is True
    with closing(sqlite_session_factory()) as session:
        assert session.get(SystemJobState, DIGEST_LOCK_KEY).last_run_by == "owner-2"

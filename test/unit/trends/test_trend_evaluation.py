"""Unit tests for evaluating score sequences into trend actions."""

from datetime import datetime, timezone

from trends.evaluation import ASSET_HEALTH_SUMMARY, MECHANIC_SUMMARY, evaluate_trends
from trends.repository import TrendActionRepository

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _evaluate(repo, health, mechanic):
    return evaluate_trends(
        repo,
        asset_type="equipment",
        asset_id="loader-7",
        health_points=health,
        mechanic_points=mechanic,
        actor_id="mech-1",
        now=NOW,
    )


def test_both_signals_declining_open_two_actions(sqlite_session_factory) -> None:
    """Each declining signal opens its own action with the trailing points."""
    repo = TrendActionRepository(sqlite_session_factory)

    created = _evaluate(repo, [95, 90, 85, 80], [70, 60, 50])

    assert created == ["asset_health_decline", "mechanic_decline"]
    actions = {a.action_type: a for a in repo.list_recent_actions("equipment", "loader-7")}
    assert actions["asset_health_decline"].summary == ASSET_HEALTH_SUMMARY
    assert actions["asset_health_decline"].detail == {
        "kind": "asset_health_decline",
        "recent_points": [90.0, 85.0, 80.0],
    }
    assert actions["mechanic_decline"].summary == MECHANIC_SUMMARY
    assert actions["mechanic_decline"].created_by == "mech-1"


def test_repeat_evaluation_creates_nothing(sqlite_session_factory) -> None:
    """Re-evaluating the same decline is a no-op while the action is active."""
    repo = TrendActionRepository(sqlite_session_factory)
    _evaluate(repo, [3, 2, 1], [])

    assert _evaluate(repo, [3, 2, 1], []) == []
    assert len(repo.list_recent_actions("equipment", "loader-7")) == 1


def test_flat_or_short_signals_create_nothing(sqlite_session_factory) -> None:
    """Non-declining inputs leave the ledger empty."""
    repo = TrendActionRepository(sqlite_session_factory)

    assert _evaluate(repo, [5, 5, 5], [9, 8]) == []
    assert repo.list_recent_actions("equipment", "loader-7") == []

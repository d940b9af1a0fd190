"""Unit tests for typed trend action detail payloads."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models import (
    AssetHealthDeclineDetail,
    MechanicDeclineDetail,
    TrendAction,
    TrendActionResponse,
    parse_action_detail,
)
from trends.evaluation import evaluate_trends
from trends.repository import TrendActionRepository

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _action(action_type: str, detail) -> TrendAction:
    return TrendAction(
        id=7,
        asset_type="vehicle",
        asset_id="truck-1",
        action_type=action_type,
        status="Open",
        summary="declining",
        detail=detail,
        created_at=NOW,
        updated_at=NOW,
    )


def test_stored_detail_round_trips_through_response(sqlite_session_factory) -> None:
    """Evaluated actions store a tagged payload and respond with the points only."""
    repo = TrendActionRepository(sqlite_session_factory)
    evaluate_trends(
        repo,
        asset_type="vehicle",
        asset_id="truck-1",
        health_points=[],
        mechanic_points=[9, 8, 7],
        actor_id="mech-1",
        now=NOW,
    )
    [action] = repo.list_recent_actions("vehicle", "truck-1")

    parsed = parse_action_detail(action.action_type, action.detail)
    response = TrendActionResponse.model_validate(action)

    assert isinstance(parsed, MechanicDeclineDetail)
    assert parsed.recent_points == [9.0, 8.0, 7.0]
    assert response.detail == {"recent_points": [9.0, 8.0, 7.0]}


def test_untagged_detail_is_tagged_by_action_type() -> None:
    """Rows written without a kind are read by their action type."""
    parsed = parse_action_detail("asset_health_decline", {"recent_points": [3, 2, 1]})
    empty = parse_action_detail("mechanic_decline", None)

    assert isinstance(parsed, AssetHealthDeclineDetail)
    assert isinstance(empty, MechanicDeclineDetail)
    assert empty.recent_points == []


def test_response_rejects_malformed_detail() -> None:
    """Points that are not numbers fail validation."""
    with pytest.raises(ValidationError):
        TrendActionResponse.model_validate(
            _action("asset_health_decline", {"recent_points": ["high", "low"]})
        )


def test_unknown_action_type_fails_validation() -> None:
    """The tag must name a known action type."""
    with pytest.raises(ValidationError):
        parse_action_detail("speeding", {"recent_points": [1]})

"""Turn fresh score sequences into trend actions."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Sequence

from models import AssetHealthDeclineDetail, MechanicDeclineDetail
from trends.decline import is_declining, trailing_points
from trends.repository import TrendActionCreateInput, TrendActionRepository

logger = logging.getLogger(__name__)

ASSET_HEALTH_SUMMARY = "Asset health trend is declining for the last 3 logs."
MECHANIC_SUMMARY = "Mechanic trend is declining for the last 3 logs."


def evaluate_trends(
    repository: TrendActionRepository,
    *,
    asset_type: str,
    asset_id: str,
    health_points: Sequence[float],
    mechanic_points: Sequence[float],
    actor_id: str,
    now: datetime | None = None,
) -> list[str]:
    """Ensure an action for each declining signal and return the kinds created.

    Signals that are not declining, or that already have an active action,
    contribute nothing to the result.
    """
    candidates = []
    if is_declining(health_points):
        detail = AssetHealthDeclineDetail(recent_points=trailing_points(health_points))
        candidates.append(("asset_health_decline", ASSET_HEALTH_SUMMARY, detail))
    if is_declining(mechanic_points):
        detail = MechanicDeclineDetail(recent_points=trailing_points(mechanic_points))
        candidates.append(("mechanic_decline", MECHANIC_SUMMARY, detail))

    created: list[str] = []
    for action_type, summary, detail in candidates:
        result = repository.ensure_action(
            TrendActionCreateInput(
                asset_type=asset_type,
                asset_id=asset_id,
                action_type=action_type,
                summary=summary,
                actor_id=actor_id,
                detail=detail.model_dump(),
            ),
            now=now,
        )
        if result.created:
            created.append(action_type)

    if candidates:
        logger.info(
            f"Evaluated trends for {asset_type}/{asset_id}: "
            f"{len(candidates)} declining, {len(created)} opened"
        )
    return created


__all__ = ["ASSET_HEALTH_SUMMARY", "MECHANIC_SUMMARY", "evaluate_trends"]

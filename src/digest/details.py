"""Point-in-time snapshot of trend actions behind a digest day."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import re

from digest.aggregation import asset_key, asset_label, count_by_asset, top_assets
from models import TrendAction
from telemetry import TelemetryReader
from time_utils import ensure_utc
from trends.repository import ACTIVE_ACTIONS_LIMIT, TrendActionRepository

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DETAILS_TOP_ASSETS = 10
AGING_THRESHOLDS_DAYS = (7, 14)


@dataclass(frozen=True)
class DigestDetails:
    """Actions created up to a digest day with headline metrics."""

    date_key: str
    actions: list[TrendAction]
    asset_labels: dict[str, str]
    metrics: dict[str, object] = field(default_factory=dict)


def parse_date_key(value: str) -> date:
    """Validate a ``YYYY-MM-DD`` key and return the calendar date."""
    trimmed = (value or "").strip()
    if not DATE_KEY_PATTERN.match(trimmed):
        raise ValueError(f"Invalid digest date: {value!r}")
    try:
        return date.fromisoformat(trimmed)
    except ValueError as exc:
        raise ValueError(f"Invalid digest date: {value!r}") from exc


def build_digest_details(
    date_key: str,
    *,
    actions: TrendActionRepository,
    reader: TelemetryReader,
    now: datetime | None = None,
) -> DigestDetails:
    """Load actions created on or before the digest day and compute metrics.

    The day boundary is midnight UTC after ``date_key``. Aging counts only
    non-resolved actions and is measured against ``now``.
    """
    day = parse_date_key(date_key)
    cutoff = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) + timedelta(days=1)
    rows = actions.list_created_before(cutoff, limit=ACTIVE_ACTIONS_LIMIT)
    timestamp = ensure_utc(now or datetime.now(timezone.utc))

    labels: dict[str, str] = {}
    for asset_type in ("vehicle", "equipment"):
        ids = {row.asset_id for row in rows if row.asset_type == asset_type}
        summaries = reader.asset_summaries(asset_type, ids)
        for asset_id in ids:
            labels[asset_key(asset_type, asset_id)] = asset_label(
                asset_type, asset_id, summaries.get(asset_id)
            )

    return DigestDetails(
        date_key=day.isoformat(),
        actions=rows,
        asset_labels=labels,
        metrics=_metrics(rows, labels, timestamp),
    )


def _metrics(rows: list[TrendAction], labels: dict[str, str], now: datetime) -> dict[str, object]:
    statuses = Counter(row.status for row in rows)
    kinds = Counter(row.action_type for row in rows)
    unresolved_ages = [
        (now - ensure_utc(row.created_at)).days for row in rows if row.status != "Resolved"
    ]
    metrics: dict[str, object] = {
        "open": statuses.get("Open", 0),
        "in_review": statuses.get("In Review", 0),
        "resolved": statuses.get("Resolved", 0),
        "asset_health_declines": kinds.get("asset_health_decline", 0),
        "mechanic_declines": kinds.get("mechanic_decline", 0),
    }
    for threshold in AGING_THRESHOLDS_DAYS:
        metrics[f"aging_{threshold}"] = sum(1 for age in unresolved_ages if age >= threshold)
    metrics["top_assets"] = [
        {"key": asset.key, "label": labels.get(asset.key, asset.key), "count": asset.count}
        for asset in top_assets(count_by_asset(rows), DETAILS_TOP_ASSETS)
    ]
    return metrics


__all__ = ["DigestDetails", "build_digest_details", "parse_date_key"]

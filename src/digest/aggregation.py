"""Digest aggregation and message composition."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import html
from typing import Iterable, Mapping, Sequence

from models import TrendAction
from telemetry import AssetSummary

DIGEST_KIND = "trend_actions_digest"
DIGEST_ENTITY_TYPE = "trend_actions"
BODY_SEPARATOR = " · "
EMAIL_CALL_TO_ACTION = "Open the app to review trend actions and assign follow-ups."

_ASSET_PREFIXES = {"vehicle": "Vehicle", "equipment": "Equipment"}


@dataclass(frozen=True)
class AssetCount:
    """Number of active actions for one asset."""

    asset_type: str
    asset_id: str
    count: int
    label: str = ""

    @property
    def key(self) -> str:
        return asset_key(self.asset_type, self.asset_id)

    def describe(self) -> str:
        return f"{self.label or self.key} ({self.count})"


@dataclass(frozen=True)
class DigestSummary:
    """Aggregated digest content shared by notifications and e-mail."""

    date_key: str
    open_count: int
    in_review_count: int
    action_type_counts: dict[str, int]
    top_assets: list[AssetCount]
    title: str
    body: str
    severity: str
    lines: list[str] = field(default_factory=list)

    @property
    def dedupe_key(self) -> str:
        return digest_dedupe_key(self.date_key)

    def top_asset_descriptions(self) -> list[str]:
        return [asset.describe() for asset in self.top_assets]


def asset_key(asset_type: str, asset_id: str) -> str:
    return f"{asset_type}:{asset_id}"


def digest_dedupe_key(date_key: str) -> str:
    return f"trend-digest:{date_key}"


def asset_label(asset_type: str, asset_id: str, summary: AssetSummary | None) -> str:
    """Return ``"Vehicle: <name> [<status>]"`` style labels, omitting blank status."""
    prefix = _ASSET_PREFIXES.get(asset_type, asset_type.title())
    name = ((summary.name if summary else None) or "").strip() or asset_id
    status = ((summary.status if summary else None) or "").strip()
    if status:
        return f"{prefix}: {name} [{status}]"
    return f"{prefix}: {name}"


def count_by_asset(actions: Iterable[TrendAction]) -> list[AssetCount]:
    """Count actions per asset, keeping first-seen order."""
    counts: Counter[tuple[str, str]] = Counter()
    for action in actions:
        counts[(action.asset_type, action.asset_id)] += 1
    return [
        AssetCount(asset_type=asset_type, asset_id=asset_id, count=count)
        for (asset_type, asset_id), count in counts.items()
    ]


def top_assets(counts: Sequence[AssetCount], limit: int) -> list[AssetCount]:
    """Return the most affected assets; ties keep their incoming order."""
    return sorted(counts, key=lambda item: -item.count)[:limit]


def label_assets(
    assets: Sequence[AssetCount],
    summaries: Mapping[str, AssetSummary],
) -> list[AssetCount]:
    """Attach display labels using summaries keyed by ``asset_key``."""
    return [
        AssetCount(
            asset_type=asset.asset_type,
            asset_id=asset.asset_id,
            count=asset.count,
            label=asset_label(asset.asset_type, asset.asset_id, summaries.get(asset.key)),
        )
        for asset in assets
    ]


def compose_title(date_key: str) -> str:
    return f"Trend Actions Digest ({date_key})"


def compose_body(open_count: int, in_review_count: int, assets: Sequence[AssetCount]) -> str:
    if assets:
        top = "Top assets: " + ", ".join(asset.describe() for asset in assets)
    else:
        top = "Top assets: none"
    return BODY_SEPARATOR.join([f"Open: {open_count}", f"In Review: {in_review_count}", top])


def digest_severity(open_count: int, threshold: int) -> str:
    return "high" if open_count > threshold else "info"


def summarize_actions(
    actions: Sequence[TrendAction],
    *,
    date_key: str,
    summaries: Mapping[str, AssetSummary],
    top_limit: int,
    high_severity_threshold: int,
) -> DigestSummary:
    """Aggregate active actions into the digest title, body, and metrics."""
    status_counts = Counter(action.status for action in actions)
    type_counts = Counter(action.action_type for action in actions)
    open_count = status_counts.get("Open", 0)
    in_review_count = status_counts.get("In Review", 0)
    ranked = label_assets(top_assets(count_by_asset(actions), top_limit), summaries)
    body = compose_body(open_count, in_review_count, ranked)
    return DigestSummary(
        date_key=date_key,
        open_count=open_count,
        in_review_count=in_review_count,
        action_type_counts=dict(type_counts),
        top_assets=ranked,
        title=compose_title(date_key),
        body=body,
        severity=digest_severity(open_count, high_severity_threshold),
        lines=body.split(BODY_SEPARATOR),
    )


def build_digest_email_html(summary: DigestSummary, app_url: str) -> str:
    """Render the digest e-mail; every interpolated value is HTML-escaped."""
    title = html.escape(summary.title)
    body = html.escape(summary.body)
    link = html.escape(app_url, quote=True)
    return (
        '<div style="font-family:Arial,sans-serif;line-height:1.4;color:#111">'
        f'<h2 style="margin:0 0 10px">{title}</h2>'
        f'<p style="margin:0 0 10px">{body}</p>'
        f'<p style="margin:0 0 14px">{html.escape(EMAIL_CALL_TO_ACTION)}</p>'
        f'<a href="{link}" style="display:inline-block;padding:8px 12px;'
        'border:1px solid #111;border-radius:6px;text-decoration:none;color:#111">'
        "Open App</a>"
        "</div>"
    )


__all__ = [
    "AssetCount",
    "DIGEST_ENTITY_TYPE",
    "DIGEST_KIND",
    "DigestSummary",
    "asset_key",
    "asset_label",
    "build_digest_email_html",
    "compose_body",
    "compose_title",
    "count_by_asset",
    "digest_dedupe_key",
    "digest_severity",
    "label_assets",
    "summarize_actions",
    "top_assets",
]

"""Unit tests for digest aggregation and composition."""

from digest.aggregation import asset_label, build_digest_email_html, summarize_actions
from models import TrendAction
from telemetry import AssetSummary


def _action(asset_type, asset_id, status="Open", action_type="asset_health_decline"):
    return TrendAction(
        asset_type=asset_type,
        asset_id=asset_id,
        action_type=action_type,
        status=status,
        summary="",
    )


def _summarize(actions, summaries=None, top_limit=5):
    return summarize_actions(
        actions,
        date_key="2026-03-02",
        summaries=summaries or {},
        top_limit=top_limit,
        high_severity_threshold=5,
    )


def test_counts_and_top_assets() -> None:
    """Counts split by status and type; top assets rank by count."""
    actions = [
        _action("equipment", "e1"),
        _action("vehicle", "v1", status="In Review"),
        _action("vehicle", "v1", action_type="mechanic_decline"),
        _action("vehicle", "v2"),
    ]
    summaries = {"vehicle:v1": AssetSummary(name="Truck 1", status="Active")}

    summary = _summarize(actions, summaries)

    assert summary.open_count == 3
    assert summary.in_review_count == 1
    assert summary.action_type_counts == {"asset_health_decline": 3, "mechanic_decline": 1}
    assert summary.top_asset_descriptions() == [
        "Vehicle: Truck 1 [Active] (2)",
        "Equipment: e1 (1)",
        "Vehicle: v2 (1)",
    ]


def test_title_body_and_severity() -> None:
    """Body joins counts and top assets with a middle dot."""
    summary = _summarize([_action("vehicle", "v1")], {"vehicle:v1": AssetSummary("Truck", None)})

    assert summary.title == "Trend Actions Digest (2026-03-02)"
    assert summary.body == "Open: 1 · In Review: 0 · Top assets: Vehicle: Truck (1)"
    assert summary.severity == "info"
    assert summary.dedupe_key == "trend-digest:2026-03-02"


def test_empty_digest_and_high_severity() -> None:
    """No actions reads 'none'; more than five open raises severity."""
    empty = _summarize([])
    busy = _summarize([_action("vehicle", f"v{index}") for index in range(6)], top_limit=2)

    assert empty.body == "Open: 0 · In Review: 0 · Top assets: none"
    assert empty.severity == "info"
    assert busy.severity == "high"
    assert len(busy.top_assets) == 2
    assert [asset.asset_id for asset in busy.top_assets] == ["v0", "v1"]


def test_asset_label_trims_and_falls_back() -> None:
    """Blank names fall back to the id; blank status is omitted."""
    assert asset_label("equipment", "e9", AssetSummary(name="  ", status=" ")) == "Equipment: e9"
    assert asset_label("vehicle", "v1", AssetSummary(name=" Truck ", status="Down")) == (
        "Vehicle: Truck [Down]"
    )


def test_email_html_escapes_content() -> None:
    """Asset names cannot inject markup into the e-mail."""
    summary = _summarize(
        [_action("vehicle", "v1")],
        {"vehicle:v1": AssetSummary(name="<script>x</script>", status=None)},
    )

    html = build_digest_email_html(summary, "https://fleet.example/?a=1&b=2")

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert 'href="https://fleet.example/?a=1&amp;b=2"' in html
    assert "Open the app to review trend actions and assign follow-ups." in html

"""CLI tests for the fleet operations Typer commands."""

from __future__ import annotations

import json
from typing import Any

import pytest
from typer.testing import CliRunner

import cli
from models import Equipment, Profile, Vehicle

runner = CliRunner()


def _invoke(*args: str):
    return runner.invoke(cli.app, ["--log-level", "WARNING", *args])


def _last_json(output: str) -> Any:
    return json.loads(output.strip().splitlines()[-1])


@pytest.fixture(autouse=True)
def _isolate_logging(restore_root_logging):
    yield


@pytest.fixture()
def fleet(monkeypatch, sqlite_session_factory, add_rows, email_transport_factory):
    """Point the CLI at the in-memory store and a fake e-mail transport."""
    add_rows(
        Profile(id="owner-1", role="owner", email="owner@fleet.test"),
        Profile(id="mech-1", role="mechanic", email="mech@fleet.test"),
        Vehicle(id="v1", name="Truck", status="Active", mileage=4950),
        Equipment(id="e1", name="Loader", status="Active", current_hours=260),
    )
    transport = email_transport_factory()
    monkeypatch.setattr(cli, "get_sync_session", sqlite_session_factory)
    monkeypatch.setattr(cli, "ResendEmailTransport", lambda: transport)
    return transport


def test_pm_board_prints_sorted_rows(fleet) -> None:
    """Overdue rows print before due-soon rows."""
    result = _invoke("pm-board")

    assert result.exit_code == 0
    rows = _last_json(result.stdout)
    assert [(row["assetId"], row["status"]) for row in rows] == [
        ("e1", "Overdue"),
        ("v1", "Due Soon"),
    ]


def test_pm_board_filters(fleet) -> None:
    """Asset type and search filters narrow the board."""
    result = _invoke("pm-board", "--asset-type", "Vehicles", "--search", "truck")

    assert result.exit_code == 0
    assert [row["assetId"] for row in _last_json(result.stdout)] == ["v1"]


def test_pm_board_invalid_filter_exits_with_domain_code(fleet) -> None:
    """Unknown filter values map to the domain error exit code."""
    result = _invoke("pm-board", "--status", "Soon")

    assert result.exit_code == cli.DOMAIN_ERROR_EXIT_CODE


def test_manual_digest_requires_owner(fleet) -> None:
    """Manual runs are refused for non-owners and anonymous callers."""
    anonymous = _invoke("digest", "run", "--manual")
    mechanic = _invoke("digest", "run", "--manual", "--user", "mech-1")

    assert anonymous.exit_code == cli.DOMAIN_ERROR_EXIT_CODE
    assert mechanic.exit_code == cli.DOMAIN_ERROR_EXIT_CODE
    assert fleet.sent == []


def test_manual_digest_then_cooldown(fleet) -> None:
    """An owner run succeeds and an immediate repeat hits the cooldown."""
    first = _invoke("digest", "run", "--manual", "--user", "owner-1")
    second = _invoke("digest", "run", "--manual", "--user", "owner-1")

    assert first.exit_code == 0
    payload = _last_json(first.stdout)
    assert payload["ok"] is True
    assert payload["source"] == "manual"
    assert payload["sentTo"] == 2
    assert second.exit_code == cli.DOMAIN_ERROR_EXIT_CODE
    assert _last_json(second.stdout)["retryAfterSeconds"] > 0


def test_digest_runs_lists_audit_rows(fleet) -> None:
    """Run history includes the manual run."""
    _invoke("digest", "run", "--manual", "--user", "owner-1")

    result = _invoke("digest", "runs", "--limit", "5")

    assert result.exit_code == 0
    [run] = _last_json(result.stdout)
    assert run["run_source"] == "manual"
    assert run["initiated_by"] == "owner-1"

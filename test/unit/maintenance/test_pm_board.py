"""Unit tests for assembling and filtering the PM board from the store."""

from datetime import datetime, timedelta, timezone

import pytest

from maintenance.board import build_pm_board, filter_pm_board
from models import Equipment, EquipmentPmEvent, Vehicle, VehiclePmEvent
from telemetry import TelemetryReader

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def fleet(add_rows):
    add_rows(
        Vehicle(id="v-over", name="Dump Truck", status="Active", mileage=10400),
        Vehicle(id="v-soon", name="Pickup", status="Active", mileage=4800),
        Vehicle(id="v-fine", name="Van", status="Active", mileage=1000),
        Vehicle(id="v-none", name="Unread", status="Active", mileage=None),
        Equipment(id="e-over", name="Excavator", status="Active", current_hours=300),
        Equipment(id="e-soon", name="Mower", status="Down", current_hours=740),
    )
    add_rows(
        VehiclePmEvent(vehicle_id="v-over", mileage=2000, created_at=BASE),
        VehiclePmEvent(vehicle_id="v-over", mileage=5000, created_at=BASE + timedelta(days=30)),
        VehiclePmEvent(vehicle_id="v-over", mileage=None, created_at=BASE + timedelta(days=60)),
        EquipmentPmEvent(equipment_id="e-soon", hours=500, created_at=BASE),
    )


def test_board_rows_are_sorted(sqlite_session_factory, fleet) -> None:
    """Overdue rows lead by amount; due-soon rows follow by distance."""
    rows = build_pm_board(TelemetryReader(sqlite_session_factory))

    assert [row.asset_id for row in rows] == ["v-over", "e-over", "e-soon", "v-soon"]
    by_id = {row.asset_id: row for row in rows}
    assert by_id["v-over"].last_service_value == 5000
    assert by_id["v-over"].overdue_amount == 400
    assert by_id["e-over"].overdue_amount == 50
    assert by_id["e-soon"].remaining == 10
    assert by_id["v-soon"].remaining == 200


def test_configured_interval_overrides_default(sqlite_session_factory, fleet) -> None:
    """A longer vehicle interval drops the pickup from the board."""
    rows = build_pm_board(TelemetryReader(sqlite_session_factory), vehicle_interval_miles=6000)

    assert "v-soon" not in {row.asset_id for row in rows}


def test_filters(sqlite_session_factory, fleet) -> None:
    """Status, asset type, and search filters narrow the board."""
    rows = build_pm_board(TelemetryReader(sqlite_session_factory))

    overdue = filter_pm_board(rows, status="Overdue")
    equipment = filter_pm_board(rows, asset_type="Equipment")
    search = filter_pm_board(rows, search="  MOWER ")
    by_type_word = filter_pm_board(rows, status="Due Soon", search="vehicle")

    assert [row.asset_id for row in overdue] == ["v-over", "e-over"]
    assert [row.asset_id for row in equipment] == ["e-over", "e-soon"]
    assert [row.asset_id for row in search] == ["e-soon"]
    assert [row.asset_id for row in by_type_word] == ["v-soon"]
    assert filter_pm_board(rows, status="All", asset_type="All") == rows


def test_invalid_filter_raises(sqlite_session_factory, fleet) -> None:
    """Unknown filter values are rejected."""
    rows = build_pm_board(TelemetryReader(sqlite_session_factory))

    with pytest.raises(ValueError):
        filter_pm_board(rows, status="Later")

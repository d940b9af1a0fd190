"""Preventative maintenance due calculations for vehicles and equipment."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import math

VEHICLE_MIN_WINDOW = 100.0
EQUIPMENT_MIN_WINDOW = 10.0
WINDOW_FRACTION = 0.1

UNITS = {"vehicle": "miles", "equipment": "hours"}


class PmStatus(Enum):
    """PM urgency categories. Lower value = more urgent."""

    OVERDUE = 1
    DUE_SOON = 2
    OK = 3

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    PmStatus.OVERDUE: "Overdue",
    PmStatus.DUE_SOON: "Due Soon",
    PmStatus.OK: "OK",
}


@dataclass(frozen=True)
class PmRule:
    """Interval and due-soon window for one asset type."""

    asset_type: str
    unit: str
    interval: float
    window: float


@dataclass(frozen=True)
class PmBoardRow:
    """One due or overdue asset on the PM board."""

    asset_id: str
    asset_name: str
    asset_type: str
    unit: str
    current_value: float
    last_service_value: float | None
    last_service_at: datetime | None
    due_at: float
    status: PmStatus
    overdue_amount: float
    remaining: float

    def as_payload(self) -> dict[str, object]:
        return {
            "assetId": self.asset_id,
            "assetName": self.asset_name,
            "assetType": self.asset_type,
            "unit": self.unit,
            "currentValue": self.current_value,
            "lastServiceValue": self.last_service_value,
            "lastServiceAt": (
                self.last_service_at.isoformat() if self.last_service_at else None
            ),
            "dueAt": self.due_at,
            "status": self.status.label,
            "overdueAmount": self.overdue_amount,
            "remaining": self.remaining,
        }


def due_soon_window(interval: float, minimum: float) -> float:
    """Return max(minimum, 10% of interval rounded half up)."""
    return max(minimum, float(math.floor(interval * WINDOW_FRACTION + 0.5)))


def vehicle_rule(interval_miles: float) -> PmRule:
    return PmRule(
        asset_type="vehicle",
        unit=UNITS["vehicle"],
        interval=float(interval_miles),
        window=due_soon_window(interval_miles, VEHICLE_MIN_WINDOW),
    )


def equipment_rule(interval_hours: float) -> PmRule:
    return PmRule(
        asset_type="equipment",
        unit=UNITS["equipment"],
        interval=float(interval_hours),
        window=due_soon_window(interval_hours, EQUIPMENT_MIN_WINDOW),
    )


def calc_due_at(last_service_value: float | None, interval: float) -> float:
    """Calculate next due usage: last service (0 without history) + interval."""
    return (last_service_value or 0.0) + interval


def check_pm_status(current: float, due_at: float, window: float) -> PmStatus:
    """Determine status by comparing current usage to the due threshold."""
    if current >= due_at:
        return PmStatus.OVERDUE
    if due_at - current <= window:
        return PmStatus.DUE_SOON
    return PmStatus.OK


def is_valid_reading(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value >= 0


def compute_pm_row(
    rule: PmRule,
    *,
    asset_id: str,
    asset_name: str | None,
    current_value: float | None,
    last_service_value: float | None = None,
    last_service_at: datetime | None = None,
) -> PmBoardRow | None:
    """Build a board row, or None when the asset is unreadable or not due."""
    if not is_valid_reading(current_value):
        return None
    current = float(current_value)
    due_at = calc_due_at(last_service_value, rule.interval)
    status = check_pm_status(current, due_at, rule.window)
    if status is PmStatus.OK:
        return None
    return PmBoardRow(
        asset_id=asset_id,
        asset_name=asset_name or asset_id,
        asset_type=rule.asset_type,
        unit=rule.unit,
        current_value=current,
        last_service_value=last_service_value,
        last_service_at=last_service_at,
        due_at=due_at,
        status=status,
        overdue_amount=current - due_at,
        remaining=due_at - current,
    )


def board_sort_key(row: PmBoardRow) -> tuple[int, float]:
    """Overdue first by largest overdue amount, then due soon by smallest remaining."""
    if row.status is PmStatus.OVERDUE:
        return (row.status.value, -row.overdue_amount)
    return (row.status.value, row.remaining)


__all__ = [
    "PmBoardRow",
    "PmRule",
    "PmStatus",
    "board_sort_key",
    "calc_due_at",
    "check_pm_status",
    "compute_pm_row",
    "due_soon_window",
    "equipment_rule",
    "is_valid_reading",
    "vehicle_rule",
]

"""PM board assembly and filtering."""

from __future__ import annotations

import logging

from config import settings
from maintenance.pm_due import (
    PmBoardRow,
    PmStatus,
    board_sort_key,
    compute_pm_row,
    equipment_rule,
    vehicle_rule,
)
from telemetry import TelemetryReader

logger = logging.getLogger(__name__)

STATUS_FILTERS = {
    "all": None,
    "due soon": PmStatus.DUE_SOON,
    "duesoon": PmStatus.DUE_SOON,
    "overdue": PmStatus.OVERDUE,
}
ASSET_TYPE_FILTERS = {
    "all": None,
    "vehicles": "vehicle",
    "vehicle": "vehicle",
    "equipment": "equipment",
}


def build_pm_board(
    reader: TelemetryReader,
    *,
    vehicle_interval_miles: float | None = None,
    equipment_interval_hours: float | None = None,
) -> list[PmBoardRow]:
    """Compute sorted PM rows for every vehicle and equipment unit."""
    vehicles = vehicle_rule(vehicle_interval_miles or settings.pm.vehicle_interval_miles)
    equipment = equipment_rule(equipment_interval_hours or settings.pm.equipment_interval_hours)

    rows: list[PmBoardRow] = []
    vehicle_services = reader.last_vehicle_services()
    for usage in reader.vehicle_usage():
        service = vehicle_services.get(usage.asset_id)
        row = compute_pm_row(
            vehicles,
            asset_id=usage.asset_id,
            asset_name=usage.name,
            current_value=usage.current_value,
            last_service_value=service.value if service else None,
            last_service_at=service.recorded_at if service else None,
        )
        if row is not None:
            rows.append(row)

    equipment_services = reader.last_equipment_services()
    for usage in reader.equipment_usage():
        service = equipment_services.get(usage.asset_id)
        row = compute_pm_row(
            equipment,
            asset_id=usage.asset_id,
            asset_name=usage.name,
            current_value=usage.current_value,
            last_service_value=service.value if service else None,
            last_service_at=service.recorded_at if service else None,
        )
        if row is not None:
            rows.append(row)

    rows.sort(key=board_sort_key)
    logger.debug(f"PM board computed with {len(rows)} due rows")
    return rows


def filter_pm_board(
    rows: list[PmBoardRow],
    *,
    status: str | None = None,
    asset_type: str | None = None,
    search: str | None = None,
) -> list[PmBoardRow]:
    """Filter board rows by status, asset type, and free-text search."""
    wanted_status = _lookup(STATUS_FILTERS, status, "status")
    wanted_type = _lookup(ASSET_TYPE_FILTERS, asset_type, "asset type")
    needle = (search or "").strip().lower()

    filtered = []
    for row in rows:
        if wanted_status is not None and row.status is not wanted_status:
            continue
        if wanted_type is not None and row.asset_type != wanted_type:
            continue
        if needle:
            haystack = f"{row.asset_name} {row.asset_id} {row.asset_type}".lower()
            if needle not in haystack:
                continue
        filtered.append(row)
    return filtered


def _lookup(table: dict, value: str | None, label: str):
    key = (value or "All").strip().lower()
    if key not in table:
        raise ValueError(f"Invalid {label} filter: {value!r}")
    return table[key]


__all__ = ["build_pm_board", "filter_pm_board"]

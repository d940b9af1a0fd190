"""Read adapter over the fleet tables consumed by trends, digests, and PM."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
import logging
import math
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    Equipment,
    EquipmentPmEvent,
    MaintenanceLog,
    NotificationPreference,
    Profile,
    Vehicle,
    VehiclePmEvent,
)

logger = logging.getLogger(__name__)

DIGEST_RECIPIENT_ROLES = ("owner", "mechanic")


@dataclass(frozen=True)
class Recipient:
    """Profile eligible to receive digest notifications."""

    id: str
    role: str
    email: str | None = None


@dataclass(frozen=True)
class AssetSummary:
    """Display fields for one vehicle or equipment unit."""

    name: str | None
    status: str | None


@dataclass(frozen=True)
class AssetUsage:
    """Current usage meter reading for one asset."""

    asset_id: str
    name: str | None
    current_value: float | None


@dataclass(frozen=True)
class ServiceEvent:
    """Usage recorded at a preventative maintenance service."""

    value: float
    recorded_at: datetime | None


@dataclass(frozen=True)
class SignalSeries:
    """Health and mechanic scores for one asset, oldest first."""

    health_points: list[float] = field(default_factory=list)
    mechanic_points: list[float] = field(default_factory=list)


class TelemetryReader:
    """Row-level reads of recipients, assets, usage, and service history."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def list_recipients(self, roles: Iterable[str] = DIGEST_RECIPIENT_ROLES) -> list[Recipient]:
        """Return profiles holding one of the given roles, ordered by id."""
        role_list = list(roles)

        def handler(session: Session) -> list[Recipient]:
            rows = session.execute(
                select(Profile.id, Profile.role, Profile.email)
                .where(Profile.role.in_(role_list))
                .order_by(Profile.id)
            ).all()
            return [Recipient(id=row.id, role=row.role, email=row.email) for row in rows]

        return self._read(handler)

    def get_role(self, user_id: str) -> str | None:
        """Return the role recorded for a profile, or None when unknown."""

        def handler(session: Session) -> str | None:
            return session.execute(
                select(Profile.role).where(Profile.id == user_id)
            ).scalar_one_or_none()

        return self._read(handler)

    def email_preferences(self, user_ids: Iterable[str]) -> dict[str, bool]:
        """Return stored email_enabled flags; users without a row are absent."""
        ids = list(user_ids)
        if not ids:
            return {}

        def handler(session: Session) -> dict[str, bool]:
            rows = session.execute(
                select(
                    NotificationPreference.user_id,
                    NotificationPreference.email_enabled,
                ).where(NotificationPreference.user_id.in_(ids))
            ).all()
            return {row.user_id: bool(row.email_enabled) for row in rows}

        return self._read(handler)

    def asset_summaries(
        self,
        asset_type: str,
        asset_ids: Iterable[str],
    ) -> dict[str, AssetSummary]:
        """Return name and status for the requested assets of one type."""
        ids = sorted(set(asset_ids))
        if not ids:
            return {}
        table = _asset_table(asset_type)

        def handler(session: Session) -> dict[str, AssetSummary]:
            rows = session.execute(
                select(table.id, table.name, table.status).where(table.id.in_(ids))
            ).all()
            return {
                row.id: AssetSummary(name=row.name, status=row.status) for row in rows
            }

        return self._read(handler)

    def vehicle_usage(self) -> list[AssetUsage]:
        """Return odometer readings for every vehicle."""

        def handler(session: Session) -> list[AssetUsage]:
            rows = session.execute(
                select(Vehicle.id, Vehicle.name, Vehicle.mileage).order_by(Vehicle.id)
            ).all()
            return [
                AssetUsage(asset_id=row.id, name=row.name, current_value=row.mileage)
                for row in rows
            ]

        return self._read(handler)

    def equipment_usage(self) -> list[AssetUsage]:
        """Return hour meter readings for every equipment unit."""

        def handler(session: Session) -> list[AssetUsage]:
            rows = session.execute(
                select(Equipment.id, Equipment.name, Equipment.current_hours).order_by(
                    Equipment.id
                )
            ).all()
            return [
                AssetUsage(asset_id=row.id, name=row.name, current_value=row.current_hours)
                for row in rows
            ]

        return self._read(handler)

    def last_vehicle_services(self) -> dict[str, ServiceEvent]:
        """Return the most recent valid PM event per vehicle."""

        def handler(session: Session) -> dict[str, ServiceEvent]:
            rows = session.execute(
                select(
                    VehiclePmEvent.vehicle_id,
                    VehiclePmEvent.mileage,
                    VehiclePmEvent.created_at,
                ).order_by(VehiclePmEvent.created_at.desc(), VehiclePmEvent.id.desc())
            ).all()
            return _latest_per_asset(rows)

        return self._read(handler)

    def last_equipment_services(self) -> dict[str, ServiceEvent]:
        """Return the most recent valid PM event per equipment unit."""

        def handler(session: Session) -> dict[str, ServiceEvent]:
            rows = session.execute(
                select(
                    EquipmentPmEvent.equipment_id,
                    EquipmentPmEvent.hours,
                    EquipmentPmEvent.created_at,
                ).order_by(EquipmentPmEvent.created_at.desc(), EquipmentPmEvent.id.desc())
            ).all()
            return _latest_per_asset(rows)

        return self._read(handler)

    def recent_signals(
        self,
        asset_type: str,
        asset_id: str,
        *,
        limit: int = 10,
    ) -> SignalSeries:
        """Return the latest graded scores for an asset in time order.

        Logs without a score for a given signal are skipped for that signal
        only, so the two series can differ in length.
        """

        def handler(session: Session) -> SignalSeries:
            rows = session.execute(
                select(MaintenanceLog.health_score, MaintenanceLog.mechanic_self_score)
                .where(
                    MaintenanceLog.asset_type == asset_type,
                    MaintenanceLog.asset_id == asset_id,
                )
                .order_by(MaintenanceLog.created_at.desc(), MaintenanceLog.id.desc())
                .limit(limit)
            ).all()
            ordered = list(reversed(rows))
            return SignalSeries(
                health_points=[
                    float(row.health_score) for row in ordered if _is_usable(row.health_score)
                ],
                mechanic_points=[
                    float(row.mechanic_self_score)
                    for row in ordered
                    if _is_usable(row.mechanic_self_score)
                ],
            )

        return self._read(handler)

    def _read(self, handler):
        """Run a read-only query inside a managed session."""
        with closing(self._session_factory()) as session:
            return handler(session)


def _asset_table(asset_type: str):
    if asset_type == "vehicle":
        return Vehicle
    if asset_type == "equipment":
        return Equipment
    raise ValueError(f"Unknown asset type: {asset_type}")


def _is_usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def _latest_per_asset(rows) -> dict[str, ServiceEvent]:
    """Keep the first valid reading per asset from newest-first rows."""
    latest: dict[str, ServiceEvent] = {}
    for asset_id, value, created_at in rows:
        if asset_id in latest:
            continue
        if value is None or not math.isfinite(value) or value < 0:
            logger.debug(f"Ignoring invalid PM event reading for {asset_id}: {value}")
            continue
        latest[asset_id] = ServiceEvent(value=float(value), recorded_at=created_at)
    return latest


__all__ = [
    "AssetSummary",
    "AssetUsage",
    "DIGEST_RECIPIENT_ROLES",
    "Recipient",
    "ServiceEvent",
    "SignalSeries",
    "TelemetryReader",
]

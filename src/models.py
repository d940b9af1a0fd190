"""Data models for fleet trend alerting, digests, and PM tracking."""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationInfo, field_validator
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import declarative_base

# SQLAlchemy base
Base = declarative_base()

ASSET_TYPES = ("vehicle", "equipment")
ACTION_TYPES = ("asset_health_decline", "mechanic_decline")
ACTION_STATUSES = ("Open", "In Review", "Resolved")
ACTIVE_ACTION_STATUSES = ("Open", "In Review")
NOTIFICATION_SEVERITIES = ("info", "warning", "high", "critical")
RUN_SOURCES = ("cron", "manual")

AssetTypeEnum = Enum(*ASSET_TYPES, name="asset_type", native_enum=False)
ActionTypeEnum = Enum(*ACTION_TYPES, name="trend_action_type", native_enum=False)
ActionStatusEnum = Enum(*ACTION_STATUSES, name="trend_action_status", native_enum=False)
NotificationSeverityEnum = Enum(
    *NOTIFICATION_SEVERITIES,
    name="notification_severity",
    native_enum=False,
)
RunSourceEnum = Enum(*RUN_SOURCES, name="digest_run_source", native_enum=False)

_ACTIVE_STATUS_PREDICATE = text("status IN ('Open', 'In Review')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Collaborator tables owned by the wider fleet application
class Profile(Base):
    """User profile with role and contact address."""

    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    role = Column(String(50), nullable=True)
    email = Column(String(320), nullable=True)
    full_name = Column(String(200), nullable=True)


class NotificationPreference(Base):
    """Per-user delivery preferences; absence means e-mail enabled."""

    __tablename__ = "user_notification_prefs"

    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class Vehicle(Base):
    """Fleet vehicle with odometer reading."""

    __tablename__ = "vehicles"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=True)
    status = Column(String(100), nullable=True)
    mileage = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class Equipment(Base):
    """Equipment unit with hour meter reading."""

    __tablename__ = "equipment"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=True)
    status = Column(String(100), nullable=True)
    current_hours = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class VehiclePmEvent(Base):
    """Preventative maintenance service recorded against a vehicle."""

    __tablename__ = "vehicle_pm_events"
    __table_args__ = (Index("vehicle_pm_events_vehicle_idx", "vehicle_id", "created_at"),)

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(String(64), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    mileage = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class EquipmentPmEvent(Base):
    """Preventative maintenance service recorded against an equipment unit."""

    __tablename__ = "equipment_pm_events"
    __table_args__ = (Index("equipment_pm_events_equipment_idx", "equipment_id", "created_at"),)

    id = Column(Integer, primary_key=True)
    equipment_id = Column(
        String(64), ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False
    )
    hours = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class MaintenanceLog(Base):
    """Maintenance log entry carrying the graded health and mechanic scores."""

    __tablename__ = "maintenance_logs"
    __table_args__ = (
        Index("maintenance_logs_asset_idx", "asset_type", "asset_id", "created_at"),
        CheckConstraint(
            "mechanic_self_score IS NULL OR (mechanic_self_score >= 0 AND mechanic_self_score <= 100)",
            name="maintenance_logs_mechanic_self_score_check",
        ),
    )

    id = Column(Integer, primary_key=True)
    asset_type = Column(AssetTypeEnum, nullable=False)
    asset_id = Column(String(64), nullable=False)
    health_score = Column(Float, nullable=True)
    mechanic_self_score = Column(Float, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


# Tables owned by this subsystem
class TrendAction(Base):
    """Alert record opened when an asset's trend declines."""

    __tablename__ = "trend_actions"
    __table_args__ = (
        Index("trend_actions_asset_idx", "asset_type", "asset_id", "created_at"),
        Index(
            "trend_actions_open_unique_idx",
            "asset_type",
            "asset_id",
            "action_type",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_PREDICATE,
            sqlite_where=_ACTIVE_STATUS_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    asset_type = Column(AssetTypeEnum, nullable=False)
    asset_id = Column(String(64), nullable=False)
    action_type = Column(ActionTypeEnum, nullable=False)
    status = Column(ActionStatusEnum, nullable=False, default="Open")
    trend_direction = Column(String(50), nullable=False, default="Declining")
    summary = Column(Text, nullable=False)
    detail = Column(JSON, nullable=False, default=dict)
    created_by = Column(String(64), nullable=False)
    resolved_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class UserNotification(Base):
    """In-app notification, unique per recipient and dedupe key."""

    __tablename__ = "user_notifications"
    __table_args__ = (
        UniqueConstraint("recipient_id", "dedupe_key", name="user_notifications_dedupe_unique"),
        CheckConstraint(
            "severity IN ('info', 'warning', 'high', 'critical')",
            name="user_notifications_severity_allowed",
        ),
        Index("user_notifications_recipient_read_idx", "recipient_id", "is_read", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    recipient_id = Column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    severity = Column(NotificationSeverityEnum, nullable=False, default="info")
    kind = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(String(200), nullable=True)
    dedupe_key = Column(String(200), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    read_at = Column(DateTime(timezone=True), nullable=True)


class DigestRunLog(Base):
    """Append-only audit row for every digest execution attempt."""

    __tablename__ = "digest_run_logs"
    __table_args__ = (Index("digest_run_logs_ran_at_idx", "ran_at"),)

    id = Column(Integer, primary_key=True)
    run_source = Column(RunSourceEnum, nullable=False)
    initiated_by = Column(String(64), nullable=True)
    ran_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    success = Column(Boolean, nullable=False, default=False)
    skipped = Column(Boolean, nullable=False, default=False)
    date_key = Column(String(10), nullable=True)
    sent_to = Column(Integer, nullable=False, default=0)
    open_count = Column(Integer, nullable=False, default=0)
    in_review_count = Column(Integer, nullable=False, default=0)
    email_attempted = Column(Integer, nullable=False, default=0)
    email_sent = Column(Integer, nullable=False, default=0)
    email_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    meta = Column(JSON, nullable=True)


class SystemJobState(Base):
    """Single-row-per-key state for cooldown-protected jobs."""

    __tablename__ = "system_job_state"
    __table_args__ = (
        CheckConstraint("length(trim(key)) > 0", name="system_job_state_key_not_blank"),
    )

    key = Column(String(200), primary_key=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_run_by = Column(String(64), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


def _ensure_aware_timestamp(value: datetime | None) -> datetime | None:
    """Normalize timestamps to UTC when timezone info is missing."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@event.listens_for(TrendAction, "load")
def _normalize_trend_action_on_load(target: TrendAction, _context: object) -> None:
    """Ensure loaded trend action timestamps retain timezone awareness."""
    target.created_at = _ensure_aware_timestamp(target.created_at)
    target.updated_at = _ensure_aware_timestamp(target.updated_at)
    target.resolved_at = _ensure_aware_timestamp(target.resolved_at)


@event.listens_for(DigestRunLog, "load")
def _normalize_digest_run_on_load(target: DigestRunLog, _context: object) -> None:
    """Ensure loaded run timestamps retain timezone awareness."""
    target.ran_at = _ensure_aware_timestamp(target.ran_at)


@event.listens_for(SystemJobState, "load")
def _normalize_job_state_on_load(target: SystemJobState, _context: object) -> None:
    """Ensure loaded job state timestamps retain timezone awareness."""
    target.last_run_at = _ensure_aware_timestamp(target.last_run_at)
    target.updated_at = _ensure_aware_timestamp(target.updated_at)


# Pydantic models for action detail payloads
class AssetHealthDeclineDetail(BaseModel):
    """Trailing asset-health scores that triggered the action."""

    kind: Literal["asset_health_decline"] = "asset_health_decline"
    recent_points: list[float]


class MechanicDeclineDetail(BaseModel):
    """Trailing mechanic-quality scores that triggered the action."""

    kind: Literal["mechanic_decline"] = "mechanic_decline"
    recent_points: list[float]


TrendActionDetail = Annotated[
    Union[AssetHealthDeclineDetail, MechanicDeclineDetail],
    Field(discriminator="kind"),
]
_DETAIL_ADAPTER: TypeAdapter = TypeAdapter(TrendActionDetail)


def parse_action_detail(action_type: str, payload: dict | None) -> TrendActionDetail:
    """Parse a stored detail payload, tagging legacy rows by their action type."""
    data = dict(payload or {})
    data.setdefault("kind", action_type)
    data.setdefault("recent_points", [])
    return _DETAIL_ADAPTER.validate_python(data)


class TrendActionResponse(BaseModel):
    """Trend action as returned to API callers."""

    id: int
    asset_type: str
    asset_id: str
    action_type: str
    status: str
    summary: str
    detail: dict
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("detail", mode="before")
    @classmethod
    def validate_detail(cls, value: object, info: ValidationInfo) -> dict:
        """Check the stored payload against its action type; callers never see the tag."""
        detail = parse_action_detail(info.data.get("action_type", ""), value)
        return detail.model_dump(exclude={"kind"})


class DigestRunResponse(BaseModel):
    """Digest audit row as returned to API callers."""

    id: int
    run_source: str
    initiated_by: str | None = None
    ran_at: datetime
    success: bool
    skipped: bool
    date_key: str | None = None
    sent_to: int
    open_count: int
    in_review_count: int
    email_attempted: int
    email_sent: int
    email_failed: int
    error_message: str | None = None
    meta: dict | None = None

    model_config = ConfigDict(from_attributes=True)

"""Create fleet trend action, digest, and PM tables.

Revision ID: 0001_fleet_trends
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_fleet_trends"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_STATUS_PREDICATE = sa.text("status IN ('Open', 'In Review')")


def _asset_type() -> sa.Enum:
    return sa.Enum("vehicle", "equipment", name="asset_type", native_enum=False)


def upgrade() -> None:
    """Create collaborator tables and the tables owned by trend alerting."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("role", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=True),
    )
    op.create_table(
        "user_notification_prefs",
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "vehicles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("status", sa.String(length=100), nullable=True),
        sa.Column("mileage", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "equipment",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("status", sa.String(length=100), nullable=True),
        sa.Column("current_hours", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "vehicle_pm_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "vehicle_id",
            sa.String(length=64),
            sa.ForeignKey("vehicles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("mileage", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "vehicle_pm_events_vehicle_idx", "vehicle_pm_events", ["vehicle_id", "created_at"]
    )
    op.create_table(
        "equipment_pm_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "equipment_id",
            sa.String(length=64),
            sa.ForeignKey("equipment.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("hours", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "equipment_pm_events_equipment_idx",
        "equipment_pm_events",
        ["equipment_id", "created_at"],
    )
    op.create_table(
        "maintenance_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_type", _asset_type(), nullable=False),
        sa.Column("asset_id", sa.String(length=64), nullable=False),
        sa.Column("health_score", sa.Float(), nullable=True),
        sa.Column("mechanic_self_score", sa.Float(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "mechanic_self_score IS NULL OR (mechanic_self_score >= 0 AND mechanic_self_score <= 100)",
            name="maintenance_logs_mechanic_self_score_check",
        ),
    )
    op.create_index(
        "maintenance_logs_asset_idx",
        "maintenance_logs",
        ["asset_type", "asset_id", "created_at"],
    )

    op.create_table(
        "trend_actions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_type", _asset_type(), nullable=False),
        sa.Column("asset_id", sa.String(length=64), nullable=False),
        sa.Column(
            "action_type",
            sa.Enum(
                "asset_health_decline",
                "mechanic_decline",
                name="trend_action_type",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("Open", "In Review", "Resolved", name="trend_action_status", native_enum=False),
            nullable=False,
            server_default="Open",
        ),
        sa.Column("trend_direction", sa.String(length=50), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "trend_actions_asset_idx", "trend_actions", ["asset_type", "asset_id", "created_at"]
    )
    op.create_index(
        "trend_actions_open_unique_idx",
        "trend_actions",
        ["asset_type", "asset_id", "action_type"],
        unique=True,
        postgresql_where=ACTIVE_STATUS_PREDICATE,
        sqlite_where=ACTIVE_STATUS_PREDICATE,
    )

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "recipient_id",
            sa.String(length=64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "severity",
            sa.Enum(
                "info",
                "warning",
                "high",
                "critical",
                name="notification_severity",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("kind", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=200), nullable=True),
        sa.Column("dedupe_key", sa.String(length=200), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "recipient_id", "dedupe_key", name="user_notifications_dedupe_unique"
        ),
        sa.CheckConstraint(
            "severity IN ('info', 'warning', 'high', 'critical')",
            name="user_notifications_severity_allowed",
        ),
    )
    op.create_index(
        "user_notifications_recipient_read_idx",
        "user_notifications",
        ["recipient_id", "is_read", "created_at"],
    )

    op.create_table(
        "digest_run_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "run_source",
            sa.Enum("cron", "manual", name="digest_run_source", native_enum=False),
            nullable=False,
        ),
        sa.Column("initiated_by", sa.String(length=64), nullable=True),
        sa.Column("ran_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("skipped", sa.Boolean(), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=True),
        sa.Column("sent_to", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("open_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("in_review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email_attempted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
    )
    op.create_index("digest_run_logs_ran_at_idx", "digest_run_logs", ["ran_at"])

    op.create_table(
        "system_job_state",
        sa.Column("key", sa.String(length=200), primary_key=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_by", sa.String(length=64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("length(trim(key)) > 0", name="system_job_state_key_not_blank"),
    )


def downgrade() -> None:
    """Drop fleet trend tables in dependency order."""
    op.drop_table("system_job_state")
    op.drop_index("digest_run_logs_ran_at_idx", table_name="digest_run_logs")
    op.drop_table("digest_run_logs")
    op.drop_index("user_notifications_recipient_read_idx", table_name="user_notifications")
    op.drop_table("user_notifications")
    op.drop_index("trend_actions_open_unique_idx", table_name="trend_actions")
    op.drop_index("trend_actions_asset_idx", table_name="trend_actions")
    op.drop_table("trend_actions")
    op.drop_index("maintenance_logs_asset_idx", table_name="maintenance_logs")
    op.drop_table("maintenance_logs")
    op.drop_index("equipment_pm_events_equipment_idx", table_name="equipment_pm_events")
    op.drop_table("equipment_pm_events")
    op.drop_index("vehicle_pm_events_vehicle_idx", table_name="vehicle_pm_events")
    op.drop_table("vehicle_pm_events")
    op.drop_table("equipment")
    op.drop_table("vehicles")
    op.drop_table("user_notification_prefs")
    op.drop_table("profiles")

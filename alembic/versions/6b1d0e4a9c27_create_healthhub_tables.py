"""Create healthhub tables

Revision ID: 6b1d0e4a9c27
Revises:
Create Date: 2026-10-19 09:12:31.204118

This migration creates the schema of the aggregation backend:
- users, refresh_tokens: local accounts and revocable refresh tokens
- fhir_sessions, chat_messages: provider connections (at most one current)
- audit_logs: access log for protected health information
- family_members, health_narratives, health_goals, action_items: family dashboard
- scheduled_appointments, form_templates, prefilled_forms: scheduling
- health_alerts, health_digests: notifications
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "6b1d0e4a9c27"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated: bool = False) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    # Accounts
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "email", sa.String(255), nullable=False, comment="Login email (stored lower-cased)"
        ),
        sa.Column("password_hash", sa.String(255), nullable=False, comment="bcrypt hash"),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("profile_picture", sa.String(1024), nullable=True, comment="Avatar URL"),
        sa.Column("theme", sa.String(10), nullable=False, comment="light, dark or system"),
        sa.Column("notification_preferences", JSON, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("jti", sa.String(64), nullable=False, comment="JWT id claim"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_jti", "refresh_tokens", ["jti"], unique=True)

    # Provider sessions
    op.create_table(
        "fhir_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column(
            "provider", sa.String(50), nullable=False, comment="Provider key (demo, hapi, epic, ...)"
        ),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "fhir_server", sa.String(1024), nullable=True, comment="FHIR base URL of the provider"
        ),
        sa.Column(
            "patient_id", sa.String(255), nullable=True, comment="Patient id on the provider server"
        ),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("state", sa.String(255), nullable=True, comment="OAuth state"),
        sa.Column("current", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("migration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "migration_counts",
            JSON,
            nullable=True,
            comment="Resources copied to the local store, by type",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fhir_sessions_id", "fhir_sessions", ["id"])
    op.create_index(
        "uq_fhir_sessions_single_current",
        "fhir_sessions",
        ["current"],
        unique=True,
        postgresql_where=sa.text("current"),
        sqlite_where=sa.text("current = 1"),
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("fhir_session_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, comment="user or assistant"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("context_data", JSON, nullable=True),
        sa.ForeignKeyConstraint(["fhir_session_id"], ["fhir_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_messages_fhir_session_id", "chat_messages", ["fhir_session_id"])
    op.create_index("ix_chat_messages_timestamp", "chat_messages", ["timestamp"])

    # Audit
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column(
            "action", sa.String(10), nullable=False, comment="CREATE, READ, UPDATE, DELETE, ACCESS"
        ),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("endpoint", sa.String(500), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_resource_type", "audit_logs", ["resource_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Family dashboard
    op.create_table(
        "family_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "relationship", sa.String(50), nullable=False, comment="self, spouse, child, parent, ..."
        ),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "fhir_session_id",
            sa.Integer(),
            nullable=True,
            comment="Provider connection holding this member's records",
        ),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["fhir_session_id"], ["fhir_sessions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_family_members_id", "family_members", ["id"])
    op.create_index("ix_family_members_user_id", "family_members", ["user_id"])

    op.create_table(
        "health_narratives",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("narrative_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("source_data", JSON, nullable=True),
        sa.Column(
            "generated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "valid_until", sa.DateTime(timezone=True), nullable=True, comment="Reused until this date"
        ),
        sa.Column("ai_model", sa.String(50), nullable=True),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_health_narratives_family_member_id", "health_narratives", ["family_member_id"]
    )

    op.create_table(
        "health_goals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "category", sa.String(50), nullable=True, comment="weight, activity, nutrition, ..."
        ),
        sa.Column("target_value", sa.Float(), nullable=True),
        sa.Column("current_value", sa.Float(), nullable=True),
        sa.Column("unit", sa.String(30), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column(
            "status", sa.String(20), nullable=False, comment="active, completed, abandoned"
        ),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_health_goals_family_member_id", "health_goals", ["family_member_id"])

    op.create_table(
        "action_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "action_type",
            sa.String(50),
            nullable=True,
            comment="screening, vaccination, follow_up, ...",
        ),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            comment="pending, scheduled, completed, dismissed",
        ),
        sa.Column("source", sa.String(50), nullable=True, comment="care_gap, narrative, manual"),
        sa.Column("metadata", JSON, nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_provider", sa.String(255), nullable=True),
        sa.Column("scheduled_location", sa.String(255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_action_items_family_member_id", "action_items", ["family_member_id"])
    op.create_index("ix_action_items_status", "action_items", ["status"])

    # Scheduling
    op.create_table(
        "scheduled_appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("action_item_id", sa.Integer(), nullable=True),
        sa.Column("provider_name", sa.String(255), nullable=True),
        sa.Column("provider_npi", sa.String(10), nullable=True),
        sa.Column("facility_name", sa.String(255), nullable=True),
        sa.Column("facility_address", sa.String(500), nullable=True),
        sa.Column("scheduled_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("appointment_type", sa.String(50), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            comment="scheduled, confirmed, completed, cancelled, no_show",
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("prefilled_form_id", sa.Integer(), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["action_item_id"], ["action_items.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_appointments_family_member_id", "scheduled_appointments", ["family_member_id"]
    )
    op.create_index(
        "ix_scheduled_appointments_scheduled_date_time",
        "scheduled_appointments",
        ["scheduled_date_time"],
    )

    op.create_table(
        "form_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "form_type", sa.String(50), nullable=False, comment="intake, consent, history"
        ),
        sa.Column("fields", JSON, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "prefilled_forms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        sa.Column("filled_data", JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, comment="draft, ready, submitted"),
        sa.Column(
            "generated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["appointment_id"], ["scheduled_appointments.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_prefilled_forms_family_member_id", "prefilled_forms", ["family_member_id"]
    )

    # Notifications
    op.create_table(
        "health_alerts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column(
            "alert_type",
            sa.String(50),
            nullable=False,
            comment="appointment_reminder, milestone, ...",
        ),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False, comment="low, medium, high, urgent"),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("related_entity_type", sa.String(50), nullable=True),
        sa.Column("related_entity_id", sa.String(100), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_health_alerts_family_member_id", "health_alerts", ["family_member_id"])
    op.create_index("ix_health_alerts_created_at", "health_alerts", ["created_at"])

    op.create_table(
        "health_digests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("week_start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("week_end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("summary", JSON, nullable=False),
        sa.Column("highlights", JSON, nullable=False),
        sa.Column("appointment_count", sa.Integer(), nullable=False),
        sa.Column("action_item_count", sa.Integer(), nullable=False),
        sa.Column("completed_actions_count", sa.Integer(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_health_digests_user_id", "health_digests", ["user_id"])


def downgrade() -> None:
    op.drop_table("health_digests")
    op.drop_table("health_alerts")
    op.drop_table("prefilled_forms")
    op.drop_table("form_templates")
    op.drop_table("scheduled_appointments")
    op.drop_table("action_items")
    op.drop_table("health_goals")
    op.drop_table("health_narratives")
    op.drop_table("family_members")
    op.drop_table("audit_logs")
    op.drop_table("chat_messages")
    op.drop_index("uq_fhir_sessions_single_current", table_name="fhir_sessions")
    op.drop_table("fhir_sessions")
    op.drop_table("refresh_tokens")
    op.drop_table("users")

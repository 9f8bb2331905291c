"""staff calendar tables

Revision ID: 0001_staff_calendar
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_staff_calendar"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="staff"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('staff', 'mechanic', 'master', 'manager', 'owner')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(length=128), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"], unique=False)

    op.create_table(
        "staff_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("is_working_day", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_time", sa.String(length=8), nullable=True),
        sa.Column("end_time", sa.String(length=8), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval_status", sa.String(length=20), nullable=False, server_default="not_required"),
        sa.Column("denial_reason", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "day_of_week", name="uq_staff_schedules_user_day"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_staff_schedules_day_of_week"),
        sa.CheckConstraint(
            "approval_status IN ('not_required', 'pending', 'approved', 'denied')",
            name="ck_staff_schedules_approval_status",
        ),
    )
    op.create_index("ix_staff_schedules_user_id", "staff_schedules", ["user_id"], unique=False)

    op.create_table(
        "staff_schedule_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("override_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=True),
        sa.Column("end_time", sa.String(length=8), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "override_date", name="uq_staff_schedule_overrides_user_date"),
        sa.CheckConstraint(
            "status IN ('working', 'approved_day_off', 'sick_leave')",
            name="ck_staff_schedule_overrides_status",
        ),
    )
    op.create_index("ix_staff_schedule_overrides_user_id", "staff_schedule_overrides", ["user_id"], unique=False)
    op.create_index(
        "ix_staff_schedule_overrides_override_date", "staff_schedule_overrides", ["override_date"], unique=False
    )

    op.create_table(
        "staff_time_off_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=True),
        sa.Column("end_time", sa.String(length=8), nullable=True),
        sa.Column("is_partial_day", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hours_taken", sa.Float(), nullable=True),
        sa.Column("time_off_type", sa.String(length=20), nullable=False, server_default="vacation"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("end_date >= start_date", name="ck_staff_time_off_requests_date_range"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_staff_time_off_requests_status",
        ),
        sa.CheckConstraint(
            "time_off_type IN ('vacation', 'sick_leave', 'personal_day', 'unpaid')",
            name="ck_staff_time_off_requests_type",
        ),
    )
    op.create_index("ix_staff_time_off_requests_user_id", "staff_time_off_requests", ["user_id"], unique=False)
    op.create_index("ix_staff_time_off_requests_start_date", "staff_time_off_requests", ["start_date"], unique=False)
    op.create_index("ix_staff_time_off_requests_end_date", "staff_time_off_requests", ["end_date"], unique=False)
    op.create_index("ix_staff_time_off_requests_status", "staff_time_off_requests", ["status"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=40), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_staff_time_off_requests_status", table_name="staff_time_off_requests")
    op.drop_index("ix_staff_time_off_requests_end_date", table_name="staff_time_off_requests")
    op.drop_index("ix_staff_time_off_requests_start_date", table_name="staff_time_off_requests")
    op.drop_index("ix_staff_time_off_requests_user_id", table_name="staff_time_off_requests")
    op.drop_table("staff_time_off_requests")

    op.drop_index("ix_staff_schedule_overrides_override_date", table_name="staff_schedule_overrides")
    op.drop_index("ix_staff_schedule_overrides_user_id", table_name="staff_schedule_overrides")
    op.drop_table("staff_schedule_overrides")

    op.drop_index("ix_staff_schedules_user_id", table_name="staff_schedules")
    op.drop_table("staff_schedules")

    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

"""staff roster, leave requests and schedules

Revision ID: 0001_staff_leave_schedules
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_staff_leave_schedules"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("position", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_staff_email", "staff", ["email"], unique=True)

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("leave_type", sa.String(length=40), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected', 'Cancelled')",
            name="ck_leave_requests_status",
        ),
    )
    op.create_index("ix_leave_requests_staff_status", "leave_requests", ["staff_id", "status"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("shift", sa.String(length=10), nullable=False),
        sa.Column("location", sa.String(length=80), nullable=False),
        sa.Column("priority", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_auto_scheduled", sa.Boolean(), nullable=False),
        sa.Column("needs_attention", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("shift IN ('day', 'night')", name="ck_schedules_shift"),
    )
    op.create_index("ix_schedules_date_shift", "schedules", ["date", "shift"], unique=False)
    op.create_index("ix_schedules_location_date", "schedules", ["location", "date"], unique=False)

    op.create_table(
        "schedule_staff",
        sa.Column("schedule_id", sa.Integer(), primary_key=True),
        sa.Column("staff_id", sa.Integer(), primary_key=True),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["staff_id"], ["staff.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_staff_staff_id", "schedule_staff", ["staff_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_schedule_staff_staff_id", table_name="schedule_staff")
    op.drop_table("schedule_staff")
    op.drop_index("ix_schedules_location_date", table_name="schedules")
    op.drop_index("ix_schedules_date_shift", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("ix_leave_requests_staff_status", table_name="leave_requests")
    op.drop_table("leave_requests")
    op.drop_index("ix_staff_email", table_name="staff")
    op.drop_table("staff")

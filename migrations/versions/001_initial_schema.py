"""Initial database schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "staff_member",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("remote_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=100), nullable=True),
        sa.Column("color", sa.String(length=20), nullable=False, server_default="#6366f1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("resource_calendar_id", sa.Integer(), nullable=True),
        sa.Column("working_hours", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_staff_member_remote_id", "staff_member", ["remote_id"], unique=True)

    op.create_table(
        "appointment",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("remote_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=50), nullable=True),
        sa.Column("service", sa.String(length=255), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("staff_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="confirmed"),
        sa.Column("price", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("category_color", sa.String(length=20), nullable=True),
        sa.Column("last_synced", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["staff_id"], ["staff_member.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appointment_remote_id", "appointment", ["remote_id"], unique=True)
    op.create_index("ix_appointment_staff_id", "appointment", ["staff_id"])
    op.create_index("ix_appointment_start_time", "appointment", ["start_time"])

    op.create_table(
        "calendar_settings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("time_interval", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("inactive_days", sa.String(length=20), nullable=False, server_default="0"),
        sa.Column("booking_months_ahead", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("working_hours_start", sa.String(length=5), nullable=False, server_default="09:00"),
        sa.Column("working_hours_end", sa.String(length=5), nullable=False, server_default="17:00"),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("calendar_settings")
    op.drop_index("ix_appointment_start_time", table_name="appointment")
    op.drop_index("ix_appointment_staff_id", table_name="appointment")
    op.drop_index("ix_appointment_remote_id", table_name="appointment")
    op.drop_table("appointment")
    op.drop_index("ix_staff_member_remote_id", table_name="staff_member")
    op.drop_table("staff_member")

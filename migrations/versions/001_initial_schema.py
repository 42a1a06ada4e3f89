"""Initial schema: users, stylist_services, stylist_schedules, appointments.

Revision ID: 001_initial
Revises:
Create Date: 2025-03-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SLOT_WHERE = sa.text("status NOT IN ('cancelled', 'rejected', 'failed')")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="client"),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "stylist_services",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stylist_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("deposit_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default="true"),
        sa.ForeignKeyConstraint(["stylist_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stylist_services_stylist_id"), "stylist_services", ["stylist_id"], unique=False)

    op.create_table(
        "stylist_schedules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stylist_id", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("work_hours", sa.JSON(), nullable=False),
        sa.Column("breaks", sa.JSON(), nullable=False),
        sa.Column("buffer_time", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["stylist_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stylist_schedules_stylist_id"), "stylist_schedules", ["stylist_id"], unique=True)

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("stylist_id", sa.Integer(), nullable=False),
        sa.Column("client_name", sa.String(), nullable=False, server_default=""),
        sa.Column("stylist_name", sa.String(), nullable=False, server_default=""),
        sa.Column("date_time", sa.DateTime(), nullable=False),
        sa.Column("slot_date", sa.String(), nullable=False),
        sa.Column("slot_time", sa.String(), nullable=False),
        sa.Column("service_id", sa.Integer(), nullable=True),
        sa.Column("service_name", sa.String(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("payment_type", sa.String(), nullable=False, server_default="deposit"),
        sa.Column("payment_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("deposit_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("proposed_date_time", sa.DateTime(), nullable=True),
        sa.Column("proposed_by", sa.String(), nullable=True),
        sa.Column("proposal_created_at", sa.DateTime(), nullable=True),
        sa.Column("proposal_reason", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("payment_failed_at", sa.DateTime(), nullable=True),
        sa.Column("payment_failure_reason", sa.String(), nullable=True),
        sa.Column("payment_requested_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancel_reason", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["stylist_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["stylist_services.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_client_id"), "appointments", ["client_id"], unique=False)
    op.create_index(op.f("ix_appointments_stylist_id"), "appointments", ["stylist_id"], unique=False)
    op.create_index(op.f("ix_appointments_date_time"), "appointments", ["date_time"], unique=False)
    op.create_index(op.f("ix_appointments_slot_date"), "appointments", ["slot_date"], unique=False)
    op.create_index(op.f("ix_appointments_payment_reference"), "appointments", ["payment_reference"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)
    op.create_index(op.f("ix_appointments_payment_status"), "appointments", ["payment_status"], unique=False)
    op.create_index(op.f("ix_appointments_updated_at"), "appointments", ["updated_at"], unique=False)
    op.create_index(op.f("ix_appointments_expires_at"), "appointments", ["expires_at"], unique=False)
    # Authoritative double-booking guard over slot-holding statuses
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["stylist_id", "slot_date", "slot_time"],
        unique=True,
        postgresql_where=ACTIVE_SLOT_WHERE,
        sqlite_where=ACTIVE_SLOT_WHERE,
    )


def downgrade() -> None:
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    for column in (
        "expires_at",
        "updated_at",
        "payment_status",
        "status",
        "payment_reference",
        "slot_date",
        "date_time",
        "stylist_id",
        "client_id",
    ):
        op.drop_index(op.f(f"ix_appointments_{column}"), table_name="appointments")
    op.drop_table("appointments")
    op.drop_index(op.f("ix_stylist_schedules_stylist_id"), table_name="stylist_schedules")
    op.drop_table("stylist_schedules")
    op.drop_index(op.f("ix_stylist_services_stylist_id"), table_name="stylist_services")
    op.drop_table("stylist_services")
    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

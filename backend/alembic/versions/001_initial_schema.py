"""Initial schema: teachers, timeslots, reservations, tuition payments.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SETTLED_STATES = "state IN ('confirmed', 'blocked')"


def upgrade() -> None:
    # Teachers table
    op.create_table(
        "teachers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_teachers_name"),
    )
    op.create_index("ix_teachers_id", "teachers", ["id"])

    # Timeslots table: the row-lock target for every ledger writer
    op.create_table(
        "timeslots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("weekday", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("teacher_id", "weekday", "start_time", name="uq_timeslot_teacher_weekday_time"),
        sa.CheckConstraint("weekday BETWEEN 0 AND 6", name="check_timeslot_weekday"),
    )
    op.create_index("ix_timeslots_id", "timeslots", ["id"])
    op.create_index("ix_timeslots_teacher_id", "timeslots", ["teacher_id"])

    # Reservations table (the ledger)
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("timeslot_id", sa.Integer(), sa.ForeignKey("timeslots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_name", sa.String(255), nullable=True),
        sa.Column("student_email", sa.String(255), nullable=True),
        sa.Column("state", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("group_correlation_id", sa.String(64), nullable=True),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("intake_form", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "state IN ('pending', 'confirmed', 'cancelled', 'blocked')",
            name="check_reservation_state",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_timeslot_id", "reservations", ["timeslot_id"])
    # Webhook lookups resolve a payment to its hold group by this id
    op.create_index("ix_reservations_group_correlation_id", "reservations", ["group_correlation_id"])
    # Sweeper scan: WHERE state = 'pending' AND hold_expires_at < now
    op.create_index("ix_reservations_state_expiry", "reservations", ["state", "hold_expires_at"])
    # At most one paid or blocked row per slot. Unexpired pending holds are
    # time-dependent and guarded by the timeslot row lock instead.
    op.create_index(
        "uq_reservations_settled_timeslot",
        "reservations",
        ["timeslot_id"],
        unique=True,
        postgresql_where=sa.text(SETTLED_STATES),
        sqlite_where=sa.text(SETTLED_STATES),
    )

    # Tuition payments table
    op.create_table(
        "tuition_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_email", sa.String(255), nullable=False),
        sa.Column("month_year", sa.String(7), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'admin'")),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("student_email", "month_year", name="uq_tuition_student_month"),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="check_tuition_status"),
        sa.CheckConstraint("source IN ('processor', 'admin')", name="check_tuition_source"),
    )
    op.create_index("ix_tuition_payments_id", "tuition_payments", ["id"])
    op.create_index("ix_tuition_payments_student_email", "tuition_payments", ["student_email"])
    op.create_index("ix_tuition_payments_month_year", "tuition_payments", ["month_year"])


def downgrade() -> None:
    op.drop_table("tuition_payments")
    op.drop_table("reservations")
    op.drop_table("timeslots")
    op.drop_table("teachers")

# backend/alembic/versions/001_reservations.py
"""Reservations table with the no-overlap exclusion constraint

Revision ID: 001_reservations
Revises:
Create Date: 2026-10-19 00:00:00.000000

Holding reservations (pending, paid or cash payment and not cancelled at
check-in) may not overlap. On PostgreSQL this is enforced by a GiST exclusion
constraint over tsrange(starts_at, ends_at, '[)'), so back-to-back sessions
are allowed.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_reservations"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

HOLDING_ROWS_PREDICATE = (
    "payment_status IN ('pending', 'paid', 'cash') AND check_in_status <> 'cancelled'"
)


def upgrade() -> None:
    """Create the reservations table, its indexes and constraints."""
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    print("Creating reservations table...")
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("booking_id", sa.String(40), nullable=False),
        sa.Column("owner_account_id", sa.String(64), nullable=True),
        # Contact details
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("contact", sa.String(64), nullable=True),
        sa.Column("home_address", sa.Text(), nullable=True),
        sa.Column("birthday", sa.Date(), nullable=True),
        sa.Column("members", sa.Integer(), nullable=False, server_default="1"),
        # Reserved interval
        sa.Column("service_kind", sa.String(32), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        # Pricing and payment
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("provider_invoice_id", sa.String(128), nullable=True),
        sa.Column("provider_payment_id", sa.String(128), nullable=True),
        sa.Column("payment_url", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        # Check-in
        sa.Column("check_in_status", sa.String(16), nullable=False, server_default="not_arrived"),
        sa.Column("check_in_token", sa.String(128), nullable=True),
        sa.Column("check_in_qr", sa.Text(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'cancelled', 'cash')",
            name="ck_reservations_payment_status",
        ),
        sa.CheckConstraint(
            "check_in_status IN ('not_arrived', 'checked_in', 'cancelled')",
            name="ck_reservations_check_in_status",
        ),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'card', 'wallet')", name="ck_reservations_method"
        ),
        sa.CheckConstraint("duration_hours > 0", name="check_duration_positive"),
        sa.CheckConstraint("amount >= 0", name="check_amount_non_negative"),
    )

    op.create_index("ix_reservations_booking_id", "reservations", ["booking_id"], unique=True)
    op.create_index("ix_reservations_owner_account_id", "reservations", ["owner_account_id"])
    op.create_index("ix_reservations_booking_date", "reservations", ["booking_date"])
    op.create_index("ix_reservations_provider_invoice_id", "reservations", ["provider_invoice_id"])
    op.create_index(
        "ix_reservations_holding_by_date",
        "reservations",
        ["booking_date", "start_time"],
        postgresql_where=sa.text(HOLDING_ROWS_PREDICATE),
    )

    if is_postgres:
        print("Adding reservations_no_overlap exclusion constraint...")
        op.execute(
            f"""
            ALTER TABLE reservations
              ADD CONSTRAINT reservations_no_overlap
              EXCLUDE USING gist (
                tsrange(starts_at, ends_at, '[)') WITH &&
              )
              WHERE ({HOLDING_ROWS_PREDICATE})
            """
        )

    print("Reservations table created successfully!")


def downgrade() -> None:
    """Drop the reservations table."""
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS reservations_no_overlap")

    op.drop_index("ix_reservations_holding_by_date", table_name="reservations")
    op.drop_index("ix_reservations_provider_invoice_id", table_name="reservations")
    op.drop_index("ix_reservations_booking_date", table_name="reservations")
    op.drop_index("ix_reservations_owner_account_id", table_name="reservations")
    op.drop_index("ix_reservations_booking_id", table_name="reservations")
    op.drop_table("reservations")

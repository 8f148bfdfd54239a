"""Initial database schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("yearly_goal", sa.Numeric(12, 2), server_default="50000.00", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )

    # Customers (jobs) table
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_name", sa.String(255), unique=True, nullable=False),
        sa.Column("status", sa.String(100), server_default="Lead", nullable=False),
        sa.Column("lead_source", sa.String(255), nullable=True),
        sa.Column("initial_scope_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_job_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("going_to_appraisal", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("build_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("salesman_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("supplementer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("supplement_manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_customers_status", "customers", ["status"])
    op.create_index("ix_customers_salesman_id", "customers", ["salesman_id"])

    # Teams table
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("team_name", sa.String(255), nullable=False),
        sa.Column("team_type", sa.Enum("Sales", "Supplement", "Affiliate", name="teamtype"), nullable=False),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_teams_manager_id", "teams", ["manager_id"])

    # Membership history table (one row per interval)
    op.create_table(
        "user_team_membership",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Enum("manager", "salesman", "supplementer", name="membershiprole"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.UniqueConstraint("user_id", "team_id", "joined_at", name="uq_membership_user_team_joined"),
    )
    op.create_index("ix_user_team_membership_user_id", "user_team_membership", ["user_id"])
    op.create_index("ix_membership_team_window", "user_team_membership", ["team_id", "joined_at"])
    op.create_index(
        "uq_membership_open_interval",
        "user_team_membership",
        ["user_id", "team_id"],
        unique=True,
        postgresql_where=sa.text("left_at IS NULL"),
    )

    # Commissions table
    op.create_table(
        "commissions_due",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_paid", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("build_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_modified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.UniqueConstraint("user_id", "customer_id", name="unique_user_customer"),
    )
    op.create_index("ix_commissions_due_user_id", "commissions_due", ["user_id"])
    op.create_index("ix_commissions_due_customer_id", "commissions_due", ["customer_id"])

    # Payments table
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "payment_type",
            sa.Enum("Check", "Cash", "Direct Deposit", "Other", name="paymenttype"),
            nullable=False,
        ),
        sa.Column("check_number", sa.String(100), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])

    # Payment to commission mapping
    op.create_table(
        "payment_commission_mapping",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "commission_due_id",
            sa.Integer(),
            sa.ForeignKey("commissions_due.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_applied", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_payment_commission_mapping_payment_id", "payment_commission_mapping", ["payment_id"])
    op.create_index(
        "ix_payment_commission_mapping_commission_due_id",
        "payment_commission_mapping",
        ["commission_due_id"],
    )

    # Balance ledger
    op.create_table(
        "user_balance",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("total_commissions_earned", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("total_payments_received", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("current_balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("user_balance")
    op.drop_table("payment_commission_mapping")
    op.drop_table("payments")
    op.drop_table("commissions_due")
    op.drop_table("user_team_membership")
    op.drop_table("teams")
    op.drop_table("customers")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS paymenttype")
    op.execute("DROP TYPE IF EXISTS membershiprole")
    op.execute("DROP TYPE IF EXISTS teamtype")

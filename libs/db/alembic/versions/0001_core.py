# ruff: noqa: I001
"""Core tables: profiles, reports, transactions, processed_webhooks, audit_logs.

Revision ID: 0001_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(n, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        for n in names
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("raw_data", sa.JSON(), nullable=False),
        sa.Column("ai_analysis", sa.JSON(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("transactions_count", sa.Integer(), nullable=False),
        sa.Column("total_income", sa.Numeric(18, 2), nullable=True),
        sa.Column("total_expenses", sa.Numeric(18, 2), nullable=True),
        sa.Column("health_score", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
    )
    op.create_index("ix_reports_user_id", "reports", ["user_id"])
    op.create_index("ix_reports_created_at", "reports", ["created_at"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column(
            "provider", sa.String(32), nullable=False, server_default=sa.text("'abacatepay'")
        ),
        sa.Column("provider_id", sa.Text(), nullable=True),
        sa.Column("provider_session_id", sa.Text(), nullable=True, unique=True),
        sa.Column("package_type", sa.String(16), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.CheckConstraint(
            "status in ('pending','completed','failed','cancelled','refunded')",
            name="ck_transactions_status",
        ),
        sa.CheckConstraint(
            "package_type in ('single','pack5','pack10')",
            name="ck_transactions_package_type",
        ),
        sa.CheckConstraint("credits > 0", name="ck_transactions_credits_positive"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])

    op.create_table(
        "processed_webhooks",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Text(), nullable=False, unique=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column(
            "provider", sa.String(32), nullable=False, server_default=sa.text("'abacatepay'")
        ),
        sa.Column("payload", sa.JSON(), nullable=False),
        *_timestamps("processed_at"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=True),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps("created_at"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("processed_webhooks")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_reports_created_at", table_name="reports")
    op.drop_index("ix_reports_user_id", table_name="reports")
    op.drop_table("reports")
    op.drop_table("profiles")

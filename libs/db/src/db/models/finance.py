from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    # Python-side default keeps microsecond ordering on SQLite as well.
    return datetime.now(UTC)


TRANSACTION_STATUSES: tuple[str, ...] = (
    "pending",
    "completed",
    "failed",
    "cancelled",
    "refunded",
)


# ---------------------------
# Users: profiles
# ---------------------------


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the auth provider's user id; profiles are created by the
    # provider's signup hook, not by this service.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),)


# ---------------------------
# Core: reports
# ---------------------------


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Canonical rows exactly as analysed (normalized amounts, passthrough
    # columns preserved). Never mutated after insert.
    raw_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    ai_analysis: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    transactions_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_income: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    total_expenses: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    health_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )


# ---------------------------
# Payments: transactions
# ---------------------------


class PaymentTransaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'pending'")
    )
    provider: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'abacatepay'")
    )
    provider_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Billing id returned by the provider at checkout; webhooks reference it.
    provider_session_id: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    package_type: Mapped[str] = mapped_column(String(16), nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','completed','failed','cancelled','refunded')",
            name="ck_transactions_status",
        ),
        CheckConstraint(
            "package_type in ('single','pack5','pack10')",
            name="ck_transactions_package_type",
        ),
        CheckConstraint("credits > 0", name="ck_transactions_credits_positive"),
    )


# ---------------------------
# Idempotency ledger: processed_webhooks
# ---------------------------


class ProcessedWebhookEvent(Base):
    __tablename__ = "processed_webhooks"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    event_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'abacatepay'")
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


# ---------------------------
# Append-only: audit_logs
# ---------------------------


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # Nullable: webhook-originated entries may not resolve a user.
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    resource_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


__all__ = [
    "Base",
    "Profile",
    "Report",
    "PaymentTransaction",
    "ProcessedWebhookEvent",
    "AuditLog",
    "TRANSACTION_STATUSES",
]

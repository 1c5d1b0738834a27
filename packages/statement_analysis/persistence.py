# ruff: noqa: I001
"""Persistence integration for statement_analysis.

Functions here read and write the shared database owned by ``libs/db``. Each
takes an active SQLAlchemy session as its first argument; transaction
boundaries belong to the caller (``db.client.session_scope``).

Scope:
- Credit balance reads and single-statement conditional credit mutations.
- Reports (insert once, query latest/list/by id).
- Payment transactions and the processed-webhook idempotency ledger.
- Append-only audit entries.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.models.finance import AuditLog, PaymentTransaction, ProcessedWebhookEvent, Profile, Report
from .models import AIAnalysisResult, RequestContext


def _to_decimal_2(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    try:
        d = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---- Profiles / credits ------------------------------------------------------


def get_credits(session: Session, user_id: str) -> int | None:
    """Return the user's credit balance, or ``None`` when no profile exists."""

    stmt = select(Profile.credits).where(Profile.id == user_id)
    return session.execute(stmt).scalar_one_or_none()


def ensure_profile(
    session: Session, user_id: str, *, email: str | None = None, credits: int = 0
) -> Profile:
    """Return the profile for ``user_id``, creating it with ``credits`` if absent."""

    profile = session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, email=email, credits=credits)
        session.add(profile)
        session.flush()
    return profile


def try_deduct_credit(session: Session, user_id: str) -> bool:
    """Decrement one credit only if the balance is positive.

    Single conditional ``UPDATE``; ``False`` (zero rows affected) means the
    balance was already zero or the profile does not exist.
    """

    result = session.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.credits > 0)
        .values(credits=Profile.credits - 1, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def add_credits(session: Session, user_id: str, credits: int) -> bool:
    """Atomically add ``credits`` to the user's balance; ``False`` if no profile."""

    if credits <= 0:
        raise ValueError(f"credits must be positive, got {credits}")
    result = session.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(credits=Profile.credits + credits, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---- Reports -----------------------------------------------------------------


def save_report(
    session: Session,
    *,
    user_id: str,
    rows: Sequence[Mapping[str, Any]],
    analysis: AIAnalysisResult,
    file_name: str | None = None,
) -> Report:
    """Insert a report with summary columns derived from the analysis."""

    score = analysis.financial_health_score
    report = Report(
        user_id=user_id,
        raw_data=[dict(r) for r in rows],
        ai_analysis=analysis.model_dump(mode="json"),
        file_name=file_name,
        transactions_count=len(rows),
        total_income=_to_decimal_2(analysis.metrics.total_income),
        total_expenses=_to_decimal_2(analysis.metrics.total_expense),
        health_score=int(Decimal(str(score)).quantize(Decimal(1), rounding=ROUND_HALF_UP)),
    )
    session.add(report)
    session.flush()
    return report


def latest_report(session: Session, user_id: str) -> Report | None:
    return session.execute(
        select(Report)
        .where(Report.user_id == user_id)
        .order_by(Report.created_at.desc(), Report.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def list_reports(session: Session, user_id: str, *, limit: int = 20) -> list[Report]:
    stmt = (
        select(Report)
        .where(Report.user_id == user_id)
        .order_by(Report.created_at.desc(), Report.id.desc())
        .limit(max(1, limit))
    )
    return list(session.execute(stmt).scalars())


def get_report(session: Session, user_id: str, report_id: str) -> Report | None:
    """Return the report only when it exists and belongs to ``user_id``."""

    return session.execute(
        select(Report).where(Report.id == report_id, Report.user_id == user_id)
    ).scalar_one_or_none()


def report_to_dict(report: Report, *, include_raw: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": report.id,
        "user_id": report.user_id,
        "file_name": report.file_name,
        "transactions_count": report.transactions_count,
        "total_income": float(report.total_income) if report.total_income is not None else None,
        "total_expenses": (
            float(report.total_expenses) if report.total_expenses is not None else None
        ),
        "health_score": report.health_score,
        "ai_analysis": report.ai_analysis,
        "created_at": report.created_at.isoformat() if report.created_at else None,
    }
    if include_raw:
        out["raw_data"] = report.raw_data
    return out


# ---- Payment transactions ----------------------------------------------------


def create_transaction(
    session: Session,
    *,
    user_id: str,
    package_type: str,
    amount: Decimal,
    credits: int,
    provider_session_id: str,
    provider_id: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> PaymentTransaction:
    tx = PaymentTransaction(
        user_id=user_id,
        package_type=package_type,
        amount=amount,
        credits=credits,
        status="pending",
        provider_session_id=provider_session_id,
        provider_id=provider_id,
        metadata_=dict(metadata) if metadata else None,
    )
    session.add(tx)
    session.flush()
    return tx


def find_transaction_by_session(
    session: Session, provider_session_id: str
) -> PaymentTransaction | None:
    return session.execute(
        select(PaymentTransaction).where(
            PaymentTransaction.provider_session_id == provider_session_id
        )
    ).scalar_one_or_none()


def complete_transaction(
    session: Session, transaction_id: str, *, provider_id: str | None = None
) -> bool:
    """Move a transaction to ``completed`` unless it already is; ``True`` if it moved."""

    values: dict[str, Any] = {"status": "completed", "updated_at": datetime.now(UTC)}
    if provider_id:
        values["provider_id"] = provider_id
    result = session.execute(
        update(PaymentTransaction)
        .where(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.status != "completed",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---- Idempotency ledger ------------------------------------------------------


def is_event_processed(session: Session, event_id: str) -> bool:
    found = session.execute(
        select(ProcessedWebhookEvent.id).where(ProcessedWebhookEvent.event_id == event_id)
    ).first()
    return found is not None


def record_event(
    session: Session, *, event_id: str, event_type: str, payload: Mapping[str, Any]
) -> None:
    """Insert the ledger row; a duplicate ``event_id`` raises ``IntegrityError`` on flush."""

    session.add(
        ProcessedWebhookEvent(event_id=event_id, event_type=event_type, payload=dict(payload))
    )
    session.flush()


# ---- Audit -------------------------------------------------------------------


def log_audit(
    session: Session,
    *,
    action: str,
    user_id: str | None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    context: RequestContext | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    ctx = context or RequestContext()
    session.add(
        AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            metadata_=dict(metadata) if metadata else None,
        )
    )
    session.flush()


__all__ = [
    "get_credits",
    "ensure_profile",
    "try_deduct_credit",
    "add_credits",
    "save_report",
    "latest_report",
    "list_reports",
    "get_report",
    "report_to_dict",
    "create_transaction",
    "find_transaction_by_session",
    "complete_transaction",
    "is_event_processed",
    "record_event",
    "log_audit",
]

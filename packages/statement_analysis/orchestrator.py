"""Credit-gated analysis workflow.

Stages run strictly in this order, cheapest first, so that nothing billable
(AI tokens, a credit) is spent on a request that a cheaper check rejects::

    authenticating → validating → credit_check → sanitizing → awaiting_ai
        → persisting → deducting_credit → audit_logging → complete

Failure behavior:

- Failures up to and including ``credit_check`` have no side effects beyond
  logging; the single exception is the insufficient-credits case, which is
  audited.
- Failures from ``sanitizing`` through ``persisting`` leave no report and no
  deducted credit, and are audited as ``analysis_failed`` with the stage.
- A failure in ``deducting_credit`` is logged and tolerated: the saved report
  is kept and the request succeeds. The ledger is then one credit high until
  reconciled out-of-band.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from db.client import session_scope

from . import persistence
from .analysis import request_analysis
from .auth import TokenVerifier
from .config import Settings
from .errors import (
    AppError,
    AuthenticationError,
    InsufficientCreditsError,
    InvalidRequestError,
    NotFoundError,
    PersistenceError,
    StructureValidationError,
)
from .ingest import canonicalize_records
from .logging_setup import get_logger
from .models import AIAnalysisResult, AnamnesisProfile, RequestContext
from .retry import RetryPolicy
from .sanitizer import sanitize_rows
from .validation import validate_structure

_logger = get_logger("statement_analysis.orchestrator")


class AnalysisStage(StrEnum):
    AUTHENTICATING = "authenticating"
    VALIDATING = "validating"
    CREDIT_CHECK = "credit_check"
    SANITIZING = "sanitizing"
    AWAITING_AI = "awaiting_ai"
    PERSISTING = "persisting"
    DEDUCTING_CREDIT = "deducting_credit"
    AUDIT_LOGGING = "audit_logging"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    report_id: str
    analysis: AIAnalysisResult
    remaining_credits: int
    transactions_count: int
    credit_deducted: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "report_id": self.report_id,
            "analysis": self.analysis.model_dump(mode="json"),
            "remaining_credits": self.remaining_credits,
        }


def _coerce_profile(raw: AnamnesisProfile | Mapping[str, Any] | None) -> AnamnesisProfile | None:
    if raw is None or isinstance(raw, AnamnesisProfile):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidRequestError("anamnesis must be an object")
    try:
        return AnamnesisProfile.model_validate(raw)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid anamnesis: {e.error_count()} invalid field(s)") from e


def _audit(
    *,
    database_url: str | None,
    action: str,
    user_id: str,
    context: RequestContext | None,
    metadata: Mapping[str, Any],
    resource_id: str | None = None,
) -> None:
    """Write one audit entry in its own transaction; failures are only logged."""

    try:
        with session_scope(database_url=database_url) as session:
            persistence.log_audit(
                session,
                action=action,
                user_id=user_id,
                resource_type="report",
                resource_id=resource_id,
                context=context,
                metadata=metadata,
            )
    except Exception as e:  # noqa: BLE001 - audit is best-effort
        _logger.error("analyze:audit_failed action=%s user_id=%s error=%s", action, user_id, e)


def run_analysis(
    auth_token: str | None,
    csv_rows: Any,
    anamnesis: AnamnesisProfile | Mapping[str, Any] | None = None,
    *,
    verify_token: TokenVerifier,
    settings: Settings | None = None,
    database_url: str | None = None,
    context: RequestContext | None = None,
    file_name: str | None = None,
    ai_client: Any | None = None,
    retry: RetryPolicy | None = None,
) -> AnalysisOutcome:
    """Run one analysis request end to end.

    Returns the saved report id, the validated analysis and the remaining
    credit balance. Raises an :class:`~statement_analysis.errors.AppError`
    subclass whose ``stage`` names the failing stage.
    """

    cfg = settings or Settings.from_env()
    db_url = database_url or cfg.database_url
    t0 = time.perf_counter()
    stage = AnalysisStage.AUTHENTICATING

    try:
        # -- authenticating
        if not auth_token:
            raise AuthenticationError("Missing Authorization header")
        identity = verify_token(auth_token)
        if identity is None:
            raise AuthenticationError("Invalid token")
        user_id = identity.user_id

        # -- validating
        stage = AnalysisStage.VALIDATING
        result = validate_structure(csv_rows, max_rows=cfg.max_server_rows)
        if not result.valid:
            _logger.info(
                "analyze:invalid_structure user_id=%s errors=%d", user_id, len(result.errors)
            )
            raise StructureValidationError(result.errors)
        rows = canonicalize_records(csv_rows)
        if not rows:
            raise StructureValidationError(["No parseable transactions found"])
        profile = _coerce_profile(anamnesis)

        # -- credit_check
        stage = AnalysisStage.CREDIT_CHECK
        try:
            with session_scope(database_url=db_url) as session:
                credits = persistence.get_credits(session, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read credit balance") from e
        if credits is None:
            _logger.warning("analyze:profile_missing user_id=%s", user_id)
            raise NotFoundError("Profile not found")
        if credits <= 0:
            _audit(
                database_url=db_url,
                action="analysis_failed",
                user_id=user_id,
                context=context,
                metadata={"reason": "insufficient_credits"},
            )
            raise InsufficientCreditsError("Insufficient credits. Please top up your credits.")
    except AppError as e:
        if e.stage is None:
            e.stage = stage.value
        raise

    try:
        # -- sanitizing
        stage = AnalysisStage.SANITIZING
        sanitized = sanitize_rows(rows)

        # -- awaiting_ai (prompt build happens inside the request)
        stage = AnalysisStage.AWAITING_AI
        analysis = request_analysis(
            sanitized, profile, settings=cfg, client=ai_client, retry=retry
        )

        # -- persisting
        stage = AnalysisStage.PERSISTING
        try:
            with session_scope(database_url=db_url) as session:
                report = persistence.save_report(
                    session, user_id=user_id, rows=rows, analysis=analysis, file_name=file_name
                )
                report_id = report.id
        except SQLAlchemyError as e:
            _logger.error("analyze:save_failed user_id=%s error=%s", user_id, e)
            raise PersistenceError("Failed to save report") from e
    except Exception as e:  # noqa: BLE001 - audited, then re-raised unchanged
        if isinstance(e, AppError) and e.stage is None:
            e.stage = stage.value
        reason = e.category if isinstance(e, AppError) else "internal_error"
        _audit(
            database_url=db_url,
            action="analysis_failed",
            user_id=user_id,
            context=context,
            metadata={"reason": reason, "stage": stage.value},
        )
        raise

    # -- deducting_credit: tolerated failure, the report is kept regardless
    stage = AnalysisStage.DEDUCTING_CREDIT
    remaining = credits
    deducted = False
    try:
        with session_scope(database_url=db_url) as session:
            deducted = persistence.try_deduct_credit(session, user_id)
            remaining = persistence.get_credits(session, user_id) or 0
        if not deducted:
            _logger.error(
                "analyze:credit_deduct_failed user_id=%s report_id=%s reason=no_balance",
                user_id,
                report_id,
            )
    except Exception as e:  # noqa: BLE001 - documented reconciliation gap
        _logger.error(
            "analyze:credit_deduct_failed user_id=%s report_id=%s error=%s",
            user_id,
            report_id,
            e,
        )

    # -- audit_logging
    stage = AnalysisStage.AUDIT_LOGGING
    elapsed_ms = int((time.perf_counter() - t0) * 1000)
    _audit(
        database_url=db_url,
        action="analysis_completed",
        user_id=user_id,
        context=context,
        resource_id=report_id,
        metadata={
            "transactions_count": len(rows),
            "health_score": analysis.financial_health_score,
            "processing_time_ms": elapsed_ms,
            "credit_deducted": deducted,
        },
    )

    stage = AnalysisStage.COMPLETE
    _logger.info(
        "analyze:complete user_id=%s report_id=%s rows=%d remaining_credits=%d elapsed_ms=%d",
        user_id,
        report_id,
        len(rows),
        remaining,
        elapsed_ms,
    )
    return AnalysisOutcome(
        report_id=report_id,
        analysis=analysis,
        remaining_credits=remaining,
        transactions_count=len(rows),
        credit_deducted=deducted,
    )


__all__ = ["AnalysisStage", "AnalysisOutcome", "run_analysis"]

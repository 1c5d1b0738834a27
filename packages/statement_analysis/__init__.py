"""Public interface for the ``statement_analysis`` package.

Symbol re-exports only; see :mod:`statement_analysis.api`.
"""

from .api import (
    PACKAGES,
    AnalysisOutcome,
    AnalysisStage,
    CheckoutResult,
    coerce_amount,
    create_checkout,
    get_report,
    handle_event,
    ingest,
    ingest_file,
    latest_report,
    list_reports,
    normalize_amount,
    run_analysis,
    sanitize_rows,
    validate_structure,
)
from .errors import AppError
from .models import AIAnalysisResult, AnamnesisProfile, Identity, RequestContext, ValidationResult

__all__ = [
    # Operations
    "normalize_amount",
    "coerce_amount",
    "ingest",
    "ingest_file",
    "validate_structure",
    "sanitize_rows",
    "run_analysis",
    "create_checkout",
    "handle_event",
    "latest_report",
    "list_reports",
    "get_report",
    # Types
    "AnalysisOutcome",
    "AnalysisStage",
    "CheckoutResult",
    "PACKAGES",
    "AppError",
    "AIAnalysisResult",
    "AnamnesisProfile",
    "Identity",
    "RequestContext",
    "ValidationResult",
]

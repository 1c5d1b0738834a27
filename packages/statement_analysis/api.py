"""Stable import surface for the ``statement_analysis`` operations.

Implementations live in their own modules and are re-exported here under
their public names:

- :func:`normalize_amount` (``statement_analysis.currency``)
- :func:`ingest` / :func:`ingest_file` (``statement_analysis.ingest``)
- :func:`validate_structure` (``statement_analysis.validation``)
- :func:`sanitize_rows` (``statement_analysis.sanitizer``)
- :func:`run_analysis` (``statement_analysis.orchestrator``)
- :func:`create_checkout` (``statement_analysis.payments``)
- :func:`handle_event` (``statement_analysis.webhooks``)
- report queries (``statement_analysis.persistence``)
"""

from __future__ import annotations

from .currency import coerce_amount, normalize_amount
from .ingest import ingest, ingest_file
from .orchestrator import AnalysisOutcome, AnalysisStage, run_analysis
from .payments import PACKAGES, CheckoutResult, create_checkout
from .persistence import get_report, latest_report, list_reports
from .sanitizer import sanitize_rows
from .validation import validate_structure
from .webhooks import handle_event

__all__ = [
    "normalize_amount",
    "coerce_amount",
    "ingest",
    "ingest_file",
    "validate_structure",
    "sanitize_rows",
    "run_analysis",
    "AnalysisOutcome",
    "AnalysisStage",
    "create_checkout",
    "CheckoutResult",
    "PACKAGES",
    "handle_event",
    "latest_report",
    "list_reports",
    "get_report",
]

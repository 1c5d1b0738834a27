"""Structural checks run before any expensive or billable work.

Errors are collected rather than short-circuited and capped at
:data:`MAX_ERRORS` (truncation, not summarization).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .currency import coerce_amount
from .ingest.columns import REQUIRED_FIELDS, resolve_columns
from .models import ValidationResult

# Structural limit for server-side ingestion.
SERVER_MAX_ROWS = 10_000
MAX_ERRORS = 10


def validate_structure(rows: Any, *, max_rows: int = SERVER_MAX_ROWS) -> ValidationResult:
    """Validate uploaded rows (raw or canonical) for analysis.

    - ``rows`` must be a non-empty list of mappings.
    - The global row-limit error is reported first so truncation never hides it.
    - One ``Missing required field: <name>`` per required field that no key of
      the first row resolves to.
    - One ``Invalid amount in row <n>`` (1-indexed) per row whose amount is
      missing or not coercible to a finite number.
    """

    if not isinstance(rows, (list, tuple)) or len(rows) == 0:
        return ValidationResult(valid=False, errors=("No data provided or empty CSV",))
    if not isinstance(rows[0], Mapping):
        return ValidationResult(valid=False, errors=("Rows must be objects keyed by column name",))

    errors: list[str] = []
    if len(rows) > max_rows:
        errors.append(f"Too many rows. Maximum allowed is {max_rows:,} transactions.")

    columns = resolve_columns(rows[0].keys())
    for field in REQUIRED_FIELDS:
        if field not in columns:
            errors.append(f"Missing required field: {field}")

    amount_key = columns.get("amount")
    if amount_key is not None:
        for index, row in enumerate(rows, start=1):
            raw = row.get(amount_key) if isinstance(row, Mapping) else None
            if coerce_amount(raw) is None:
                errors.append(f"Invalid amount in row {index}")
                if len(errors) >= MAX_ERRORS:
                    break

    return ValidationResult(valid=not errors, errors=tuple(errors[:MAX_ERRORS]))


__all__ = ["validate_structure", "SERVER_MAX_ROWS", "MAX_ERRORS"]

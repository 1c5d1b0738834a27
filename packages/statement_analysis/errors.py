"""Exception taxonomy shared by the ingestion, analysis and payment flows.

Every error carries a stable ``category`` (machine-checkable, part of the HTTP
contract) and the HTTP ``status_code`` it maps to. The human ``message`` may
change freely; clients must key on ``category``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class AppError(Exception):
    status_code: int = 500
    category: str = "internal_error"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Orchestrator stage that failed, when raised from an analysis run.
        self.stage = stage

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "error": self.category, "message": self.message}


class AuthenticationError(AppError):
    status_code = 401
    category = "unauthenticated"


class InvalidRequestError(AppError):
    status_code = 400
    category = "invalid_request"


class StructureValidationError(AppError):
    status_code = 400
    category = "invalid_structure"

    def __init__(self, errors: Sequence[str], *, stage: str | None = None) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid CSV structure", stage=stage)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["details"] = list(self.errors)
        return payload


class IngestError(AppError):
    """Raised when CSV input cannot be read at all (encoding, truncation, no header)."""

    status_code = 400
    category = "unreadable_csv"


class RowLimitExceededError(AppError):
    status_code = 400
    category = "too_many_rows"

    def __init__(self, count: int, limit: int) -> None:
        self.count = count
        self.limit = limit
        super().__init__(
            f"Too many rows: {count:,}. Maximum allowed is {limit:,} transactions."
        )


class InsufficientCreditsError(AppError):
    status_code = 402
    category = "payment_required"


class NotFoundError(AppError):
    status_code = 404
    category = "not_found"


class UpstreamError(AppError):
    status_code = 500
    category = "upstream_error"


class UpstreamTransientError(UpstreamError):
    """Rate-limited/overloaded provider, surfaced only after retries ran out."""

    category = "upstream_unavailable"


class UpstreamTimeoutError(UpstreamError):
    category = "upstream_timeout"


class UpstreamParseError(UpstreamError):
    category = "upstream_invalid_response"


class PaymentProviderError(UpstreamError):
    category = "payment_provider_error"


class PersistenceError(AppError):
    status_code = 500
    category = "persistence_error"


class WebhookSignatureError(AppError):
    status_code = 401
    category = "invalid_signature"


__all__ = [
    "AppError",
    "AuthenticationError",
    "InvalidRequestError",
    "StructureValidationError",
    "IngestError",
    "RowLimitExceededError",
    "InsufficientCreditsError",
    "NotFoundError",
    "UpstreamError",
    "UpstreamTransientError",
    "UpstreamTimeoutError",
    "UpstreamParseError",
    "PaymentProviderError",
    "PersistenceError",
    "WebhookSignatureError",
]

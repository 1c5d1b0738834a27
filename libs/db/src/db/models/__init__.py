"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the account, report, payment and audit models used by
``statement_analysis``.
"""

from .finance import (
    AuditLog,
    Base,
    PaymentTransaction,
    ProcessedWebhookEvent,
    Profile,
    Report,
)

__all__ = [
    "Base",
    "Profile",
    "Report",
    "PaymentTransaction",
    "ProcessedWebhookEvent",
    "AuditLog",
]

"""Idempotent payment-provider webhook processing.

Every event id is applied at most once. The ledger row, the transaction
status change and the credit grant are written in one database transaction,
so a concurrent delivery of the same event fails on the ledger's unique key
and rolls back without granting credits a second time.
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import session_scope

from . import persistence
from .config import Settings
from .errors import InvalidRequestError, PersistenceError, WebhookSignatureError
from .logging_setup import get_logger
from .models import RequestContext

PAYMENT_COMPLETED_EVENT = "billing.paid"
SIGNATURE_HEADERS: tuple[str, ...] = ("x-abacatepay-signature", "x-webhook-signature")

_logger = get_logger("statement_analysis.webhooks")


def signature_from_headers(headers: Mapping[str, str]) -> str | None:
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def _signature_matches(signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(signature.encode("utf-8"), secret.encode("utf-8"))


def _apply_payment(
    session: Session,
    *,
    event_id: str,
    data: Mapping[str, Any],
    context: RequestContext | None,
) -> None:
    billing_id = data.get("id")
    if not billing_id:
        _logger.warning("webhook:payment_skipped event_id=%s reason=no_billing_id", event_id)
        return
    billing_id = str(billing_id)

    tx = persistence.find_transaction_by_session(session, billing_id)
    if tx is None:
        _logger.warning(
            "webhook:payment_skipped event_id=%s billing_id=%s reason=transaction_not_found",
            event_id,
            billing_id,
        )
        return
    if tx.status == "completed" or not persistence.complete_transaction(
        session, tx.id, provider_id=billing_id
    ):
        _logger.info(
            "webhook:payment_skipped event_id=%s billing_id=%s reason=already_completed",
            event_id,
            billing_id,
        )
        return

    if not persistence.add_credits(session, tx.user_id, tx.credits):
        # Profile vanished between checkout and payment; left for reconciliation.
        _logger.error(
            "webhook:credit_grant_failed event_id=%s user_id=%s credits=%d",
            event_id,
            tx.user_id,
            tx.credits,
        )
        return

    persistence.log_audit(
        session,
        action="credits_purchased",
        user_id=tx.user_id,
        resource_type="transaction",
        resource_id=tx.id,
        context=context,
        metadata={"provider": "abacatepay", "billing_id": billing_id, "credits_added": tx.credits},
    )
    _logger.info(
        "webhook:credits_granted event_id=%s user_id=%s credits=%d",
        event_id,
        tx.user_id,
        tx.credits,
    )


def handle_event(
    payload: Any,
    *,
    signature: str | None = None,
    settings: Settings | None = None,
    database_url: str | None = None,
    context: RequestContext | None = None,
) -> dict[str, Any]:
    """Process one provider event and return the acknowledgement body.

    - Missing event id, type or data raises :class:`InvalidRequestError`.
    - A replayed event id returns ``{"received": True, "message": "Already processed"}``.
    - With a webhook secret configured, a ``billing.paid`` event whose
      signature does not match raises :class:`WebhookSignatureError` and is
      not recorded. Other event types only log the mismatch.
    - Every accepted event is recorded in the ledger, including ignored types.
    """

    cfg = settings or Settings.from_env()
    db_url = database_url or cfg.database_url

    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Invalid payload")
    event_id = payload.get("eventId") or payload.get("id")
    event_type = payload.get("event")
    data = payload.get("data")
    if not event_id or not event_type or not isinstance(data, Mapping):
        _logger.warning("webhook:invalid_payload keys=%s", sorted(str(k) for k in payload))
        raise InvalidRequestError("Invalid payload")
    event_id = str(event_id)
    event_type = str(event_type)

    already = {"received": True, "message": "Already processed"}
    try:
        with session_scope(database_url=db_url) as session:
            if persistence.is_event_processed(session, event_id):
                _logger.info("webhook:duplicate event_id=%s", event_id)
                return already

            if cfg.webhook_secret and not _signature_matches(signature, cfg.webhook_secret):
                if event_type == PAYMENT_COMPLETED_EVENT:
                    _logger.warning(
                        "webhook:signature_rejected event_id=%s type=%s", event_id, event_type
                    )
                    raise WebhookSignatureError("Invalid webhook signature")
                _logger.warning(
                    "webhook:signature_unverified event_id=%s type=%s", event_id, event_type
                )

            persistence.record_event(
                session, event_id=event_id, event_type=event_type, payload=data
            )
            if event_type == PAYMENT_COMPLETED_EVENT:
                _apply_payment(session, event_id=event_id, data=data, context=context)
            else:
                _logger.info("webhook:ignored event_id=%s type=%s", event_id, event_type)
    except IntegrityError:
        # Lost the race against a concurrent delivery of the same event.
        _logger.info("webhook:duplicate_concurrent event_id=%s", event_id)
        return already
    except SQLAlchemyError as e:
        _logger.error("webhook:persist_failed event_id=%s error=%s", event_id, e)
        raise PersistenceError("Webhook handler failed") from e

    return {"received": True}


__all__ = [
    "PAYMENT_COMPLETED_EVENT",
    "SIGNATURE_HEADERS",
    "signature_from_headers",
    "handle_event",
]

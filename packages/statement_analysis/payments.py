"""Credit packages and checkout creation against the AbacatePay billing API."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from db.client import session_scope

from . import persistence
from .auth import TokenVerifier
from .config import Settings
from .errors import (
    AuthenticationError,
    InvalidRequestError,
    PaymentProviderError,
    PersistenceError,
)
from .http_json import HttpError, request_json
from .logging_setup import get_logger, snippet
from .models import Identity, RequestContext

_logger = get_logger("statement_analysis.payments")


@dataclass(frozen=True, slots=True)
class CreditPackage:
    code: str
    credits: int
    amount: Decimal
    name: str

    @property
    def price_cents(self) -> int:
        return int((self.amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


PACKAGES: dict[str, CreditPackage] = {
    p.code: p
    for p in (
        CreditPackage("single", 1, Decimal("9.90"), "1 Crédito"),
        CreditPackage("pack5", 5, Decimal("39.90"), "5 Créditos"),
        CreditPackage("pack10", 10, Decimal("69.90"), "10 Créditos"),
    )
}


@dataclass(frozen=True, slots=True)
class Billing:
    id: str
    url: str


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    checkout_url: str
    session_id: str
    transaction_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "checkout_url": self.checkout_url,
            "session_id": self.session_id,
            "transaction_id": self.transaction_id,
        }


class BillingClient(Protocol):
    def create_billing(self, payload: Mapping[str, Any]) -> Billing: ...


class AbacatePayClient:
    """``POST {api_url}/billing/create`` with a bearer API key."""

    def __init__(self, api_url: str, api_key: str, *, timeout: float = 15.0) -> None:
        self._url = api_url.rstrip("/") + "/billing/create"
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> AbacatePayClient:
        if not settings.abacatepay_api_key:
            raise PaymentProviderError("Payment provider is not configured")
        return cls(settings.abacatepay_api_url, settings.abacatepay_api_key)

    def create_billing(self, payload: Mapping[str, Any]) -> Billing:
        try:
            body = request_json(
                "POST",
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                payload=payload,
                timeout=self._timeout,
            )
        except HttpError as e:
            _logger.error(
                "checkout:provider_error status=%s body=%s", e.status, snippet(e.body)
            )
            message = _provider_message(e.body) or "Failed to create billing"
            raise PaymentProviderError(message) from e

        data = body.get("data") or {}
        url = data.get("url") if isinstance(data, Mapping) else None
        billing_id = data.get("id") if isinstance(data, Mapping) else None
        if not url or not billing_id:
            _logger.error("checkout:provider_bad_response body=%s", snippet(json.dumps(body)))
            raise PaymentProviderError(
                str(body.get("message") or body.get("error") or "Failed to create billing")
            )
        return Billing(id=str(billing_id), url=str(url))


def _provider_message(raw: str) -> str | None:
    try:
        decoded = json.loads(raw) if raw else None
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, Mapping):
        msg = decoded.get("message") or decoded.get("error")
        return str(msg) if msg else None
    return None


def build_billing_payload(
    package: CreditPackage, *, identity: Identity, completion_url: str
) -> dict[str, Any]:
    plural = "s" if package.credits > 1 else ""
    return {
        "frequency": "ONE_TIME",
        "methods": ["PIX", "CREDIT_CARD"],
        "products": [
            {
                "externalId": package.code,
                "name": f"FinGlow - {package.name}",
                "quantity": 1,
                "price": package.price_cents,
                "description": (
                    f"Pacote com {package.credits} crédito{plural} para análise de IA"
                ),
            }
        ],
        "returnUrl": completion_url,
        "completionUrl": completion_url,
        "customer": {"email": identity.email},
    }


def create_checkout(
    auth_token: str | None,
    package_type: str | None,
    success_url: str | None = None,
    *,
    verify_token: TokenVerifier,
    settings: Settings | None = None,
    database_url: str | None = None,
    context: RequestContext | None = None,
    origin: str | None = None,
    billing_client: BillingClient | None = None,
) -> CheckoutResult:
    """Create a provider billing for ``package_type`` and a pending transaction.

    The transaction is keyed by the provider billing id so the ``billing.paid``
    webhook can find it.
    """

    cfg = settings or Settings.from_env()
    db_url = database_url or cfg.database_url

    if not auth_token:
        raise AuthenticationError("Unauthorized")
    identity = verify_token(auth_token)
    if identity is None:
        raise AuthenticationError("Invalid token")

    package = PACKAGES.get(package_type or "")
    if package is None:
        raise InvalidRequestError("Invalid package type")

    base = (origin or cfg.app_origin).rstrip("/")
    completion_url = success_url or f"{base}/#/dashboard?payment=success"
    client = billing_client or AbacatePayClient.from_settings(cfg)
    billing = client.create_billing(
        build_billing_payload(package, identity=identity, completion_url=completion_url)
    )

    try:
        with session_scope(database_url=db_url) as session:
            tx = persistence.create_transaction(
                session,
                user_id=identity.user_id,
                package_type=package.code,
                amount=package.amount,
                credits=package.credits,
                provider_session_id=billing.id,
            )
            persistence.log_audit(
                session,
                action="checkout_created",
                user_id=identity.user_id,
                resource_type="transaction",
                resource_id=tx.id,
                context=context,
                metadata={"package_type": package.code, "billing_id": billing.id},
            )
            transaction_id = tx.id
    except SQLAlchemyError as e:
        _logger.error("checkout:save_failed user_id=%s error=%s", identity.user_id, e)
        raise PersistenceError("Failed to save transaction") from e

    _logger.info(
        "checkout:created user_id=%s package=%s billing_id=%s",
        identity.user_id,
        package.code,
        billing.id,
    )
    return CheckoutResult(
        checkout_url=billing.url, session_id=billing.id, transaction_id=transaction_id
    )


__all__ = [
    "CreditPackage",
    "PACKAGES",
    "Billing",
    "BillingClient",
    "CheckoutResult",
    "AbacatePayClient",
    "build_billing_payload",
    "create_checkout",
]

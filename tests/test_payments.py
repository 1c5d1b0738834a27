from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import pytest

from db.models.finance import PaymentTransaction
from statement_analysis import payments
from statement_analysis.errors import (
    AuthenticationError,
    InvalidRequestError,
    PaymentProviderError,
)
from statement_analysis.http_json import HttpError
from statement_analysis.models import Identity
from statement_analysis.payments import (
    PACKAGES,
    AbacatePayClient,
    Billing,
    build_billing_payload,
    create_checkout,
)

from tests.helpers.db import audit_actions, count_rows, seed_profile, transaction_status


class FakeBilling:
    def __init__(self, billing_id: str = "bill_abc") -> None:
        self.billing_id = billing_id
        self.payloads: list[Mapping[str, Any]] = []

    def create_billing(self, payload: Mapping[str, Any]) -> Billing:
        self.payloads.append(payload)
        return Billing(id=self.billing_id, url=f"https://pay.example/{self.billing_id}")


def _checkout(settings, verify_token, client, package="pack5", **kw):
    return create_checkout(
        kw.pop("token", "token-alice"),
        package,
        kw.pop("success_url", None),
        verify_token=verify_token,
        settings=settings,
        billing_client=client,
        **kw,
    )


@pytest.mark.parametrize(
    ("code", "credits", "cents"),
    [("single", 1, 990), ("pack5", 5, 3990), ("pack10", 10, 6990)],
)
def test_packages(code: str, credits: int, cents: int) -> None:
    assert PACKAGES[code].credits == credits
    assert PACKAGES[code].price_cents == cents


def test_checkout_creates_pending_transaction(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=0)
    client = FakeBilling()

    result = _checkout(settings, verify_token, client, origin="https://app.example")

    assert result.session_id == "bill_abc"
    assert result.checkout_url == "https://pay.example/bill_abc"
    assert result.to_payload()["success"] is True
    assert transaction_status(db_url, "bill_abc") == "pending"

    (payload,) = client.payloads
    assert payload["products"][0]["price"] == 3990
    assert payload["products"][0]["externalId"] == "pack5"
    assert payload["completionUrl"] == "https://app.example/#/dashboard?payment=success"
    assert payload["customer"] == {"email": "alice@example.com"}

    ((action, meta),) = audit_actions(db_url, "alice")
    assert action == "checkout_created"
    assert meta == {"package_type": "pack5", "billing_id": "bill_abc"}


def test_checkout_respects_success_url(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=0)
    client = FakeBilling()
    _checkout(settings, verify_token, client, success_url="https://x.example/ok")
    assert client.payloads[0]["returnUrl"] == "https://x.example/ok"


def test_checkout_falls_back_to_app_origin(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=0)
    client = FakeBilling()
    _checkout(settings, verify_token, client, "single")
    assert client.payloads[0]["completionUrl"].startswith(settings.app_origin)


@pytest.mark.parametrize("package", [None, "", "pack3", "PACK5"])
def test_invalid_package_is_rejected(settings, db_url, verify_token, package) -> None:
    client = FakeBilling()
    with pytest.raises(InvalidRequestError, match="Invalid package type"):
        _checkout(settings, verify_token, client, package)
    assert client.payloads == []
    assert count_rows(db_url, PaymentTransaction) == 0


@pytest.mark.parametrize("token", [None, "token-mallory"])
def test_checkout_requires_valid_token(settings, verify_token, token) -> None:
    client = FakeBilling()
    with pytest.raises(AuthenticationError):
        _checkout(settings, verify_token, client, token=token)
    assert client.payloads == []


def test_billing_payload_description_pluralizes() -> None:
    who = Identity(user_id="u1", email="u1@example.com")
    single = build_billing_payload(PACKAGES["single"], identity=who, completion_url="u")
    pack = build_billing_payload(PACKAGES["pack10"], identity=who, completion_url="u")
    assert single["products"][0]["description"] == "Pacote com 1 crédito para análise de IA"
    assert pack["products"][0]["description"] == "Pacote com 10 créditos para análise de IA"


def test_abacatepay_client_reads_billing(monkeypatch) -> None:
    seen: dict[str, Any] = {}

    def fake_request_json(method, url, *, headers=None, payload=None, timeout=15.0):
        seen.update(method=method, url=url, headers=headers, payload=payload)
        return {"data": {"id": "bill_1", "url": "https://pay.example/bill_1"}, "error": None}

    monkeypatch.setattr(payments, "request_json", fake_request_json)
    client = AbacatePayClient("https://api.abacatepay.com/v1/", "key-123")
    billing = client.create_billing({"frequency": "ONE_TIME"})

    assert billing == Billing(id="bill_1", url="https://pay.example/bill_1")
    assert seen["method"] == "POST"
    assert seen["url"] == "https://api.abacatepay.com/v1/billing/create"
    assert seen["headers"] == {"Authorization": "Bearer key-123"}


def test_abacatepay_client_surfaces_provider_message(monkeypatch) -> None:
    def fake_request_json(*_a, **_kw):
        raise HttpError("HTTP 422", status=422, body='{"error": "Invalid customer"}')

    monkeypatch.setattr(payments, "request_json", fake_request_json)
    with pytest.raises(PaymentProviderError, match="Invalid customer"):
        AbacatePayClient("https://api", "k").create_billing({})


def test_abacatepay_client_rejects_incomplete_response(monkeypatch) -> None:
    monkeypatch.setattr(payments, "request_json", lambda *_a, **_kw: {"data": None})
    with pytest.raises(PaymentProviderError, match="Failed to create billing"):
        AbacatePayClient("https://api", "k").create_billing({})


def test_package_amounts_are_decimal() -> None:
    assert all(isinstance(p.amount, Decimal) for p in PACKAGES.values())

from __future__ import annotations

import pytest

from statement_analysis import auth
from statement_analysis.auth import SupabaseTokenVerifier, parse_bearer
from statement_analysis.config import Settings
from statement_analysis.http_json import HttpError
from statement_analysis.models import Identity


@pytest.mark.parametrize(
    ("header", "token"),
    [
        ("Bearer abc.def", "abc.def"),
        ("bearer   abc", "abc"),
        ("  Bearer abc  ", "abc"),
        ("Bearer", None),
        ("Bearer   ", None),
        ("Basic dXNlcjpwYXNz", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_bearer(header: str | None, token: str | None) -> None:
    assert parse_bearer(header) == token


def test_verifier_resolves_identity(monkeypatch) -> None:
    seen: dict = {}

    def fake_request_json(method, url, *, headers=None, payload=None, timeout=15.0):
        seen.update(method=method, url=url, headers=headers)
        return {"id": "user-1", "email": "user1@example.com", "aud": "authenticated"}

    monkeypatch.setattr(auth, "request_json", fake_request_json)
    verifier = SupabaseTokenVerifier("https://proj.supabase.co/", "anon-key")

    assert verifier("tok") == Identity(user_id="user-1", email="user1@example.com")
    assert seen["method"] == "GET"
    assert seen["url"] == "https://proj.supabase.co/auth/v1/user"
    assert seen["headers"] == {"apikey": "anon-key", "Authorization": "Bearer tok"}


@pytest.mark.parametrize("status", [401, 403, 500, None])
def test_verifier_failures_resolve_to_none(monkeypatch, status) -> None:
    def fake_request_json(*_a, **_kw):
        raise HttpError("boom", status=status)

    monkeypatch.setattr(auth, "request_json", fake_request_json)
    assert SupabaseTokenVerifier("https://proj.supabase.co", "k")("tok") is None


def test_verifier_rejects_body_without_id(monkeypatch) -> None:
    monkeypatch.setattr(auth, "request_json", lambda *_a, **_kw: {"email": "x@example.com"})
    assert SupabaseTokenVerifier("https://proj.supabase.co", "k")("tok") is None


def test_from_settings_requires_configuration() -> None:
    with pytest.raises(RuntimeError):
        SupabaseTokenVerifier.from_settings(Settings())
    configured = Settings(supabase_url="https://proj.supabase.co", supabase_anon_key="k")
    assert isinstance(SupabaseTokenVerifier.from_settings(configured), SupabaseTokenVerifier)

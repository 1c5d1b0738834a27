"""Bearer-token resolution against the auth provider.

The orchestrator only needs a callable ``token -> Identity | None``;
:class:`SupabaseTokenVerifier` is the production implementation, tests pass
a plain function.
"""

from __future__ import annotations

from collections.abc import Callable

from .config import Settings
from .http_json import HttpError, request_json
from .logging_setup import get_logger
from .models import Identity

type TokenVerifier = Callable[[str], Identity | None]

_logger = get_logger("statement_analysis.auth")


def parse_bearer(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""

    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class SupabaseTokenVerifier:
    """Resolve an access token via ``GET {SUPABASE_URL}/auth/v1/user``.

    Any provider rejection (401/403) resolves to ``None``; transport failures
    are logged and also resolve to ``None`` so callers answer 401 rather than
    leaking provider details.
    """

    def __init__(self, base_url: str, anon_key: str, *, timeout: float = 10.0) -> None:
        self._url = base_url.rstrip("/") + "/auth/v1/user"
        self._anon_key = anon_key
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SupabaseTokenVerifier:
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required for token auth")
        return cls(settings.supabase_url, settings.supabase_anon_key)

    def __call__(self, token: str) -> Identity | None:
        if not token:
            return None
        try:
            body = request_json(
                "GET",
                self._url,
                headers={"apikey": self._anon_key, "Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except HttpError as e:
            if e.status in (401, 403):
                return None
            _logger.warning("auth:verify_failed status=%s error=%s", e.status, e)
            return None
        user_id = body.get("id")
        if not isinstance(user_id, str) or not user_id:
            return None
        email = body.get("email")
        return Identity(user_id=user_id, email=email if isinstance(email, str) else "")


__all__ = ["TokenVerifier", "parse_bearer", "SupabaseTokenVerifier"]

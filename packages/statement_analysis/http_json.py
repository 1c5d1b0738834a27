"""Minimal JSON-over-HTTP helper for the auth and payment provider calls.

Non-streaming, one request per call, no retries. Provider adapters translate
:class:`HttpError` into the application error taxonomy.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from collections.abc import Mapping
from typing import Any


class HttpError(RuntimeError):
    """Transport failure or non-2xx response; ``status`` is ``None`` for transport errors."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


def request_json(
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    payload: Mapping[str, Any] | None = None,
    timeout: float = 15.0,
) -> dict[str, Any]:
    """Send ``payload`` as JSON (when given) and return the decoded JSON object body."""

    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url, data=data, method=method.upper())
    req.add_header("Accept", "application/json")
    if data is not None:
        req.add_header("Content-Type", "application/json")
    for key, value in (headers or {}).items():
        req.add_header(key, value)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read()
    except urllib.error.HTTPError as e:
        # Surface the provider's error body when there is one.
        try:
            err_body = e.read().decode("utf-8", errors="replace")
        except Exception:  # noqa: BLE001 - best-effort diagnostic only
            err_body = ""
        raise HttpError(
            f"{method.upper()} {url} -> {e.code} {e.reason}", status=e.code, body=err_body
        ) from e
    except (urllib.error.URLError, TimeoutError) as e:
        raise HttpError(f"{method.upper()} {url} failed: {e}") from e

    if not body:
        return {}
    try:
        decoded = json.loads(body.decode("utf-8"))
    except json.JSONDecodeError as e:
        raise HttpError(f"{method.upper()} {url} returned non-JSON body") from e
    if not isinstance(decoded, dict):
        raise HttpError(f"{method.upper()} {url} returned a non-object JSON body")
    return decoded


__all__ = ["HttpError", "request_json"]

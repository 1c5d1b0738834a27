"""AI analysis call: prompt → OpenAI Responses API → validated analysis.

Public API:
    - :func:`request_analysis`
    - :func:`parse_analysis_text`

Helpers are module-level so tests can exercise them directly. No client is
created at import time; tests replace :data:`OpenAI` with a stub.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping, Sequence
from typing import Any

from openai import APITimeoutError, OpenAI
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError

from . import prompting
from .config import Settings
from .errors import UpstreamError, UpstreamParseError, UpstreamTimeoutError, UpstreamTransientError
from .logging_setup import get_logger, snippet
from .models import AIAnalysisResult, AnamnesisProfile
from .retry import RetryPolicy

_TRANSIENT_MARKERS: tuple[str, ...] = ("429", "503", "overloaded")
_TRANSIENT_STATUSES: frozenset[int] = frozenset({429, 503})
_FENCE_OPEN_RE = re.compile(r"```json\n?")
_FENCE_RE = re.compile(r"```\n?")

_logger = get_logger("statement_analysis.analysis")


def _create_client(settings: Settings) -> OpenAI:
    # Retries are owned by RetryPolicy; the SDK's own retry loop is disabled.
    return OpenAI(timeout=settings.ai_timeout_s, max_retries=0)


def is_transient_error(exc: BaseException) -> bool:
    """True for rate-limit/overload signals: HTTP 429/503 or a matching message.

    Timeouts are not transient here: the hard timeout is final for the request.
    """

    if isinstance(exc, APITimeoutError):
        return False
    sc = getattr(exc, "status_code", None)
    if isinstance(sc, int) and sc in _TRANSIENT_STATUSES:
        return True
    msg = str(exc).lower()
    return any(marker in msg for marker in _TRANSIENT_MARKERS)


def extract_response_text(resp: Any) -> str:
    """Return the model text from a Responses result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except Exception:  # noqa: BLE001 - tolerate SDK shape differences
            text = None
    if not text or not isinstance(text, str):
        raise UpstreamParseError("AI response did not contain any text output")
    return text


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers (```json / ```) and surrounding blanks."""

    return _FENCE_RE.sub("", _FENCE_OPEN_RE.sub("", text)).strip()


def parse_analysis_text(text: str) -> AIAnalysisResult:
    """Decode and validate the model text; any failure is an :class:`UpstreamParseError`."""

    cleaned = strip_code_fences(text)
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError as e:
        _logger.error("analyze:ai_parse_failed reason=invalid_json snippet=%s", snippet(cleaned))
        raise UpstreamParseError("Failed to parse AI response") from e
    if not isinstance(decoded, Mapping):
        _logger.error("analyze:ai_parse_failed reason=not_an_object snippet=%s", snippet(cleaned))
        raise UpstreamParseError("AI response was not a JSON object")
    try:
        return AIAnalysisResult.model_validate(decoded)
    except ValidationError as e:
        _logger.error(
            "analyze:ai_parse_failed reason=schema errors=%d snippet=%s",
            e.error_count(),
            snippet(cleaned),
        )
        raise UpstreamParseError("AI response did not match the analysis schema") from e


def request_analysis(
    rows: Sequence[Mapping[str, Any]],
    profile: AnamnesisProfile | None = None,
    *,
    settings: Settings,
    client: Any | None = None,
    retry: RetryPolicy | None = None,
) -> AIAnalysisResult:
    """Ask the model for a financial analysis of already-sanitized ``rows``.

    Transient provider failures are retried per ``retry`` (defaults built from
    ``settings``). Exhausted retries raise :class:`UpstreamTransientError`,
    the hard timeout raises :class:`UpstreamTimeoutError`, anything else from
    the provider raises :class:`UpstreamError`. Parse failures are never retried.
    """

    instructions = prompting.build_system_instructions()
    user_content = prompting.build_user_content(rows, profile, max_rows=settings.prompt_max_rows)
    text_cfg: ResponseTextConfigParam = {"format": prompting.build_response_format()}

    ai = client if client is not None else _create_client(settings)
    policy = retry or RetryPolicy(
        max_attempts=settings.ai_max_attempts,
        base_delay=settings.ai_initial_delay_s,
        multiplier=2.0,
        is_retryable=is_transient_error,
        label="analyze:ai",
    )

    def _once() -> Any:
        return ai.responses.create(
            model=settings.openai_model,
            instructions=instructions,
            input=user_content,
            text=text_cfg,
        )

    _logger.info(
        "analyze:ai_request model=%s rows=%d prompt_rows=%d",
        settings.openai_model,
        len(rows),
        min(len(rows), settings.prompt_max_rows),
    )
    t0 = time.perf_counter()
    try:
        resp = policy.call(_once)
    except APITimeoutError as e:
        raise UpstreamTimeoutError(
            f"AI provider did not answer within {settings.ai_timeout_s:g}s"
        ) from e
    except Exception as e:  # noqa: BLE001 - mapped onto the upstream taxonomy
        if is_transient_error(e):
            raise UpstreamTransientError(
                "AI provider is temporarily unavailable. Please try again in a few minutes."
            ) from e
        raise UpstreamError(f"AI provider request failed: {e.__class__.__name__}") from e

    dt_ms = (time.perf_counter() - t0) * 1000.0
    text = extract_response_text(resp)
    result = parse_analysis_text(text)
    _logger.info(
        "analyze:ai_done latency_ms=%.2f health_score=%s",
        dt_ms,
        result.financial_health_score,
    )
    return result


__all__ = [
    "is_transient_error",
    "extract_response_text",
    "strip_code_fences",
    "parse_analysis_text",
    "request_analysis",
]

"""Centralized logging configuration for the ``statement_analysis`` package.

Public helpers:

- ``configure_logging(...)``: attach one ``StreamHandler`` to the package
  root logger (``"statement_analysis"``). Entry points (the CLI and the ASGI
  app factory) call it once at startup.
- ``get_logger(name)``: return a child logger; until logging is configured the
  package root carries a ``NullHandler`` so library use stays silent.
- ``snippet(text)``: single-line, length-capped rendering of untrusted text
  (model output, provider error bodies) for diagnostic log lines.

Library modules never attach handlers of their own.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import IO

_PKG_LOGGER_NAME = "statement_analysis"
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False

SNIPPET_LIMIT = 500
_WS_RE = re.compile(r"\s+")


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = logging.getLevelName(name)
        if isinstance(numeric, int):
            return numeric
    env_val = os.getenv("STATEMENT_ANALYSIS_LOG_LEVEL")
    if env_val and env_val != level:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
    force: bool = False,
) -> None:
    """Configure the package root logger.

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` falls back to
        ``STATEMENT_ANALYSIS_LOG_LEVEL`` and then ``INFO``.
    fmt:
        Optional format string for the handler.
    stream:
        Destination of the single ``StreamHandler``.
    force:
        Replace a previous configuration instead of keeping it (the ASGI
        factory may run more than once per process under reloaders and tests).
    """

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if force or isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission through uvicorn's or the root logger's handlers.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return ``name``'s logger, keeping the package silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


def snippet(text: str | None, limit: int = SNIPPET_LIMIT) -> str:
    """Collapse whitespace and cap ``text`` at ``limit`` characters."""

    if not text:
        return ""
    flat = _WS_RE.sub(" ", text).strip()
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "...[truncated]"

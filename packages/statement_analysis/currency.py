"""Currency text → signed ``float`` normalization for heterogeneous bank exports.

Handles Brazilian (``R$ 1.200,50``) and US (``$1,234.56``) conventions,
accounting parentheses (``(150.00)``) and trailing minus signs
(``150,00-``). Results may be ``nan``; callers reject non-finite values
(see :func:`coerce_amount`).
"""

from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import Any

# Anything that cannot be part of a number: currency symbols, codes, letters,
# whitespace (including NBSP, common in pt-BR exports).
_NON_NUMERIC_RE = re.compile(r"[^0-9,.()+\-]")
_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")


def _has_brl_marker(text: str) -> bool:
    return "R$" in text or "BRL" in text.upper()


def _resolve_separators(s: str, *, brl: bool) -> str:
    last_comma = s.rfind(",")
    last_dot = s.rfind(".")

    # Repeated separator of one kind with none of the other is a thousands
    # grouping ("1,234,567" / "1.234.567").
    if last_dot == -1 and s.count(",") > 1:
        return s.replace(",", "")
    if last_comma == -1 and s.count(".") > 1:
        return s.replace(".", "")

    if brl or last_comma > last_dot:
        # 1.234,56 → 1234.56
        return s.replace(".", "").replace(",", ".", 1)
    # 1,234.56 → 1234.56
    return s.replace(",", "")


def normalize_amount(raw: Any) -> float:
    """Parse a raw cell into a signed float.

    - Numbers pass through (as ``float``); ``None`` and blank strings are ``0``.
    - Currency symbols, letters and whitespace are discarded.
    - ``(x)`` and a trailing ``-`` mark negatives.
    - The decimal separator is the comma when a BRL marker is present or the
      last comma comes after the last dot; otherwise the dot.
    - Unparseable text yields ``nan``.
    """

    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, (int, float, Decimal)):
        return float(raw)

    text = str(raw).strip()
    if not text:
        return 0.0

    brl = _has_brl_marker(text)
    s = _NON_NUMERIC_RE.sub("", text)

    negative = False
    if len(s) >= 2 and s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    s = s.replace("(", "").replace(")", "")
    if len(s) >= 2 and s.endswith("-") and not s.startswith("-"):
        negative = True
        s = s[:-1]

    s = _resolve_separators(s, brl=brl)

    m = _LEADING_NUMBER_RE.match(s)
    if m is None:
        return math.nan
    value = float(m.group(0))
    return -abs(value) if negative else value


def coerce_amount(raw: Any) -> float | None:
    """Return a finite amount, or ``None`` when ``raw`` is missing or unusable.

    Unlike :func:`normalize_amount`, absent and blank cells are *not* zero here:
    a structural check must be able to tell "no amount" from "amount 0".
    """

    if raw is None:
        return None
    if isinstance(raw, str) and not raw.strip():
        return None
    value = normalize_amount(raw)
    return value if math.isfinite(value) else None


__all__ = ["normalize_amount", "coerce_amount"]

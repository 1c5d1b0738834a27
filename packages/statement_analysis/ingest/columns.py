"""Column alias table and deterministic header → canonical-field resolution.

Resolution is evaluated field by field in :data:`FIELD_ALIASES` order:

1. exact pass: the first header (in header order) whose normalized form is an
   alias of the field;
2. token pass: otherwise, the first header having any alias as one of its
   word tokens (``"Data Lançamento"`` → ``date``, ``"Valor (R$)"`` → ``amount``).

A header claimed by one field is never reused for a later field. Headers are
normalized by trimming, lower-casing and stripping accents.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping

CANONICAL_FIELDS: tuple[str, ...] = ("date", "amount", "description", "category")
REQUIRED_FIELDS: tuple[str, ...] = ("date", "amount", "description")

FIELD_ALIASES: tuple[tuple[str, frozenset[str]], ...] = (
    ("date", frozenset({"date", "data", "dt", "datetime", "date_time"})),
    ("amount", frozenset({"amount", "valor", "value", "quantia", "saldo", "total"})),
    (
        "description",
        frozenset(
            {
                "description",
                "descricao",
                "desc",
                "memo",
                "estabelecimento",
                "merchant",
                "historico",
                "details",
            }
        ),
    ),
    ("category", frozenset({"category", "categoria", "tipo", "type"})),
)

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def normalize_header(header: str) -> str:
    """Trim, lower-case and strip diacritics (``"Descrição "`` → ``"descricao"``)."""

    decomposed = unicodedata.normalize("NFKD", str(header).strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _tokens(normalized: str) -> set[str]:
    return {t for t in _TOKEN_SPLIT_RE.split(normalized) if t}


def resolve_columns(headers: Iterable[str]) -> dict[str, str]:
    """Map canonical field names to the source header that supplies them.

    Fields without a matching header are absent from the result; this never
    raises for missing fields.
    """

    ordered = [h for h in headers if isinstance(h, str) and h.strip()]
    normalized = {h: normalize_header(h) for h in ordered}
    claimed: set[str] = set()
    resolved: dict[str, str] = {}

    for field, aliases in FIELD_ALIASES:
        match = next(
            (h for h in ordered if h not in claimed and normalized[h] in aliases),
            None,
        )
        if match is None:
            match = next(
                (h for h in ordered if h not in claimed and _tokens(normalized[h]) & aliases),
                None,
            )
        if match is not None:
            resolved[field] = match
            claimed.add(match)
    return resolved


class ColumnResolver:
    """Memoizing resolver for record streams whose key sets repeat."""

    def __init__(self) -> None:
        self._cache: dict[tuple[str, ...], dict[str, str]] = {}

    def __call__(self, row: Mapping[str, object]) -> dict[str, str]:
        key = tuple(k for k in row.keys() if isinstance(k, str))
        hit = self._cache.get(key)
        if hit is None:
            hit = resolve_columns(key)
            self._cache[key] = hit
        return hit


__all__ = [
    "CANONICAL_FIELDS",
    "REQUIRED_FIELDS",
    "FIELD_ALIASES",
    "normalize_header",
    "resolve_columns",
    "ColumnResolver",
]

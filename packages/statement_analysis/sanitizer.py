"""PII masking applied to rows before they leave the process for the AI provider.

Two layers:

- Columns whose *name* looks sensitive (national IDs, holder names, PIX keys,
  account/agency numbers, contact data) have their string values masked and
  any other value replaced by :data:`REDACTED`.
- Every other string value is scanned for embedded PII (CNPJ/CPF digit
  patterns, e-mails, phone numbers, UUID-shaped PIX keys) which is swapped for
  fixed placeholder tokens.

:func:`sanitize_rows` is pure and idempotent: sanitizing its own output
returns an equal value.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from .models import SanitizedRow

REDACTED = "[REDACTED]"

SENSITIVE_FIELD_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"cpf",
        r"cnpj",
        r"(?:^|[^a-z])rg(?:$|[^a-z])",
        r"nome",
        r"name",
        r"titular",
        r"benefici[aá]rio",
        r"pagador",
        r"account.*holder",
        r"beneficiary",
        r"pix",
        r"chave",
        r"phone",
        r"telefone",
        r"celular",
        r"endere[cç]o",
        r"address",
        r"e-?mail",
        r"conta",
        r"ag[eê]ncia",
        r"agency",
        r"branch",
    )
)

# Embedded-content patterns, applied in this order. Placeholders contain no
# digits, '@' or hex runs, so a second pass cannot match them again.
PIX_KEY_PATTERN = re.compile(
    r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE
)
EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w+")
CNPJ_PATTERN = re.compile(r"(?<!\d)\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}(?!\d)")
CPF_PATTERN = re.compile(r"(?<!\d)\d{3}\.?\d{3}\.?\d{3}-?\d{2}(?!\d)")
PHONE_PATTERN = re.compile(r"(?<!\d)\(?\d{2}\)?[\s.-]?\d{4,5}[-.]?\d{4}(?!\d)")

_EMBEDDED_REPLACEMENTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (PIX_KEY_PATTERN, "[PIX_KEY]"),
    (EMAIL_PATTERN, "[EMAIL]"),
    (CNPJ_PATTERN, "**.***.***/****-**"),
    (CPF_PATTERN, "***.***.***-**"),
    (PHONE_PATTERN, "[PHONE]"),
)

_MASKED_EMAIL_RE = re.compile(r"[^\s@]?\**@\*\*\*")


def is_sensitive_field(name: str) -> bool:
    return any(p.search(name) for p in SENSITIVE_FIELD_PATTERNS)


def _mask_word(word: str, cap: int) -> str:
    return word[0] + "*" * min(len(word) - 1, cap)


def mask_sensitive_text(text: str) -> str:
    """Mask a value from a sensitive column.

    - e-mail: first local-part character, up to 5 asterisks, ``@***``;
    - several words (a person's name): per word, first character plus up to 5
      asterisks, or ``**`` for words of two characters or less;
    - one word: first character plus up to 8 asterisks, or :data:`REDACTED`
      when two characters or less.
    """

    stripped = text.strip()
    if not stripped or stripped == REDACTED:
        return REDACTED
    if _MASKED_EMAIL_RE.fullmatch(stripped):
        return stripped

    if EMAIL_PATTERN.search(stripped):
        local = stripped.split("@", 1)[0]
        if local:
            return _mask_word(local, 5) + "@***"
        return "***@***"

    words = stripped.split()
    if len(words) > 1:
        return " ".join(_mask_word(w, 5) if len(w) > 2 else "**" for w in words)

    if len(stripped) > 2:
        return _mask_word(stripped, 8)
    return REDACTED


def scrub_embedded_pii(text: str) -> str:
    """Replace PII substrings inside free text with placeholder tokens."""

    for pattern, replacement in _EMBEDDED_REPLACEMENTS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_row(row: Mapping[str, Any]) -> SanitizedRow:
    out: SanitizedRow = {}
    for key, value in row.items():
        if is_sensitive_field(str(key)):
            out[key] = mask_sensitive_text(value) if isinstance(value, str) else REDACTED
        elif isinstance(value, str):
            out[key] = scrub_embedded_pii(value)
        else:
            out[key] = value
    return out


def sanitize_rows(rows: Iterable[Mapping[str, Any]]) -> list[SanitizedRow]:
    """Return sanitized copies of ``rows``; inputs are never mutated."""

    return [sanitize_row(r) for r in rows]


__all__ = [
    "REDACTED",
    "SENSITIVE_FIELD_PATTERNS",
    "is_sensitive_field",
    "mask_sensitive_text",
    "scrub_embedded_pii",
    "sanitize_row",
    "sanitize_rows",
]

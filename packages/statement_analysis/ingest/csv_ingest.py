"""Bank-statement CSV → canonical rows.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module in strict mode, so
a truncated file (for example an unterminated quoted field) is reported as
unreadable instead of being silently half-parsed. Column names are mapped
through :mod:`statement_analysis.ingest.columns`; amounts go through
:func:`statement_analysis.currency.normalize_amount`.

Missing canonical columns never raise here; the structure validator is the
component that reports them.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Mapping
from io import StringIO
from os import PathLike
from pathlib import Path
from typing import Any

from ..currency import coerce_amount
from ..errors import IngestError, RowLimitExceededError
from ..logging_setup import get_logger
from ..models import CanonicalRow
from .columns import ColumnResolver

# Row cap for uploads parsed on behalf of the dashboard (client-side limit).
CLIENT_MAX_ROWS = 1_000

_DELIMITER_CANDIDATES: tuple[str, ...] = (",", ";", "\t", "|")
_WS_RE = re.compile(r"\s+")

_logger = get_logger("statement_analysis.ingest")


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = _WS_RE.sub(" ", str(value)).strip()
    return cleaned or None


def _decode(contents: str | bytes) -> str:
    if isinstance(contents, str):
        return contents.lstrip("\ufeff")
    try:
        return contents.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Legacy bank exports (Windows-1252 / Latin-1).
        return contents.decode("cp1252", errors="replace")


def _detect_delimiter(text: str) -> str:
    header = next((line for line in text.splitlines() if line.strip()), "")
    counts = {d: header.count(d) for d in _DELIMITER_CANDIDATES}
    best = max(_DELIMITER_CANDIDATES, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def _is_blank(row: Mapping[str, Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def read_csv_records(contents: str | bytes) -> list[dict[str, Any]]:
    """Parse delimited text into header-keyed records (blank lines dropped).

    Raises :class:`IngestError` for empty input, a missing header row or
    malformed/truncated CSV.
    """

    text = _decode(contents)
    if not text.strip():
        raise IngestError("CSV is empty")

    delimiter = _detect_delimiter(text)
    with StringIO(text, newline="") as f:
        reader = csv.DictReader(f, delimiter=delimiter, strict=True)
        try:
            fieldnames = reader.fieldnames
            if not fieldnames or all(not (h or "").strip() for h in fieldnames):
                raise IngestError("CSV appears to have no header row")
            reader.fieldnames = [(h or "").strip() for h in fieldnames]

            records: list[dict[str, Any]] = []
            for row in reader:
                # DictReader aggregates surplus cells under a None key. Blank
                # trailing cells are tolerated; anything else is a shifted row
                # (e.g. an unquoted "-39,90" in a comma-delimited export).
                surplus = row.get(None) or []
                if any(isinstance(c, str) and c.strip() for c in surplus):
                    raise IngestError(f"Row {reader.line_num} has more fields than the header")
                record = {k: v for k, v in row.items() if k}
                if _is_blank(record):
                    continue
                records.append(record)
        except csv.Error as e:
            raise IngestError(f"Malformed CSV near line {reader.line_num}: {e}") from e
    return records


def canonicalize_row(
    row: Mapping[str, Any], columns: Mapping[str, str], *, index: int | None = None
) -> CanonicalRow | None:
    """Map one record onto the canonical field set; ``None`` when unparseable.

    A row is unparseable when it has neither a usable amount nor a date or
    description. Rows that keep context but lack a usable amount get ``0.0``
    so the canonical ``amount`` is always finite; the substitution is logged
    with the 1-based ``index``.
    """

    def cell(field: str) -> Any:
        header = columns.get(field)
        return row.get(header) if header is not None else None

    date = _clean_text(cell("date"))
    description = _clean_text(cell("description"))
    amount = coerce_amount(cell("amount"))
    if amount is None and date is None and description is None:
        return None
    if amount is None:
        _logger.warning("ingest:amount_defaulted row=%s raw=%r", index, cell("amount"))

    out: CanonicalRow = {
        "date": date,
        "amount": amount if amount is not None else 0.0,
        "description": description or "",
    }
    category = _clean_text(cell("category"))
    if category is not None:
        out["category"] = category

    consumed = set(columns.values())
    for key, value in row.items():
        if not isinstance(key, str) or not key or key in consumed:
            continue
        # Canonical names take precedence over a clashing passthrough column.
        out.setdefault(key, value)
    return out


def canonicalize_records(records: Iterable[Mapping[str, Any]]) -> list[CanonicalRow]:
    """Canonicalize already-parsed records (CSV rows or JSON objects)."""

    resolve = ColumnResolver()
    out: list[CanonicalRow] = []
    dropped = 0
    for index, record in enumerate(records, start=1):
        if not isinstance(record, Mapping):
            dropped += 1
            continue
        canon = canonicalize_row(record, resolve(record), index=index)
        if canon is None:
            dropped += 1
            continue
        out.append(canon)
    if dropped:
        _logger.info("ingest:dropped_rows count=%d kept=%d", dropped, len(out))
    return out


def ingest(contents: str | bytes, *, max_rows: int = CLIENT_MAX_ROWS) -> list[CanonicalRow]:
    """Read statement CSV contents and return canonical rows.

    ``max_rows`` is the caller's cap (the client-side default is 1,000; server
    ingestion uses the 10,000 structural limit). Exceeding it raises
    :class:`RowLimitExceededError` carrying the actual count.
    """

    records = read_csv_records(contents)
    if len(records) > max_rows:
        raise RowLimitExceededError(len(records), max_rows)
    rows = canonicalize_records(records)
    _logger.info("ingest:done parsed=%d canonical=%d", len(records), len(rows))
    return rows


def ingest_file(
    path: str | PathLike[str], *, max_rows: int = CLIENT_MAX_ROWS
) -> list[CanonicalRow]:
    """Read a CSV file from disk and :func:`ingest` it."""

    return ingest(Path(path).read_bytes(), max_rows=max_rows)


__all__ = [
    "CLIENT_MAX_ROWS",
    "read_csv_records",
    "canonicalize_row",
    "canonicalize_records",
    "ingest",
    "ingest_file",
]

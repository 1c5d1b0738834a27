"""Statement ingestion: CSV parsing, column resolution and canonicalization."""

from .columns import CANONICAL_FIELDS, FIELD_ALIASES, REQUIRED_FIELDS, resolve_columns
from .csv_ingest import (
    CLIENT_MAX_ROWS,
    canonicalize_records,
    canonicalize_row,
    ingest,
    ingest_file,
    read_csv_records,
)

__all__ = [
    "CANONICAL_FIELDS",
    "FIELD_ALIASES",
    "REQUIRED_FIELDS",
    "resolve_columns",
    "CLIENT_MAX_ROWS",
    "canonicalize_records",
    "canonicalize_row",
    "ingest",
    "ingest_file",
    "read_csv_records",
]

# ruff: noqa: I001
"""CLI for the ``statement_analysis`` package.

Command handlers (``cmd_*``) return process exit codes and are callable
directly from tests; the Typer app below is a thin wrapper around them. A
local ``.env`` is loaded with ``python-dotenv`` (never overriding the real
environment) before any command runs.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from typer.models import ArgumentInfo

from .config import Settings
from .errors import AppError
from .logging_setup import configure_logging

console = Console()


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


# ---- Command handlers ----------------------------------------------------------


def cmd_ingest(csv_path: Path, *, sanitize: bool = False, max_rows: int | None = None) -> int:
    """Print the canonical (optionally sanitized) rows of ``csv_path`` as JSON."""

    from .ingest import ingest_file
    from .sanitizer import sanitize_rows

    cap = max_rows or Settings.from_env().max_client_rows
    try:
        rows = ingest_file(csv_path, max_rows=cap)
    except FileNotFoundError:
        return _error(f"File not found: {csv_path}")
    except AppError as e:
        return _error(e.message)

    _print_json(sanitize_rows(rows) if sanitize else rows)
    return 0


def cmd_validate(csv_path: Path) -> int:
    """Run the structure validator over the raw records of ``csv_path``."""

    from .ingest import read_csv_records
    from .validation import validate_structure

    try:
        records = read_csv_records(csv_path.read_bytes())
    except FileNotFoundError:
        return _error(f"File not found: {csv_path}")
    except AppError as e:
        return _error(e.message)

    result = validate_structure(records, max_rows=Settings.from_env().max_server_rows)
    if result.valid:
        print(f"OK: {len(records)} rows")
        return 0
    for err in result.errors:
        print(err, file=sys.stderr)
    return 1


def cmd_analyze(
    csv_path: Path,
    *,
    user_id: str,
    profile_path: Path | None = None,
    database_url: str | None = None,
) -> int:
    """Run the full credit-gated analysis for ``user_id`` (operator use).

    The operator is trusted: ``user_id`` stands in for a verified token.
    """

    from .ingest import read_csv_records
    from .models import Identity
    from .orchestrator import run_analysis

    try:
        records = read_csv_records(csv_path.read_bytes())
        profile = json.loads(profile_path.read_text(encoding="utf-8")) if profile_path else None
    except FileNotFoundError as e:
        return _error(f"File not found: {e.filename}")
    except json.JSONDecodeError as e:
        return _error(f"Profile is not valid JSON: {e}")
    except AppError as e:
        return _error(e.message)

    try:
        outcome = run_analysis(
            user_id,
            records,
            profile,
            verify_token=lambda token: Identity(user_id=token),
            database_url=database_url,
            file_name=csv_path.name,
        )
    except AppError as e:
        stage = f" (stage: {e.stage})" if e.stage else ""
        return _error(f"[{e.category}] {e.message}{stage}")

    _print_json(outcome.to_payload())
    return 0


def cmd_grant_credits(
    user_id: str, credits: int, *, email: str | None = None, database_url: str | None = None
) -> int:
    """Top up ``user_id`` by ``credits`` (creating the profile when missing)."""

    from db.client import session_scope
    from . import persistence

    if credits <= 0:
        return _error("credits must be a positive integer")
    with session_scope(database_url=database_url) as session:
        persistence.ensure_profile(session, user_id, email=email)
        persistence.add_credits(session, user_id, credits)
        balance = persistence.get_credits(session, user_id)
    print(f"{user_id}\t{balance}")
    return 0


def cmd_latest_report(user_id: str, *, database_url: str | None = None) -> int:
    """Render the user's most recent report summary."""

    from db.client import session_scope
    from . import persistence

    with session_scope(database_url=database_url) as session:
        report = persistence.latest_report(session, user_id)
        data = persistence.report_to_dict(report, include_raw=False) if report else None
    if data is None:
        return _error(f"No reports found for {user_id}")

    analysis: dict[str, Any] = data.get("ai_analysis") or {}
    table = Table(show_header=False, box=None)
    table.add_row("Report", str(data["id"]))
    table.add_row("Created", str(data["created_at"]))
    table.add_row("Transactions", str(data["transactions_count"]))
    table.add_row("Health score", str(data["health_score"]))
    table.add_row("Income", f"R$ {data['total_income'] or 0:,.2f}")
    table.add_row("Expenses", f"R$ {data['total_expenses'] or 0:,.2f}")
    console.print(Panel(table, title="Latest Report", border_style="green"))

    advice = (analysis.get("insights") or {}).get("advice_text")
    if advice:
        console.print(Panel(Markdown(advice), title="Advice", border_style="blue"))
    return 0


def cmd_init_db(*, database_url: str | None = None) -> int:
    """Create all tables directly from the ORM metadata (local/dev databases)."""

    from db import Base
    from db.client import get_engine

    Base.metadata.create_all(bind=get_engine(database_url=database_url))
    print("Database initialized")
    return 0


def cmd_serve(*, host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> int:
    import uvicorn

    uvicorn.run(
        "statement_analysis.http_api:app_factory",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Bank-statement ingestion, AI financial analysis and credit administration.",
)

# Module-level argument object to satisfy ruff B008 (no calls in parameter defaults).
CSV_PATH_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., help="Path to a bank-statement CSV file", dir_okay=False, file_okay=True
)

DatabaseUrlOption = Annotated[
    str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
]


@app.command("ingest")
def ingest_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    sanitize: bool = typer.Option(False, help="Mask PII before printing."),
    max_rows: int | None = typer.Option(None, help="Row cap (default: SA_MAX_CLIENT_ROWS)."),
) -> None:
    """Print canonical rows as JSON."""

    raise typer.Exit(cmd_ingest(csv_path, sanitize=sanitize, max_rows=max_rows))


@app.command("validate")
def validate_cmd(csv_path: Annotated[Path, CSV_PATH_ARGUMENT]) -> None:
    """Check that a CSV is structurally fit for analysis."""

    raise typer.Exit(cmd_validate(csv_path))


@app.command("analyze")
def analyze_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    user_id: str = typer.Option(..., help="Profile id to analyze for and charge."),
    profile: Path | None = typer.Option(None, help="JSON file with the user profile."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Analyze a CSV for a user, spending one credit."""

    raise typer.Exit(
        cmd_analyze(csv_path, user_id=user_id, profile_path=profile, database_url=database_url)
    )


@app.command("grant-credits")
def grant_credits_cmd(
    user_id: str,
    credits: int,
    email: str | None = typer.Option(None, help="E-mail for a newly created profile."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Add credits to a user's balance."""

    raise typer.Exit(cmd_grant_credits(user_id, credits, email=email, database_url=database_url))


@app.command("latest-report")
def latest_report_cmd(user_id: str, database_url: DatabaseUrlOption = None) -> None:
    """Show the most recent report for a user."""

    raise typer.Exit(cmd_latest_report(user_id, database_url=database_url))


@app.command("init-db")
def init_db_cmd(database_url: DatabaseUrlOption = None) -> None:
    """Create tables for a local database (use Alembic for managed databases)."""

    raise typer.Exit(cmd_init_db(database_url=database_url))


@app.command("serve")
def serve_cmd(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
    reload: bool = typer.Option(False),
) -> None:
    """Run the HTTP API with uvicorn."""

    raise typer.Exit(cmd_serve(host=host, port=port, reload=reload))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from statement_analysis import analysis
from statement_analysis.cli import (
    app,
    cmd_analyze,
    cmd_grant_credits,
    cmd_ingest,
    cmd_latest_report,
    cmd_validate,
)

from tests.helpers.db import credits_of, seed_profile
from tests.helpers.openai_stub import OpenAIStub

CSV_TEXT = (
    "Date,Description,Amount,CPF\n"
    "2024-01-05,Netflix,\"-39.90\",123.456.789-09\n"
    "2024-01-06,Salary,\"5,000.00\",123.456.789-09\n"
)


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "statement.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


def test_ingest_prints_canonical_rows(csv_file: Path, capsys) -> None:
    assert cmd_ingest(csv_file) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [r["amount"] for r in rows] == [-39.9, 5000.0]
    assert rows[0]["CPF"] == "123.456.789-09"


def test_ingest_sanitize_masks_pii(csv_file: Path, capsys) -> None:
    assert cmd_ingest(csv_file, sanitize=True) == 0
    rows = json.loads(capsys.readouterr().out)
    assert {r["CPF"] for r in rows} == {"1********"}


def test_ingest_row_cap(csv_file: Path, capsys) -> None:
    assert cmd_ingest(csv_file, max_rows=1) == 1
    assert "Maximum allowed is 1 transactions" in capsys.readouterr().err


def test_ingest_missing_file(tmp_path: Path, capsys) -> None:
    assert cmd_ingest(tmp_path / "nope.csv") == 1
    assert "File not found" in capsys.readouterr().err


def test_validate(csv_file: Path, tmp_path: Path, capsys) -> None:
    assert cmd_validate(csv_file) == 0
    assert "OK: 2 rows" in capsys.readouterr().out

    bad = tmp_path / "bad.csv"
    bad.write_text("Date,Description\n2024-01-05,Netflix\n", encoding="utf-8")
    assert cmd_validate(bad) == 1
    assert "Missing required field: amount" in capsys.readouterr().err


def test_grant_then_analyze_then_latest(csv_file, db_url, monkeypatch, capsys) -> None:
    assert cmd_grant_credits("carol", 2, email="carol@example.com", database_url=db_url) == 0
    assert credits_of(db_url, "carol") == 2
    capsys.readouterr()

    stub = OpenAIStub()
    monkeypatch.setattr(analysis, "OpenAI", stub.factory())
    assert cmd_analyze(csv_file, user_id="carol", database_url=db_url) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["remaining_credits"] == 1
    assert credits_of(db_url, "carol") == 1

    assert cmd_latest_report("carol", database_url=db_url) == 0
    out = capsys.readouterr().out
    assert "Latest Report" in out
    assert "72" in out


def test_analyze_without_credits_fails(csv_file, db_url, monkeypatch, capsys) -> None:
    seed_profile(db_url, "dave", credits=0)
    stub = OpenAIStub()
    monkeypatch.setattr(analysis, "OpenAI", stub.factory())
    assert cmd_analyze(csv_file, user_id="dave", database_url=db_url) == 1
    assert "[payment_required]" in capsys.readouterr().err
    assert stub.calls == []


def test_grant_credits_rejects_non_positive(db_url, capsys) -> None:
    assert cmd_grant_credits("carol", 0, database_url=db_url) == 1
    assert "positive" in capsys.readouterr().err


def test_latest_report_missing(db_url, capsys) -> None:
    assert cmd_latest_report("nobody", database_url=db_url) == 1
    assert "No reports found" in capsys.readouterr().err


def test_typer_validate_command(csv_file: Path) -> None:
    result = CliRunner().invoke(app, ["validate", str(csv_file)])
    assert result.exit_code == 0
    assert "OK: 2 rows" in result.output

"""Pytest configuration shared by the unit, HTTP and end-to-end tests.

The workspace packages are imported from source: ``packages/`` (for
``statement_analysis``) and ``libs/db/src`` (for ``db``) are prepended to
``sys.path`` so the suite runs without an editable install as well.

Every test gets its own file-backed SQLite database (see
:mod:`tests.helpers.db`), and cached engines are disposed afterwards so no
connection outlives its temporary directory.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from db.client import dispose_engines
from statement_analysis.config import Settings
from statement_analysis.models import Identity

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep the developer's environment out of the tests."""

    for name in (
        "DATABASE_URL",
        "ABACATEPAY_WEBHOOK_SECRET",
        "SA_AI_INITIAL_DELAY_S",
        "STATEMENT_ANALYSIS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "db" / "test.sqlite3")


@pytest.fixture
def settings(db_url: str) -> Settings:
    # Zero backoff keeps retry tests instantaneous.
    return Settings(database_url=db_url, ai_initial_delay_s=0.0)


TOKENS: dict[str, Identity] = {
    "token-alice": Identity(user_id="alice", email="alice@example.com"),
    "token-bob": Identity(user_id="bob", email="bob@example.com"),
}


def fake_verify_token(token: str) -> Identity | None:
    return TOKENS.get(token)


@pytest.fixture
def verify_token():
    return fake_verify_token

from __future__ import annotations

import json
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from db.models.finance import AuditLog, Report
from statement_analysis import orchestrator, persistence
from statement_analysis.errors import (
    AuthenticationError,
    InsufficientCreditsError,
    InvalidRequestError,
    NotFoundError,
    PersistenceError,
    StructureValidationError,
    UpstreamParseError,
    UpstreamTransientError,
)
from statement_analysis.models import RequestContext
from statement_analysis.orchestrator import AnalysisStage, run_analysis

from tests.helpers.db import audit_actions, count_rows, credits_of, reports_of, seed_profile
from tests.helpers.log_recorder import LogRecorder
from tests.helpers.openai_stub import (
    OpenAIStub,
    StatusError,
    extract_rows_from_user_content,
    sample_analysis,
)

RAW_ROWS = [
    {"Data": "05/01/2024", "Descrição": "Netflix", "Valor": "-39,90", "CPF": "123.456.789-09"},
    {"Data": "06/01/2024", "Descrição": "Salario", "Valor": "5.000,00", "CPF": "123.456.789-09"},
]


def _run(settings, verify_token, stub, *, token="token-alice", rows=RAW_ROWS, **kw):
    return run_analysis(
        token,
        rows,
        kw.pop("anamnesis", None),
        verify_token=verify_token,
        settings=settings,
        ai_client=stub,
        **kw,
    )


def test_successful_run_spends_one_credit(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=3)
    stub = OpenAIStub()

    outcome = _run(
        settings,
        verify_token,
        stub,
        file_name="extrato.csv",
        context=RequestContext(ip_address="10.0.0.1", user_agent="pytest"),
    )

    assert outcome.remaining_credits == 2
    assert outcome.transactions_count == 2
    assert outcome.credit_deducted is True
    assert credits_of(db_url, "alice") == 2

    payload = outcome.to_payload()
    assert payload["success"] is True
    assert payload["report_id"] == outcome.report_id
    assert payload["analysis"]["financial_health_score"] == 72

    (report,) = reports_of(db_url, "alice")
    assert report.id == outcome.report_id
    assert report.file_name == "extrato.csv"
    assert report.transactions_count == 2
    assert report.health_score == 72
    assert report.total_income == Decimal("5000.00")
    assert [r["amount"] for r in report.raw_data] == [-39.9, 5000.0]

    actions = audit_actions(db_url, "alice")
    assert [a for a, _ in actions] == ["analysis_completed"]
    meta = actions[0][1]
    assert meta["transactions_count"] == 2
    assert meta["credit_deducted"] is True
    assert "processing_time_ms" in meta


def test_ai_receives_sanitized_canonical_rows(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub()
    _run(settings, verify_token, stub)

    prompt = stub.calls[0]["input"]
    assert "123.456.789-09" not in prompt
    sent = extract_rows_from_user_content(prompt)
    assert [r["description"] for r in sent] == ["Netflix", "Salario"]
    assert [r["amount"] for r in sent] == [-39.9, 5000.0]
    assert all(r["CPF"] == "1********" for r in sent)


def test_profile_is_included_in_prompt(settings, db_url, verify_token) -> None:
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub()
    _run(settings, verify_token, stub, anamnesis={"age": 41, "familyStatus": "single_parent"})
    assert "Pai/Mãe Solo" in stub.calls[0]["input"]


@pytest.mark.parametrize(
    ("token", "message"),
    [
        (None, "Missing Authorization header"),
        ("", "Missing Authorization header"),
        ("token-mallory", "Invalid token"),
    ],
)
def test_auth_failures_have_no_side_effects(settings, db_url, verify_token, token, message):
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub()
    with pytest.raises(AuthenticationError) as exc_info:
        _run(settings, verify_token, stub, token=token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == message
    assert exc_info.value.stage == AnalysisStage.AUTHENTICATING
    assert stub.calls == []
    assert count_rows(db_url, AuditLog) == 0
    assert credits_of(db_url, "alice") == 1


def test_invalid_structure_is_rejected_before_credit_check(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub()
    with pytest.raises(StructureValidationError) as exc_info:
        _run(settings, verify_token, stub, rows=[{"foo": "bar"}])
    err = exc_info.value
    assert err.status_code == 400
    assert err.stage == "validating"
    assert "Missing required field: amount" in err.to_payload()["details"]
    assert stub.calls == []
    assert count_rows(db_url, AuditLog) == 0


def test_invalid_anamnesis_is_rejected(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=1)
    with pytest.raises(InvalidRequestError):
        _run(settings, verify_token, OpenAIStub(), anamnesis={"age": -5})
    assert credits_of(db_url, "alice") == 1


def test_missing_profile_is_not_found(settings, db_url, verify_token):
    stub = OpenAIStub()
    with pytest.raises(NotFoundError) as exc_info:
        _run(settings, verify_token, stub)
    assert exc_info.value.status_code == 404
    assert exc_info.value.stage == "credit_check"
    assert stub.calls == []


def test_zero_credits_never_reach_the_ai(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=0)
    stub = OpenAIStub()
    with pytest.raises(InsufficientCreditsError) as exc_info:
        _run(settings, verify_token, stub)
    assert exc_info.value.status_code == 402
    assert exc_info.value.stage == "credit_check"
    assert stub.calls == []
    assert count_rows(db_url, Report) == 0
    assert audit_actions(db_url, "alice") == [
        ("analysis_failed", {"reason": "insufficient_credits"})
    ]


def test_parse_failure_keeps_credit_and_saves_nothing(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=2)
    stub = OpenAIStub(["Desculpe, não posso ajudar."])
    with pytest.raises(UpstreamParseError) as exc_info:
        _run(settings, verify_token, stub)
    assert exc_info.value.stage == "awaiting_ai"
    assert len(stub.calls) == 1
    assert credits_of(db_url, "alice") == 2
    assert count_rows(db_url, Report) == 0
    assert audit_actions(db_url, "alice") == [
        ("analysis_failed", {"reason": "upstream_invalid_response", "stage": "awaiting_ai"})
    ]


def test_transient_errors_are_retried(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub([StatusError(503), StatusError(429), json.dumps(sample_analysis())])
    outcome = _run(settings, verify_token, stub)
    assert len(stub.calls) == 3
    assert outcome.remaining_credits == 0


def test_exhausted_retries_surface_as_unavailable(settings, db_url, verify_token):
    seed_profile(db_url, "alice", credits=1)
    stub = OpenAIStub([StatusError(503, "Service Unavailable")])
    with pytest.raises(UpstreamTransientError) as exc_info:
        _run(settings, verify_token, stub)
    assert exc_info.value.category == "upstream_unavailable"
    assert len(stub.calls) == settings.ai_max_attempts
    assert credits_of(db_url, "alice") == 1


def test_save_failure_keeps_credit(settings, db_url, verify_token, monkeypatch):
    seed_profile(db_url, "alice", credits=1)

    def _boom(*_a, **_kw):
        raise OperationalError("INSERT INTO reports", {}, Exception("disk I/O error"))

    monkeypatch.setattr(persistence, "save_report", _boom)
    with pytest.raises(PersistenceError) as exc_info:
        _run(settings, verify_token, OpenAIStub())
    assert exc_info.value.stage == "persisting"
    assert credits_of(db_url, "alice") == 1
    assert audit_actions(db_url, "alice") == [
        ("analysis_failed", {"reason": "persistence_error", "stage": "persisting"})
    ]


def test_deduction_failure_is_tolerated(settings, db_url, verify_token, monkeypatch):
    seed_profile(db_url, "alice", credits=1)

    def _boom(*_a, **_kw):
        raise OperationalError("UPDATE profiles", {}, Exception("database is locked"))

    monkeypatch.setattr(persistence, "try_deduct_credit", _boom)
    recorder = LogRecorder()
    monkeypatch.setattr(orchestrator, "_logger", recorder)
    outcome = _run(settings, verify_token, OpenAIStub())

    assert outcome.credit_deducted is False
    assert outcome.remaining_credits == 1
    assert credits_of(db_url, "alice") == 1
    assert len(reports_of(db_url, "alice")) == 1
    ((action, meta),) = audit_actions(db_url, "alice")
    assert action == "analysis_completed"
    assert meta["credit_deducted"] is False
    assert any("analyze:credit_deduct_failed" in m for m in recorder.messages("error"))


def test_concurrent_spend_leaves_balance_non_negative(settings, db_url, verify_token, monkeypatch):
    # Another request drains the last credit between the check and the deduction.
    seed_profile(db_url, "alice", credits=1)
    real_save = persistence.save_report

    def _save_then_drain(session, **kw):
        report = real_save(session, **kw)
        assert persistence.try_deduct_credit(session, "alice") is True
        return report

    monkeypatch.setattr(persistence, "save_report", _save_then_drain)
    recorder = LogRecorder()
    monkeypatch.setattr(orchestrator, "_logger", recorder)
    outcome = _run(settings, verify_token, OpenAIStub())

    assert outcome.credit_deducted is False
    assert outcome.remaining_credits == 0
    assert credits_of(db_url, "alice") == 0
    (failed,) = [m for m in recorder.messages("error") if "credit_deduct_failed" in m]
    assert "reason=no_balance" in failed
    assert f"report_id={outcome.report_id}" in failed

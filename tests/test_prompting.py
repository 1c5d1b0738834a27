from __future__ import annotations

from typing import Any

from statement_analysis.models import AnamnesisProfile
from statement_analysis.prompting import (
    build_profile_section,
    build_response_format,
    build_system_instructions,
    build_user_content,
    grounding_total,
)

from tests.helpers.openai_stub import extract_rows_from_user_content

ROWS = [
    {"date": "2024-01-05", "amount": -39.9, "description": "Netflix"},
    {"date": "2024-01-06", "amount": 5000.0, "description": "Salario"},
]


def test_grounding_total_sums_absolute_amounts() -> None:
    assert grounding_total(ROWS) == 5040


def test_grounding_total_rounds_half_up_and_skips_non_numbers() -> None:
    assert grounding_total([{"amount": 0.5}]) == 1
    assert grounding_total([{"amount": 2.5}]) == 3
    assert grounding_total([{"amount": "12"}, {"amount": True}, {"amount": float("nan")}]) == 0
    assert grounding_total([]) == 0


def test_user_content_embeds_rows_and_grounding() -> None:
    content = build_user_content(ROWS)
    assert "approximately 5040" in content
    assert extract_rows_from_user_content(content) == ROWS
    assert "Do NOT convert to USD" in content


def test_user_content_caps_embedded_rows() -> None:
    rows = [{"date": "2024-01-01", "amount": float(i), "description": f"r{i}"} for i in range(5)]
    content = build_user_content(rows, max_rows=2)
    assert extract_rows_from_user_content(content) == rows[:2]
    assert "(5 transactions, showing 2)" in content
    # Grounding still covers every row: 0 + 1 + 2 + 3 + 4.
    assert "approximately 10" in content


def test_profile_section_uses_labels() -> None:
    profile = AnamnesisProfile.model_validate(
        {
            "age": 30,
            "familyStatus": "married_kids",
            "financialGoals": ["Aposentadoria", "Viajar"],
            "totalInvested": 1000,
        }
    )
    section = build_profile_section(profile)
    assert "Casado(a) com Filhos" in section
    assert "Aposentadoria, Viajar" in section
    assert "R$ 1,000.00" in section
    assert "Occupation: N/A" in section
    assert section in build_user_content(ROWS, profile)


def test_profile_section_absent_without_profile() -> None:
    assert build_profile_section(None) == ""
    assert "USER PROFILE" not in build_user_content(ROWS)


def test_system_instructions_demand_plain_json() -> None:
    assert "no code fences" in build_system_instructions()


def _walk_objects(node: Any):
    if isinstance(node, dict):
        if node.get("type") == "object":
            yield node
        for value in node.values():
            yield from _walk_objects(value)


def test_response_format_is_strict_schema() -> None:
    fmt = build_response_format()
    assert fmt["type"] == "json_schema"
    assert fmt["name"] == "financial_analysis"
    assert fmt["strict"] is True
    objects = list(_walk_objects(fmt["schema"]))
    assert len(objects) > 5
    for obj in objects:
        assert obj["additionalProperties"] is False
        assert set(obj["required"]) == set(obj["properties"])
    assert "financial_health_score" in fmt["schema"]["required"]

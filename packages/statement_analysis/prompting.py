"""Prompt construction and response schema for the financial analysis call.

This module builds:
- The grounding total (sum of absolute amounts, rounded half-up) that anchors
  the magnitude of the model's totals and discourages currency conversion.
- The system instructions and user content for the OpenAI Responses API.
- The strict ``text.format`` JSON Schema describing the analysis document.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import AnamnesisProfile

FAMILY_STATUS_LABELS: dict[str, str] = {
    "single": "Solteiro(a)",
    "married": "Casado(a)",
    "married_kids": "Casado(a) com Filhos",
    "single_parent": "Pai/Mãe Solo",
}

BEGIN_ROWS = "BEGIN_TRANSACTIONS_JSON"
END_ROWS = "END_TRANSACTIONS_JSON"


def grounding_total(rows: Sequence[Mapping[str, Any]]) -> int:
    """Sum of ``abs(amount)`` over ``rows`` rounded to the nearest integer (half-up)."""

    total = Decimal(0)
    for row in rows:
        amount = row.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
            continue
        if isinstance(amount, float) and not math.isfinite(amount):
            continue
        total += abs(Decimal(str(amount)))
    return int(total.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def serialize_rows_to_json(rows: Sequence[Mapping[str, Any]], *, limit: int) -> str:
    """Serialize at most ``limit`` rows as an indented JSON array."""

    return json.dumps([dict(r) for r in rows[:limit]], ensure_ascii=False, indent=2, default=str)


def build_profile_section(profile: AnamnesisProfile | None) -> str:
    if profile is None:
        return ""
    status = profile.family_status
    status_label = FAMILY_STATUS_LABELS.get(status, status) if status else "N/A"
    invested = f"R$ {profile.total_invested:,.2f}" if profile.total_invested is not None else "N/A"
    goals = ", ".join(profile.financial_goals) if profile.financial_goals else "N/A"
    lines = [
        "USER PROFILE (ANAMNESIS):",
        f"- Age: {profile.age if profile.age is not None else 'N/A'}",
        f"- Occupation: {profile.occupation or 'N/A'}",
        f"- Family Status: {status_label}",
        f"- Declared Investments: {invested}",
        f"- Primary Goals: {goals}",
    ]
    return "\n".join(lines) + "\n"


def build_system_instructions() -> str:
    """Persona plus the non-negotiable output contract."""

    return (
        "You are an expert Personal CFO and data scientist specializing in the Brazilian "
        "financial market. Analyze bank-statement transactions and produce a financial "
        "health report. Respond with a single JSON object that conforms to the specified "
        "schema: no markdown, no code fences, no extra text."
    )


_SCHEMA_TEXT = """{
  "financial_health_score": number (0-100),
  "metrics": {
    "total_income": number,
    "total_expense": number,
    "savings_rate_percentage": number (0-100),
    "discretionary_spending_percentage": number (0-100),
    "runway_days_estimate": number
  },
  "breakdown_50_30_20": { "needs": number, "wants": number, "savings": number },
  "subscriptions": [ { "name": string, "cost": number, "frequency": "monthly" | "yearly" } ],
  "categories": [ { "name": string, "value": number } ],
  "daily_burn_rate": [ { "date": string (YYYY-MM-DD), "amount": number, "cumulative": number } ],
  "insights": {
    "advice_text": string (3-4 paragraphs, in Portuguese),
    "wasteful_expenses": string[] (specific items with amounts),
    "largest_category": string,
    "anomaly_detected": string | null,
    "immediate_actions": [
      { "title": string, "description": string, "type": "danger" | "warning" | "success" }
    ],
    "market_comparison": string | null
  },
  "transactions": [
    { "id": string, "description": string, "category": string, "date": string, "amount": number }
  ]
}"""


def build_user_content(
    rows: Sequence[Mapping[str, Any]],
    profile: AnamnesisProfile | None = None,
    *,
    max_rows: int = 400,
) -> str:
    """Build the user message: grounding, profile, schema, rules and the rows.

    ``rows`` must already be sanitized. At most ``max_rows`` rows are embedded;
    the grounding total always covers every row.
    """

    grounding = grounding_total(rows)
    shown = min(len(rows), max_rows)
    parts = [
        "Analyze the following transaction data to generate a comprehensive financial "
        "health report.",
        "",
        build_profile_section(profile),
        "LANGUAGE AND CURRENCY:",
        "1. Detect the language of the transaction descriptions.",
        "2. If descriptions are Portuguese or involve BRL, assume Brazilian Real (BRL).",
        "3. Do NOT convert to USD. Keep numeric values raw and use \"R$\" in text output.",
        "",
        "MATH GROUNDING:",
        f"The sum of absolute values in the provided data is approximately {grounding}.",
        f"- Your (total_income + total_expense) should be in the magnitude of {grounding}.",
        "- Do not divide values by any exchange rate. Treat the input numbers as the final "
        "currency units.",
        "",
        "Respond with a valid JSON object only. The structure must be exactly:",
        _SCHEMA_TEXT,
        "",
        "Analysis requirements:",
        "1. financial_health_score: be strict. Below 50 is poor, above 80 is excellent.",
        "2. subscriptions: identify recurring charges (streaming, gyms, delivery apps, rides).",
        "3. categories: group expenses (Moradia, Alimentação, Transporte, Lazer, Saúde, ...).",
        "4. breakdown_50_30_20: split expenses into needs/wants/savings.",
        "5. wasteful_expenses: point out small leaks that add up.",
        "6. immediate_actions: 4-5 concrete, actionable recommendations.",
        "7. advice_text: Portuguese; overall status, spending habits, path to goals.",
        "8. transactions: categorize every transaction shown below.",
        "",
        f"Financial data to analyze ({len(rows)} transactions, showing {shown}):",
        BEGIN_ROWS,
        serialize_rows_to_json(rows, limit=max_rows),
        END_ROWS,
    ]
    return "\n".join(parts)


def _obj(properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _arr(items: dict[str, Any]) -> dict[str, Any]:
    return {"type": "array", "items": items}


_NUM: dict[str, Any] = {"type": "number"}
_STR: dict[str, Any] = {"type": "string"}
_NULLABLE_STR: dict[str, Any] = {"type": ["string", "null"]}


def build_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema ``text.format`` object for the analysis."""

    schema = _obj(
        {
            "financial_health_score": {"type": "number", "minimum": 0, "maximum": 100},
            "metrics": _obj(
                {
                    "total_income": _NUM,
                    "total_expense": _NUM,
                    "savings_rate_percentage": _NUM,
                    "discretionary_spending_percentage": _NUM,
                    "runway_days_estimate": _NUM,
                }
            ),
            "breakdown_50_30_20": _obj({"needs": _NUM, "wants": _NUM, "savings": _NUM}),
            "subscriptions": _arr(
                _obj(
                    {
                        "name": _STR,
                        "cost": _NUM,
                        "frequency": {"type": "string", "enum": ["monthly", "yearly"]},
                    }
                )
            ),
            "categories": _arr(_obj({"name": _STR, "value": _NUM})),
            "daily_burn_rate": _arr(_obj({"date": _STR, "amount": _NUM, "cumulative": _NUM})),
            "insights": _obj(
                {
                    "advice_text": _STR,
                    "wasteful_expenses": _arr(_STR),
                    "largest_category": _STR,
                    "anomaly_detected": _NULLABLE_STR,
                    "immediate_actions": _arr(
                        _obj(
                            {
                                "title": _STR,
                                "description": _STR,
                                "type": {
                                    "type": "string",
                                    "enum": ["danger", "warning", "success"],
                                },
                            }
                        )
                    ),
                    "market_comparison": _NULLABLE_STR,
                }
            ),
            "transactions": _arr(
                _obj(
                    {
                        "id": _STR,
                        "description": _STR,
                        "category": _STR,
                        "date": _STR,
                        "amount": _NUM,
                    }
                )
            ),
        }
    )
    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "financial_analysis",
        "schema": schema,
        "strict": True,
    }
    return result


__all__ = [
    "FAMILY_STATUS_LABELS",
    "BEGIN_ROWS",
    "END_ROWS",
    "grounding_total",
    "serialize_rows_to_json",
    "build_profile_section",
    "build_system_instructions",
    "build_user_content",
    "build_response_format",
]

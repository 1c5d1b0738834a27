"""Data models and type aliases for ``statement_analysis``.

Rows travel through the pipeline as plain mappings so that unknown bank
columns survive as passthrough context:

- :data:`RawRow`: one statement line as uploaded (column name → raw cell).
- :data:`CanonicalRow`: ``date``, ``amount`` (finite ``float``, negative means
  expense), ``description`` and optional ``category`` plus every unmatched
  column, unchanged.
- :data:`SanitizedRow`: a canonical row after PII masking.

Model output and user-supplied profile data are validated with pydantic.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Row shapes
# ---------------------------------------------------------------------------

type RawRow = Mapping[str, Any]
"""A single uploaded statement line; keys are the bank's own column names."""

type CanonicalRow = dict[str, Any]
"""A normalized row: ``date``/``amount``/``description``/``category?`` + passthrough."""

type SanitizedRow = dict[str, Any]
"""A canonical row whose sensitive content has been masked or redacted."""


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of :func:`statement_analysis.validation.validate_structure`."""

    valid: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Identity:
    """An authenticated end user as resolved by the auth provider."""

    user_id: str
    email: str = ""


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Caller metadata recorded on audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None


# ---------------------------------------------------------------------------
# User profile ("anamnesis") supplied alongside an upload
# ---------------------------------------------------------------------------

FamilyStatus = Literal["single", "married", "married_kids", "single_parent"]


class AnamnesisProfile(BaseModel):
    """Optional self-declared profile used to personalize the analysis.

    Accepts the dashboard's camelCase keys (``totalInvested``,
    ``financialGoals``, ``familyStatus``) as well as snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    age: int | None = Field(default=None, ge=0, le=130)
    occupation: str | None = None
    total_invested: float | None = Field(default=None, alias="totalInvested")
    financial_goals: list[str] = Field(default_factory=list, alias="financialGoals")
    family_status: FamilyStatus | str | None = Field(default=None, alias="familyStatus")


# ---------------------------------------------------------------------------
# Model output: the financial analysis document
# ---------------------------------------------------------------------------


class _Lenient(BaseModel):
    # Unknown keys from the model are kept so the stored document stays faithful.
    model_config = ConfigDict(extra="allow")


class AnalysisMetrics(_Lenient):
    total_income: float = 0.0
    total_expense: float = 0.0
    savings_rate_percentage: float = 0.0
    discretionary_spending_percentage: float = 0.0
    runway_days_estimate: float = 0.0


class Breakdown503020(_Lenient):
    needs: float = 0.0
    wants: float = 0.0
    savings: float = 0.0


class Subscription(_Lenient):
    name: str
    cost: float
    frequency: str = "monthly"


class CategoryTotal(_Lenient):
    name: str
    value: float


class DailyBurnPoint(_Lenient):
    date: str
    amount: float
    cumulative: float


class ImmediateAction(_Lenient):
    title: str
    description: str
    type: Literal["danger", "warning", "success"] = "warning"


class Insights(_Lenient):
    advice_text: str = ""
    wasteful_expenses: list[str] = Field(default_factory=list)
    largest_category: str = ""
    anomaly_detected: str | None = None
    immediate_actions: list[ImmediateAction] = Field(default_factory=list)
    market_comparison: str | None = None


class CategorizedTransaction(_Lenient):
    id: str | int | None = None
    description: str = ""
    category: str = ""
    date: str | None = None
    amount: float = 0.0


class AIAnalysisResult(_Lenient):
    """The analysis document returned by the model and stored on a report."""

    financial_health_score: float = Field(ge=0, le=100)
    metrics: AnalysisMetrics = Field(default_factory=AnalysisMetrics)
    breakdown_50_30_20: Breakdown503020 = Field(default_factory=Breakdown503020)
    subscriptions: list[Subscription] = Field(default_factory=list)
    categories: list[CategoryTotal] = Field(default_factory=list)
    daily_burn_rate: list[DailyBurnPoint] = Field(default_factory=list)
    insights: Insights = Field(default_factory=Insights)
    transactions: list[CategorizedTransaction] = Field(default_factory=list)

    @field_validator(
        "subscriptions", "categories", "daily_burn_rate", "transactions", mode="before"
    )
    @classmethod
    def _null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


__all__ = [
    "RawRow",
    "CanonicalRow",
    "SanitizedRow",
    "ValidationResult",
    "Identity",
    "RequestContext",
    "FamilyStatus",
    "AnamnesisProfile",
    "AnalysisMetrics",
    "Breakdown503020",
    "Subscription",
    "CategoryTotal",
    "DailyBurnPoint",
    "ImmediateAction",
    "Insights",
    "CategorizedTransaction",
    "AIAnalysisResult",
]

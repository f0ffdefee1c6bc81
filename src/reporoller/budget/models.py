"""Data models for budget-constrained file selection."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BudgetKind(str, Enum):
    """Unit a budget is expressed in."""

    TOKENS = "tokens"
    USD = "usd"
    EUR = "eur"


class BudgetSpec(BaseModel):
    """A caller-specified ceiling on the bundle.

    `provider_id` prices the budget. Currency budgets cannot be normalized
    without one; token budgets use it only for the secondary cost ceiling.
    """

    model_config = ConfigDict(frozen=True)

    kind: BudgetKind
    limit: float = Field(gt=0, allow_inf_nan=False)
    provider_id: str | None = None

    def with_provider(self, provider_id: str | None) -> BudgetSpec:
        """Copy of this spec with the provider filled in if it was missing."""
        if self.provider_id or not provider_id:
            return self
        return self.model_copy(update={"provider_id": provider_id})


class CandidateFile(BaseModel):
    """A scanned file eligible for selection. Sizing is byte-size based."""

    model_config = ConfigDict(frozen=True)

    path: str
    size_bytes: int = Field(ge=0)
    extension: str = ""


class EstimatedFile(BaseModel):
    """A candidate with its token and cost estimates (cost in USD)."""

    model_config = ConfigDict(frozen=True)

    file: CandidateFile
    estimated_tokens: int = Field(ge=0)
    estimated_cost: float = Field(ge=0.0)

    @property
    def path(self) -> str:
        return self.file.path


class MiddlewareContext(BaseModel):
    """Context handed to ordering middleware."""

    model_config = ConfigDict(frozen=True)

    root_path: str = "."
    current_tokens: int = 0
    current_cost: float = 0.0
    provider_id: str | None = None


class ExclusionReason(str, Enum):
    """Why a candidate ended up in the excluded partition."""

    TOKEN_CEILING = "token_ceiling"
    COST_CEILING = "cost_ceiling"
    FILTERED = "filtered"  # dropped by the ordering middleware


class SelectionResult(BaseModel):
    """Selected and excluded partitions plus budget usage.

    `used`, `remaining` and `utilization_percent` are in the unit the budget
    was requested in. `total_cost` is always USD.
    """

    selected: list[EstimatedFile] = Field(default_factory=list)
    excluded: list[EstimatedFile] = Field(default_factory=list)
    exclusion_reasons: dict[str, ExclusionReason] = Field(default_factory=dict)
    total_tokens: int = 0
    total_cost: float = 0.0
    budget_kind: BudgetKind
    budget_limit: float
    provider_id: str | None = None
    token_ceiling: float
    cost_ceiling_usd: float
    used: float = 0.0
    remaining: float = 0.0
    utilization_percent: float = 0.0

    @property
    def selected_paths(self) -> list[str]:
        return [f.path for f in self.selected]

    @property
    def excluded_paths(self) -> list[str]:
        return [f.path for f in self.excluded]

    def summary(self) -> str:
        """Human-readable summary of the selection."""
        lines = [
            f"Budget: {format_budget(BudgetSpec(kind=self.budget_kind, limit=self.budget_limit))}",
            f"Used: {format_budget_usage(self)}",
            f"Files: {len(self.selected)} selected, {len(self.excluded)} excluded",
            f"Tokens: {self.total_tokens:,}",
            f"Cost: ${self.total_cost:.4f}",
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Parsing and formatting
# ---------------------------------------------------------------------------

_NUMBER = r"(\d+(?:\.\d*)?|\.\d+)"
_EUR_RE = re.compile(rf"^(?:€\s*{_NUMBER}|{_NUMBER}\s*(?:€|eur))$", re.IGNORECASE)
_USD_RE = re.compile(rf"^(?:\$\s*{_NUMBER}|{_NUMBER}\s*(?:\$|usd))$", re.IGNORECASE)
_TOKENS_RE = re.compile(rf"^{_NUMBER}\s*([km]?)$", re.IGNORECASE)
_TOKEN_SUFFIXES = {"": 1, "k": 1_000, "m": 1_000_000}


def _first_number(match: re.Match) -> float:
    return float(next(g for g in match.groups() if g is not None))


def parse_budget_string(text: str) -> BudgetSpec | None:
    """Parse a CLI budget such as "50000", "50k", "1.5m", "$0.50" or "€0.30".

    Returns None if the string is not a recognizable positive budget.
    """
    value = text.strip()
    if match := _EUR_RE.match(value):
        kind, limit = BudgetKind.EUR, _first_number(match)
    elif match := _USD_RE.match(value):
        kind, limit = BudgetKind.USD, _first_number(match)
    elif match := _TOKENS_RE.match(value):
        kind = BudgetKind.TOKENS
        limit = float(match.group(1)) * _TOKEN_SUFFIXES[match.group(2).lower()]
    else:
        return None

    if limit <= 0:
        return None
    return BudgetSpec(kind=kind, limit=limit)


def _format_tokens(value: float) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1000:
        return f"{value / 1000:.1f}K"
    return f"{value:.0f}"


def format_budget_value(value: float, kind: BudgetKind) -> str:
    if kind == BudgetKind.TOKENS:
        return _format_tokens(value)
    if kind == BudgetKind.USD:
        return f"${value:.4f}"
    return f"€{value:.4f}"


def format_budget(spec: BudgetSpec) -> str:
    """Format a budget limit for display, e.g. "50.0K tokens" or "$0.5000"."""
    if spec.kind == BudgetKind.TOKENS:
        if spec.limit >= 1_000_000:
            return f"{spec.limit / 1_000_000:.1f}M tokens"
        if spec.limit >= 1000:
            return f"{spec.limit / 1000:.1f}K tokens"
        return f"{spec.limit:.0f} tokens"
    return format_budget_value(spec.limit, spec.kind)


def format_budget_usage(result: SelectionResult) -> str:
    """Format usage as "used / limit (pct%)" in the budget's own unit."""
    used = format_budget_value(result.used, result.budget_kind)
    limit = format_budget_value(result.budget_limit, result.budget_kind)
    return f"{used} / {limit} ({result.utilization_percent:.1f}%)"

"""Budget-constrained file selection.

Picks the subset of scanned files that fits a token, USD or EUR budget.

Usage:
    from reporoller.budget import BudgetSelector, BudgetSpec

    selector = BudgetSelector(registry)
    result = await selector.select(candidates, BudgetSpec(kind="tokens", limit=50_000))
    print(result.summary())
"""

from reporoller.budget.engine import (
    BudgetCeilings,
    BudgetSelector,
    normalize_budget,
    select_files_within_budget,
)
from reporoller.budget.middleware import (
    OrderingMiddleware,
    OrderingStrategy,
    extension_priority,
    get_middleware,
    identity,
    size_descending,
)
from reporoller.budget.models import (
    BudgetKind,
    BudgetSpec,
    CandidateFile,
    EstimatedFile,
    MiddlewareContext,
    SelectionResult,
    parse_budget_string,
)

__all__ = [
    "BudgetCeilings",
    "BudgetKind",
    "BudgetSelector",
    "BudgetSpec",
    "CandidateFile",
    "EstimatedFile",
    "MiddlewareContext",
    "OrderingMiddleware",
    "OrderingStrategy",
    "SelectionResult",
    "extension_priority",
    "get_middleware",
    "identity",
    "normalize_budget",
    "parse_budget_string",
    "select_files_within_budget",
    "size_descending",
]

"""Budget-constrained file selection.

Pipeline for one invocation:
  1. Normalize the budget into a token ceiling and a USD cost ceiling
  2. Ask the ordering middleware for the candidate order (awaited once)
  3. Estimate tokens (from byte size) and USD cost for every candidate
  4. Single greedy pass: include a file iff it fits under both ceilings,
     otherwise exclude it and keep going
  5. Report usage in the unit the budget was requested in

Greedy selection is deliberately not a knapsack solver: every exclusion has a
one-line explanation ("would exceed the token ceiling"), and the selector
never reorders what the middleware decided.
"""

from __future__ import annotations

import inspect
import logging
import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from reporoller.budget.middleware import OrderingMiddleware, size_descending
from reporoller.budget.models import (
    BudgetKind,
    BudgetSpec,
    CandidateFile,
    EstimatedFile,
    ExclusionReason,
    MiddlewareContext,
    SelectionResult,
)
from reporoller.config import BudgetDefaults, EstimationConfig, ProjectConfig
from reporoller.exceptions import ConfigurationError
from reporoller.providers import Provider, ProviderRegistry, build_registry
from reporoller.tokens import TokenEstimator, calculate_cost

logger = logging.getLogger("reporoller.budget")

# Ceilings and running totals go through float arithmetic (price division,
# summed per-file costs). Values within this relative distance of a ceiling
# count as an exact fit.
CEILING_REL_TOL = 1e-9


def within_ceiling(value: float, ceiling: float) -> bool:
    return value <= ceiling or math.isclose(value, ceiling, rel_tol=CEILING_REL_TOL)


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------

def eur_to_usd(eur: float, rate: float) -> float:
    return eur * rate


def usd_to_eur(usd: float, rate: float) -> float:
    return usd / rate


# ---------------------------------------------------------------------------
# Budget normalization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BudgetCeilings:
    """Internal limits derived from a budget. Either may be infinite."""

    token_ceiling: float
    cost_ceiling_usd: float


def normalize_budget(
    spec: BudgetSpec,
    registry: ProviderRegistry,
    eur_to_usd_rate: float,
) -> BudgetCeilings:
    """Convert a budget in any unit into (token ceiling, USD cost ceiling).

    Token budgets treat the cost ceiling as secondary: with no resolvable
    provider it is unbounded. Currency budgets need the provider to derive
    the token ceiling at all, so an unresolvable provider is fatal.
    """
    if spec.kind == BudgetKind.TOKENS:
        estimate = calculate_cost(int(spec.limit), spec.provider_id, registry)
        cost_ceiling = estimate.input_cost if estimate is not None else math.inf
        return BudgetCeilings(token_ceiling=spec.limit, cost_ceiling_usd=cost_ceiling)

    provider = registry.resolve(spec.provider_id)
    if provider is None:
        if spec.provider_id:
            raise ConfigurationError(
                f"Cannot apply a {spec.kind.value} budget: unknown provider "
                f"'{spec.provider_id}'. Known providers: {', '.join(registry)}"
            )
        raise ConfigurationError(
            f"Cannot apply a {spec.kind.value} budget: a provider must be specified"
        )

    if spec.kind == BudgetKind.EUR:
        cost_ceiling = eur_to_usd(spec.limit, eur_to_usd_rate)
    else:
        cost_ceiling = spec.limit

    token_ceiling = cost_ceiling / provider.input_cost_per_million * 1_000_000
    nearest = round(token_ceiling)
    if math.isclose(token_ceiling, nearest, rel_tol=CEILING_REL_TOL):
        token_ceiling = float(nearest)
    return BudgetCeilings(token_ceiling=token_ceiling, cost_ceiling_usd=cost_ceiling)


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

def estimate_file(
    candidate: CandidateFile,
    estimator: TokenEstimator,
    provider: Provider | None,
    registry: ProviderRegistry,
) -> EstimatedFile:
    """Attach token and USD cost estimates to a candidate."""
    tokens = estimator.estimate_bytes(candidate.size_bytes, candidate.extension)
    cost = 0.0
    if provider is not None:
        cost = calculate_cost(tokens, provider.id, registry).input_cost
    return EstimatedFile(file=candidate, estimated_tokens=tokens, estimated_cost=cost)


# ---------------------------------------------------------------------------
# Greedy selection
# ---------------------------------------------------------------------------

@dataclass
class GreedySelection:
    selected: list[EstimatedFile]
    excluded: list[EstimatedFile]
    reasons: dict[str, ExclusionReason]
    total_tokens: int = 0
    total_cost: float = 0.0


def greedy_select(files: Sequence[EstimatedFile], ceilings: BudgetCeilings) -> GreedySelection:
    """Single pass in the given order; a file is taken iff it fits both ceilings.

    An oversized file is excluded on its own and the pass continues, so later
    smaller files may still be taken.
    """
    result = GreedySelection(selected=[], excluded=[], reasons={})

    for f in files:
        tokens_after = result.total_tokens + f.estimated_tokens
        cost_after = result.total_cost + f.estimated_cost

        if not within_ceiling(tokens_after, ceilings.token_ceiling):
            reason = ExclusionReason.TOKEN_CEILING
        elif not within_ceiling(cost_after, ceilings.cost_ceiling_usd):
            reason = ExclusionReason.COST_CEILING
        else:
            result.selected.append(f)
            result.total_tokens = tokens_after
            result.total_cost = cost_after
            continue

        logger.debug(
            f"Excluded {f.path} (~{f.estimated_tokens} tokens, ${f.estimated_cost:.6f}): "
            f"would exceed the {reason.value.replace('_', ' ')}"
        )
        result.excluded.append(f)
        result.reasons[f.path] = reason

    return result


# ---------------------------------------------------------------------------
# Result assembly
# ---------------------------------------------------------------------------

def assemble_result(
    spec: BudgetSpec,
    ceilings: BudgetCeilings,
    selection: GreedySelection,
    eur_to_usd_rate: float,
) -> SelectionResult:
    """Express budget usage in the unit the caller asked for."""
    if spec.kind == BudgetKind.TOKENS:
        used = float(selection.total_tokens)
    elif spec.kind == BudgetKind.USD:
        used = selection.total_cost
    else:
        used = usd_to_eur(selection.total_cost, eur_to_usd_rate)

    return SelectionResult(
        selected=selection.selected,
        excluded=selection.excluded,
        exclusion_reasons=selection.reasons,
        total_tokens=selection.total_tokens,
        total_cost=selection.total_cost,
        budget_kind=spec.kind,
        budget_limit=spec.limit,
        provider_id=spec.provider_id,
        token_ceiling=ceilings.token_ceiling,
        cost_ceiling_usd=ceilings.cost_ceiling_usd,
        used=used,
        remaining=spec.limit - used,
        utilization_percent=used / spec.limit * 100,
    )


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

def _reconcile(
    candidates: Sequence[CandidateFile], ordered: Sequence[CandidateFile]
) -> tuple[list[CandidateFile], list[CandidateFile]]:
    """Split into (middleware order, candidates the middleware dropped).

    Entries the middleware invented or repeated are ignored, so the two lists
    always partition `candidates` exactly.
    """
    available = Counter(candidates)
    kept: list[CandidateFile] = []
    for c in ordered:
        if available[c] > 0:
            available[c] -= 1
            kept.append(c)
        else:
            logger.warning(f"Ignoring unknown or repeated middleware entry: {c.path}")

    dropped: list[CandidateFile] = []
    for c in candidates:
        if available[c] > 0:
            available[c] -= 1
            dropped.append(c)
    return kept, dropped


class BudgetSelector:
    """Select the subset of scanned files that fits a token or cost budget.

    Usage:
        selector = BudgetSelector(registry)
        result = await selector.select(candidates, BudgetSpec(kind="usd", limit=0.5,
                                                              provider_id="gpt-4o"))
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        estimation: EstimationConfig | None = None,
        budget: BudgetDefaults | None = None,
    ) -> None:
        self.registry = registry
        self.estimator = TokenEstimator(estimation)
        self.eur_to_usd_rate = (budget or BudgetDefaults()).eur_to_usd_rate

    @classmethod
    def from_config(cls, config: ProjectConfig) -> BudgetSelector:
        return cls(build_registry(config), config.estimation, config.budget)

    async def select(
        self,
        candidates: Sequence[CandidateFile],
        spec: BudgetSpec,
        middleware: OrderingMiddleware = size_descending,
        root_path: str = ".",
    ) -> SelectionResult:
        """Run one selection. Raises ConfigurationError before any work if the
        budget cannot be normalized."""
        ceilings = normalize_budget(spec, self.registry, self.eur_to_usd_rate)

        context = MiddlewareContext(
            root_path=root_path,
            current_tokens=0,
            current_cost=0.0,
            provider_id=spec.provider_id,
        )
        ordered = middleware(tuple(candidates), spec, context)
        if inspect.isawaitable(ordered):
            ordered = await ordered
        kept, dropped = _reconcile(candidates, ordered)

        provider = self.registry.resolve(spec.provider_id)
        estimated = [estimate_file(c, self.estimator, provider, self.registry) for c in kept]
        selection = greedy_select(estimated, ceilings)

        for c in dropped:
            selection.excluded.append(estimate_file(c, self.estimator, provider, self.registry))
            selection.reasons[c.path] = ExclusionReason.FILTERED

        result = assemble_result(spec, ceilings, selection, self.eur_to_usd_rate)
        logger.info(
            f"Selected {len(result.selected)}/{len(candidates)} files: "
            f"{result.total_tokens:,} tokens, ${result.total_cost:.4f} "
            f"({result.utilization_percent:.1f}% of {spec.kind.value} budget)"
        )
        return result


async def select_files_within_budget(
    candidates: Sequence[CandidateFile],
    spec: BudgetSpec,
    registry: ProviderRegistry,
    middleware: OrderingMiddleware = size_descending,
    config: ProjectConfig | None = None,
    root_path: str = ".",
) -> SelectionResult:
    """Convenience wrapper around BudgetSelector.select."""
    config = config or ProjectConfig()
    selector = BudgetSelector(registry, config.estimation, config.budget)
    return await selector.select(candidates, spec, middleware, root_path)

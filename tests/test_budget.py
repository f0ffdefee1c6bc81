"""Tests for budget normalization and greedy file selection."""

from __future__ import annotations

import math

import pytest

from reporoller.budget.engine import (
    BudgetCeilings,
    BudgetSelector,
    GreedySelection,
    assemble_result,
    eur_to_usd,
    greedy_select,
    within_ceiling,
    normalize_budget,
    select_files_within_budget,
    usd_to_eur,
)
from reporoller.budget.middleware import identity, size_descending
from reporoller.budget.models import (
    BudgetKind,
    BudgetSpec,
    CandidateFile,
    EstimatedFile,
    ExclusionReason,
    SelectionResult,
)
from reporoller.config import BudgetDefaults
from reporoller.exceptions import ConfigurationError, UnknownProviderWarning
from reporoller.providers import ProviderRegistry
from reporoller.tokens import calculate_cost


def _assert_partition(result: SelectionResult, candidates: list[CandidateFile]) -> None:
    selected = result.selected_paths
    excluded = result.excluded_paths
    assert sorted(selected + excluded) == sorted(c.path for c in candidates)
    assert not set(selected) & set(excluded)


class TestCurrency:
    def test_round_trip(self):
        assert usd_to_eur(eur_to_usd(10.0, 1.08), 1.08) == pytest.approx(10.0)

    def test_eur_to_usd(self):
        assert eur_to_usd(10.0, 1.08) == pytest.approx(10.8)


class TestNormalizeBudget:
    def test_tokens_without_provider(self, registry: ProviderRegistry):
        ceilings = normalize_budget(BudgetSpec(kind="tokens", limit=5500), registry, 1.08)
        assert ceilings.token_ceiling == 5500
        assert ceilings.cost_ceiling_usd == math.inf

    def test_tokens_with_provider(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="tokens", limit=5500, provider_id="claude-haiku")
        ceilings = normalize_budget(spec, registry, 1.08)
        assert ceilings.token_ceiling == 5500
        assert ceilings.cost_ceiling_usd == pytest.approx(5500 / 1_000_000 * 0.80)

    def test_tokens_with_unknown_provider(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="tokens", limit=5500, provider_id="unknown-provider")
        with pytest.warns(UnknownProviderWarning):
            ceilings = normalize_budget(spec, registry, 1.08)
        assert ceilings.token_ceiling == 5500
        assert ceilings.cost_ceiling_usd == math.inf

    def test_usd(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="usd", limit=0.01, provider_id="claude-haiku")
        ceilings = normalize_budget(spec, registry, 1.08)
        assert ceilings.cost_ceiling_usd == 0.01
        assert ceilings.token_ceiling == pytest.approx(12_500)

    def test_eur(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="eur", limit=10, provider_id="claude-haiku")
        ceilings = normalize_budget(spec, registry, 1.08)
        assert ceilings.cost_ceiling_usd == pytest.approx(10.8)
        assert ceilings.token_ceiling == pytest.approx(10.8 / 0.80 * 1_000_000)

    def test_eur_uses_configured_rate(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="eur", limit=10, provider_id="claude-haiku")
        ceilings = normalize_budget(spec, registry, 2.0)
        assert ceilings.cost_ceiling_usd == pytest.approx(20.0)

    def test_eur_unknown_provider(self, registry: ProviderRegistry):
        spec = BudgetSpec(kind="eur", limit=10, provider_id="unknown-provider")
        with pytest.raises(ConfigurationError) as exc_info:
            normalize_budget(spec, registry, 1.08)
        message = str(exc_info.value)
        assert "eur" in message
        assert "unknown-provider" in message

    def test_currency_token_ceiling_snaps_to_whole_tokens(self, registry: ProviderRegistry):
        limit = 8000 / 1_000_000 * 0.80
        spec = BudgetSpec(kind="usd", limit=limit, provider_id="claude-haiku")
        assert normalize_budget(spec, registry, 1.08).token_ceiling == 8000

    def test_usd_missing_provider(self, registry: ProviderRegistry):
        with pytest.raises(ConfigurationError, match="usd"):
            normalize_budget(BudgetSpec(kind="usd", limit=1.0), registry, 1.08)


class TestGreedySelect:
    def _estimated(self, path: str, tokens: int, cost: float = 0.0) -> EstimatedFile:
        return EstimatedFile(
            file=CandidateFile(path=path, size_bytes=tokens * 4, extension="py"),
            estimated_tokens=tokens,
            estimated_cost=cost,
        )

    def test_oversized_first_candidate(self):
        files = [
            self._estimated("big.py", 10_000),
            self._estimated("a.py", 500),
            self._estimated("b.py", 500),
        ]
        selection = greedy_select(files, BudgetCeilings(1000, math.inf))
        assert [f.path for f in selection.selected] == ["a.py", "b.py"]
        assert [f.path for f in selection.excluded] == ["big.py"]
        assert selection.reasons == {"big.py": ExclusionReason.TOKEN_CEILING}

    def test_exact_fit_is_included(self):
        files = [self._estimated("a.py", 600), self._estimated("b.py", 400)]
        selection = greedy_select(files, BudgetCeilings(1000, math.inf))
        assert selection.total_tokens == 1000
        assert len(selection.selected) == 2

    def test_cost_ceiling(self):
        files = [self._estimated("a.py", 10, 0.001), self._estimated("b.py", 10, 0.001)]
        selection = greedy_select(files, BudgetCeilings(math.inf, 0.0015))
        assert [f.path for f in selection.selected] == ["a.py"]
        assert selection.reasons == {"b.py": ExclusionReason.COST_CEILING}

    def test_continues_after_exclusion(self):
        files = [
            self._estimated("a.py", 600),
            self._estimated("b.py", 600),
            self._estimated("c.py", 300),
        ]
        selection = greedy_select(files, BudgetCeilings(1000, math.inf))
        assert [f.path for f in selection.selected] == ["a.py", "c.py"]
        assert [f.path for f in selection.excluded] == ["b.py"]

    def test_summed_costs_reaching_the_ceiling_fit(self):
        cost = 1000 / 1_000_000 * 0.80
        files = [self._estimated(f"f{i}.py", 1000, cost) for i in range(8)]
        selection = greedy_select(files, BudgetCeilings(8000, 8000 / 1_000_000 * 0.80))
        assert len(selection.selected) == 8
        assert selection.reasons == {}

    def test_within_ceiling(self):
        assert within_ceiling(8000, 8000)
        assert within_ceiling(0.005600000000000001, 0.0056)
        assert not within_ceiling(0.0057, 0.0056)
        assert within_ceiling(10**9, math.inf)

    def test_empty(self):
        selection = greedy_select([], BudgetCeilings(1000, math.inf))
        assert selection.selected == []
        assert selection.excluded == []


class TestAssembleResult:
    def _selection(self, tokens: int, cost: float) -> GreedySelection:
        return GreedySelection(
            selected=[], excluded=[], reasons={}, total_tokens=tokens, total_cost=cost
        )

    def test_tokens_unit(self):
        spec = BudgetSpec(kind="tokens", limit=5500)
        result = assemble_result(spec, BudgetCeilings(5500, math.inf), self._selection(5000, 0.0), 1.08)
        assert result.used == 5000
        assert result.remaining == 500
        assert result.utilization_percent == pytest.approx(90.909, abs=0.001)

    def test_usd_unit(self):
        spec = BudgetSpec(kind="usd", limit=0.01, provider_id="claude-haiku")
        result = assemble_result(spec, BudgetCeilings(12_500, 0.01), self._selection(5000, 0.004), 1.08)
        assert result.used == pytest.approx(0.004)
        assert result.remaining == pytest.approx(0.006)
        assert result.utilization_percent == pytest.approx(40.0)

    def test_eur_unit(self):
        spec = BudgetSpec(kind="eur", limit=1.0, provider_id="claude-haiku")
        ceilings = BudgetCeilings(1.08 / 0.8 * 1_000_000, 1.08)
        result = assemble_result(spec, ceilings, self._selection(3000, 0.0024), 1.08)
        assert result.total_cost == pytest.approx(0.0024)
        assert result.used == pytest.approx(0.0024 / 1.08)
        assert result.remaining == pytest.approx(1.0 - 0.0024 / 1.08)
        assert result.utilization_percent == pytest.approx(0.0024 / 1.08 * 100)


class TestBudgetSelector:
    @pytest.mark.asyncio
    async def test_ten_equal_files_token_budget(self, registry: ProviderRegistry, make_candidates):
        candidates = make_candidates(10)
        selector = BudgetSelector(registry)
        result = await selector.select(candidates, BudgetSpec(kind="tokens", limit=5500))

        assert result.selected_paths == [f"file{i}.py" for i in range(5)]
        assert result.excluded_paths == [f"file{i}.py" for i in range(5, 10)]
        assert result.total_tokens == 5000
        assert result.utilization_percent == pytest.approx(90.909, abs=0.001)
        assert result.budget_kind == BudgetKind.TOKENS
        _assert_partition(result, candidates)

    @pytest.mark.asyncio
    async def test_oversized_then_small(self, registry: ProviderRegistry):
        candidates = [
            CandidateFile(path="big.py", size_bytes=40_000, extension="py"),
            CandidateFile(path="a.py", size_bytes=2000, extension="py"),
            CandidateFile(path="b.py", size_bytes=2000, extension="py"),
        ]
        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=1000), middleware=identity
        )
        assert result.selected_paths == ["a.py", "b.py"]
        assert result.excluded_paths == ["big.py"]
        assert result.exclusion_reasons["big.py"] == ExclusionReason.TOKEN_CEILING

    @pytest.mark.asyncio
    async def test_selector_keeps_middleware_order(self, registry: ProviderRegistry):
        candidates = [
            CandidateFile(path="small.py", size_bytes=400, extension="py"),
            CandidateFile(path="large.py", size_bytes=800, extension="py"),
            CandidateFile(path="medium.py", size_bytes=600, extension="py"),
        ]
        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=10_000), middleware=identity
        )
        assert result.selected_paths == ["small.py", "large.py", "medium.py"]

        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=10_000), middleware=size_descending
        )
        assert result.selected_paths == ["large.py", "medium.py", "small.py"]

    @pytest.mark.asyncio
    async def test_partial_selection_is_proper_subset(self, registry: ProviderRegistry, make_candidates):
        candidates = make_candidates(10)
        result = await BudgetSelector(registry).select(candidates, BudgetSpec(kind="tokens", limit=2500))
        assert 0 < len(result.selected) < len(candidates)

    @pytest.mark.asyncio
    async def test_partition_and_ceilings(self, registry: ProviderRegistry):
        candidates = [
            CandidateFile(path=f"f{i}.{ext}", size_bytes=size, extension=ext)
            for i, (size, ext) in enumerate(
                [(120, "py"), (9000, "json"), (4400, "md"), (0, "txt"), (77_000, "ts"),
                 (3100, "min.js"), (15, "yml"), (5000, "py"), (60_000, "py")]
            )
        ]
        specs = [
            BudgetSpec(kind="tokens", limit=1),
            BudgetSpec(kind="tokens", limit=3000, provider_id="gpt-4o"),
            BudgetSpec(kind="tokens", limit=1_000_000),
            BudgetSpec(kind="usd", limit=0.005, provider_id="claude-sonnet"),
            BudgetSpec(kind="usd", limit=5, provider_id="gpt-4"),
            BudgetSpec(kind="eur", limit=0.002, provider_id="gemini"),
        ]
        selector = BudgetSelector(registry)
        for spec in specs:
            for middleware in (size_descending, identity):
                result = await selector.select(candidates, spec, middleware)
                _assert_partition(result, candidates)
                assert within_ceiling(result.total_tokens, result.token_ceiling)
                assert within_ceiling(result.total_cost, result.cost_ceiling_usd)
                assert result.total_tokens == sum(f.estimated_tokens for f in result.selected)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 3, 7, 8, 13, 30])
    @pytest.mark.parametrize(
        "provider_id",
        ["claude-sonnet", "claude-opus", "claude-haiku", "gpt-4o",
         "gpt-4-turbo", "gpt-4", "o1", "gemini"],
    )
    async def test_exact_token_budget_takes_every_file(
        self, registry: ProviderRegistry, make_candidates, count: int, provider_id: str
    ):
        candidates = make_candidates(count)
        spec = BudgetSpec(kind="tokens", limit=count * 1000, provider_id=provider_id)
        result = await BudgetSelector(registry).select(candidates, spec)
        assert len(result.selected) == count
        assert result.exclusion_reasons == {}
        assert result.utilization_percent == pytest.approx(100.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 3, 7, 8, 13, 30])
    @pytest.mark.parametrize("provider_id", ["claude-haiku", "gpt-4o", "gpt-4", "gemini"])
    async def test_exact_usd_budget_takes_every_file(
        self, registry: ProviderRegistry, make_candidates, count: int, provider_id: str
    ):
        limit = calculate_cost(count * 1000, provider_id, registry).input_cost
        spec = BudgetSpec(kind="usd", limit=limit, provider_id=provider_id)
        result = await BudgetSelector(registry).select(make_candidates(count), spec)
        assert len(result.selected) == count
        assert result.token_ceiling == count * 1000
        assert result.exclusion_reasons == {}

    @pytest.mark.asyncio
    async def test_usd_budget(self, registry: ProviderRegistry, make_candidates):
        # 1000 tokens on claude-haiku cost $0.0008; $0.01 buys 12,500 tokens
        candidates = make_candidates(20)
        spec = BudgetSpec(kind="usd", limit=0.01, provider_id="claude-haiku")
        result = await BudgetSelector(registry).select(candidates, spec)
        assert result.token_ceiling == pytest.approx(12_500)
        assert len(result.selected) == 12
        assert result.used == pytest.approx(result.total_cost)
        assert result.total_cost == pytest.approx(0.0096)

    @pytest.mark.asyncio
    async def test_eur_budget_reported_in_eur(self, registry: ProviderRegistry, make_candidates):
        candidates = make_candidates(3)
        spec = BudgetSpec(kind="eur", limit=1.0, provider_id="claude-haiku")
        result = await BudgetSelector(registry).select(candidates, spec)
        assert len(result.selected) == 3
        assert result.total_cost == pytest.approx(0.0024)
        assert result.used == pytest.approx(0.0024 / 1.08)
        assert result.remaining == pytest.approx(1.0 - 0.0024 / 1.08)

    @pytest.mark.asyncio
    async def test_configured_eur_rate(self, registry: ProviderRegistry, make_candidates):
        selector = BudgetSelector(registry, budget=BudgetDefaults(eur_to_usd_rate=2.0))
        spec = BudgetSpec(kind="eur", limit=1.0, provider_id="claude-haiku")
        result = await selector.select(make_candidates(3), spec)
        assert result.cost_ceiling_usd == pytest.approx(2.0)
        assert result.used == pytest.approx(0.0024 / 2.0)

    @pytest.mark.asyncio
    async def test_unknown_provider_fails_before_middleware(
        self, registry: ProviderRegistry, make_candidates
    ):
        calls = []

        def tracking(candidates, spec, context):
            calls.append(spec)
            return candidates

        spec = BudgetSpec(kind="eur", limit=10, provider_id="unknown-provider")
        with pytest.raises(ConfigurationError):
            await BudgetSelector(registry).select(make_candidates(3), spec, tracking)
        assert calls == []

    @pytest.mark.asyncio
    async def test_nothing_fits(self, registry: ProviderRegistry, make_candidates):
        candidates = make_candidates(3, size_bytes=40_000)
        result = await BudgetSelector(registry).select(candidates, BudgetSpec(kind="tokens", limit=100))
        assert result.selected == []
        assert len(result.excluded) == 3
        assert result.utilization_percent == 0

    @pytest.mark.asyncio
    async def test_deterministic(self, registry: ProviderRegistry, make_candidates):
        candidates = make_candidates(7, size_bytes=3000)
        spec = BudgetSpec(kind="usd", limit=0.003, provider_id="gpt-4o")
        selector = BudgetSelector(registry)
        first = await selector.select(candidates, spec)
        second = await selector.select(candidates, spec)
        assert first.model_dump() == second.model_dump()


class TestMiddlewareContract:
    @pytest.mark.asyncio
    async def test_async_middleware_awaited_once(self, registry: ProviderRegistry, make_candidates):
        calls = []

        async def reverse(candidates, spec, context):
            calls.append(context)
            return list(reversed(candidates))

        candidates = make_candidates(4)
        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=2000), reverse, root_path="/repo"
        )
        assert len(calls) == 1
        assert calls[0].root_path == "/repo"
        assert calls[0].current_tokens == 0
        assert result.selected_paths == ["file3.py", "file2.py"]

    @pytest.mark.asyncio
    async def test_context_carries_provider(self, registry: ProviderRegistry, make_candidates):
        seen = []

        def capture(candidates, spec, context):
            seen.append(context.provider_id)
            return candidates

        spec = BudgetSpec(kind="usd", limit=1, provider_id="gpt-4o")
        await BudgetSelector(registry).select(make_candidates(2), spec, capture)
        assert seen == ["gpt-4o"]

    @pytest.mark.asyncio
    async def test_input_not_mutated(self, registry: ProviderRegistry):
        candidates = [
            CandidateFile(path="a.py", size_bytes=10, extension="py"),
            CandidateFile(path="b.py", size_bytes=900, extension="py"),
        ]
        snapshot = list(candidates)
        await BudgetSelector(registry).select(candidates, BudgetSpec(kind="tokens", limit=100))
        assert candidates == snapshot

    @pytest.mark.asyncio
    async def test_filtered_candidates_are_excluded(self, registry: ProviderRegistry, make_candidates):
        def first_two(candidates, spec, context):
            return candidates[:2]

        candidates = make_candidates(5)
        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=100_000), first_two
        )
        assert result.selected_paths == ["file0.py", "file1.py"]
        assert result.excluded_paths == ["file2.py", "file3.py", "file4.py"]
        assert result.exclusion_reasons["file4.py"] == ExclusionReason.FILTERED
        _assert_partition(result, candidates)

    @pytest.mark.asyncio
    async def test_invented_entries_ignored(self, registry: ProviderRegistry, make_candidates):
        def inventive(candidates, spec, context):
            ghost = CandidateFile(path="ghost.py", size_bytes=1, extension="py")
            return [ghost, *candidates, candidates[0]]

        candidates = make_candidates(3)
        result = await BudgetSelector(registry).select(
            candidates, BudgetSpec(kind="tokens", limit=100_000), inventive
        )
        assert "ghost.py" not in result.selected_paths + result.excluded_paths
        assert result.selected_paths == ["file0.py", "file1.py", "file2.py"]
        _assert_partition(result, candidates)


class TestSelectFilesWithinBudget:
    @pytest.mark.asyncio
    async def test_wrapper(self, registry: ProviderRegistry, make_candidates):
        result = await select_files_within_budget(
            make_candidates(10), BudgetSpec(kind="tokens", limit=5500), registry
        )
        assert len(result.selected) == 5
        assert len(result.excluded) == 5

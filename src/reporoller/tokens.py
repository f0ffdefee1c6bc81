"""Token estimation and LLM cost calculation.

The estimator is a deterministic heuristic, not a tokenizer. The renderer
and the budget engine must use the same estimator (and the same
EstimationConfig) so that per-file and whole-bundle totals agree.
"""

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from reporoller.config import DensityBand, EstimationConfig
from reporoller.exceptions import UnknownProviderWarning
from reporoller.providers import ProviderRegistry

logger = logging.getLogger("reporoller.tokens")


# ---------------------------------------------------------------------------
# Token estimation
# ---------------------------------------------------------------------------


def _band_multiplier(density: float, bands: list[DensityBand]) -> float:
    for band in bands:
        if density > band.threshold:
            return band.multiplier
    return 1.0


class TokenEstimator:
    """Estimate token counts from text or from file byte sizes.

    Usage:
        estimator = TokenEstimator(config.estimation)
        estimator.estimate(rendered_output)
        estimator.estimate_bytes(4096, "py")
    """

    def __init__(self, config: EstimationConfig | None = None) -> None:
        self.config = config or EstimationConfig()
        self._symbols = frozenset(self.config.symbol_characters)

    def estimate(self, text: str) -> int:
        """Estimate token count for a string.

        Above the large-content threshold the flat chars-per-token ratio is
        used as-is. Below it, the flat estimate is corrected for whitespace
        density and then for symbol density.
        """
        char_count = len(text)
        if char_count == 0:
            return 0

        cfg = self.config
        base = char_count / cfg.chars_per_token
        if char_count > cfg.large_content_threshold:
            return math.ceil(base)

        whitespace = sum(1 for ch in text if ch.isspace())
        content_chars = char_count - whitespace
        symbols = sum(1 for ch in text if ch in self._symbols)

        whitespace_density = whitespace / char_count
        symbol_density = symbols / content_chars if content_chars else 0.0

        factor = _band_multiplier(whitespace_density, cfg.whitespace_bands)
        factor *= _band_multiplier(symbol_density, cfg.symbol_bands)
        return max(0, math.ceil(base * factor))

    def estimate_bytes(self, size_bytes: int, extension: str = "") -> int:
        """Estimate tokens for a file from its byte size, without reading it."""
        if size_bytes <= 0:
            return 0
        multiplier = self.config.extension_multipliers.get(extension.lower(), 1.0)
        return math.ceil(size_bytes / self.config.chars_per_token * multiplier)

    def estimate_detailed(self, text: str) -> dict:
        """Word-boundary estimate: short words are one token, long ones split.

        Punctuation attached to a word adds half a token each.
        """
        count = 0.0
        for word in text.split():
            if len(word) <= 4:
                count += 1
            elif len(word) <= 8:
                count += 2
            else:
                count += math.ceil(len(word) / 4)
            count += 0.5 * sum(1 for ch in word if ch in self._symbols)
        return {"tokens": math.ceil(count), "method": "word-boundary"}


_DEFAULT_ESTIMATOR = TokenEstimator()


def estimate_tokens(text: str, config: EstimationConfig | None = None) -> int:
    """Estimate the token count of `text` (0 for empty text)."""
    estimator = TokenEstimator(config) if config is not None else _DEFAULT_ESTIMATOR
    return estimator.estimate(text)


def estimate_tokens_detailed(text: str, config: EstimationConfig | None = None) -> dict:
    estimator = TokenEstimator(config) if config is not None else _DEFAULT_ESTIMATOR
    return estimator.estimate_detailed(text)


# ---------------------------------------------------------------------------
# Cost calculation
# ---------------------------------------------------------------------------


class CostEstimate(BaseModel):
    """What a token count would cost on one provider."""

    model_config = ConfigDict(frozen=True)

    provider: str
    display_name: str
    tokens: int
    input_cost: float
    within_context_window: bool
    context_window: int
    utilization_percent: float


def calculate_cost(
    tokens: int, provider_id: str | None, registry: ProviderRegistry
) -> CostEstimate | None:
    """Estimate input cost and context-window fit for `tokens` on a provider.

    Returns None, and emits UnknownProviderWarning, when the provider is not
    in the registry. Never raises for an unknown provider.
    """
    provider = registry.resolve(provider_id)
    if provider is None:
        logger.debug(f"No pricing for provider {provider_id!r}")
        if provider_id:
            warnings.warn(UnknownProviderWarning(provider_id), stacklevel=2)
        return None

    return CostEstimate(
        provider=provider.id,
        display_name=provider.display_name,
        tokens=tokens,
        input_cost=tokens / 1_000_000 * provider.input_cost_per_million,
        within_context_window=tokens <= provider.context_window,
        context_window=provider.context_window,
        utilization_percent=tokens / provider.context_window * 100,
    )


def compare_providers(
    tokens: int, registry: ProviderRegistry, provider_ids: Iterable[str]
) -> list[CostEstimate]:
    """Cost estimates for the given providers; unknown ids are dropped silently."""
    estimates = []
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UnknownProviderWarning)
        for provider_id in provider_ids:
            estimate = calculate_cost(tokens, provider_id, registry)
            if estimate is not None:
                estimates.append(estimate)
    return estimates


def get_all_cost_estimates(tokens: int, registry: ProviderRegistry) -> list[CostEstimate]:
    """Cost estimates for every provider in the registry."""
    return compare_providers(tokens, registry, list(registry))


def format_number(num: int | float) -> str:
    return f"{num:,}"


def format_cost_estimate(estimate: CostEstimate) -> str:
    status = "✓" if estimate.within_context_window else "✗"
    return (
        f"{status} {estimate.display_name}: ${estimate.input_cost:.4f} "
        f"({estimate.utilization_percent:.1f}% of "
        f"{format_number(estimate.context_window)} context)"
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

# Output sizes (tokens) above which the analysis suggests trimming
_LARGE_OUTPUT_TOKENS = 100_000
_MEDIUM_OUTPUT_TOKENS = 50_000


class TokenAnalysis(BaseModel):
    """Token usage of a rendered bundle across every known provider."""

    estimated_tokens: int
    estimates: list[CostEstimate] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


def analyze_token_usage(
    text: str,
    registry: ProviderRegistry,
    config: EstimationConfig | None = None,
    profile_used: bool = False,
    max_size_used: bool = False,
) -> TokenAnalysis:
    """Analyze text for token usage and produce warnings and recommendations."""
    tokens = estimate_tokens(text, config)
    estimates = get_all_cost_estimates(tokens, registry)
    analysis = TokenAnalysis(estimated_tokens=tokens, estimates=estimates)

    overflow = [e for e in estimates if not e.within_context_window]
    fitting = [e for e in estimates if e.within_context_window]

    if overflow:
        names = ", ".join(e.display_name for e in overflow)
        analysis.warnings.append(f"Output exceeds context window for: {names}")

    if tokens > _LARGE_OUTPUT_TOKENS:
        if not profile_used:
            analysis.recommendations.append(
                "Consider using a smaller profile or reducing file selection"
            )
        if not max_size_used:
            analysis.recommendations.append(
                "Use --max-file-size to limit individual file sizes"
            )
    elif tokens > _MEDIUM_OUTPUT_TOKENS:
        analysis.recommendations.append("Output is large but within most context windows")
        analysis.recommendations.append(
            "Consider focusing on specific modules for better results"
        )

    if fitting:
        cheapest = min(fitting, key=lambda e: e.input_cost)
        analysis.recommendations.append(
            f"Most cost-effective: {cheapest.display_name} at ${cheapest.input_cost:.4f}"
        )

    return analysis


def generate_token_report(analysis: TokenAnalysis) -> str:
    """Render a token analysis as markdown."""
    lines = [
        "## Token Analysis",
        "",
        f"**Estimated Tokens:** {format_number(analysis.estimated_tokens)}",
        "",
        "### Cost Estimates by Provider",
        "",
    ]
    for estimate in analysis.estimates:
        lines.append(f"- {format_cost_estimate(estimate)}")
    lines.append("")

    if analysis.warnings:
        lines.extend(["### Warnings", ""])
        lines.extend(f"- {w}" for w in analysis.warnings)
        lines.append("")

    if analysis.recommendations:
        lines.extend(["### Recommendations", ""])
        lines.extend(f"- {r}" for r in analysis.recommendations)
        lines.append("")

    return "\n".join(lines)

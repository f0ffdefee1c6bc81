"""LLM provider registry.

The registry is an immutable value built once from configuration and passed
explicitly to every function that needs pricing. There is no module-level
registry to mutate.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from reporoller.config import ProjectConfig, ProviderConfig


class Provider(BaseModel):
    """A named pricing and context-window profile."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    context_window: int
    input_cost_per_million: float
    output_cost_per_million: float

    @classmethod
    def from_config(cls, entry: ProviderConfig) -> Provider:
        return cls(**entry.model_dump())


class ProviderRegistry(Mapping[str, Provider]):
    """Read-only mapping of provider id to Provider, in configuration order."""

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        entries: dict[str, Provider] = {}
        for provider in providers:
            if provider.id in entries:
                raise ValueError(f"Duplicate provider id: {provider.id}")
            entries[provider.id] = provider
        self._entries = MappingProxyType(entries)

    def __getitem__(self, provider_id: str) -> Provider:
        return self._entries[provider_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ProviderRegistry({list(self._entries)})"

    def resolve(self, provider_id: str | None) -> Provider | None:
        """Look up a provider, returning None for a missing or unknown id."""
        if not provider_id:
            return None
        return self._entries.get(provider_id)


def build_registry(config: ProjectConfig | None = None) -> ProviderRegistry:
    """Build the provider registry from project configuration."""
    config = config or ProjectConfig()
    return ProviderRegistry(Provider.from_config(p) for p in config.providers)

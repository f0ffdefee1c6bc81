"""Configuration management for RepoRoller."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from reporoller.exceptions import ConfigurationError

REPOROLLER_DIR = ".reporoller"
CONFIG_FILE = "config.json"


class DensityBand(BaseModel):
    """A density threshold and the correction applied above it."""

    threshold: float = Field(ge=0.0, le=1.0)
    multiplier: float = Field(gt=0.0)


def _sorted_bands(bands: list[DensityBand]) -> list[DensityBand]:
    return sorted(bands, key=lambda b: b.threshold, reverse=True)


class EstimationConfig(BaseModel):
    """Constants for the token estimation heuristic.

    Whitespace bands are high/medium/low (multipliers <= 1.0, denser whitespace
    tokenizes more efficiently). Symbol bands are very-high/high/medium
    (multipliers >= 1.0, punctuation-heavy text fragments into more tokens).
    A density falls into the first band whose threshold it strictly exceeds.
    """

    chars_per_token: float = Field(default=4.0, gt=0.0)
    large_content_threshold: int = Field(default=100_000, ge=0)
    whitespace_bands: list[DensityBand] = Field(
        default_factory=lambda: [
            DensityBand(threshold=0.30, multiplier=0.85),
            DensityBand(threshold=0.25, multiplier=0.90),
            DensityBand(threshold=0.20, multiplier=0.95),
        ]
    )
    symbol_bands: list[DensityBand] = Field(
        default_factory=lambda: [
            DensityBand(threshold=0.35, multiplier=1.25),
            DensityBand(threshold=0.25, multiplier=1.15),
            DensityBand(threshold=0.20, multiplier=1.05),
        ]
    )
    symbol_characters: str = "{}()[]<>:;,.!?@#$%^&*+=|\\/'\"`~-"
    # Per-file estimates are byte-size based; these adjust for known formats
    extension_multipliers: dict[str, float] = Field(
        default_factory=lambda: {
            "min.js": 1.3,
            "min.css": 1.3,
            "json": 1.2,
            "yaml": 1.2,
            "yml": 1.2,
            "md": 0.9,
            "txt": 0.9,
        }
    )

    @field_validator("whitespace_bands", "symbol_bands")
    @classmethod
    def _order_bands(cls, bands: list[DensityBand]) -> list[DensityBand]:
        return _sorted_bands(bands)


class ProviderConfig(BaseModel):
    """A single LLM provider pricing profile."""

    id: str
    display_name: str
    context_window: int = Field(gt=0)
    input_cost_per_million: float = Field(gt=0.0)
    output_cost_per_million: float = Field(ge=0.0)


def _default_providers() -> list[ProviderConfig]:
    return [
        ProviderConfig(
            id="claude-sonnet", display_name="Claude 3.5 Sonnet",
            context_window=200_000, input_cost_per_million=3.0, output_cost_per_million=15.0,
        ),
        ProviderConfig(
            id="claude-opus", display_name="Claude 3 Opus",
            context_window=200_000, input_cost_per_million=15.0, output_cost_per_million=75.0,
        ),
        ProviderConfig(
            id="claude-haiku", display_name="Claude 3.5 Haiku",
            context_window=200_000, input_cost_per_million=0.80, output_cost_per_million=4.0,
        ),
        ProviderConfig(
            id="gpt-4o", display_name="GPT-4o",
            context_window=128_000, input_cost_per_million=2.50, output_cost_per_million=10.0,
        ),
        ProviderConfig(
            id="gpt-4-turbo", display_name="GPT-4 Turbo",
            context_window=128_000, input_cost_per_million=10.0, output_cost_per_million=30.0,
        ),
        ProviderConfig(
            id="gpt-4", display_name="GPT-4",
            context_window=8_192, input_cost_per_million=30.0, output_cost_per_million=60.0,
        ),
        ProviderConfig(
            id="o1", display_name="OpenAI o1",
            context_window=200_000, input_cost_per_million=15.0, output_cost_per_million=60.0,
        ),
        ProviderConfig(
            id="gemini", display_name="Gemini 1.5 Pro",
            context_window=2_000_000, input_cost_per_million=1.25, output_cost_per_million=5.0,
        ),
    ]


class BudgetDefaults(BaseModel):
    """Budget behavior configuration."""

    # Fixed conversion rate, never looked up live
    eur_to_usd_rate: float = Field(default=1.08, gt=0.0)
    default_provider: str = "claude-haiku"
    default_strategy: str = "size"


class ScanConfig(BaseModel):
    """Scanner configuration."""

    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            "__pycache__",
            ".git",
            ".reporoller",
            "dist",
            "build",
            ".venv",
            "venv",
            "*.pyc",
            "*.so",
            "*.dylib",
            "*.dll",
            "*.exe",
            "*.lock",
            "package-lock.json",
            "yarn.lock",
        ]
    )
    max_file_size_kb: int = 1024
    extensions: list[str] = Field(default_factory=list)  # empty = all text files


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    estimation: EstimationConfig = Field(default_factory=EstimationConfig)
    providers: list[ProviderConfig] = Field(default_factory=_default_providers)
    budget: BudgetDefaults = Field(default_factory=BudgetDefaults)
    scan: ScanConfig = Field(default_factory=ScanConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Nearest directory at or above `start` holding a .reporoller directory."""
    here = (start or Path.cwd()).resolve()
    return next(
        (d for d in (here, *here.parents) if (d / REPOROLLER_DIR).is_dir()),
        None,
    )


def get_reporoller_dir(root: Path) -> Path:
    return root / REPOROLLER_DIR


def load_config(root: Path) -> ProjectConfig:
    """Read .reporoller/config.json, or defaults named after `root` if absent.

    Malformed JSON and out-of-range values both surface as ConfigurationError
    so the CLI can report them without a traceback.
    """
    config_path = get_reporoller_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> Path:
    """Write `config` as indented JSON; returns the file written."""
    config_path = get_reporoller_dir(root) / CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.model_dump_json(indent=2))
    return config_path


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Return a copy of `config` with one dotted key replaced.

    Keys address nested sections ("budget.eur_to_usd_rate") and, for lists
    such as the provider table, numeric positions
    ("providers.2.input_cost_per_million"). The copy is re-validated, so an
    out-of-range value raises pydantic's ValidationError. Unknown keys raise
    KeyError.
    """
    *path, leaf = key.split(".")
    data = config.model_dump()
    node: Any = data
    for part in path:
        node = _config_child(node, part, key)
    if isinstance(node, list):
        index = _list_index(node, leaf, key)
        node[index] = value
    elif isinstance(node, dict) and leaf in node:
        node[leaf] = value
    else:
        raise KeyError(f"Invalid config key: {key}")
    return ProjectConfig(**data)


def _config_child(node: Any, part: str, key: str) -> Any:
    if isinstance(node, list):
        return node[_list_index(node, part, key)]
    if isinstance(node, dict) and isinstance(node.get(part), (dict, list)):
        return node[part]
    raise KeyError(f"Invalid config key: {key}")


def _list_index(items: list, part: str, key: str) -> int:
    if not part.isdigit() or int(part) >= len(items):
        raise KeyError(f"Invalid config key: {key}")
    return int(part)


def get_config_value(config: ProjectConfig, key: str) -> Any:
    """Look up a dotted key using the same addressing as set_config_value."""
    node: Any = config.model_dump()
    for part in key.split("."):
        if isinstance(node, list):
            node = node[_list_index(node, part, key)]
        elif isinstance(node, dict) and part in node:
            node = node[part]
        else:
            raise KeyError(f"Invalid config key: {key}")
    return node

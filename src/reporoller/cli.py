"""Command-line interface for RepoRoller."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from reporoller import __version__
from reporoller.config import (
    ProjectConfig,
    find_project_root,
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from reporoller.exceptions import RepoRollerError
from reporoller.ui.console import Console

console = Console()


def _load_project_config(start: Path) -> ProjectConfig:
    """Load config from the nearest .reporoller directory, or use defaults."""
    root = find_project_root(start)
    if root is None:
        return ProjectConfig(name=start.name, root_path=str(start))
    return load_config(root)


def _resolve_budget(
    max_tokens: int | None,
    max_cost: float | None,
    max_cost_eur: float | None,
    budget_str: str | None,
):
    """Turn the mutually exclusive budget options into a BudgetSpec."""
    from reporoller.budget.models import BudgetKind, BudgetSpec, parse_budget_string

    given = [v is not None for v in (max_tokens, max_cost, max_cost_eur, budget_str)]
    if sum(given) == 0:
        raise click.UsageError(
            "Specify a budget: --max-tokens, --max-cost, --max-cost-eur or --budget."
        )
    if sum(given) > 1:
        raise click.UsageError("Only one budget option may be given.")

    if max_tokens is not None:
        return BudgetSpec(kind=BudgetKind.TOKENS, limit=max_tokens)
    if max_cost is not None:
        return BudgetSpec(kind=BudgetKind.USD, limit=max_cost)
    if max_cost_eur is not None:
        return BudgetSpec(kind=BudgetKind.EUR, limit=max_cost_eur)

    spec = parse_budget_string(budget_str)
    if spec is None:
        raise click.BadParameter(
            f"Unrecognized budget '{budget_str}'. Examples: 50000, 50k, $0.50, €0.30",
            param_hint="--budget",
        )
    return spec


@click.group()
@click.version_option(version=__version__, prog_name="reporoller")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """RepoRoller - roll a repository into LLM context within a token or cost budget."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument(
    "root", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--max-tokens", type=click.IntRange(min=1), default=None, help="Token budget.")
@click.option(
    "--max-cost", type=click.FloatRange(min=0, min_open=True), default=None,
    help="Budget in USD.",
)
@click.option(
    "--max-cost-eur", type=click.FloatRange(min=0, min_open=True), default=None,
    help="Budget in EUR.",
)
@click.option("--budget", "budget_str", default=None, help="Budget string: 50k, $0.50, €0.30.")
@click.option("--target", "-t", default=None, help="Provider used to price the budget.")
@click.option(
    "--strategy", "-s",
    type=click.Choice(["size", "identity", "path", "extension"]),
    default=None,
    help="Order in which files compete for the budget.",
)
@click.option(
    "--priority", multiple=True,
    help="Extension to rank first with --strategy extension (repeatable).",
)
@click.option("--ext", "extensions", multiple=True, help="Only scan these extensions.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
def select(
    root: Path,
    max_tokens: int | None,
    max_cost: float | None,
    max_cost_eur: float | None,
    budget_str: str | None,
    target: str | None,
    strategy: str | None,
    priority: tuple[str, ...],
    extensions: tuple[str, ...],
    as_json: bool,
):
    """Select the files under ROOT that fit within a budget.

    Examples:

        reporoller select . --max-tokens 50000

        reporoller select src --max-cost 0.25 --target gpt-4o

        reporoller select . --budget €1 --strategy extension --priority py --priority md
    """
    from reporoller.budget.engine import BudgetSelector
    from reporoller.budget.middleware import get_middleware
    from reporoller.scan import scan_directory

    root = root.resolve()
    spec = _resolve_budget(max_tokens, max_cost, max_cost_eur, budget_str)

    try:
        config = _load_project_config(root)
        spec = spec.with_provider(target or config.budget.default_provider)
        if extensions:
            config.scan.extensions = list(extensions)

        candidates = scan_directory(root, config.scan)
        if not candidates and not as_json:
            console.warning(f"No text files found under {root}")

        middleware = get_middleware(strategy or config.budget.default_strategy, priority)
        selector = BudgetSelector.from_config(config)
        result = asyncio.run(selector.select(candidates, spec, middleware, str(root)))
    except RepoRollerError as e:
        console.error(str(e))
        sys.exit(1)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        console.show_selection(result)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--report", is_flag=True, help="Show cost estimates and recommendations.")
@click.option("--detailed", is_flag=True, help="Also show the word-boundary estimate.")
def estimate(file: Path, report: bool, detailed: bool):
    """Estimate the token count of a text FILE."""
    from reporoller.providers import build_registry
    from reporoller.tokens import (
        analyze_token_usage,
        estimate_tokens,
        estimate_tokens_detailed,
        generate_token_report,
    )

    try:
        config = _load_project_config(file.resolve().parent)
    except RepoRollerError as e:
        console.error(str(e))
        sys.exit(1)

    try:
        text = file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        console.error(f"Cannot read {file}: {e.strerror or e}")
        sys.exit(1)
    tokens = estimate_tokens(text, config.estimation)
    console.console.print(f"[bold]{file.name}[/bold]: ~{tokens:,} tokens ({len(text):,} chars)")

    if detailed:
        words = estimate_tokens_detailed(text, config.estimation)
        console.console.print(f"  {words['method']}: ~{words['tokens']:,} tokens")

    if report:
        analysis = analyze_token_usage(text, build_registry(config), config.estimation)
        console.markdown(generate_token_report(analysis))


@main.command()
@click.argument("tokens", type=click.IntRange(min=0))
@click.option(
    "--provider", "-p", "providers", multiple=True,
    help="Provider to price (repeatable). Defaults to all.",
)
@click.option("--path", default=".", help="Project directory for configuration.")
def cost(tokens: int, providers: tuple[str, ...], path: str):
    """Show what TOKENS input tokens would cost on each provider."""
    from reporoller.providers import build_registry
    from reporoller.tokens import compare_providers, get_all_cost_estimates

    try:
        config = _load_project_config(Path(path).resolve())
    except RepoRollerError as e:
        console.error(str(e))
        sys.exit(1)

    registry = build_registry(config)
    if providers:
        estimates = compare_providers(tokens, registry, providers)
    else:
        estimates = get_all_cost_estimates(tokens, registry)

    if not estimates:
        console.warning("None of the requested providers are known.")
        return
    console.show_cost_estimates(tokens, estimates)


@main.command()
@click.option("--path", default=".", help="Project directory for configuration.")
def providers(path: str):
    """List the known providers and their pricing."""
    from reporoller.providers import build_registry

    try:
        config = _load_project_config(Path(path).resolve())
    except RepoRollerError as e:
        console.error(str(e))
        sys.exit(1)
    console.show_providers(build_registry(config))


@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show", "init"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=".", help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str):
    """Manage RepoRoller configuration (stored in .reporoller/config.json)."""
    start = Path(path).resolve()
    if action == "init":
        written = save_config(start, ProjectConfig(name=start.name, root_path=str(start)))
        console.success(f"Wrote default configuration to {written}")
        return

    root = find_project_root(start) or start
    try:
        config = load_config(root)
    except RepoRollerError as e:
        console.error(str(e))
        sys.exit(1)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: reporoller config get <key>")
            sys.exit(1)
        try:
            data = get_config_value(config, key)
        except KeyError:
            console.error(f"Unknown key: {key}")
            sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: reporoller config set <key> <value>")
            sys.exit(1)
        try:
            parsed_value = json.loads(value)
        except json.JSONDecodeError:
            parsed_value = value
        try:
            config = set_config_value(config, key, parsed_value)
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ValueError as e:
            console.error(f"Invalid value for {key}: {e}")
            sys.exit(1)
        save_config(root, config)
        console.success(f"Set {key} = {parsed_value}")


if __name__ == "__main__":
    main()

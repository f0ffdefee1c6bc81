#!/usr/bin/env python3
"""Demo: Using RepoRoller as a Python library.

This shows how to use the budget engine programmatically, not just as a CLI tool.
"""

import asyncio
from pathlib import Path

from reporoller.budget import BudgetSelector, BudgetSpec, extension_priority
from reporoller.config import ProjectConfig
from reporoller.exceptions import ConfigurationError
from reporoller.providers import build_registry
from reporoller.scan import scan_directory
from reporoller.tokens import compare_providers


async def main():
    project_root = Path(".")
    config = ProjectConfig()
    registry = build_registry(config)

    # 1. Scan the repository
    candidates = scan_directory(project_root, config.scan)
    print(f"Found {len(candidates)} candidate files")

    # 2. Select within a token budget (largest files first)
    selector = BudgetSelector.from_config(config)
    result = await selector.select(
        candidates, BudgetSpec(kind="tokens", limit=20_000, provider_id="claude-haiku")
    )
    print("\n--- 20K token budget ---")
    print(result.summary())

    # 3. Select within a cost budget, Python and Markdown first
    spec = BudgetSpec(kind="usd", limit=0.05, provider_id="gpt-4o")
    result = await selector.select(candidates, spec, extension_priority(["py", "md"]))
    print("\n--- $0.05 on GPT-4o, .py/.md first ---")
    print(result.summary())
    for path, reason in list(result.exclusion_reasons.items())[:5]:
        print(f"  excluded {path}: {reason.value}")

    # 4. What would the selection cost elsewhere?
    print("\n--- Same selection on other providers ---")
    for estimate in compare_providers(result.total_tokens, registry, ["claude-sonnet", "gemini"]):
        print(f"  {estimate.display_name}: ${estimate.input_cost:.4f}")

    # 5. Currency budgets need a known provider
    try:
        await selector.select(candidates, BudgetSpec(kind="eur", limit=1, provider_id="nope"))
    except ConfigurationError as e:
        print(f"\nExpected failure: {e}")


if __name__ == "__main__":
    asyncio.run(main())

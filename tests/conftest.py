"""Shared test fixtures for RepoRoller."""

from __future__ import annotations

from pathlib import Path

import pytest

from reporoller.budget.models import CandidateFile
from reporoller.providers import ProviderRegistry, build_registry


@pytest.fixture
def registry() -> ProviderRegistry:
    """The default provider registry."""
    return build_registry()


@pytest.fixture
def make_candidates():
    """Build candidates of a uniform size; 4000 bytes of .py is ~1000 tokens."""

    def _make(count: int, size_bytes: int = 4000, extension: str = "py") -> list[CandidateFile]:
        return [
            CandidateFile(path=f"file{i}.{extension}", size_bytes=size_bytes, extension=extension)
            for i in range(count)
        ]

    return _make


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project directory with a mix of files."""
    (tmp_path / "main.py").write_text('''"""Main application entry point."""

from utils import helper_function


def main():
    """Run the main application."""
    result = helper_function(42)
    print(f"Result: {result}")
    return result


if __name__ == "__main__":
    main()
''')

    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "utils.py").write_text('''"""Utility functions."""


def helper_function(value):
    """Apply formatting to a value."""
    return f"${value:.2f}"
''')

    (tmp_path / "README.md").write_text("# Sample project\n\nA tiny project for tests.\n")
    (tmp_path / "config.json").write_text('{"name": "sample", "debug": true}\n')
    (tmp_path / "app.min.js").write_text("function a(){return 1};var b=a();\n")

    # Binary file
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + bytes(64))

    # Excluded by default patterns
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("module.exports = {};\n")

    # Excluded by .gitignore
    (tmp_path / ".gitignore").write_text("# local files\nsecrets.txt\nbuild_output/\n")
    (tmp_path / "secrets.txt").write_text("API_KEY=nope\n")
    (tmp_path / "build_output").mkdir()
    (tmp_path / "build_output" / "bundle.js").write_text("console.log('built');\n")

    return tmp_path

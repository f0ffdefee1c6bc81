"""Directory scanning - turns a repository into budget candidates."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path

from reporoller.budget.models import CandidateFile
from reporoller.config import ScanConfig
from reporoller.exceptions import ScanError

logger = logging.getLogger("reporoller.scan")

# Binary detection samples the head of each file
_BINARY_SAMPLE_SIZE = 8000
_NON_TEXT_THRESHOLD = 0.3
_TEXT_CONTROL_BYTES = {9, 10, 13}

_COMPOUND_EXTENSIONS = ("min.js", "min.css")


def scan_directory(root: str | Path, config: ScanConfig | None = None) -> list[CandidateFile]:
    """Collect candidate text files under `root`, sorted by relative path.

    Respects exclusion patterns, .gitignore, the size limit and the extension
    filter; binary files are skipped.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise ScanError(f"Not a directory: {root}")
    if config is None:
        config = ScanConfig()

    candidates = []
    for full_path in _collect_files(root, config):
        try:
            size = full_path.stat().st_size
        except OSError:
            continue
        rel_path = full_path.relative_to(root).as_posix()
        candidates.append(
            CandidateFile(path=rel_path, size_bytes=size, extension=file_extension(rel_path))
        )

    logger.debug(f"Scanned {root}: {len(candidates)} candidate files")
    return candidates


def file_extension(path: str) -> str:
    """Lowercased extension without the dot; minified assets keep their prefix."""
    name = Path(path).name.lower()
    for compound in _COMPOUND_EXTENSIONS:
        if name.endswith("." + compound):
            return compound
    suffix = Path(name).suffix
    return suffix[1:] if suffix else ""


def is_binary_file(path: Path) -> bool:
    """Sample the head of a file: any NUL byte, or too many control bytes."""
    try:
        with path.open("rb") as fh:
            sample = fh.read(_BINARY_SAMPLE_SIZE)
    except OSError:
        return True
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    non_text = sum(1 for b in sample if b < 32 and b not in _TEXT_CONTROL_BYTES)
    return non_text / len(sample) > _NON_TEXT_THRESHOLD


def _collect_files(root: Path, config: ScanConfig) -> list[Path]:
    files = []
    max_size = config.max_file_size_kb * 1024
    extensions = {e.lower().lstrip(".") for e in config.extensions}

    all_exclude = config.exclude_patterns + _read_gitignore(root)

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)

        dirnames[:] = [
            d
            for d in dirnames
            if not _should_exclude(os.path.join(rel_dir, d) if rel_dir != "." else d, all_exclude)
        ]

        for filename in filenames:
            rel_path = os.path.join(rel_dir, filename) if rel_dir != "." else filename
            if _should_exclude(rel_path, all_exclude):
                continue

            if extensions and file_extension(filename) not in extensions:
                continue

            full_path = Path(dirpath) / filename
            try:
                if full_path.stat().st_size > max_size:
                    logger.debug(f"Skipping {rel_path}: larger than {config.max_file_size_kb} KB")
                    continue
            except OSError:
                continue

            if is_binary_file(full_path):
                continue

            files.append(full_path)

    return sorted(files)


def _should_exclude(rel_path: str, patterns: list[str]) -> bool:
    """True if the relative path, or any single component of it, matches a pattern.

    Component matching lets a bare name like "node_modules" prune that
    directory wherever it appears.
    """
    subjects = (rel_path, *Path(rel_path).parts)
    return any(fnmatch.fnmatch(s, p) for p in patterns for s in subjects)


def _read_gitignore(root: Path) -> list[str]:
    """Patterns from the root .gitignore, anchoring and trailing slashes removed.

    Negations ("!keep.txt") cannot be honoured by plain exclusion and are
    dropped.
    """
    gitignore = root / ".gitignore"
    try:
        lines = gitignore.read_text().splitlines()
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Ignoring unreadable {gitignore}: {e}")
        return []

    patterns = [line.strip().strip("/") for line in lines]
    return [p for p in patterns if p and p[0] not in "#!"]

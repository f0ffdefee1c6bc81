"""Ordering middleware for budget selection.

A middleware decides the order in which the greedy selector sees candidates,
and may drop candidates outright. It is a plain callable:

    (candidates, spec, context) -> ordered subsequence of candidates

It may return the sequence directly or an awaitable resolving to it. It must
not mutate its input and must not invent entries.
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from enum import Enum
from typing import Protocol, Union

from reporoller.budget.models import BudgetSpec, CandidateFile, MiddlewareContext

MiddlewareResult = Union[Sequence[CandidateFile], Awaitable[Sequence[CandidateFile]]]


class OrderingMiddleware(Protocol):
    def __call__(
        self,
        candidates: Sequence[CandidateFile],
        spec: BudgetSpec,
        context: MiddlewareContext,
    ) -> MiddlewareResult: ...


class OrderingStrategy(str, Enum):
    """Built-in ordering strategies."""

    SIZE = "size"  # Largest first (default)
    IDENTITY = "identity"  # Scan order
    EXTENSION = "extension"  # Priority extensions first, then largest first


def size_descending(
    candidates: Sequence[CandidateFile],
    spec: BudgetSpec,
    context: MiddlewareContext,
) -> list[CandidateFile]:
    """Largest candidates first. Ties keep their scan order."""
    return sorted(candidates, key=lambda c: -c.size_bytes)


def identity(
    candidates: Sequence[CandidateFile],
    spec: BudgetSpec,
    context: MiddlewareContext,
) -> list[CandidateFile]:
    """Keep the scan order."""
    return list(candidates)


def _normalize_extension(ext: str) -> str:
    return ext.lower().lstrip(".")


def extension_priority(priorities: Sequence[str]) -> OrderingMiddleware:
    """Build a middleware that orders listed extensions first, by list position.

    Candidates whose extension is not listed follow, largest first.
    """
    rank = {}
    for position, ext in enumerate(priorities):
        rank.setdefault(_normalize_extension(ext), position)
    unranked = len(rank)

    def _order(
        candidates: Sequence[CandidateFile],
        spec: BudgetSpec,
        context: MiddlewareContext,
    ) -> list[CandidateFile]:
        def _key(c: CandidateFile) -> tuple[int, int]:
            position = rank.get(_normalize_extension(c.extension), unranked)
            # Listed extensions keep scan order within their rank
            return (position, -c.size_bytes if position == unranked else 0)

        return sorted(candidates, key=_key)

    return _order


def get_middleware(
    strategy: OrderingStrategy | str,
    priorities: Sequence[str] = (),
) -> OrderingMiddleware:
    """Resolve a built-in strategy by name ("path" is accepted for identity)."""
    if strategy == "path":
        strategy = OrderingStrategy.IDENTITY
    strategy = OrderingStrategy(strategy)

    if strategy == OrderingStrategy.SIZE:
        return size_descending
    if strategy == OrderingStrategy.IDENTITY:
        return identity
    return extension_priority(priorities)

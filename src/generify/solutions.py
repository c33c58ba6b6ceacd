"""Collecting the bindings reached at solution leaves."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TypeAlias

from generify.binding import Binding
from generify.terms import BottomType, TypeVariable, WildcardType

Ranking: TypeAlias = Callable[[Binding], tuple[int, ...]]


def rank_solution(binding: Binding) -> tuple[int, int]:
    """Ranking key for a solution; lower is better.

    Prefers bindings that resolve more variables to real types (neither
    Bottom nor another variable), then bindings with fewer wildcards.
    """
    resolved = 0
    wildcards = 0
    for _, term in binding.items():
        if not isinstance(term, BottomType | TypeVariable):
            resolved += 1
        if isinstance(term, WildcardType):
            wildcards += 1
    return -resolved, wildcards


class SolutionRegistry:
    """Append-only store of solutions shared by the whole search.

    Inserts take a lock so sibling branches may be explored concurrently.
    """

    def __init__(self, ranking: Ranking = rank_solution) -> None:
        self._ranking = ranking
        self._solutions: list[Binding] = []
        self._best: Binding | None = None
        self._best_key: tuple[int, ...] | None = None
        self._lock = threading.RLock()

    def put_solution(self, binding: Binding) -> None:
        key = self._ranking(binding)
        with self._lock:
            self._solutions.append(binding)
            if self._best_key is None or key < self._best_key:
                self._best, self._best_key = binding, key

    @property
    def solutions(self) -> tuple[Binding, ...]:
        """Every registered solution, in registration order."""
        with self._lock:
            return tuple(self._solutions)

    def best_solution(self) -> Binding | None:
        """The best solution so far; the earliest wins a tie. None if empty."""
        with self._lock:
            return self._best

    def __len__(self) -> int:
        with self._lock:
            return len(self._solutions)

"""Hooks called by the resolver at solutions, prunes and dead ends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from generify.binding import Binding
    from generify.resolver import ResolutionNode

logger = logging.getLogger(__name__)


class SearchObserver:
    """Base observer; every hook does nothing."""

    def on_solution(self, node: ResolutionNode) -> None:
        """Called when ``node`` has no constraints left."""

    def on_prune(self, node: ResolutionNode, binding: Binding) -> None:
        """Called when a branch binding of ``node`` is skipped by the heuristic."""

    def on_dead_end(self, node: ResolutionNode) -> None:
        """Called when ``node`` has constraints but no way to reduce them."""


class LoggingObserver(SearchObserver):
    """Traces the search at DEBUG level."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def on_solution(self, node: ResolutionNode) -> None:
        self._log.debug("solution: %r", node.binding)

    def on_prune(self, node: ResolutionNode, binding: Binding) -> None:
        self._log.debug("pruned %r at %s", binding, node)

    def on_dead_end(self, node: ResolutionNode) -> None:
        self._log.debug("dead end: %s", node)


class RecordingObserver(SearchObserver):
    """Keeps every event, for inspection in tests."""

    def __init__(self) -> None:
        self.solutions: list[ResolutionNode] = []
        self.pruned: list[tuple[ResolutionNode, Binding]] = []
        self.dead_ends: list[ResolutionNode] = []

    def on_solution(self, node: ResolutionNode) -> None:
        self.solutions.append(node)

    def on_prune(self, node: ResolutionNode, binding: Binding) -> None:
        self.pruned.append((node, binding))

    def on_dead_end(self, node: ResolutionNode) -> None:
        self.dead_ends.append(node)

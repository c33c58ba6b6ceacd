"""Backtracking search over subtype constraint systems.

Each node of the search owns a constraint set and the binding accumulated
on the way to it. One reduction step picks the first applicable pattern,
takes exactly one decision and returns the child nodes, one per
alternative. Nodes left without constraints are solutions; nodes that
still have constraints but no children are dead ends and are dropped
silently.

Example:
    system = ConstraintSystem(
        (Subtype(dog, v), Subtype(v, animal)),
        table,
    )
    tree = ResolverTree(system)
    best = tree.resolve()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from operator import attrgetter
from typing import TypeAlias

from generify.binding import EMPTY, Binding, BindingFactory
from generify.constraints import ConstraintSystem, Subtype, unique
from generify.cycles import collapse_cycles
from generify.degree import DegreeMap
from generify.observers import LoggingObserver, SearchObserver
from generify.settings import Settings
from generify.solutions import SolutionRegistry
from generify.terms import (
    BOTTOM,
    BottomType,
    TypeTerm,
    TypeVariable,
    WildcardType,
    binds_type_variables,
    occurs,
    type_variables,
)

logger = logging.getLogger(__name__)

Alternatives: TypeAlias = list[tuple[TypeTerm, Binding]]


@dataclass(frozen=True)
class ResolutionNode:
    """One point of the search: a constraint set and the binding so far.

    Nodes keep no reference to their parent.
    """

    constraints: tuple[Subtype, ...]
    binding: Binding = EMPTY

    def __post_init__(self) -> None:
        object.__setattr__(self, "constraints", unique(self.constraints))

    @property
    def is_solved(self) -> bool:
        """No constraints left and nothing cyclic in the binding."""
        return not self.constraints and not self.binding.is_cyclic()

    def __str__(self) -> str:
        constraints = ", ".join(str(c) for c in self.constraints)
        return f"{{{constraints}}} with {self.binding!r}"


@dataclass(frozen=True)
class _Merge:
    unify: Callable[[BindingFactory, TypeTerm, TypeTerm], Alternatives]
    make: Callable[[TypeVariable, TypeTerm], Subtype]
    bound: Callable[[Subtype], TypeTerm]
    variable: Callable[[Subtype], TypeTerm]


class VariableSide(Enum):
    """Which side of two same-variable constraints holds the variable.

    ``LEFT`` merges two upper bounds ``v <: T`` with ``intersect``;
    ``RIGHT`` merges two lower bounds ``T <: v`` with ``union``.
    """

    LEFT = _Merge(
        unify=BindingFactory.intersect,
        make=lambda var, term: Subtype(var, term),
        bound=attrgetter("right"),
        variable=attrgetter("left"),
    )
    RIGHT = _Merge(
        unify=BindingFactory.union,
        make=lambda var, term: Subtype(term, var),
        bound=attrgetter("left"),
        variable=attrgetter("right"),
    )

    def unify(self, factory: BindingFactory, x: TypeTerm, y: TypeTerm) -> Alternatives:
        return self.value.unify(factory, x, y)

    def make(self, var: TypeVariable, term: TypeTerm) -> Subtype:
        return self.value.make(var, term)

    def bound(self, constraint: Subtype) -> TypeTerm:
        return self.value.bound(constraint)

    def variable(self, constraint: Subtype) -> TypeTerm:
        return self.value.variable(constraint)


@dataclass(slots=True)
class SearchStats:
    """Counters gathered while resolving."""

    visited: int = 0
    solutions: int = 0
    dead_ends: int = 0
    pruned: int = 0
    inconsistent: int = 0


@dataclass(slots=True)
class _Scan:
    """Constraint pairs found in one pass, by reduction pattern."""

    lower_pair: tuple[Subtype, Subtype] | None = None
    upper_pair: tuple[Subtype, Subtype] | None = None
    interval: tuple[Subtype, Subtype] | None = None
    type_type: Subtype | None = None
    var_lefts: set[TypeVariable] = field(default_factory=set)
    var_rights: set[TypeVariable] = field(default_factory=set)


def _scan(constraints: Iterable[Subtype]) -> _Scan:
    scan = _Scan()
    lowers: dict[TypeVariable, Subtype] = {}
    uppers: dict[TypeVariable, Subtype] = {}
    for c in constraints:
        left, right = c.left, c.right
        match (left, right):
            case (TypeVariable(), TypeVariable()):
                scan.var_lefts.add(left)
                scan.var_rights.add(right)
            case (_, TypeVariable()):
                if right in lowers:
                    scan.lower_pair = scan.lower_pair or (lowers[right], c)
                    continue
                lowers[right] = c
                if right in uppers and scan.interval is None:
                    scan.interval = (c, uppers[right])
            case (TypeVariable(), _):
                if left in uppers:
                    scan.upper_pair = scan.upper_pair or (uppers[left], c)
                    continue
                uppers[left] = c
                if left in lowers and scan.interval is None:
                    scan.interval = (lowers[left], c)
            case _:
                scan.type_type = scan.type_type or c
    return scan


class ResolverTree:
    """Depth-first resolution of one constraint system.

    The binding factory, degree map and solution registry are shared by
    every node and are read-only during the search, except for the
    registry, which only grows.

    Args:
        system: The constraints, class table and settings.
        registry: Where solutions are collected. A fresh registry is used
            when omitted.
        observer: Receives solution, prune and dead-end events. Defaults to
            a ``LoggingObserver``.

    Raises:
        UnknownVariableError: If a constraint mentions a variable outside
            the system's known set.

    """

    def __init__(
        self,
        system: ConstraintSystem,
        *,
        registry: SolutionRegistry | None = None,
        observer: SearchObserver | None = None,
    ) -> None:
        system.validate()
        self._settings = system.settings
        self._factory = BindingFactory(system.known_variables(), system.table)
        self._degree = DegreeMap.from_constraints(system.constraints)
        self._registry = registry if registry is not None else SolutionRegistry()
        self._observer = observer if observer is not None else LoggingObserver()
        self._stats = SearchStats()

        collapse = collapse_cycles(system.constraints, EMPTY, self._factory)
        self._root = ResolutionNode(collapse.constraints, collapse.binding)

    @property
    def root(self) -> ResolutionNode:
        return self._root

    @property
    def factory(self) -> BindingFactory:
        return self._factory

    @property
    def registry(self) -> SolutionRegistry:
        return self._registry

    @property
    def degree(self) -> DegreeMap:
        return self._degree

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def stats(self) -> SearchStats:
        return self._stats

    def best_solution(self) -> Binding | None:
        return self._registry.best_solution()

    def resolve(self, *, stop_after_first: bool = False) -> Binding | None:
        """Explore the tree and return the best solution found.

        Children are visited in the order they were created; each subtree
        is finished before its next sibling starts.

        Args:
            stop_after_first: Stop as soon as one solution is registered.

        Returns:
            The registry's best solution, or None if no branch succeeded.

        """
        stack = [self._root]
        while stack:
            node = stack.pop()
            self._stats.visited += 1
            children = self.reduce(node)
            if children:
                stack.extend(reversed(children))
                continue
            if not node.is_solved:
                self._stats.dead_ends += 1
                self._observer.on_dead_end(node)
                continue
            self._stats.solutions += 1
            self._registry.put_solution(node.binding)
            self._observer.on_solution(node)
            if stop_after_first:
                break

        logger.debug(
            "resolved %d constraints: %d solutions, %d dead ends, %d nodes visited",
            len(self._root.constraints),
            self._stats.solutions,
            self._stats.dead_ends,
            self._stats.visited,
        )
        return self.best_solution()

    # -- reduction ----------------------------------------------------------

    def reduce(self, node: ResolutionNode) -> list[ResolutionNode]:  # noqa: PLR0911
        """Take one decision at ``node`` and return its children.

        Patterns are tried in order: cyclic binding, two lower bounds of one
        variable, two upper bounds, an interval ``T1 <: v <: T2``, a
        ``T1 <: T2`` constraint, a lone lower bound, a lone upper bound and
        finally flooring free variables to Bottom.

        Returns:
            The child nodes; empty for a solution or a dead end.

        """
        cyclic = node.binding.is_cyclic()
        if not node.constraints and not cyclic:
            return []
        if cyclic:
            return self._reduce_cycles(node)

        scan = _scan(node.constraints)
        if scan.lower_pair is not None:
            return self._reduce_side(node, VariableSide.RIGHT, *scan.lower_pair)
        if scan.upper_pair is not None:
            return self._reduce_side(node, VariableSide.LEFT, *scan.upper_pair)
        if scan.interval is not None:
            return self._reduce_interval(node, *scan.interval)
        if scan.type_type is not None:
            return self._reduce_type_type(node, scan.type_type)

        if self._settings.cook_wildcards:
            children = self._cook_lower_bound(node, scan)
        else:
            children = self._reduce_lower_bound(node)
        if children is not None:
            return children

        children = self._reduce_upper_bound(node, scan)
        if children is not None:
            return children
        return self._floor(node)

    def can_be_pruned(self, binding: Binding) -> bool:
        """Check if ``binding`` adds nothing a cheaper branch would not find.

        Never true in exhaustive mode. Otherwise true unless some variable
        bound to a non-variable term is bounded by other constraints too.
        """
        if self._settings.exhaustive:
            return False
        return not any(
            not isinstance(term, TypeVariable) and self._degree.is_bound_elsewhere(var)
            for var, term in binding.items()
        )

    def _apply_rule(
        self,
        node: ResolutionNode,
        binding: Binding,
        rest: Sequence[Subtype],
        extra: Iterable[Subtype] = (),
    ) -> ResolutionNode | None:
        composed = node.binding.compose(binding)
        if composed is None:
            self._stats.inconsistent += 1
            return None
        constraints = [c.apply(binding) for c in rest]
        constraints.extend(c.apply(binding) for c in extra)
        return ResolutionNode(tuple(constraints), composed)

    def _children(
        self,
        node: ResolutionNode,
        rules: Iterable[tuple[Binding, Sequence[Subtype], Iterable[Subtype]]],
    ) -> list[ResolutionNode]:
        children = []
        for binding, rest, extra in rules:
            child = self._apply_rule(node, binding, rest, extra)
            if child is not None:
                children.append(child)
        return children

    def _prune(self, node: ResolutionNode, binding: Binding) -> None:
        self._stats.pruned += 1
        self._observer.on_prune(node, binding)

    def _rise_and_sink(
        self,
        node: ResolutionNode,
        left: TypeTerm,
        right: TypeTerm,
    ) -> tuple[Binding | None, Binding | None]:
        rise = self._factory.rise(left, right)
        sink = self._factory.sink(left, right)
        if rise is not None and sink is not None:
            if sink == rise:
                sink = None
            elif self.can_be_pruned(rise):
                self._prune(node, sink)
                sink = None
        return rise, sink

    def _reduce_cycles(self, node: ResolutionNode) -> list[ResolutionNode]:
        collapse = collapse_cycles(node.constraints, node.binding, self._factory)
        if not collapse.changed or collapse.binding.is_cyclic():
            return []
        return [ResolutionNode(collapse.constraints, collapse.binding)]

    def _reduce_side(
        self,
        node: ResolutionNode,
        side: VariableSide,
        first: Subtype,
        second: Subtype,
    ) -> list[ResolutionNode]:
        var = side.variable(first)
        rest = [c for c in node.constraints if c not in (first, second)]
        alternatives = side.unify(self._factory, side.bound(first), side.bound(second))
        return self._children(
            node,
            ((binding, rest, [side.make(var, term)]) for term, binding in alternatives),
        )

    def _reduce_interval(
        self,
        node: ResolutionNode,
        lower: Subtype,
        upper: Subtype,
    ) -> list[ResolutionNode]:
        var = lower.right
        low, high = lower.left, upper.right
        rest = [c for c in node.constraints if c not in (lower, upper)]
        if low == high:
            return self._children(node, [(self._factory.create(var, low), rest, ())])

        rules = []
        for binding in self._rise_and_sink(node, low, high):
            if binding is None:
                continue
            for term in self._factory.table.type_range(binding.apply(low), binding.apply(high)):
                candidate = binding.compose(self._factory.create(var, term))
                if candidate is None:
                    self._stats.inconsistent += 1
                    continue
                rules.append((candidate, rest, ()))
        return self._children(node, rules)

    def _reduce_type_type(self, node: ResolutionNode, constraint: Subtype) -> list[ResolutionNode]:
        left, right = constraint.left, constraint.right
        rest = [c for c in node.constraints if c != constraint]
        rise, sink = self._rise_and_sink(node, left, right)
        wildcard = None
        if self._settings.cook_wildcards:
            wildcard = self._factory.rise_with_wildcard(left, right)
            if wildcard is not None and (wildcard[0] == rise or not wildcard[0]):
                wildcard = None

        rules: list[tuple[Binding, Sequence[Subtype], Iterable[Subtype]]] = [
            (binding, rest, ()) for binding in (rise, sink) if binding is not None
        ]
        if wildcard is not None:
            binding, side = wildcard
            rules.append((binding, rest, side))
        return self._children(node, rules)

    def _cook_lower_bound(self, node: ResolutionNode, scan: _Scan) -> list[ResolutionNode] | None:
        for c in node.constraints:
            var, term = c.right, c.left
            if not isinstance(var, TypeVariable) or isinstance(term, TypeVariable):
                continue
            if binds_type_variables(term):
                continue
            if var not in scan.var_lefts and not isinstance(term, WildcardType | BottomType):
                term = WildcardType.super_(term)
            rest = [other for other in node.constraints if other != c]
            return self._children(node, [(self._factory.create(var, term), rest, ())])
        return None

    def _reduce_lower_bound(self, node: ResolutionNode) -> list[ResolutionNode] | None:
        table = self._factory.table
        for c in node.constraints:
            var, term = c.right, c.left
            if not isinstance(var, TypeVariable) or isinstance(term, TypeVariable):
                continue
            rest = [other for other in node.constraints if other != c]
            if occurs(var, term):
                return self._children(node, [(self._factory.create(var, BOTTOM), rest, ())])
            candidates = table.type_range(table.upper_bound(term), table.top)
            return self._children(
                node,
                ((self._factory.create(var, t), rest, ()) for t in candidates),
            )
        return None

    def _reduce_upper_bound(self, node: ResolutionNode, scan: _Scan) -> list[ResolutionNode] | None:
        for c in node.constraints:
            var, term = c.left, c.right
            if not isinstance(var, TypeVariable) or isinstance(term, TypeVariable):
                continue
            if binds_type_variables(term):
                continue
            if (
                self._settings.cook_wildcards
                and var not in scan.var_rights
                and not isinstance(term, WildcardType | BottomType)
            ):
                term = WildcardType.extends(term)
            rest = [other for other in node.constraints if other != c]
            return self._children(node, [(self._factory.create(var, term), rest, ())])
        return None

    def _floor(self, node: ResolutionNode) -> list[ResolutionNode]:
        unfixed = [v for v in self._factory.variables if not node.binding.binds(v)]
        top_level: set[TypeVariable] = set()
        nested: set[TypeVariable] = set()
        for c in node.constraints:
            for side in (c.left, c.right):
                if isinstance(side, TypeVariable):
                    top_level.add(side)
                else:
                    nested.update(type_variables(side))

        floor = [v for v in unfixed if v not in top_level or v in nested] or unfixed
        if not floor:
            return [ResolutionNode((), node.binding)]
        binding = EMPTY
        for var in floor:
            composed = binding.compose(self._factory.create(var, BOTTOM))
            if composed is None:
                self._stats.inconsistent += 1
                return []
            binding = composed
        return self._children(node, [(binding, node.constraints, ())])


def resolve(
    system: ConstraintSystem,
    *,
    observer: SearchObserver | None = None,
    stop_after_first: bool = False,
) -> Binding | None:
    """Resolve ``system`` and return its best solution, or None."""
    tree = ResolverTree(system, observer=observer)
    return tree.resolve(stop_after_first=stop_after_first)

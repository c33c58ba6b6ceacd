"""Collapsing cycles of variable-to-variable constraints.

Variables on a cycle ``a <: b <: ... <: a`` must all denote the same type.
The collapser finds the strongly connected components of the variable
graph, drops the constraints inside each component and binds every member
to one representative.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from generify.binding import EMPTY, Binding, BindingFactory
from generify.constraints import Subtype, unique
from generify.terms import TypeVariable


class VariableGraph:
    """Directed graph over type variables, stored as dense integer ids.

    Node ``i`` is the ``i``-th variable in id order; edges are adjacency
    lists of node indices.
    """

    def __init__(self, variables: Iterable[TypeVariable] = ()) -> None:
        self._nodes = tuple(sorted(set(variables)))
        self._index = {var: i for i, var in enumerate(self._nodes)}
        self._edges: list[list[int]] = [[] for _ in self._nodes]

    @classmethod
    def from_constraints(
        cls,
        constraints: Iterable[Subtype],
        binding: Binding = EMPTY,
    ) -> VariableGraph:
        """Build the graph of ``var1 <: var2`` constraints.

        When ``binding`` is cyclic its variable-to-variable entries are added
        as edges in both directions.
        """
        pairs = [
            (c.left, c.right)
            for c in constraints
            if isinstance(c.left, TypeVariable) and isinstance(c.right, TypeVariable)
        ]
        if binding.is_cyclic():
            for var, term in binding.items():
                if isinstance(term, TypeVariable):
                    pairs.extend([(var, term), (term, var)])
        graph = cls(var for pair in pairs for var in pair)
        for source, target in pairs:
            graph.add_edge(source, target)
        return graph

    @property
    def nodes(self) -> tuple[TypeVariable, ...]:
        return self._nodes

    def index(self, var: TypeVariable) -> int:
        return self._index[var]

    def add_edge(self, source: TypeVariable, target: TypeVariable) -> None:
        targets = self._edges[self._index[source]]
        target_index = self._index[target]
        if target_index not in targets:
            targets.append(target_index)

    def successors(self, node: int) -> Sequence[int]:
        return self._edges[node]

    def __len__(self) -> int:
        return len(self._nodes)


def strongly_connected_components(graph: VariableGraph) -> list[tuple[TypeVariable, ...]]:
    """Tarjan's algorithm, iterative so deep chains do not hit the recursion limit.

    Nodes are visited in id order, so the result is deterministic.

    Returns:
        Every component (singletons included), members sorted by id.
        Components come out in reverse topological order.

    """
    size = len(graph)
    index = [-1] * size
    low = [0] * size
    on_stack = [False] * size
    stack: list[int] = []
    components: list[tuple[TypeVariable, ...]] = []
    counter = 0

    for root in range(size):
        if index[root] != -1:
            continue
        index[root] = low[root] = counter
        counter += 1
        stack.append(root)
        on_stack[root] = True
        work = [(root, iter(graph.successors(root)))]
        while work:
            node, children = work[-1]
            child = next(children, None)
            if child is None:
                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[node])
                if low[node] == index[node]:
                    members = []
                    while True:
                        member = stack.pop()
                        on_stack[member] = False
                        members.append(graph.nodes[member])
                        if member == node:
                            break
                    components.append(tuple(sorted(members)))
            elif index[child] == -1:
                index[child] = low[child] = counter
                counter += 1
                stack.append(child)
                on_stack[child] = True
                work.append((child, iter(graph.successors(child))))
            elif on_stack[child]:
                low[node] = min(low[node], index[child])
    return components


@dataclass(frozen=True)
class Collapse:
    """Outcome of collapsing cycles.

    Attributes:
        constraints: Remaining constraints with the collapse applied.
        binding: The input binding composed with the collapse.
        collapsed: Only the member-to-representative entries.
        removed: Number of constraints dropped inside components.

    """

    constraints: tuple[Subtype, ...]
    binding: Binding
    collapsed: Binding
    removed: int = 0

    @property
    def changed(self) -> bool:
        return self.removed > 0 or bool(self.collapsed)


def collapse_cycles(
    constraints: Iterable[Subtype],
    binding: Binding,
    factory: BindingFactory,
) -> Collapse:
    """Collapse every cycle of variables into its lowest-id member.

    Args:
        constraints: The current constraint set, with ``binding`` applied.
        binding: The accumulated binding of the node.
        factory: Factory for the member-to-representative bindings.

    Returns:
        The collapsed system. Composition stops at the first member that
        cannot be bound consistently; what was merged until then is kept.

    """
    constraints = tuple(constraints)
    graph = VariableGraph.from_constraints(constraints, binding)
    components = [c for c in strongly_connected_components(graph) if len(c) > 1]
    if not components:
        return Collapse(constraints, binding, EMPTY)

    component_of = {var: i for i, members in enumerate(components) for var in members}

    def inside(c: Subtype) -> bool:
        if not (isinstance(c.left, TypeVariable) and isinstance(c.right, TypeVariable)):
            return False
        left = component_of.get(c.left)
        return left is not None and left == component_of.get(c.right)

    kept = [c for c in constraints if not inside(c)]

    merged = binding
    collapsed = EMPTY
    stopped = False
    for members in components:
        representative = members[0]
        for member in members[1:]:
            single = factory.create(member, representative)
            step = merged.compose(single)
            grown = collapsed.compose(single)
            if step is None or grown is None:
                stopped = True
                break
            merged, collapsed = step, grown
        if stopped:
            break

    remaining = unique(c.apply(collapsed) for c in kept)
    return Collapse(remaining, merged, collapsed, len(constraints) - len(kept))

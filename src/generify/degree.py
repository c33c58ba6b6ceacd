"""How often each variable appears on the bound side of a constraint."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping

from generify.constraints import Subtype
from generify.terms import TypeVariable, type_variables


class DegreeMap:
    """Read-only count of constraints mentioning a variable in their right side.

    Each constraint counts at most once per variable. The map is computed for
    the root system and shared by every node of the search; it feeds the
    pruning heuristic.
    """

    def __init__(self, counts: Mapping[TypeVariable, int] | None = None) -> None:
        self._counts: dict[TypeVariable, int] = dict(counts or {})

    @classmethod
    def from_constraints(cls, constraints: Iterable[Subtype]) -> DegreeMap:
        counts: Counter[TypeVariable] = Counter()
        for constraint in constraints:
            counts.update(type_variables(constraint.right))
        return cls(counts)

    def degree(self, var: TypeVariable) -> int | None:
        """The degree of ``var``, or None if no constraint bounds it."""
        return self._counts.get(var)

    def is_bound_elsewhere(self, var: TypeVariable) -> bool:
        """Check if ``var`` is unknown to the map or bounded by several constraints."""
        degree = self._counts.get(var)
        return degree is None or degree > 1

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self) -> str:
        items = ", ".join(f"{var}: {n}" for var, n in sorted(self._counts.items()))
        return f"DegreeMap({{{items}}})"

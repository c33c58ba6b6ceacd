"""Subtype constraints and the constraint system handed to the resolver."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from generify.errors import UnknownVariableError
from generify.settings import Settings
from generify.terms import TypeTerm, TypeVariable, format_term, type_variables

if TYPE_CHECKING:
    from generify.binding import Binding
    from generify.hierarchy import ClassTable


@dataclass(frozen=True)
class Subtype:
    """Constraint ``left <: right``.

    Constraints are values: two constraints with structurally equal sides
    are the same constraint.
    """

    left: TypeTerm
    right: TypeTerm

    def apply(self, binding: Binding) -> Subtype:
        """Substitute ``binding`` into both sides."""
        left = binding.apply(self.left)
        right = binding.apply(self.right)
        if left is self.left and right is self.right:
            return self
        return Subtype(left, right)

    def variables(self) -> tuple[TypeVariable, ...]:
        return tuple(dict.fromkeys(type_variables(self.left) + type_variables(self.right)))

    def __str__(self) -> str:
        return f"{format_term(self.left)} <: {format_term(self.right)}"


def unique(constraints: Iterable[Subtype]) -> tuple[Subtype, ...]:
    """Drop duplicate constraints, keeping the first occurrence's position."""
    return tuple(dict.fromkeys(constraints))


@dataclass(frozen=True)
class ConstraintSystem:
    """Everything the resolver needs to start a search.

    Attributes:
        constraints: The subtype constraints to satisfy.
        table: Class hierarchy used to widen and narrow class types.
        settings: Search options.
        variables: The known type variables. Defaults to every variable
            mentioned by a constraint.

    """

    constraints: tuple[Subtype, ...]
    table: ClassTable
    settings: Settings = field(default_factory=Settings)
    variables: tuple[TypeVariable, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "constraints", unique(self.constraints))

    def known_variables(self) -> tuple[TypeVariable, ...]:
        """The known variable set, sorted by id."""
        if self.variables is not None:
            return tuple(sorted(set(self.variables)))
        found = {v for c in self.constraints for v in c.variables()}
        return tuple(sorted(found))

    def validate(self) -> None:
        """Check that every constraint only mentions known variables.

        Raises:
            UnknownVariableError: If a constraint mentions an unknown variable.

        """
        known = set(self.known_variables())
        for constraint in self.constraints:
            for var in constraint.variables():
                if var not in known:
                    msg = f"Constraint '{constraint}' mentions unknown variable {var}"
                    raise UnknownVariableError(msg)

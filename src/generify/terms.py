"""Type terms for the constraint resolver.

Terms model Java-generics-style types: parameterized classes, arrays,
bounded wildcards, a universal bottom type and the type variables the
resolver solves for. All terms are frozen dataclasses, so equality and
hashing are structural.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TypeAlias
from dataclasses import dataclass
from enum import Enum

from generify.errors import MalformedTypeError


@dataclass(frozen=True)
class ClassType:
    """A class-like type with optional type arguments.

    Examples:
        String          -> ClassType("String")
        List<String>    -> ClassType("List", (ClassType("String"),))
        List (raw)      -> ClassType("List")

    """

    name: str
    args: tuple[TypeTerm, ...] = ()

    def __str__(self) -> str:
        return format_term(self)


@dataclass(frozen=True)
class ArrayType:
    """An array of ``component``. Arrays are covariant.

    A wildcard component only arises from substituting a wildcard-bound
    variable and is read through its upper bound.
    """

    component: TypeTerm

    def __str__(self) -> str:
        return format_term(self)


class WildcardKind(Enum):
    """Bound direction of a wildcard."""

    EXTENDS = "extends"
    SUPER = "super"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class WildcardType:
    """A wildcard type argument: ``?``, ``? extends B`` or ``? super B``."""

    kind: WildcardKind
    bound: TypeTerm | None = None

    def __post_init__(self) -> None:
        if self.kind is WildcardKind.UNBOUNDED:
            if self.bound is not None:
                msg = "Unbounded wildcard cannot carry a bound"
                raise MalformedTypeError(msg)
            return
        if self.bound is None:
            msg = f"'{self.kind.value}' wildcard requires a bound"
            raise MalformedTypeError(msg)
        if isinstance(self.bound, WildcardType):
            msg = f"Wildcard bound cannot be a wildcard: {format_term(self.bound)}"
            raise MalformedTypeError(msg)

    @classmethod
    def extends(cls, bound: TypeTerm) -> WildcardType:
        return cls(WildcardKind.EXTENDS, bound)

    @classmethod
    def super_(cls, bound: TypeTerm) -> WildcardType:
        return cls(WildcardKind.SUPER, bound)

    @classmethod
    def unbounded(cls) -> WildcardType:
        return cls(WildcardKind.UNBOUNDED)

    def __str__(self) -> str:
        return format_term(self)


@dataclass(frozen=True)
class BottomType:
    """Subtype of every type."""

    def __str__(self) -> str:
        return "Bottom"


BOTTOM = BottomType()


@dataclass(frozen=True, order=True)
class TypeVariable:
    """A placeholder the resolver solves for.

    Ids are unique and stable for the lifetime of a constraint system.
    """

    id: int

    def __str__(self) -> str:
        return f"${self.id}"


@dataclass(frozen=True)
class TypeParameter:
    """A formal type parameter inside a class declaration.

    Only used to describe supertypes in the class table; never part of a
    constraint.
    """

    name: str

    def __str__(self) -> str:
        return self.name


TypeTerm: TypeAlias = ClassType | ArrayType | WildcardType | BottomType | TypeVariable | TypeParameter


def _walk_variables(term: TypeTerm) -> Iterator[TypeVariable]:
    match term:
        case TypeVariable():
            yield term
        case ClassType(args=args):
            for arg in args:
                yield from _walk_variables(arg)
        case ArrayType(component=component):
            yield from _walk_variables(component)
        case WildcardType(bound=bound) if bound is not None:
            yield from _walk_variables(bound)


def type_variables(term: TypeTerm) -> tuple[TypeVariable, ...]:
    """Return the variables of ``term`` in order of first occurrence."""
    return tuple(dict.fromkeys(_walk_variables(term)))


def occurs(var: TypeVariable, term: TypeTerm) -> bool:
    """Check if ``var`` occurs anywhere in ``term``."""
    return any(v == var for v in _walk_variables(term))


def binds_type_variables(term: TypeTerm) -> bool:
    """Check if ``term`` mentions at least one type variable."""
    return next(_walk_variables(term), None) is not None


def nest_wildcard(kind: WildcardKind, bound: TypeTerm) -> WildcardType:
    """Build ``? kind bound``, flattening a ``bound`` that is itself a wildcard.

    Substituting a wildcard for the bound of another wildcard yields
    ``? extends B`` for ``? extends (? extends B)`` and ``? super B`` for
    ``? super (? super B)``. Mixed kinds and ``?`` widen to ``?``.
    """
    if isinstance(bound, WildcardType):
        return bound if bound.kind is kind else WildcardType.unbounded()
    return WildcardType(kind, bound)


def map_variables(
    term: TypeTerm,
    fn: Callable[[TypeVariable], TypeTerm],
) -> TypeTerm:
    """Rebuild ``term`` with every variable replaced by ``fn(variable)``.

    Sub-terms without variables are returned unchanged (same object).
    """
    match term:
        case TypeVariable():
            return fn(term)
        case ClassType(name=name, args=args) if args:
            new_args = tuple(map_variables(arg, fn) for arg in args)
            return term if new_args == args else ClassType(name, new_args)
        case ArrayType(component=component):
            new_component = map_variables(component, fn)
            return term if new_component == component else ArrayType(new_component)
        case WildcardType(kind=kind, bound=bound) if bound is not None:
            new_bound = map_variables(bound, fn)
            return term if new_bound == bound else nest_wildcard(kind, new_bound)
        case _:
            return term


def format_term(term: TypeTerm) -> str:
    """Render a term in Java-like notation.

    Args:
        term: The term to render.

    Returns:
        A human-readable string, e.g. ``Map<String, List<$3>>``.

    """
    match term:
        case ClassType(name=name, args=()):
            return name
        case ClassType(name=name, args=args):
            return f"{name}<{', '.join(format_term(a) for a in args)}>"
        case ArrayType(component=component):
            return f"{format_term(component)}[]"
        case WildcardType(kind=WildcardKind.UNBOUNDED):
            return "?"
        case WildcardType(kind=kind, bound=bound):
            return f"? {kind.value} {format_term(bound)}"
        case _:
            return str(term)

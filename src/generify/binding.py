"""Bindings and the operators that produce them.

A binding is a substitution from type variables to type terms. Bindings are
immutable; every operator returns a new one. Composition that would make a
variable mean two different things returns ``None`` instead of raising:
that is how the resolver learns a branch is inconsistent.

The factory owns the known variable set and the class table, and computes
the bindings that make a subtype relation hold:

- ``rise`` widens the left side up to the right side's class,
- ``sink`` does the same alignment but picks the narrowest admissible
  argument wherever a choice exists,
- ``rise_with_wildcard`` may bind to bounded wildcards and emit capture
  constraints,
- ``union`` and ``intersect`` reconcile two bounds of one variable.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from typing import TYPE_CHECKING

from generify.constraints import Subtype
from generify.errors import UnknownVariableError
from generify.terms import (
    BOTTOM,
    ArrayType,
    BottomType,
    ClassType,
    TypeTerm,
    TypeVariable,
    WildcardKind,
    WildcardType,
    format_term,
    map_variables,
    type_variables,
)

if TYPE_CHECKING:
    from generify.hierarchy import ClassTable


class Binding:
    """An immutable substitution from type variables to type terms.

    ``apply`` is a single simultaneous substitution. Bindings built by
    ``compose`` satisfy ``a.compose(b).apply(t) == b.apply(a.apply(t))``.
    """

    __slots__ = ("_hash", "_mapping")

    def __init__(self, mapping: Mapping[TypeVariable, TypeTerm] | None = None) -> None:
        self._mapping: dict[TypeVariable, TypeTerm] = dict(mapping) if mapping else {}
        self._hash: int | None = None

    @property
    def bound_variables(self) -> tuple[TypeVariable, ...]:
        """The domain of the binding, sorted by id."""
        return tuple(sorted(self._mapping))

    def binds(self, var: TypeVariable) -> bool:
        return var in self._mapping

    def get(self, var: TypeVariable) -> TypeTerm | None:
        return self._mapping.get(var)

    def items(self) -> Iterator[tuple[TypeVariable, TypeTerm]]:
        for var in self.bound_variables:
            yield var, self._mapping[var]

    def __getitem__(self, var: TypeVariable) -> TypeTerm:
        return self._mapping[var]

    def __contains__(self, var: object) -> bool:
        return var in self._mapping

    def __iter__(self) -> Iterator[TypeVariable]:
        return iter(self.bound_variables)

    def __len__(self) -> int:
        return len(self._mapping)

    def __bool__(self) -> bool:
        return bool(self._mapping)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Binding):
            return NotImplemented
        return self._mapping == other._mapping

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._mapping.items()))
        return self._hash

    def __repr__(self) -> str:
        items = ", ".join(f"{var} -> {format_term(term)}" for var, term in self.items())
        return f"Binding({{{items}}})"

    def apply(self, term: TypeTerm) -> TypeTerm:
        """Substitute every bound variable in ``term`` with its image.

        Args:
            term: The term to substitute into.

        Returns:
            The term with bound variables replaced; unbound variables and
            variable-free terms are returned unchanged.

        """
        if not self._mapping:
            return term
        return map_variables(term, lambda v: self._mapping.get(v, v))

    def compose(self, other: Binding) -> Binding | None:
        """Compose this binding with ``other`` (this one applied first).

        The domain of the result is the union of both domains. When both
        bindings bind the same variable, ``other`` applied to this binding's
        image must equal ``other``'s own image; otherwise the bindings
        disagree and the result is None. Entries that become ``v -> v`` are
        dropped.

        Args:
            other: The binding applied after this one.

        Returns:
            The composed binding, or None when the two disagree.

        """
        result: dict[TypeVariable, TypeTerm] = {}
        for var, term in self._mapping.items():
            image = other.apply(term)
            if var in other._mapping and other._mapping[var] != image:
                return None
            if image != var:
                result[var] = image
        for var, term in other._mapping.items():
            if var not in self._mapping and term != var:
                result[var] = term
        return Binding(result)

    def is_cyclic(self) -> bool:
        """Check if chasing images from some bound variable revisits a variable.

        Covers ``a -> b, b -> a`` as well as ``a -> List<a>``.
        """
        successors = {
            var: [v for v in type_variables(term) if v in self._mapping]
            for var, term in self._mapping.items()
        }
        done: set[TypeVariable] = set()
        for start in successors:
            if start in done:
                continue
            on_path = {start}
            stack = [(start, iter(successors[start]))]
            while stack:
                var, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    on_path.discard(var)
                    done.add(var)
                elif child in on_path:
                    return True
                elif child not in done:
                    on_path.add(child)
                    stack.append((child, iter(successors[child])))
        return False


EMPTY = Binding()


class _Policy(Enum):
    """How a variable is resolved when more than one choice is admissible."""

    RISE = "rise"
    SINK = "sink"
    WILDCARD = "wildcard"


class _Balancer:
    """Computes a binding making ``x <: y`` under one policy.

    ``balance`` handles covariant positions (the top of a constraint and
    array components); ``contain`` handles type arguments, which are
    invariant apart from wildcard containment.
    """

    def __init__(self, factory: BindingFactory, policy: _Policy) -> None:
        self._factory = factory
        self._table = factory.table
        self._policy = policy
        self.side: list[Subtype] = []

    def _bind(self, var: TypeVariable, term: TypeTerm) -> Binding:
        return self._factory.create(var, term)

    def _bind_variables(self, x: TypeVariable, y: TypeVariable) -> Binding:
        if self._policy is _Policy.SINK:
            return self._bind(x, y)
        return self._bind(y, x)

    def balance(self, x: TypeTerm, y: TypeTerm) -> Binding | None:  # noqa: PLR0911
        if x == y:
            return EMPTY
        match (x, y):
            case (BottomType(), _):
                return EMPTY
            case (TypeVariable(), TypeVariable()):
                return self._bind_variables(x, y)
            case (TypeVariable(), _):
                return self._bind(x, y)
            case (_, TypeVariable()):
                return self._bind(y, x)
            case (WildcardType(), _):
                return self.balance(self._table.upper_bound(x), y)
            case (_, WildcardType(kind=WildcardKind.UNBOUNDED)):
                return EMPTY
            case (_, WildcardType(bound=bound)):
                return self.balance(x, bound)
            case (ArrayType(component=a), ArrayType(component=b)):
                return self.balance(a, b)
            case (ArrayType(), ClassType()):
                return EMPTY if y == self._table.top else None
            case (ClassType(), ClassType(name=name)):
                view = self._table.as_super(x, name)
                if view is None:
                    return None
                if not view.args or not y.args:
                    return EMPTY
                return self.contain_all(view.args, y.args)
        return None

    def contain(self, x: TypeTerm, y: TypeTerm) -> Binding | None:  # noqa: PLR0911
        if x == y:
            return EMPTY
        match (x, y):
            case (TypeVariable(), TypeVariable()):
                return self._bind_variables(x, y)
            case (TypeVariable(), WildcardType()):
                return self._variable_in_wildcard(x, y)
            case (TypeVariable(), _):
                return self._bind(x, y)
            case (WildcardType() | BottomType(), TypeVariable()):
                return self._bind(y, x)
            case (_, TypeVariable()):
                if self._policy is _Policy.WILDCARD:
                    return self._bind(y, WildcardType.extends(x))
                return self._bind(y, x)
            case (_, WildcardType(kind=WildcardKind.UNBOUNDED)):
                return EMPTY
            case (WildcardType(kind=k1, bound=a), WildcardType(kind=k2, bound=b)):
                if k1 is not k2:
                    return None
                if k1 is WildcardKind.EXTENDS:
                    return self.balance(a, b)
                return self.balance(b, a)
            case (WildcardType(), _):
                return None
            case (_, WildcardType(kind=WildcardKind.EXTENDS, bound=b)):
                return self.balance(x, b)
            case (_, WildcardType(kind=WildcardKind.SUPER, bound=b)):
                return self.balance(b, x)
            case (ClassType(name=n1, args=a1), ClassType(name=n2, args=a2)) if n1 == n2:
                if not a1 or not a2:
                    return EMPTY
                return self.contain_all(a1, a2)
            case (ArrayType(component=a), ArrayType(component=b)):
                return self.contain(a, b)
        return None

    def contain_all(
        self,
        xs: tuple[TypeTerm, ...],
        ys: tuple[TypeTerm, ...],
    ) -> Binding | None:
        result = EMPTY
        for x, y in zip(xs, ys, strict=True):
            piece = self.contain(result.apply(x), result.apply(y))
            if piece is None:
                return None
            composed = result.compose(piece)
            if composed is None:
                return None
            result = composed
        return result

    def _variable_in_wildcard(self, var: TypeVariable, wildcard: WildcardType) -> Binding:
        kind, bound = wildcard.kind, wildcard.bound
        match self._policy:
            case _Policy.RISE:
                return self._bind(var, bound if kind is WildcardKind.EXTENDS else self._table.top)
            case _Policy.SINK:
                return self._bind(var, bound if kind is WildcardKind.SUPER else BOTTOM)
            case _Policy.WILDCARD:
                if kind is WildcardKind.EXTENDS:
                    self.side.append(Subtype(var, bound))
                elif kind is WildcardKind.SUPER:
                    self.side.append(Subtype(bound, var))
                return EMPTY


class _Alternatives:
    """Ordered, duplicate-free list of ``(type, binding)`` alternatives."""

    def __init__(self) -> None:
        self._items: dict[tuple[TypeTerm, Binding], None] = {}

    def add(self, term: TypeTerm, binding: Binding) -> None:
        self._items.setdefault((term, binding), None)

    def __bool__(self) -> bool:
        return bool(self._items)

    def to_list(self) -> list[tuple[TypeTerm, Binding]]:
        return list(self._items)


class BindingFactory:
    """Creates bindings over a fixed set of known type variables.

    One factory is shared by the whole resolution tree and is read-only
    after construction.
    """

    def __init__(self, variables: Iterable[TypeVariable], table: ClassTable) -> None:
        self._variables = tuple(sorted(set(variables)))
        self._known = frozenset(self._variables)
        self._table = table

    @property
    def variables(self) -> tuple[TypeVariable, ...]:
        """Every variable of the system, sorted by id."""
        return self._variables

    @property
    def table(self) -> ClassTable:
        return self._table

    def create(
        self,
        var: TypeVariable | None = None,
        term: TypeTerm | None = None,
    ) -> Binding:
        """Create the empty binding, or the singleton ``var -> term``.

        No occurs check is done; cyclic bindings are detected by
        ``Binding.is_cyclic`` and handled by the cycle collapser.

        Raises:
            UnknownVariableError: If ``var`` is not a known variable.

        """
        if var is None:
            return EMPTY
        if term is None:
            msg = f"No term given for {var}"
            raise ValueError(msg)
        if var not in self._known:
            msg = f"Variable {var} is not part of the constraint system"
            raise UnknownVariableError(msg)
        if term == var:
            return EMPTY
        return Binding({var: term})

    def rise(self, left: TypeTerm, right: TypeTerm) -> Binding | None:
        """Minimal generalization making ``left <: right``.

        ``left`` is widened through its supertypes to ``right``'s class, then
        type arguments are matched. A variable facing a bounded wildcard
        takes the widest admissible type.

        Returns:
            The binding, or None when the two sides cannot be aligned.

        """
        return _Balancer(self, _Policy.RISE).balance(left, right)

    def sink(self, left: TypeTerm, right: TypeTerm) -> Binding | None:
        """Maximal specialization making ``left <: right``.

        Same alignment as ``rise``; a variable facing a bounded wildcard
        takes the narrowest admissible type and a pair of variables binds
        the left one to the right one.
        """
        return _Balancer(self, _Policy.SINK).balance(left, right)

    def rise_with_wildcard(
        self,
        left: TypeTerm,
        right: TypeTerm,
    ) -> tuple[Binding, tuple[Subtype, ...]] | None:
        """Like ``rise``, but allowed to produce wildcards.

        A concrete type argument facing a variable binds the variable to
        ``? extends arg``. A variable facing a bounded wildcard is left
        unbound and a capture constraint against the bound is emitted.

        Returns:
            The binding and the capture constraints (with the binding
            applied), or None when the two sides cannot be aligned.

        """
        balancer = _Balancer(self, _Policy.WILDCARD)
        binding = balancer.balance(left, right)
        if binding is None:
            return None
        side = tuple(dict.fromkeys(c.apply(binding) for c in balancer.side))
        return binding, side

    def union(self, x: TypeTerm, y: TypeTerm) -> list[tuple[TypeTerm, Binding]]:
        """Reconcile two lower bounds ``x <: v`` and ``y <: v``.

        Args:
            x: First lower bound.
            y: Second lower bound.

        Returns:
            Alternatives ``(type, binding)``: each type is a common supertype
            of both bounds once the binding is applied. The top class is the
            last resort, so the list is never empty.

        """
        if x == y:
            return [(x, EMPTY)]
        if isinstance(x, BottomType):
            return [(y, EMPTY)]
        if isinstance(y, BottomType):
            return [(x, EMPTY)]

        alternatives = _Alternatives()
        if (b := self.rise(x, y)) is not None:
            alternatives.add(b.apply(y), b)
        if (b := self.rise(y, x)) is not None:
            alternatives.add(b.apply(x), b)
        if alternatives:
            return alternatives.to_list()

        ux, uy = self._table.upper_bound(x), self._table.upper_bound(y)
        if (ux, uy) != (x, y):
            return self.union(ux, uy)

        match (x, y):
            case (ArrayType(component=a), ArrayType(component=b)):
                for term, binding in self.union(a, b):
                    if not isinstance(term, WildcardType):
                        alternatives.add(ArrayType(term), binding)
            case (ClassType(), ClassType()):
                for name in self._common_ancestors(x, y):
                    view_x = self._table.as_super(x, name)
                    view_y = self._table.as_super(y, name)
                    if not view_x.args or not view_y.args:
                        alternatives.add(ClassType(name), EMPTY)
                        continue
                    binding = _Balancer(self, _Policy.RISE).contain_all(
                        view_x.args, view_y.args,
                    )
                    if binding is not None:
                        alternatives.add(binding.apply(view_x), binding)

        if not alternatives:
            alternatives.add(self._table.top, EMPTY)
        return alternatives.to_list()

    def intersect(self, x: TypeTerm, y: TypeTerm) -> list[tuple[TypeTerm, Binding]]:
        """Reconcile two upper bounds ``v <: x`` and ``v <: y``.

        Returns:
            Alternatives ``(type, binding)`` where the type is below both
            bounds once the binding is applied. Empty when the bounds are
            unrelated.

        """
        if x == y:
            return [(x, EMPTY)]
        if isinstance(x, BottomType) or isinstance(y, BottomType):
            return [(BOTTOM, EMPTY)]

        alternatives = _Alternatives()
        if (b := self.rise(x, y)) is not None:
            alternatives.add(b.apply(x), b)
        if (b := self.rise(y, x)) is not None:
            alternatives.add(b.apply(y), b)
        return alternatives.to_list()

    def _common_ancestors(self, x: ClassType, y: ClassType) -> list[str]:
        """Minimal classes that both ``x`` and ``y`` inherit, in ``x``'s order."""
        names_y = {a.name for a in self._table.ancestors(y)}
        common = [a.name for a in self._table.ancestors(x) if a.name in names_y]
        return [
            name
            for name in common
            if not any(
                other != name and self._table.is_subclass(other, name) for other in common
            )
        ]

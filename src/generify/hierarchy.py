"""Class hierarchy lookup for the resolver.

The class table is the context the constraint builder hands to the engine.
It knows each class's formal type parameters and direct supertypes, and
from that answers "what does ``t`` look like when viewed as class ``C``",
enumerates type ranges and decides the subtype relation used to validate
solutions.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from generify.errors import MalformedTypeError, UnknownClassError
from generify.terms import (
    ArrayType,
    BottomType,
    ClassType,
    TypeParameter,
    TypeTerm,
    TypeVariable,
    WildcardKind,
    WildcardType,
    format_term,
    nest_wildcard,
)


@dataclass(frozen=True)
class ClassDecl:
    """A declared class: its formal parameters and direct supertypes.

    Supertypes refer to the formal parameters through ``TypeParameter``.
    """

    name: str
    params: tuple[str, ...] = ()
    supers: tuple[ClassType, ...] = ()


def _substitute_params(term: TypeTerm, mapping: dict[str, TypeTerm]) -> TypeTerm:
    match term:
        case TypeParameter(name=name):
            return mapping.get(name, term)
        case ClassType(name=name, args=args) if args:
            return ClassType(name, tuple(_substitute_params(a, mapping) for a in args))
        case ArrayType(component=component):
            return ArrayType(_substitute_params(component, mapping))
        case WildcardType(kind=kind, bound=bound) if bound is not None:
            return nest_wildcard(kind, _substitute_params(bound, mapping))
        case _:
            return term


class ClassTable:
    """Registry of classes forming a single-rooted hierarchy.

    Example:
        table = ClassTable()
        table.declare("Collection", ("E",))
        table.declare(
            "List", ("E",), [ClassType("Collection", (TypeParameter("E"),))],
        )
        table.as_super(ClassType("List", (ClassType("Object"),)), "Collection")

    """

    def __init__(self, top: str = "Object") -> None:
        self._top_name = top
        self._decls: dict[str, ClassDecl] = {top: ClassDecl(top)}

    @property
    def top(self) -> ClassType:
        """The root class type every class and array is a subtype of."""
        return ClassType(self._top_name)

    def __contains__(self, name: object) -> bool:
        return name in self._decls

    def __iter__(self) -> Iterator[ClassDecl]:
        return iter(self._decls.values())

    def declaration(self, name: str) -> ClassDecl:
        """Return the declaration of ``name``.

        Raises:
            UnknownClassError: If ``name`` was never declared.

        """
        try:
            return self._decls[name]
        except KeyError:
            msg = f"Unknown class '{name}'"
            raise UnknownClassError(msg) from None

    def params(self, name: str) -> tuple[str, ...]:
        return self.declaration(name).params

    def declare(
        self,
        name: str,
        params: Sequence[str] = (),
        supers: Iterable[ClassType] = (),
    ) -> ClassDecl:
        """Declare a class.

        Args:
            name: Class name, unique within the table.
            params: Names of the formal type parameters.
            supers: Direct supertypes; arguments may use ``TypeParameter``.
                A class without supertypes extends the top class.

        Returns:
            The registered declaration.

        Raises:
            ValueError: If ``name`` is already declared.
            UnknownClassError: If a supertype names an undeclared class.
            MalformedTypeError: If a supertype has the wrong number of
                arguments or uses an undeclared parameter.

        """
        if name in self._decls:
            msg = f"Class '{name}' is already declared"
            raise ValueError(msg)
        super_types = tuple(supers) or (self.top,)
        for sup in super_types:
            self._check_arity(sup)
            self._check_params(sup, set(params), name)
        decl = ClassDecl(name, tuple(params), super_types)
        self._decls[name] = decl
        return decl

    def _check_arity(self, t: ClassType) -> None:
        expected = len(self.declaration(t.name).params)
        if t.args and len(t.args) != expected:
            msg = (
                f"{t.name} expects {expected} type argument(s), "
                f"got {len(t.args)} in {format_term(t)}"
            )
            raise MalformedTypeError(msg)

    def _check_params(self, term: TypeTerm, params: set[str], owner: str) -> None:
        match term:
            case TypeParameter(name=pname) if pname not in params:
                msg = f"Supertype of '{owner}' uses undeclared parameter '{pname}'"
                raise MalformedTypeError(msg)
            case ClassType(args=args):
                for arg in args:
                    self._check_params(arg, params, owner)
            case ArrayType(component=component):
                self._check_params(component, params, owner)
            case WildcardType(bound=bound) if bound is not None:
                self._check_params(bound, params, owner)

    # -- term construction ------------------------------------------------

    def class_type(self, name: str, *args: TypeTerm) -> ClassType:
        """Build a class type, checking that ``name`` exists and the arity fits."""
        t = ClassType(name, tuple(args))
        self._check_arity(t)
        return t

    def array_type(self, component: TypeTerm) -> ArrayType:
        return ArrayType(component)

    def wildcard_extends(self, bound: TypeTerm) -> WildcardType:
        return WildcardType.extends(bound)

    def wildcard_super(self, bound: TypeTerm) -> WildcardType:
        return WildcardType.super_(bound)

    def wildcard(self) -> WildcardType:
        return WildcardType.unbounded()

    # -- hierarchy queries ------------------------------------------------

    def direct_supertypes(self, t: ClassType) -> tuple[ClassType, ...]:
        """Direct supertypes of ``t`` with formal parameters instantiated.

        A raw ``t`` has raw (erased) supertypes.
        """
        decl = self.declaration(t.name)
        if not decl.params:
            return decl.supers
        if not t.args:
            return tuple(ClassType(s.name) for s in decl.supers)
        mapping = dict(zip(decl.params, t.args, strict=True))
        return tuple(_substitute_params(s, mapping) for s in decl.supers)

    def ancestors(self, t: ClassType) -> list[ClassType]:
        """Return ``t`` and all its ancestors, breadth first, one per class."""
        seen: dict[str, ClassType] = {t.name: t}
        queue = deque([t])
        while queue:
            current = queue.popleft()
            for sup in self.direct_supertypes(current):
                if sup.name not in seen:
                    seen[sup.name] = sup
                    queue.append(sup)
        return list(seen.values())

    def as_super(self, t: ClassType, name: str) -> ClassType | None:
        """View ``t`` as an instance of class ``name``.

        Returns:
            The instantiation of ``name`` that ``t`` inherits, or None when
            ``name`` is not an ancestor of ``t``.

        """
        for ancestor in self.ancestors(t):
            if ancestor.name == name:
                return ancestor
        return None

    def is_subclass(self, sub: str, sup: str) -> bool:
        """Check class-level inheritance (reflexive)."""
        if sub == sup or sup == self._top_name:
            return True
        return any(a.name == sup for a in self.ancestors(ClassType(sub)))

    def type_range(self, sub: TypeTerm, sup: TypeTerm) -> list[TypeTerm]:
        """Enumerate the types between ``sub`` and ``sup``.

        Every type on an inheritance path from ``sub`` up to ``sup`` is
        included, both ends too, ordered from ``sub`` upward.

        Args:
            sub: The lower end of the range.
            sup: The upper end of the range.

        Returns:
            The ordered, duplicate-free list of candidate types.

        """
        found: dict[TypeTerm, None] = {sub: None}
        self._fill_range(sub, sup, found, set())
        found.setdefault(sup, None)
        return list(found)

    def _fill_range(
        self,
        sub: TypeTerm,
        sup: TypeTerm,
        found: dict[TypeTerm, None],
        visited: set[str],
    ) -> None:
        match (sub, sup):
            case (ClassType(name=low), ClassType(name=high)) if low != high:
                for parent in self.direct_supertypes(sub):
                    if parent.name in visited:
                        continue
                    if self.is_subclass(parent.name, high):
                        visited.add(parent.name)
                        found.setdefault(parent, None)
                        self._fill_range(parent, sup, found, visited)
            case (ArrayType(component=low), ArrayType(component=high)):
                inner: dict[TypeTerm, None] = {}
                self._fill_range(low, high, inner, set())
                for t in inner:
                    found.setdefault(ArrayType(t), None)

    # -- subtype checking -------------------------------------------------

    def is_subtype(self, sub: TypeTerm, sup: TypeTerm) -> bool:  # noqa: PLR0911
        """Decide ``sub <: sup`` for fully or partially resolved terms.

        Variables are only subtypes of themselves. A wildcard on the left is
        read through its upper bound; a bounded wildcard on the right admits
        subtypes of its bound.
        """
        if sub == sup:
            return True
        match (sub, sup):
            case (BottomType(), _):
                return True
            case (_, BottomType()) | (TypeVariable(), _) | (_, TypeVariable()):
                return False
            case (WildcardType(), _):
                return self.is_subtype(self.upper_bound(sub), sup)
            case (_, WildcardType(kind=WildcardKind.UNBOUNDED)):
                return True
            case (_, WildcardType(bound=bound)):
                return self.is_subtype(sub, bound)
            case (ArrayType(component=a), ArrayType(component=b)):
                return self.is_subtype(a, b)
            case (ArrayType(), ClassType(name=name, args=())):
                return name == self._top_name
            case (ClassType(), ClassType()):
                view = self.as_super(sub, sup.name)
                if view is None:
                    return False
                if not view.args or not sup.args:
                    return True
                return all(
                    self.contains(a, b) for a, b in zip(view.args, sup.args, strict=True)
                )
        return False

    def contains(self, arg: TypeTerm, target: TypeTerm) -> bool:  # noqa: PLR0911
        """Check that type argument ``arg`` is contained in ``target``.

        Type arguments are invariant except for wildcard containment.
        """
        if arg == target:
            return True
        match (arg, target):
            case (_, WildcardType(kind=WildcardKind.UNBOUNDED)):
                return True
            case (WildcardType(kind=k1, bound=a), WildcardType(kind=k2, bound=b)) if k1 is k2:
                if k1 is WildcardKind.EXTENDS:
                    return self.is_subtype(a, b)
                return self.is_subtype(b, a)
            case (WildcardType(), _):
                return False
            case (_, WildcardType(kind=WildcardKind.EXTENDS, bound=b)):
                return self.is_subtype(arg, b)
            case (_, WildcardType(kind=WildcardKind.SUPER, bound=b)):
                return self.is_subtype(b, arg)
            case (ClassType(name=n1, args=a1), ClassType(name=n2, args=a2)) if n1 == n2:
                if not a1 or not a2:
                    return True
                return all(self.contains(x, y) for x, y in zip(a1, a2, strict=True))
            case (ArrayType(component=a), ArrayType(component=b)):
                return self.contains(a, b)
        return False

    def upper_bound(self, t: TypeTerm) -> TypeTerm:
        """The upper bound of a wildcard, or ``t`` itself for other terms."""
        match t:
            case WildcardType(kind=WildcardKind.EXTENDS, bound=bound):
                return bound
            case WildcardType():
                return self.top
        return t

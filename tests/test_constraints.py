"""Tests for constraints, constraint systems and the degree map."""

import pytest

from generify import (
    Binding,
    ClassTable,
    ClassType,
    ConstraintSystem,
    DegreeMap,
    Subtype,
    TypeVariable,
    UnknownVariableError,
)
from generify.constraints import unique

STRING = ClassType("String")


class TestSubtype:
    """Constraint values."""

    def test_structural_equality(self) -> None:
        v = TypeVariable(0)
        assert Subtype(STRING, v) == Subtype(ClassType("String"), TypeVariable(0))
        assert Subtype(STRING, v) != Subtype(v, STRING)

    def test_apply_substitutes_both_sides(self) -> None:
        v, w = TypeVariable(0), TypeVariable(1)
        c = Subtype(v, ClassType("List", (w,)))
        result = c.apply(Binding({v: STRING, w: STRING}))
        assert result == Subtype(STRING, ClassType("List", (STRING,)))

    def test_apply_without_effect_returns_same_constraint(self) -> None:
        c = Subtype(STRING, TypeVariable(0))
        assert c.apply(Binding({TypeVariable(5): STRING})) is c

    def test_variables(self) -> None:
        v, w = TypeVariable(0), TypeVariable(1)
        assert Subtype(ClassType("Map", (w, v)), v).variables() == (w, v)

    def test_str(self) -> None:
        assert str(Subtype(STRING, TypeVariable(2))) == "String <: $2"

    def test_unique_keeps_first_position(self) -> None:
        a, b = Subtype(STRING, TypeVariable(0)), Subtype(TypeVariable(0), STRING)
        assert unique([a, b, a]) == (a, b)


class TestConstraintSystem:
    """The resolver's input record."""

    def test_duplicates_removed(self, table: ClassTable) -> None:
        c = Subtype(STRING, TypeVariable(0))
        system = ConstraintSystem((c, c), table)
        assert system.constraints == (c,)

    def test_known_variables_default_to_mentioned(self, table: ClassTable) -> None:
        system = ConstraintSystem(
            (Subtype(TypeVariable(3), TypeVariable(1)), Subtype(STRING, TypeVariable(3))),
            table,
        )
        assert system.known_variables() == (TypeVariable(1), TypeVariable(3))

    def test_explicit_variables(self, table: ClassTable) -> None:
        system = ConstraintSystem((), table, variables=(TypeVariable(2), TypeVariable(0)))
        assert system.known_variables() == (TypeVariable(0), TypeVariable(2))

    def test_validate_rejects_unknown_variable(self, table: ClassTable) -> None:
        system = ConstraintSystem(
            (Subtype(STRING, TypeVariable(7)),),
            table,
            variables=(TypeVariable(0),),
        )
        with pytest.raises(UnknownVariableError, match=r"unknown variable \$7"):
            system.validate()


class TestDegreeMap:
    """Counting constraints that bound a variable on the right."""

    def test_counts_right_sides_once_per_constraint(self) -> None:
        v, w = TypeVariable(0), TypeVariable(1)
        degree = DegreeMap.from_constraints(
            [
                Subtype(STRING, v),
                Subtype(w, ClassType("Map", (v, v))),
                Subtype(v, STRING),
            ],
        )
        assert degree.degree(v) == 2
        assert degree.degree(w) is None

    def test_is_bound_elsewhere(self) -> None:
        v, w, x = TypeVariable(0), TypeVariable(1), TypeVariable(2)
        degree = DegreeMap.from_constraints([Subtype(STRING, v), Subtype(STRING, w), Subtype(x, w)])
        assert not degree.is_bound_elsewhere(v)
        assert degree.is_bound_elsewhere(w)
        assert degree.is_bound_elsewhere(x)

"""Shared fixtures: a small Java-like class hierarchy."""

import pytest

from generify import ClassTable, ClassType, TypeParameter


def build_table() -> ClassTable:
    table = ClassTable()
    table.declare("Animal")
    table.declare("Mammal", (), [ClassType("Animal")])
    table.declare("Dog", (), [ClassType("Mammal")])
    table.declare("Cat", (), [ClassType("Mammal")])

    table.declare("Comparable", ("T",))
    table.declare("CharSequence")
    table.declare(
        "String",
        (),
        [ClassType("CharSequence"), ClassType("Comparable", (ClassType("String"),))],
    )
    table.declare("Number")
    table.declare(
        "Integer",
        (),
        [ClassType("Number"), ClassType("Comparable", (ClassType("Integer"),))],
    )
    table.declare("Double", (), [ClassType("Number")])

    e = TypeParameter("E")
    table.declare("Iterable", ("E",))
    table.declare("Collection", ("E",), [ClassType("Iterable", (e,))])
    table.declare("List", ("E",), [ClassType("Collection", (e,))])
    table.declare("ArrayList", ("E",), [ClassType("List", (e,))])
    table.declare("LinkedList", ("E",), [ClassType("List", (e,))])

    k, v = TypeParameter("K"), TypeParameter("V")
    table.declare("Map", ("K", "V"))
    table.declare("HashMap", ("K", "V"), [ClassType("Map", (k, v))])
    return table


@pytest.fixture
def table() -> ClassTable:
    return build_table()

"""Tests for the resolution tree."""

import logging

import pytest

from generify import (
    BOTTOM,
    EMPTY,
    Binding,
    ClassTable,
    ClassType,
    ConstraintSystem,
    RecordingObserver,
    ResolutionNode,
    ResolverTree,
    Settings,
    SolutionRegistry,
    Subtype,
    TypeVariable,
    UnknownVariableError,
    VariableSide,
    WildcardType,
    resolve,
)

V, W, X = TypeVariable(0), TypeVariable(1), TypeVariable(2)
OBJECT = ClassType("Object")
STRING = ClassType("String")
INTEGER = ClassType("Integer")
NUMBER = ClassType("Number")
DOG = ClassType("Dog")
CAT = ClassType("Cat")
MAMMAL = ClassType("Mammal")
ANIMAL = ClassType("Animal")


def generic(name: str, *args: object) -> ClassType:
    return ClassType(name, tuple(args))


def make_tree(
    table: ClassTable,
    *constraints: Subtype,
    observer: RecordingObserver | None = None,
    **settings: bool,
) -> ResolverTree:
    system = ConstraintSystem(constraints, table, Settings(**settings))
    return ResolverTree(system, observer=observer)


def assert_sound(tree: ResolverTree, table: ClassTable, constraints: tuple[Subtype, ...]) -> None:
    for solution in tree.registry.solutions:
        for c in constraints:
            left, right = solution.apply(c.left), solution.apply(c.right)
            assert table.is_subtype(left, right), f"{solution!r} violates {c}"


class TestScenarios:
    """End-to-end resolution of small systems."""

    def test_mutual_subtypes_collapse(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(V, W), Subtype(W, V))
        assert tree.root.constraints == ()
        assert tree.resolve() == Binding({W: V})
        assert len(tree.registry) == 1

    def test_interval_enumerates_type_range(self, table: ClassTable) -> None:
        constraints = (Subtype(DOG, V), Subtype(V, ANIMAL))
        tree = make_tree(table, *constraints)
        best = tree.resolve()
        assert [s[V] for s in tree.registry.solutions] == [DOG, MAMMAL, ANIMAL]
        assert best == Binding({V: DOG})
        assert_sound(tree, table, constraints)

    def test_inverted_interval_is_a_dead_end(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(ANIMAL, V), Subtype(V, DOG))
        assert tree.resolve() is None
        assert tree.stats.dead_ends == 1
        assert tree.stats.solutions == 0

    def test_lone_lower_bound_branches_up_to_top(self, table: ClassTable) -> None:
        constraints = (Subtype(STRING, V),)
        tree = make_tree(table, *constraints)
        assert tree.resolve() == Binding({V: STRING})
        found = {s[V] for s in tree.registry.solutions}
        assert found == {STRING, ClassType("CharSequence"), generic("Comparable", STRING), OBJECT}
        assert_sound(tree, table, constraints)

    def test_cooking_wraps_lone_lower_bound_in_super_wildcard(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V), cook_wildcards=True)
        assert tree.resolve() == Binding({V: WildcardType.super_(STRING)})

    def test_cooking_keeps_raw_type_for_lower_bound_of_variable(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V), Subtype(V, W), cook_wildcards=True)
        best = tree.resolve()
        assert best is not None
        assert best[V] == STRING
        assert best[W] == WildcardType.super_(STRING)

    def test_unrelated_upper_bounds_have_no_solution(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(V, DOG), Subtype(V, STRING))
        assert tree.resolve() is None
        assert len(tree.registry) == 0
        assert tree.stats.dead_ends == 1

    def test_upper_bounds_intersect(self, table: ClassTable) -> None:
        constraints = (Subtype(V, DOG), Subtype(V, ANIMAL))
        tree = make_tree(table, *constraints)
        assert tree.resolve() == Binding({V: DOG})
        assert_sound(tree, table, constraints)

    def test_lower_bounds_union(self, table: ClassTable) -> None:
        constraints = (Subtype(DOG, V), Subtype(CAT, V))
        tree = make_tree(table, *constraints)
        assert tree.resolve() == Binding({V: MAMMAL})
        assert [s[V] for s in tree.registry.solutions] == [MAMMAL, ANIMAL, OBJECT]
        assert_sound(tree, table, constraints)

    def test_type_argument_inference(self, table: ClassTable) -> None:
        constraints = (Subtype(generic("ArrayList", STRING), generic("List", V)),)
        tree = make_tree(table, *constraints)
        assert tree.resolve() == Binding({V: STRING})
        assert len(tree.registry) == 1
        assert_sound(tree, table, constraints)

    def test_cooking_adds_wildcard_alternative(self, table: ClassTable) -> None:
        tree = make_tree(
            table,
            Subtype(generic("ArrayList", STRING), generic("List", V)),
            cook_wildcards=True,
        )
        assert tree.resolve() == Binding({V: STRING})
        assert tree.registry.solutions == (
            Binding({V: STRING}),
            Binding({V: WildcardType.extends(STRING)}),
        )

    def test_upper_bound_cooked_to_extends_wildcard(self, table: ClassTable) -> None:
        assert make_tree(table, Subtype(V, NUMBER)).resolve() == Binding({V: NUMBER})
        cooked = make_tree(table, Subtype(V, NUMBER), cook_wildcards=True).resolve()
        assert cooked == Binding({V: WildcardType.extends(NUMBER)})

    def test_wildcard_binding_substituted_into_extends_wildcard(self, table: ClassTable) -> None:
        constraints = (
            Subtype(generic("List", WildcardType.extends(OBJECT)), generic("List", V)),
            Subtype(generic("List", WildcardType.extends(V)), OBJECT),
        )
        tree = make_tree(table, *constraints)
        assert tree.resolve() == Binding({V: WildcardType.extends(OBJECT)})
        assert_sound(tree, table, constraints)

    def test_cooked_wildcard_substituted_into_super_wildcard(self, table: ClassTable) -> None:
        constraints = (
            Subtype(generic("ArrayList", STRING), generic("List", V)),
            Subtype(generic("List", WildcardType.super_(V)), OBJECT),
        )
        tree = make_tree(table, *constraints, cook_wildcards=True)
        assert tree.resolve() == Binding({V: STRING})
        assert tree.registry.solutions == (
            Binding({V: STRING}),
            Binding({V: WildcardType.extends(STRING)}),
        )
        assert_sound(tree, table, constraints)

    def test_free_variables_are_floored(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(V, W))
        assert tree.resolve() == Binding({V: BOTTOM, W: BOTTOM})

    def test_nested_variables_floored_first(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(V, generic("List", W)))
        assert tree.resolve() == Binding({V: generic("List", BOTTOM), W: BOTTOM})

    def test_stop_after_first(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, ANIMAL))
        assert tree.resolve(stop_after_first=True) == Binding({V: DOG})
        assert len(tree.registry) == 1

    def test_convenience_function(self, table: ClassTable) -> None:
        system = ConstraintSystem((Subtype(V, W), Subtype(W, V)), table)
        assert resolve(system) == Binding({W: V})


class TestReduce:
    """Single reduction steps."""

    def test_empty_node_has_no_children(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V))
        assert tree.reduce(ResolutionNode((), Binding({V: DOG}))) == []

    def test_interval_children_in_range_order(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, ANIMAL))
        children = tree.reduce(tree.root)
        assert children == [
            ResolutionNode((), Binding({V: DOG})),
            ResolutionNode((), Binding({V: MAMMAL})),
            ResolutionNode((), Binding({V: ANIMAL})),
        ]

    def test_equal_interval_ends_bind_directly(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, DOG), Subtype(V, W))
        children = tree.reduce(tree.root)
        assert children == [ResolutionNode((Subtype(DOG, W),), Binding({V: DOG}))]

    def test_union_replaces_both_lower_bounds(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, W), Subtype(CAT, V))
        children = tree.reduce(tree.root)
        assert children == [ResolutionNode((Subtype(V, W), Subtype(MAMMAL, V)))]

    def test_occurs_violation_binds_bottom(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(generic("List", V), V))
        children = tree.reduce(tree.root)
        assert children == [ResolutionNode((), Binding({V: BOTTOM}))]

    def test_wildcard_branch_carries_capture_constraint(self, table: ClassTable) -> None:
        tree = make_tree(
            table,
            Subtype(generic("Map", V, STRING), generic("Map", WildcardType.extends(NUMBER), W)),
            cook_wildcards=True,
        )
        children = tree.reduce(tree.root)
        assert children[0] == ResolutionNode((), Binding({V: NUMBER, W: STRING}))
        assert children[-1] == ResolutionNode(
            (Subtype(V, NUMBER),),
            Binding({W: WildcardType.extends(STRING)}),
        )

    def test_floor_binds_through_factory(
        self,
        table: ClassTable,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        tree = make_tree(table, Subtype(V, W))
        created = []
        create = tree.factory.create

        def recording_create(var: TypeVariable | None = None, term: object = None) -> Binding:
            created.append((var, term))
            return create(var, term)

        monkeypatch.setattr(tree.factory, "create", recording_create)
        children = tree.reduce(tree.root)
        assert children == [
            ResolutionNode((Subtype(BOTTOM, BOTTOM),), Binding({V: BOTTOM, W: BOTTOM})),
        ]
        assert created == [(V, BOTTOM), (W, BOTTOM)]

    def test_cyclic_binding_without_variable_cycle_is_a_dead_end(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V))
        node = ResolutionNode((Subtype(STRING, V),), Binding({W: generic("List", W)}))
        assert tree.reduce(node) == []
        assert not ResolutionNode((), Binding({W: generic("List", W)})).is_solved

    def test_inconsistent_composition_drops_child(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(generic("Map", V, V), generic("Map", STRING, W)))
        node = ResolutionNode((Subtype(DOG, V), Subtype(V, DOG)), Binding({V: STRING}))
        assert tree.reduce(node) == []
        assert tree.stats.inconsistent == 1


class TestPruning:
    """The sink branch heuristic."""

    CONSTRAINTS = (
        Subtype(generic("List", V), generic("List", WildcardType.extends(NUMBER))),
        Subtype(INTEGER, V),
    )

    def test_sink_pruned_when_rise_is_not_bound_elsewhere(self, table: ClassTable) -> None:
        observer = RecordingObserver()
        tree = make_tree(table, *self.CONSTRAINTS, observer=observer)
        assert tree.resolve() == Binding({V: NUMBER})
        assert tree.stats.pruned == 1
        assert [b for _, b in observer.pruned] == [Binding({V: BOTTOM})]

    def test_exhaustive_explores_sink(self, table: ClassTable) -> None:
        observer = RecordingObserver()
        tree = make_tree(table, *self.CONSTRAINTS, observer=observer, exhaustive=True)
        assert tree.resolve() == Binding({V: NUMBER})
        assert tree.stats.pruned == 0
        assert observer.pruned == []
        assert len(observer.dead_ends) == 1

    def test_can_be_pruned(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V), Subtype(STRING, W), Subtype(DOG, W))
        assert tree.can_be_pruned(EMPTY)
        assert tree.can_be_pruned(Binding({V: STRING}))
        assert tree.can_be_pruned(Binding({X: V}))
        assert not tree.can_be_pruned(Binding({W: STRING}))
        assert not tree.can_be_pruned(Binding({V: STRING, X: STRING}))

    def test_exhaustive_never_prunes(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V), exhaustive=True)
        assert not tree.can_be_pruned(EMPTY)


class TestTree:
    """Tree construction and observation."""

    def test_unknown_variable_rejected(self, table: ClassTable) -> None:
        system = ConstraintSystem((Subtype(STRING, X),), table, variables=(V,))
        with pytest.raises(UnknownVariableError):
            ResolverTree(system)

    def test_shared_registry(self, table: ClassTable) -> None:
        registry = SolutionRegistry()
        system = ConstraintSystem((Subtype(V, DOG),), table)
        ResolverTree(system, registry=registry).resolve()
        assert registry.solutions == (Binding({V: DOG}),)

    def test_observer_sees_every_solution(self, table: ClassTable) -> None:
        observer = RecordingObserver()
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, ANIMAL), observer=observer)
        tree.resolve()
        assert [node.binding for node in observer.solutions] == list(tree.registry.solutions)
        assert tree.stats.visited == 4

    def test_degree_map_built_from_root_system(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(STRING, V), Subtype(DOG, V))
        assert tree.degree.degree(V) == 2

    def test_resolve_logs_summary(self, table: ClassTable, caplog: pytest.LogCaptureFixture) -> None:
        tree = make_tree(table, Subtype(DOG, V), Subtype(V, ANIMAL))
        with caplog.at_level(logging.DEBUG, logger="generify.resolver"):
            tree.resolve()
        assert "3 solutions, 0 dead ends" in caplog.text


class TestVariableSide:
    """The tagged merge strategy."""

    def test_left_side(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(V, DOG))
        side = VariableSide.LEFT
        assert side.make(V, DOG) == Subtype(V, DOG)
        assert side.bound(Subtype(V, DOG)) == DOG
        assert side.variable(Subtype(V, DOG)) == V
        assert side.unify(tree.factory, DOG, ANIMAL) == [(DOG, EMPTY)]

    def test_right_side(self, table: ClassTable) -> None:
        tree = make_tree(table, Subtype(DOG, V))
        side = VariableSide.RIGHT
        assert side.make(V, DOG) == Subtype(DOG, V)
        assert side.bound(Subtype(DOG, V)) == DOG
        assert side.variable(Subtype(DOG, V)) == V
        assert side.unify(tree.factory, DOG, ANIMAL) == [(ANIMAL, EMPTY)]

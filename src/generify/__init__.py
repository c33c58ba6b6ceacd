"""generify - subtype constraint resolution for raw-type generification."""

from generify.binding import (
    EMPTY,
    Binding,
    BindingFactory,
)
from generify.constraints import (
    ConstraintSystem,
    Subtype,
)
from generify.cycles import (
    Collapse,
    VariableGraph,
    collapse_cycles,
    strongly_connected_components,
)
from generify.degree import DegreeMap
from generify.errors import (
    GenerifyError,
    MalformedTypeError,
    SettingsError,
    UnknownClassError,
    UnknownVariableError,
)
from generify.hierarchy import (
    ClassDecl,
    ClassTable,
)
from generify.observers import (
    LoggingObserver,
    RecordingObserver,
    SearchObserver,
)
from generify.resolver import (
    ResolutionNode,
    ResolverTree,
    SearchStats,
    VariableSide,
    resolve,
)
from generify.serialization import (
    from_json,
    load_system,
    system_from_dict,
    system_to_dict,
    to_json,
)
from generify.settings import (
    Settings,
    load_settings,
)
from generify.solutions import (
    SolutionRegistry,
    rank_solution,
)
from generify.terms import (
    BOTTOM,
    ArrayType,
    BottomType,
    ClassType,
    TypeParameter,
    TypeTerm,
    TypeVariable,
    WildcardKind,
    WildcardType,
    format_term,
)

__all__ = [
    # Terms
    "BOTTOM",
    # Bindings
    "EMPTY",
    "ArrayType",
    "Binding",
    "BindingFactory",
    "BottomType",
    # Hierarchy
    "ClassDecl",
    "ClassTable",
    "ClassType",
    # Cycles
    "Collapse",
    # Constraints
    "ConstraintSystem",
    "DegreeMap",
    # Errors
    "GenerifyError",
    # Observers
    "LoggingObserver",
    "MalformedTypeError",
    "RecordingObserver",
    # Search
    "ResolutionNode",
    "ResolverTree",
    "SearchObserver",
    "SearchStats",
    # Settings
    "Settings",
    "SettingsError",
    # Solutions
    "SolutionRegistry",
    "Subtype",
    "TypeParameter",
    "TypeTerm",
    "TypeVariable",
    "UnknownClassError",
    "UnknownVariableError",
    "VariableGraph",
    "VariableSide",
    "WildcardKind",
    "WildcardType",
    "collapse_cycles",
    "format_term",
    # Serialization
    "from_json",
    "load_settings",
    "load_system",
    "rank_solution",
    "resolve",
    "strongly_connected_components",
    "system_from_dict",
    "system_to_dict",
    "to_json",
]

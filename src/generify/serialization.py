"""Tag-based dictionary, JSON and YAML codecs for constraint systems.

Terms are plain dictionaries with a ``tag`` field::

    {"tag": "class", "name": "List", "args": [{"tag": "var", "id": 0}]}
    {"tag": "array", "component": {...}}
    {"tag": "wildcard", "kind": "extends", "bound": {...}}
    {"tag": "bottom"}
    {"tag": "var", "id": 3}
    {"tag": "param", "name": "E"}

A system document lists the class declarations, the constraints and the
settings::

    top: Object
    classes:
      - {name: List, params: [E], supers: [...]}
    constraints:
      - {left: {...}, right: {...}}
    settings: {exhaustive: false, cook_wildcards: true}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from generify.binding import Binding
from generify.constraints import ConstraintSystem, Subtype
from generify.hierarchy import ClassTable
from generify.settings import Settings
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
)

_TAGS = ("class", "array", "wildcard", "bottom", "var", "param")


def term_to_dict(term: TypeTerm) -> dict[str, Any]:  # noqa: PLR0911
    """Serialize a term to a tagged dictionary.

    Raises:
        ValueError: If ``term`` is not a type term.

    """
    match term:
        case ClassType(name=name, args=args):
            data: dict[str, Any] = {"tag": "class", "name": name}
            if args:
                data["args"] = [term_to_dict(a) for a in args]
            return data
        case ArrayType(component=component):
            return {"tag": "array", "component": term_to_dict(component)}
        case WildcardType(kind=WildcardKind.UNBOUNDED):
            return {"tag": "wildcard", "kind": WildcardKind.UNBOUNDED.value}
        case WildcardType(kind=kind, bound=bound):
            return {"tag": "wildcard", "kind": kind.value, "bound": term_to_dict(bound)}
        case BottomType():
            return {"tag": "bottom"}
        case TypeVariable(id=var_id):
            return {"tag": "var", "id": var_id}
        case TypeParameter(name=name):
            return {"tag": "param", "name": name}
    msg = f"Cannot serialize object of type {type(term).__name__}"
    raise ValueError(msg)


def term_from_dict(data: dict[str, Any]) -> TypeTerm:  # noqa: PLR0911
    """Deserialize a term from a tagged dictionary.

    Raises:
        KeyError: If the ``tag`` field or a required field is missing.
        ValueError: If the tag is not recognized.

    """
    if "tag" not in data:
        msg = "Missing required 'tag' field in data"
        raise KeyError(msg)

    match data["tag"]:
        case "class":
            return ClassType(data["name"], tuple(term_from_dict(a) for a in data.get("args", ())))
        case "array":
            return ArrayType(term_from_dict(data["component"]))
        case "wildcard":
            kind = WildcardKind(data["kind"])
            if kind is WildcardKind.UNBOUNDED:
                return WildcardType.unbounded()
            return WildcardType(kind, term_from_dict(data["bound"]))
        case "bottom":
            return BOTTOM
        case "var":
            return TypeVariable(int(data["id"]))
        case "param":
            return TypeParameter(data["name"])
        case tag:
            msg = f"Unknown tag '{tag}'. Available tags: {list(_TAGS)}"
            raise ValueError(msg)


def constraint_to_dict(constraint: Subtype) -> dict[str, Any]:
    return {"left": term_to_dict(constraint.left), "right": term_to_dict(constraint.right)}


def constraint_from_dict(data: dict[str, Any]) -> Subtype:
    return Subtype(term_from_dict(data["left"]), term_from_dict(data["right"]))


def binding_to_dict(binding: Binding) -> dict[str, Any]:
    """Serialize a binding as ``{"<var id>": term}``, ordered by id."""
    return {str(var.id): term_to_dict(term) for var, term in binding.items()}


def binding_from_dict(data: dict[str, Any]) -> Binding:
    return Binding({TypeVariable(int(key)): term_from_dict(value) for key, value in data.items()})


def table_to_dict(table: ClassTable) -> dict[str, Any]:
    classes = []
    for decl in table:
        if decl.name == table.top.name:
            continue
        entry: dict[str, Any] = {"name": decl.name}
        if decl.params:
            entry["params"] = list(decl.params)
        supers = [s for s in decl.supers if s != table.top]
        if supers:
            entry["supers"] = [term_to_dict(s) for s in supers]
        classes.append(entry)
    return {"top": table.top.name, "classes": classes}


def table_from_dict(data: dict[str, Any]) -> ClassTable:
    """Build a class table; classes must be listed after their supertypes."""
    table = ClassTable(data.get("top", "Object"))
    for entry in data.get("classes", ()):
        supers = [term_from_dict(s) for s in entry.get("supers", ())]
        for sup in supers:
            if not isinstance(sup, ClassType):
                msg = f"Supertype of '{entry['name']}' must be a class type"
                raise ValueError(msg)
        table.declare(entry["name"], tuple(entry.get("params", ())), supers)
    return table


def system_to_dict(system: ConstraintSystem) -> dict[str, Any]:
    data = table_to_dict(system.table)
    data["constraints"] = [constraint_to_dict(c) for c in system.constraints]
    data["settings"] = system.settings.to_mapping()
    if system.variables is not None:
        data["variables"] = [v.id for v in sorted(set(system.variables))]
    return data


def system_from_dict(data: dict[str, Any]) -> ConstraintSystem:
    """Deserialize a constraint system.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If a tag is not recognized.
        SettingsError: If the settings are invalid.

    """
    table = table_from_dict(data)
    constraints = tuple(constraint_from_dict(c) for c in data.get("constraints", ()))
    settings = Settings.from_mapping(data.get("settings") or {})
    variables = data.get("variables")
    return ConstraintSystem(
        constraints,
        table,
        settings,
        None if variables is None else tuple(TypeVariable(int(v)) for v in variables),
    )


def to_json(system: ConstraintSystem, *, indent: int | None = 2) -> str:
    return json.dumps(system_to_dict(system), indent=indent)


def from_json(s: str) -> ConstraintSystem:
    """Deserialize a constraint system from a JSON string.

    Raises:
        ValueError: If the document is not a JSON object.

    """
    data = json.loads(s)
    if not isinstance(data, dict):
        msg = "Expected a JSON object describing a constraint system"
        raise ValueError(msg)
    return system_from_dict(data)


def load_system(path: str | Path) -> ConstraintSystem:
    """Load a constraint system from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: On an unsupported suffix or a document that is not a mapping.

    """
    system_path = Path(path)
    text = system_path.read_text(encoding="utf-8")
    match system_path.suffix.lower():
        case ".json":
            return from_json(text)
        case ".yaml" | ".yml":
            data = yaml.safe_load(text)
        case suffix:
            msg = f"Unsupported file type '{suffix}' for {system_path}"
            raise ValueError(msg)
    if not isinstance(data, dict):
        msg = f"Expected a mapping describing a constraint system in {system_path}"
        raise ValueError(msg)
    return system_from_dict(data)

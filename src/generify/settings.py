"""Resolver settings and their YAML loader."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from generify.errors import SettingsError

__all__ = ["Settings", "load_settings"]

_ALIASES = {
    "exhaustive": "exhaustive",
    "cook_wildcards": "cook_wildcards",
    "cookWildcards": "cook_wildcards",
}


@dataclass(frozen=True)
class Settings:
    """Options recognised by the resolver.

    Attributes:
        exhaustive: Disable the pruning heuristic and explore every branch.
        cook_wildcards: Enable reduction branches that bind variables to
            bounded wildcards.

    """

    exhaustive: bool = False
    cook_wildcards: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """Build settings from a plain mapping.

        Both ``cook_wildcards`` and ``cookWildcards`` are accepted.

        Raises:
            SettingsError: On unknown keys or non-boolean values.

        """
        values: dict[str, bool] = {}
        for key, value in data.items():
            field_name = _ALIASES.get(key)
            if field_name is None:
                known = ", ".join(sorted(_ALIASES))
                msg = f"Unknown setting '{key}'. Known settings: {known}"
                raise SettingsError(msg)
            if not isinstance(value, bool):
                msg = f"Setting '{key}' must be a boolean, got {value!r}"
                raise SettingsError(msg)
            values[field_name] = value
        return cls(**values)

    def to_mapping(self) -> dict[str, bool]:
        return {"exhaustive": self.exhaustive, "cook_wildcards": self.cook_wildcards}


def load_settings(path: str | Path) -> Settings:
    """Load settings from the YAML document at ``path``.

    An empty document yields the defaults.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        SettingsError: If the document cannot be parsed or is not a mapping.

    """
    config_path = Path(path)
    if not config_path.exists():
        msg = f"settings file not found: {config_path}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        msg = f"failed to parse settings: {exc}"
        raise SettingsError(msg) from exc
    if data is None:
        return Settings()
    if not isinstance(data, Mapping):
        msg = "settings root must be a mapping"
        raise SettingsError(msg)
    return Settings.from_mapping(data)

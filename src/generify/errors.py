"""Error types for the generification engine.

Only caller bugs and bad input raise. An inconsistent branch during the
search is not an error: composition returns ``None`` and the branch is
dropped, and a system without solutions resolves to ``None``.
"""

from __future__ import annotations


class GenerifyError(Exception):
    """Base class for every error raised by this package."""


class UnknownVariableError(GenerifyError, KeyError):
    """A type variable is not part of the system's known variable set."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnknownClassError(GenerifyError, KeyError):
    """A class name was not declared in the class table."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class MalformedTypeError(GenerifyError, ValueError):
    """A type term is structurally invalid (bad arity, nested wildcard, ...)."""


class SettingsError(GenerifyError, ValueError):
    """Settings data could not be interpreted."""

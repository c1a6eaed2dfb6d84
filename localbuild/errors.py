"""Exceptions raised by the build engine."""
from __future__ import annotations


class BuildError(RuntimeError):
    """Base class for build failures."""


class ConfigurationError(BuildError):
    """The application or build configuration cannot be built as-is."""


class DependencyMissingError(BuildError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, hint: str | None = None):
        message = f"{tool} is not installed"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)
        self.tool = tool


__all__ = ["BuildError", "ConfigurationError", "DependencyMissingError"]

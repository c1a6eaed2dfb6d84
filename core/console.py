"""Console output with verbosity filtering."""
from __future__ import annotations

from enum import IntEnum
import sys


class Verbosity(IntEnum):
    """Output levels, ordered from least to most chatty."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    VERY_VERBOSE = 3
    DEBUG = 4

    @classmethod
    def parse(cls, value: "str | int | Verbosity") -> "Verbosity":
        if isinstance(value, Verbosity):
            return value
        if isinstance(value, int):
            return cls(value)
        normalized = str(value).strip().upper().replace("-", "_")
        try:
            return cls[normalized]
        except KeyError:
            raise ValueError(f"Unknown verbosity '{value}'") from None


class Console:
    """Simple console output handler with a configurable verbosity.

    Errors and warnings are written to stderr and shown unless the console
    is quiet (errors are always shown). Everything else goes to stdout.
    """

    def __init__(self, verbosity: Verbosity | str | int = Verbosity.NORMAL):
        self.verbosity = Verbosity.parse(verbosity)

    def error(self, message: str) -> None:
        print(f"[ERROR] {message}", file=sys.stderr)

    def warning(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            print(f"[WARN] {message}", file=sys.stderr)

    def info(self, message: str) -> None:
        if self.verbosity >= Verbosity.NORMAL:
            print(message)

    def verbose(self, message: str) -> None:
        if self.verbosity >= Verbosity.VERBOSE:
            print(message)

    def debug(self, message: str) -> None:
        if self.verbosity >= Verbosity.DEBUG:
            print(f"[DEBUG] {message}")


class RecordingConsole(Console):
    """Console that keeps messages in memory instead of printing them."""

    def __init__(self, verbosity: Verbosity | str | int = Verbosity.DEBUG):
        super().__init__(verbosity)
        self.messages: list[tuple[str, str]] = []

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def verbose(self, message: str) -> None:
        if self.verbosity >= Verbosity.VERBOSE:
            self.messages.append(("verbose", message))

    def debug(self, message: str) -> None:
        if self.verbosity >= Verbosity.DEBUG:
            self.messages.append(("debug", message))

    def lines(self, level: str | None = None) -> list[str]:
        return [text for kind, text in self.messages if level is None or kind == level]


__all__ = ["Console", "RecordingConsole", "Verbosity"]

"""Drush, driven purely as an external command."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence
import re

from core.command_runner import CommandResult, CommandRunner
from core.console import Console

from .errors import DependencyMissingError

_VERSION_PATTERN = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


class Drush:
    """Thin wrapper for invoking ``drush`` through a command runner."""

    def __init__(self, runner: CommandRunner, console: Console, executable: str = "drush") -> None:
        self._runner = runner
        self._console = console
        self.executable = executable
        self._version: str | None = None
        self._version_checked = False

    def get_version(self) -> str | None:
        """Return the installed version string, or None if drush is unavailable."""

        if not self._version_checked:
            output = self._runner.execute([self.executable, "version", "--format=string"])
            self._version = output.splitlines()[-1].strip() if output else None
            self._version_checked = True
        return self._version

    def major_version(self) -> int | None:
        version = self.get_version()
        if not version:
            return None
        match = _VERSION_PATTERN.search(version)
        return int(match.group(1)) if match else None

    def ensure_installed(self) -> None:
        if self.get_version() is None:
            raise DependencyMissingError(
                "Drush",
                "See https://github.com/drush-ops/drush for installation instructions",
            )

    def supports_make_lock(self) -> bool:
        major = self.major_version()
        return major is not None and major >= 7

    def execute(self, args: Sequence[str], *, cwd: Path | None = None, stream: bool = True) -> CommandResult:
        """Run ``drush <args>``; a non-zero exit raises ``CommandError``."""

        command = [self.executable, *args]
        self._console.verbose(f"Running: {self._runner.format_command(command)}")
        return self._runner.run(command, cwd=cwd, check=True, stream=stream)


__all__ = ["Drush"]

"""Utilities for executing child processes, with a recording variant for tests."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import shutil
import subprocess

from .console import Console


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {' '.join(map(shlex.quote, result.command))}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError

    def command_exists(self, name: str) -> bool:
        raise NotImplementedError

    def execute(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        must_succeed: bool = False,
    ) -> str | None:
        """Run *command* and return its stripped stdout.

        Returns ``None`` when the command fails and *must_succeed* is false;
        raises :class:`CommandError` otherwise.
        """

        if not must_succeed and not self.command_exists(command[0]):
            return None
        result = self.run(command, cwd=cwd, check=must_succeed)
        if not result.ok:
            return None
        return result.stdout.strip()

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Runs commands with :mod:`subprocess`.

    Output is captured unless *stream* is set, in which case the child
    writes straight to the invoking terminal and the result carries no
    output. *note* labels the command in debug output.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        if self._console is not None:
            label = f" ({note})" if note else ""
            self._console.debug(f"exec{label}: {self.format_command(command)}")

        process = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **env} if env else None,
            capture_output=not stream,
            text=True,
            check=False,
        )
        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            streamed=stream,
        )
        if check and not result.ok:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``available`` limits which executables :meth:`command_exists` reports
    (``None`` means every executable exists). ``outputs`` maps a command
    prefix to the stdout it should produce, and ``failures`` lists command
    prefixes that exit with status 1.
    """

    def __init__(
        self,
        *,
        available: Iterable[str] | None = None,
        outputs: Mapping[tuple[str, ...], str] | None = None,
        failures: Iterable[tuple[str, ...]] = (),
    ) -> None:
        self.commands: List[RecordedCommand] = []
        self.available = set(available) if available is not None else None
        self.outputs: Dict[tuple[str, ...], str] = dict(outputs or {})
        self.failures = [tuple(prefix) for prefix in failures]

    @staticmethod
    def _record_entry(
        *,
        command: Sequence[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> RecordedCommand:
        return RecordedCommand(
            command=list(command),
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
            note=note,
            stream=stream,
        )

    @staticmethod
    def _matches(command: Sequence[str], prefix: Sequence[str]) -> bool:
        return tuple(command[: len(prefix)]) == tuple(prefix)

    def command_exists(self, name: str) -> bool:
        return self.available is None or name in self.available

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        self.commands.append(
            self._record_entry(command=command, cwd=cwd, env=env, note=note, stream=stream)
        )
        returncode = 1 if any(self._matches(command, prefix) for prefix in self.failures) else 0
        stdout = ""
        for prefix, text in self.outputs.items():
            if self._matches(command, prefix):
                stdout = text
                break
        result = CommandResult(command=command, returncode=returncode, stdout=stdout, stderr="", streamed=stream)
        if check and returncode != 0:
            raise CommandError(result)
        return result

    def command_lists(self) -> List[List[str]]:
        return [record.command for record in self.commands]


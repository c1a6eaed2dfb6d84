"""Shared services used by the local build engine."""

from .archive import ArchiveConsole, ArchiveManager, archive_suffix, resolve_archive_format
from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)
from .config_loader import (
    ConfigLoader,
    FILE_LOADERS,
    get_nested,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)
from .console import Console, RecordingConsole, Verbosity
from .git import GitRepository, IndexEntry
from .lock import BuildLock, LockError

__all__ = [
    "ArchiveConsole",
    "ArchiveManager",
    "archive_suffix",
    "resolve_archive_format",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "ConfigLoader",
    "FILE_LOADERS",
    "get_nested",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
    "Console",
    "RecordingConsole",
    "Verbosity",
    "GitRepository",
    "IndexEntry",
    "BuildLock",
    "LockError",
]

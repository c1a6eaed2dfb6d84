"""Read-only Git inspection backed by pygit2."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pygit2


@dataclass(frozen=True)
class IndexEntry:
    """A tracked file: its repository-relative path and blob id."""

    path: str
    oid: str


class GitRepository:
    """
    Thin wrapper around a pygit2 repository.

    Only READ operations are provided; the build never writes to the
    repository apart from its local exclude file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).resolve()
        self._repo: Optional[pygit2.Repository] = None

    @classmethod
    def discover(cls, path: Path | str) -> Optional["GitRepository"]:
        """Return the repository containing *path*, or ``None``."""

        found = pygit2.discover_repository(str(path))
        if not found:
            return None
        repository = cls(path)
        try:
            repository._repo = pygit2.Repository(found)
        except pygit2.GitError:
            return None
        if repository._repo.is_bare:
            return None
        return repository

    def open(self) -> None:
        """Opens the repository. Raises exception if not found."""
        try:
            self._repo = pygit2.Repository(str(self.path))
        except pygit2.GitError as e:
            raise RuntimeError(f"Failed to open repository at {self.path}: {e}")

    @property
    def repo(self) -> pygit2.Repository:
        if self._repo is None:
            self.open()
        return self._repo  # type: ignore

    @property
    def root_dir(self) -> Path:
        """Returns the working directory root path."""
        workdir = self.repo.workdir
        return Path(workdir).resolve() if workdir else self.path

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.path)

    def relpath(self, path: Union[str, Path]) -> Path:
        """Returns path relative to the repository root."""
        try:
            p = Path(path).resolve()
            return p.relative_to(self.root_dir)
        except ValueError:
            return Path(path)

    def _prefix(self, subdir: Path | str | None) -> str:
        if subdir is None:
            return ""
        relative = self.relpath(subdir).as_posix()
        return "" if relative in ("", ".") else relative.rstrip("/") + "/"

    def is_ignored(self, path: Union[str, Path]) -> bool:
        """Whether Git's ignore rules exclude *path*."""

        relative = self.relpath(path).as_posix()
        if Path(path).is_dir() and not relative.endswith("/"):
            relative += "/"
        return bool(self.repo.path_is_ignored(relative))

    def get_head_branch(self) -> Optional[str]:
        """Returns the current branch name, or None if detached HEAD."""
        try:
            if self.repo.head_is_detached:
                return None
            return self.repo.head.shorthand
        except pygit2.GitError:
            # Unborn HEAD: read the symbolic reference directly.
            try:
                target = self.repo.lookup_reference("HEAD").target
            except (KeyError, pygit2.GitError):
                return None
            if isinstance(target, str) and target.startswith("refs/heads/"):
                return target[len("refs/heads/"):]
            return None

    def tracked_entries(self, subdir: Path | str | None = None) -> List[IndexEntry]:
        """List index entries below *subdir* (relative to that directory)."""

        prefix = self._prefix(subdir)
        entries: List[IndexEntry] = []
        for entry in self.repo.index:
            if prefix and not entry.path.startswith(prefix):
                continue
            entries.append(IndexEntry(path=entry.path[len(prefix):], oid=str(entry.id)))
        return sorted(entries, key=lambda item: item.path)

    def changed_paths(self, subdir: Path | str | None = None) -> List[str]:
        """List modified and untracked (but not ignored) files below *subdir*."""

        prefix = self._prefix(subdir)
        paths: List[str] = []
        for path, flags in self.repo.status().items():
            if flags & pygit2.GIT_STATUS_IGNORED:
                continue
            if flags == pygit2.GIT_STATUS_CURRENT:
                continue
            if prefix and not path.startswith(prefix):
                continue
            paths.append(path[len(prefix):])
        return sorted(paths)

    def write_exclude(self, patterns: Iterable[str]) -> bool:
        """Append *patterns* missing from ``.git/info/exclude``.

        Returns True when the file changed.
        """

        exclude = self.git_dir / "info" / "exclude"
        existing = exclude.read_text(encoding="utf-8").splitlines() if exclude.exists() else []
        missing = [pattern for pattern in patterns if pattern not in existing]
        if not missing:
            return False
        exclude.parent.mkdir(parents=True, exist_ok=True)
        lines = existing + ["", "# Local build layout"] + missing
        exclude.write_text("\n".join(lines).lstrip("\n") + "\n", encoding="utf-8")
        return True


__all__ = ["GitRepository", "IndexEntry"]

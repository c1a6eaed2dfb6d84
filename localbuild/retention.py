"""Retention of old build directories and cached build archives."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Set, Tuple
import json
import os
import time

from core.archive import strip_archive_suffix
from core.console import Console

from .filesystem import Filesystem
from .settings import LocalConfig

ARCHIVE_INDEX = "index.json"


class ArchiveIndex:
    """``index.json`` in the archive directory: build name -> tree id."""

    def __init__(self, archive_dir: Path) -> None:
        self.path = archive_dir / ARCHIVE_INDEX

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"Archive index '{self.path}' must contain a JSON object")
        return {str(name): str(tree_id) for name, tree_id in data.items()}

    def save(self, entries: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.path.with_name(f".{self.path.name}.partial")
        with partial.open("w", encoding="utf-8") as handle:
            json.dump(dict(sorted(entries.items())), handle, indent=2)
            handle.write("\n")
        os.replace(partial, self.path)

    def record(self, build_name: str, tree_id: str) -> None:
        entries = self.load()
        entries[build_name] = tree_id
        self.save(entries)


class BuildRetention:
    """Deletes old builds and the archives nothing refers to any more."""

    def __init__(self, config: LocalConfig, console: Console, fs: Filesystem) -> None:
        self._config = config
        self._console = console
        self._fs = fs

    def builds_dir(self, project_root: Path) -> Path:
        return Path(project_root) / self._config.builds_dir

    def archive_dir(self, project_root: Path) -> Path:
        return Path(project_root) / self._config.archive_dir

    def list_builds(self, project_root: Path) -> List[Path]:
        """Build directories, newest first."""

        builds_dir = self.builds_dir(project_root)
        if not builds_dir.is_dir():
            return []
        builds = [entry for entry in builds_dir.iterdir() if not entry.name.startswith(".")]
        return sorted(builds, key=lambda entry: (entry.lstat().st_mtime, entry.name), reverse=True)

    def active_builds(self, project_root: Path) -> Set[Path]:
        """Builds the web root link (or the links inside a web root dir) point at."""

        project_root = Path(project_root)
        web_root = project_root / self._config.web_root
        links: List[Path] = []
        if web_root.is_symlink():
            links.append(web_root)
        elif web_root.is_dir():
            links.extend(entry for entry in web_root.iterdir() if entry.is_symlink())

        builds_dir = self.builds_dir(project_root)
        builds_real = Path(os.path.realpath(builds_dir))
        active: Set[Path] = set()
        for link in links:
            target = Path(os.path.realpath(link))
            try:
                relative = target.relative_to(builds_real)
            except ValueError:
                continue
            if relative.parts:
                active.add(builds_dir / relative.parts[0])
        return active

    def clean_builds(
        self,
        project_root: Path,
        max_age: int | None = None,
        keep_count: int = 5,
        include_active: bool = False,
        *,
        now: float | None = None,
    ) -> Tuple[int, int]:
        """Delete old builds; return ``(deleted, kept)``.

        The newest *keep_count* builds are always kept. Beyond those, a build
        is deleted when it is older than *max_age* seconds, or unconditionally
        when *max_age* is None. Active builds are kept and not counted towards
        *keep_count*, unless *include_active* is set.
        """

        protected = set() if include_active else self.active_builds(project_root)
        current = time.time() if now is None else now
        deleted = kept = ranked = 0

        for build in self.list_builds(project_root):
            if build in protected:
                self._console.debug(f"Keeping active build {build.name}")
                kept += 1
                continue
            ranked += 1
            age = current - build.lstat().st_mtime
            if ranked <= keep_count or (max_age is not None and age <= max_age):
                kept += 1
                continue
            self._console.info(f"Deleting build: {build.name}")
            self._fs.remove(build)
            deleted += 1

        return deleted, kept

    def clean_archives(self, project_root: Path) -> int:
        """Delete archives that no remaining build was made from or extracted from."""

        archive_dir = self.archive_dir(project_root)
        if not archive_dir.is_dir():
            return 0

        index = ArchiveIndex(archive_dir)
        entries = index.load()
        existing = {build.name for build in self.list_builds(project_root)}
        retained = {name: tree_id for name, tree_id in entries.items() if name in existing}
        referenced = set(retained.values())

        deleted = 0
        for entry in sorted(archive_dir.iterdir()):
            if entry.name == ARCHIVE_INDEX:
                continue
            tree_id = strip_archive_suffix(entry.name)
            if tree_id is None and not entry.name.endswith(".partial"):
                continue
            if tree_id is not None and tree_id in referenced:
                continue
            self._console.info(f"Deleting archive: {entry.name}")
            self._fs.remove(entry)
            deleted += 1

        if retained != entries:
            index.save(retained)
        return deleted


__all__ = ["ARCHIVE_INDEX", "ArchiveIndex", "BuildRetention"]

"""File placement: copying and symlinking application files into a build."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence
import fnmatch
import os
import shutil

from core.console import Console

ALWAYS_SKIP: tuple[str, ...] = (".git", ".DS_Store")


def matches_any(name: str, relative_path: str, patterns: Iterable[str]) -> bool:
    """Check *name* / *relative_path* against glob *patterns*, ignoring case.

    A pattern starting with ``/`` is anchored: it matches the path relative
    to the root of the placement, or any of its parent directories. Other
    patterns match either the entry name or its relative path.
    """

    lowered_name = name.lower()
    lowered_path = relative_path.lower()
    parts = lowered_path.split("/")
    prefixes = ["/".join(parts[:index]) for index in range(1, len(parts) + 1)]
    for pattern in patterns:
        candidate = pattern.lower()
        if candidate.startswith("/"):
            if any(fnmatch.fnmatchcase(prefix, candidate[1:]) for prefix in prefixes):
                return True
            continue
        if fnmatch.fnmatchcase(lowered_name, candidate) or fnmatch.fnmatchcase(lowered_path, candidate):
            return True
    return False


class Filesystem:
    """Copy, symlink and delete paths, announcing substitutions on the console."""

    def __init__(self, console: Console, *, relative_links: bool = True) -> None:
        self._console = console
        self.relative_links = relative_links

    def mkdir(self, path: Path, mode: int = 0o755) -> None:
        path.mkdir(mode=mode, parents=True, exist_ok=True)

    def remove(self, path: Path) -> None:
        """Delete a file, symlink or directory tree. Symlinks are never followed."""

        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)

    def make_path_relative(self, target: Path, reference_dir: Path) -> str:
        """Express *target* relative to *reference_dir*, both made absolute."""

        real_target = os.path.join(os.path.realpath(target.parent), target.name)
        return os.path.relpath(real_target, os.path.realpath(reference_dir))

    def link_value(self, target: Path, link: Path) -> str:
        """The text stored in *link* so that it points at *target*."""

        if self.relative_links:
            return self.make_path_relative(target, link.parent)
        return os.path.join(os.path.realpath(target.parent), target.name)

    def symlink(self, target: Path, link: Path) -> None:
        if not os.path.lexists(target):
            raise FileNotFoundError(f"Target not found: {target}")
        link.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(self.link_value(target, link), link, target_is_directory=target.is_dir())

    def replace_symlink(self, target: Path, link: Path) -> None:
        """Point *link* at *target* atomically, replacing any existing link."""

        link.parent.mkdir(parents=True, exist_ok=True)
        temp = link.with_name(f".{link.name}.{os.getpid()}.tmp")
        if os.path.lexists(temp):
            temp.unlink()
        os.symlink(self.link_value(target, link), temp, target_is_directory=True)
        os.replace(temp, link)

    def copy(self, source: Path, destination: Path, *, root: Path | None = None) -> None:
        """Copy a file (or a whole directory) to *destination*.

        A symlink is copied as a symlink. Its relative target is kept only
        while it stays inside *root*; otherwise the link is re-created with
        an absolute target so it still resolves from the new location.
        """

        if source.is_dir() and not source.is_symlink():
            self.copy_all(source, destination, _root=root)
            return
        destination.parent.mkdir(parents=True, exist_ok=True)
        if source.is_symlink():
            os.symlink(self._copied_link_target(source, root), destination)
        else:
            shutil.copy2(source, destination)

    @staticmethod
    def _copied_link_target(link: Path, root: Path | None) -> str:
        text = os.readlink(link)
        if os.path.isabs(text):
            return text
        target = os.path.abspath(os.path.join(link.parent, text))
        if root is not None:
            root_text = os.path.abspath(root)
            if os.path.commonpath([root_text, target]) == root_text:
                return text
        return target

    def copy_all(
        self,
        source: Path,
        destination: Path,
        skip: Sequence[str] = (),
        *,
        _root: Path | None = None,
    ) -> None:
        """Recursively copy *source* into *destination*, honouring *skip* patterns.

        An existing destination file is left alone.
        """

        source = Path(source)
        destination = Path(destination)
        if not source.is_dir() or source.is_symlink():
            if not os.path.lexists(destination):
                self.copy(source, destination, root=_root)
            return

        root = _root or source
        patterns = [*ALWAYS_SKIP, *skip]
        destination.mkdir(parents=True, exist_ok=True)

        # Never recurse into the destination when it lives inside the source.
        nested = None
        try:
            nested = destination.resolve().relative_to(source.resolve()).parts[0]
        except (ValueError, IndexError):
            pass

        for entry in sorted(source.iterdir()):
            relative = entry.relative_to(root).as_posix()
            if entry.name == nested or matches_any(entry.name, relative, patterns):
                continue
            self.copy_all(entry, destination / entry.name, skip, _root=root)

    @staticmethod
    def _holds_ignored(directory: Path, root: Path, patterns: Sequence[str]) -> bool:
        """Whether anything below *directory* matches *patterns*."""

        for dirpath, dirnames, filenames in os.walk(directory):
            current = Path(dirpath)
            for name in (*dirnames, *filenames):
                if matches_any(name, (current / name).relative_to(root).as_posix(), patterns):
                    return True
        return False

    def symlink_all(
        self,
        source: Path,
        destination: Path,
        *,
        skip_existing: bool = True,
        recursive: bool = False,
        ignore: Sequence[str] = (),
        copy: bool = False,
        prune: bool = False,
        _root: Path | None = None,
    ) -> None:
        """Symlink (or copy) every entry of *source* into *destination*.

        Existing destinations are skipped when *skip_existing* is set,
        otherwise they are replaced with a warning. With *recursive*, a
        directory that already exists at the destination is descended into
        rather than replaced, so previously built content survives. A file
        never replaces a directory: it is placed inside it instead.

        With *prune*, a directory holding ignored entries anywhere below it
        is re-created and filled entry by entry instead of being linked
        whole, so ignored files never show through a directory link.
        """

        source = Path(source).resolve()
        if not source.is_dir():
            raise NotADirectoryError(f"Not a directory: {source}")
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        real_destination = os.path.realpath(destination)
        root = _root or source
        patterns = [*ALWAYS_SKIP, *ignore]
        options = dict(skip_existing=skip_existing, recursive=recursive, ignore=ignore, copy=copy, prune=prune)

        for entry in sorted(source.iterdir()):
            relative = entry.relative_to(root).as_posix()
            if matches_any(entry.name, relative, patterns):
                continue
            link = destination / entry.name
            if os.path.join(real_destination, entry.name) == str(entry):
                continue

            entry_is_dir = entry.is_dir() and not entry.is_symlink()
            link_is_dir = link.is_dir() and not link.is_symlink()
            if recursive and entry_is_dir and link_is_dir:
                self.symlink_all(entry, link, _root=root, **options)
                continue

            if os.path.lexists(link):
                if link.is_symlink() and not link.exists():
                    self._console.info(f"Removing broken link '{link}'")
                    self.remove(link)
                elif skip_existing:
                    continue
                else:
                    if link_is_dir and not entry_is_dir:
                        link = link / entry.name
                    if os.path.lexists(link):
                        self._console.warning(f"Overriding existing path '{link}' in destination")
                        self.remove(link)

            if prune and not copy and entry_is_dir and self._holds_ignored(entry, root, patterns):
                self.symlink_all(entry, link, _root=root, **options)
                continue
            self._place(entry, link, copy=copy, skip=ignore, root=root)

    def _place(
        self,
        source: Path,
        destination: Path,
        *,
        copy: bool,
        skip: Sequence[str] = (),
        root: Path | None = None,
    ) -> None:
        if copy:
            self.copy_all(source, destination, skip, _root=root)
        else:
            self.symlink(source, destination)

    def place_special_destinations(
        self,
        *,
        app_root: Path,
        destinations: Sequence[tuple[str, str]],
        web_root: Path,
        app_dir: Path,
        ignored: Sequence[str],
        copy: bool,
        in_place: bool,
    ) -> None:
        """Relocate app files matching special patterns.

        *destinations* pairs a glob (relative to *app_root*) with a template
        where ``{webroot}`` and ``{approot}`` are substituted. A file bound for
        the bare web root is left alone when the app was placed in place,
        since it is already there.
        """

        for pattern, template in destinations:
            matched = sorted(app_root.glob(pattern))
            if not matched:
                continue
            if template == "{webroot}" and in_place:
                continue

            target = Path(template.replace("{webroot}", str(web_root)).replace("{approot}", str(app_dir)))
            for source in matched:
                relative = source.relative_to(app_root).as_posix()
                if matches_any(source.name, relative, ignored):
                    continue
                destination = target
                if not source.is_dir() and destination.is_dir():
                    destination = destination / source.name
                if os.path.abspath(destination) == os.path.abspath(source):
                    continue

                action = "Copying" if copy else "Symlinking"
                self._console.info(f"{action} {relative} to {template}")
                if os.path.lexists(destination):
                    try:
                        shown = destination.relative_to(app_dir).as_posix()
                    except ValueError:
                        shown = str(destination)
                    self._console.warning(f"Overriding existing path '{shown}' in destination")
                    self.remove(destination)
                if copy:
                    self.copy(source, destination, root=app_root)
                else:
                    self.symlink(source, destination)


__all__ = ["ALWAYS_SKIP", "Filesystem", "matches_any"]

"""Build archive creation and extraction."""
from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable
import gzip
import os
import shutil
import tarfile
import tempfile

import zstandard as zstd

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
]

_FORMAT_ALIASES: dict[str, str] = {
    "zst": "zst",
    "tar.zst": "zst",
    "tzst": "zst",
    "gztar": "gztar",
    "gz": "gztar",
    "tar.gz": "gztar",
    "tgz": "gztar",
}

_FORMAT_SUFFIXES: dict[str, str] = {
    "zst": ".tar.zst",
    "gztar": ".tar.gz",
}


@runtime_checkable
class ArchiveConsole(Protocol):
    """Minimal console interface required by :class:`ArchiveManager`."""

    def info(self, message: str) -> None:
        ...

    def verbose(self, message: str) -> None:
        ...


def resolve_archive_format(name: str) -> str:
    normalized = name.strip().lower()
    if normalized in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[normalized]
    raise ValueError(f"Unsupported archive format '{name}'")


def archive_suffix(archive_format: str) -> str:
    """Return the filename suffix used for *archive_format*."""

    return _FORMAT_SUFFIXES[resolve_archive_format(archive_format)]


def strip_archive_suffix(filename: str) -> str | None:
    """Return *filename* without its archive suffix, or ``None`` if it has none."""

    lowered = filename.lower()
    for suffix, _ in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
        if lowered.endswith(suffix):
            return filename[: -len(suffix)]
    return None


class ArchiveManager:
    """Create and extract compressed tar archives of build directories.

    Symlinks are stored as symlinks, so a build made of links back into a
    mutable source tree must never be archived.
    """

    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    @staticmethod
    def _zstd_thread_count(source_size: int) -> int:
        cpu_count = os.cpu_count() or 1
        if cpu_count <= 1:
            return 1

        size_mb = max(1, source_size) / (1024 * 1024)
        desired = 1
        if size_mb >= 32:
            desired = 2
        if size_mb >= 256:
            desired = 4
        if size_mb >= 1024:
            desired = 8

        return max(1, min(desired, cpu_count))

    @classmethod
    def _zstd_compression_params(cls, source_size: int) -> zstd.ZstdCompressionParameters:
        size = max(1, source_size)
        window_log = max(10, min(27, (size - 1).bit_length()))
        threads = cls._zstd_thread_count(size)
        return zstd.ZstdCompressionParameters(
            compression_level=10,
            threads=threads,
            write_checksum=True,
            write_content_size=True,
            window_log=window_log,
        )

    def _resolve_format(self, *, target: Path, format_hint: str | None) -> str:
        if format_hint:
            return resolve_archive_format(format_hint)

        filename = target.name.lower()
        for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
            if filename.endswith(suffix):
                return fmt

        raise ValueError(
            "Unable to determine archive format from target path. "
            "Provide an explicit format_hint or use a supported suffix."
        )

    def create_archive(
        self,
        *,
        source_dir: Path | str,
        target_path: Path | str,
        format_hint: str | None = None,
    ) -> Path:
        """Archive the contents of *source_dir* into *target_path*.

        The archive is written to a temporary file next to the target and
        renamed into place, so readers never see a partial archive.
        """

        target = Path(target_path).expanduser()
        source = Path(source_dir).expanduser()
        if not source.is_dir():
            raise FileNotFoundError(f"Archive source directory '{source}' does not exist")

        archive_format = self._resolve_format(target=target, format_hint=format_hint)
        target.parent.mkdir(parents=True, exist_ok=True)

        temp_tar = self._create_pax_tar(root_dir=source, temp_dir=target.parent)
        partial = target.with_name(f".{target.name}.partial")
        try:
            if archive_format == "zst":
                params = self._zstd_compression_params(temp_tar.stat().st_size)
                compressor = zstd.ZstdCompressor(compression_params=params)
                with temp_tar.open("rb") as src, partial.open("wb") as dst:
                    compressor.copy_stream(src, dst)
            else:
                with temp_tar.open("rb") as src, gzip.GzipFile(partial, "wb", compresslevel=6, mtime=0) as dst:
                    shutil.copyfileobj(src, dst)
            os.replace(partial, target)
        finally:
            temp_tar.unlink(missing_ok=True)
            partial.unlink(missing_ok=True)

        self._console.verbose(f"Archived {source} to {target}")
        return target

    @staticmethod
    def _create_pax_tar(*, root_dir: Path, temp_dir: Path) -> Path:
        with tempfile.NamedTemporaryFile(dir=temp_dir, suffix=".tar", delete=False) as temp_handle:
            temp_path = Path(temp_handle.name)

        try:
            with tarfile.open(temp_path, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for item in sorted(root_dir.iterdir()):
                    tar.add(item, arcname=item.name)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

        return temp_path

    def extract_archive(
        self,
        *,
        archive_path: Path | str,
        destination_dir: Path | str,
        format_hint: str | None = None,
    ) -> None:
        """Extract an archive into *destination_dir*, creating it if needed."""

        archive = Path(archive_path).expanduser()
        dest = Path(destination_dir).expanduser()

        if not archive.exists():
            raise FileNotFoundError(f"Archive '{archive}' does not exist")

        dest.mkdir(parents=True, exist_ok=True)
        archive_format = self._resolve_format(target=archive, format_hint=format_hint)

        if archive_format == "zst":
            dctx = zstd.ZstdDecompressor()
            with archive.open("rb") as ifh, dctx.stream_reader(ifh) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    tar.extractall(path=dest, filter="tar")
        else:
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(path=dest, filter="tar")

        self._console.verbose(f"Extracted {archive} to {dest}")


__all__ = [
    "ArchiveConsole",
    "ArchiveManager",
    "archive_suffix",
    "resolve_archive_format",
    "strip_archive_suffix",
]

"""Build settings and local project layout configuration."""
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping
import re

from core.archive import resolve_archive_format
from core.config_loader import load_config_file, merge_mappings
from core.console import Verbosity

from .errors import ConfigurationError

RESOURCES_DIR = Path(__file__).resolve().parent / "resources"

_SLUG_PATTERN = re.compile(r"[^a-z0-9\-_]+", re.IGNORECASE)


def slugify(value: str) -> str:
    """Reduce *value* to characters safe for a directory name."""

    return _SLUG_PATTERN.sub("-", value).strip("-")


@dataclass(frozen=True, slots=True)
class LocalConfig:
    """Where the local build layout lives, relative to a project root."""

    builds_dir: str = "builds"
    web_root: str = "www"
    shared_dir: str = "shared"
    archive_dir: str = ".build-archives"
    app_config_file: str = ".platform.app.yaml"
    lock_file: str = ".build.lock"
    resources_dir: Path = RESOURCES_DIR
    keep_builds: int = 5
    max_build_age: int | None = None
    archive_format: str = "zst"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LocalConfig":
        section = data.get("local", data) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise ConfigurationError("[local] configuration must be a table")

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(map(str, section)) - known)
        if unknown:
            raise ConfigurationError(f"Unknown local configuration keys: {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for key in ("builds_dir", "web_root", "shared_dir", "archive_dir", "app_config_file", "lock_file"):
            if key in section:
                text = str(section[key]).strip().strip("/")
                if not text:
                    raise ConfigurationError(f"local.{key} cannot be empty")
                values[key] = text
        if "resources_dir" in section:
            values["resources_dir"] = Path(str(section["resources_dir"])).expanduser()
        if "keep_builds" in section:
            keep = section["keep_builds"]
            if not isinstance(keep, int) or keep < 0:
                raise ConfigurationError("local.keep_builds must be a non-negative integer")
            values["keep_builds"] = keep
        if section.get("max_build_age") is not None:
            max_age = section["max_build_age"]
            if not isinstance(max_age, int) or max_age < 0:
                raise ConfigurationError("local.max_build_age must be a non-negative integer (seconds)")
            values["max_build_age"] = max_age
        if "archive_format" in section:
            try:
                values["archive_format"] = resolve_archive_format(str(section["archive_format"]))
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from None
        return cls(**values)

    @classmethod
    def load(cls, *paths: Path) -> "LocalConfig":
        """Merge the given configuration files in order and build a config."""

        merged: Dict[str, Any] = {}
        for path in paths:
            merged = merge_mappings(merged, load_config_file(path, allow_empty=True))
        return cls.from_mapping(merged)

    def layout_paths(self) -> tuple[str, ...]:
        """Top-level names the build layout occupies inside a project root."""

        return (self.builds_dir, self.web_root, self.shared_dir, self.archive_dir)


@dataclass(frozen=True, slots=True)
class BuildSettings:
    """Options for one build. Read-only once handed to a toolstack."""

    copy: bool = False
    absolute_links: bool = False
    no_clean: bool = False
    no_archive: bool = False
    no_cache: bool = False
    no_build_hooks: bool = False
    environment_id: str | None = None
    document_root: str = "public"
    verbosity: Verbosity = Verbosity.NORMAL
    toolstack: str | None = None
    drush_concurrency: int | None = None
    drush_working_copy: bool = False
    drush_update_lock: bool = False

    def archive_fingerprint(self) -> Dict[str, Any]:
        """Settings that change what a build produces."""

        return {
            "copy": self.copy,
            "absolute_links": self.absolute_links,
            "no_cache": self.no_cache,
            "drush_working_copy": self.drush_working_copy,
            "drush_update_lock": self.drush_update_lock,
        }


__all__ = ["BuildSettings", "LocalConfig", "RESOURCES_DIR", "slugify"]

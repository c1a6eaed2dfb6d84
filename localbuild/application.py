"""Discovery of applications inside a source tree, and their configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import os

from core.config_loader import get_nested, load_config_file, normalize_string_list

from .errors import ConfigurationError
from .settings import LocalConfig, slugify

_MAX_SEARCH_DEPTH = 3


@dataclass(slots=True)
class LocalApplication:
    """One application in a project source tree."""

    root: Path
    source_dir: Path
    config: Mapping[str, Any] = field(default_factory=dict)
    single: bool = True

    @property
    def name(self) -> str:
        configured = self.config.get("name")
        if configured:
            return str(configured)
        if self.root == self.source_dir:
            return "default"
        return self.root.relative_to(self.source_dir).as_posix()

    @property
    def slug(self) -> str:
        return slugify(self.name) or "default"

    def document_root(self, default: str = "public") -> str:
        value = get_nested(self.config, "web.document_root")
        if value is None:
            return default
        return str(value).strip("/") or default

    @property
    def toolstack_key(self) -> str | None:
        value = get_nested(self.config, "build.flavor")
        return str(value).strip().lower() if value else None

    @property
    def build_hooks(self) -> List[str]:
        try:
            return normalize_string_list(get_nested(self.config, "hooks.build"), field_name="hooks.build")
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from None

    def should_move_to_root(self, default_document_root: str = "public") -> bool:
        """Whether app files belong inside the document root rather than beside it."""

        if self.config.get("move_to_root") is True:
            return True
        document_root = self.document_root(default_document_root)
        return document_root == "public" and not (self.root / "public").is_dir()

    @property
    def shared_mounts(self) -> Dict[str, str]:
        """Map app-relative mount paths to paths under the shared directory."""

        mounts = self.config.get("mounts") or {}
        if not isinstance(mounts, Mapping):
            raise ConfigurationError("'mounts' must be a mapping")
        resolved: Dict[str, str] = {}
        for raw_path, definition in mounts.items():
            app_path = str(raw_path).strip("/")
            shared_path: str | None = None
            if isinstance(definition, str) and definition.startswith("shared:files"):
                shared_path = definition[len("shared:files"):].strip("/")
            elif isinstance(definition, Mapping) and definition.get("source") == "local":
                shared_path = str(definition.get("source_path") or "").strip("/")
            if shared_path is None:
                continue
            resolved[app_path] = shared_path or app_path.replace("/", "-")
        return resolved

    def shared_dir(self, config: LocalConfig) -> Path:
        """The directory holding state that survives between builds."""

        shared = self.source_dir / config.shared_dir
        if not self.single:
            shared = shared / self.slug
        return shared


def _load_app_config(path: Path) -> Mapping[str, Any]:
    try:
        return load_config_file(path, allow_empty=True)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid application configuration in {path}: {exc}") from None


def find_applications(source_dir: Path, config: LocalConfig) -> List[LocalApplication]:
    """Find every application below *source_dir*.

    An application is a directory holding ``config.app_config_file``. A tree
    without one is treated as a single application rooted at *source_dir*.
    """

    source_dir = Path(source_dir).resolve()
    if not source_dir.is_dir():
        raise ConfigurationError(f"Source directory not found: {source_dir}")

    skipped = set(config.layout_paths())
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(source_dir):
        current = Path(dirpath)
        depth = len(current.relative_to(source_dir).parts)
        if config.app_config_file in filenames:
            found.append(current)
        if depth >= _MAX_SEARCH_DEPTH:
            dirnames[:] = []
            continue
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not name.startswith(".") and not (depth == 0 and name in skipped) and name != "node_modules"
        )

    if not found:
        return [LocalApplication(root=source_dir, source_dir=source_dir)]

    single = len(found) == 1
    applications = [
        LocalApplication(
            root=root,
            source_dir=source_dir,
            config=_load_app_config(root / config.app_config_file),
            single=single,
        )
        for root in sorted(found)
    ]

    names = [app.slug for app in applications]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate application names: {', '.join(duplicates)}")
    return applications


__all__ = ["LocalApplication", "find_applications"]

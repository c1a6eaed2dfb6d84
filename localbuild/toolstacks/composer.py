"""PHP toolstacks driven by Composer."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping
import json

from core.console import Verbosity

from .base import BuildPlan, Toolstack

COMPOSER_INSTALL_ARGS = (
    "install",
    "--no-progress",
    "--prefer-dist",
    "--optimize-autoloader",
    "--no-interaction",
)


def read_composer_json(directory: Path) -> Mapping[str, Any]:
    """Decode ``composer.json`` in *directory*; an unreadable file reads as empty."""

    path = directory / "composer.json"
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, Mapping) else {}


def composer_requires(directory: Path) -> Mapping[str, Any]:
    requires = read_composer_json(directory).get("require")
    return requires if isinstance(requires, Mapping) else {}


class Composer(Toolstack):
    """Places the application, then installs its dependencies with Composer."""

    key = "php:composer"
    aliases = ("composer", "php")
    ignored_files = ("/vendor",)

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        return (app_root / "composer.json").is_file()

    def composer_command(self, plan: BuildPlan) -> List[str]:
        command = ["composer", *COMPOSER_INSTALL_ARGS]
        if plan.settings.no_cache:
            command.append("--no-cache")
        if plan.settings.verbosity <= Verbosity.QUIET:
            command.append("--quiet")
        return command

    def environment(self, plan: BuildPlan) -> Dict[str, str]:
        return {}

    def build(self, plan: BuildPlan) -> BuildPlan:
        plan = self.copy_to_build_dir(plan)
        if (plan.app_dir / "composer.json").exists():
            self.require_command("composer", "See https://getcomposer.org/download/")
            self._console.info("Found a composer.json file; installing dependencies")
            self.run_command(
                plan,
                self.composer_command(plan),
                cwd=plan.app_dir,
                env=self.environment(plan) or None,
            )
        self.process_special_destinations(plan)
        return plan


class Symfony(Composer):
    """Composer build of a Symfony application, in the production environment."""

    key = "php:symfony"
    aliases = ("symfony",)

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        if not super().detect(app_root):
            return False
        requires = composer_requires(app_root)
        return "symfony/symfony" in requires

    def environment(self, plan: BuildPlan) -> Dict[str, str]:
        return {"SYMFONY_ENV": "prod", "APP_ENV": "prod"}


__all__ = ["COMPOSER_INSTALL_ARGS", "Composer", "Symfony", "composer_requires", "read_composer_json"]

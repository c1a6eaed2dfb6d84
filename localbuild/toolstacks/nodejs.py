"""Node.js applications built with npm."""
from __future__ import annotations

from pathlib import Path
from typing import List

from core.console import Verbosity

from .base import BuildPlan, Toolstack


class NodeJs(Toolstack):
    """Places the application, then runs ``npm install``.

    Never detected automatically: a ``package.json`` is too common to say
    anything about how an application should be built. Select it with the
    ``build.flavor`` setting or an explicit toolstack.
    """

    key = "nodejs"
    aliases = ("nodejs:default", "node")
    ignored_files = ("node_modules",)

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        return False

    def npm_command(self, plan: BuildPlan) -> List[str]:
        command = ["npm", "install"]
        if plan.settings.verbosity <= Verbosity.QUIET:
            command.append("--silent")
        return command

    def build(self, plan: BuildPlan) -> BuildPlan:
        plan = self.copy_to_build_dir(plan)
        if (plan.app_dir / "package.json").exists():
            self.require_command("npm", "See https://docs.npmjs.com/downloading-and-installing-node-js-and-npm")
            self._console.info("Found a package.json file; installing dependencies")
            self.run_command(plan, self.npm_command(plan), cwd=plan.app_dir)
        self.process_special_destinations(plan)
        return plan


__all__ = ["NodeJs"]

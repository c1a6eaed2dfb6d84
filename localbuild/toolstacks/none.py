"""The fallback toolstack: place the application as-is."""
from __future__ import annotations

from pathlib import Path

from .base import BuildPlan, Toolstack


class NoToolstack(Toolstack):
    """Copies or symlinks the application into the build, with no build step."""

    key = "default"
    aliases = ("none",)

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        return True

    def build(self, plan: BuildPlan) -> BuildPlan:
        plan = self.copy_to_build_dir(plan)
        self.process_special_destinations(plan)
        return plan


__all__ = ["NoToolstack"]

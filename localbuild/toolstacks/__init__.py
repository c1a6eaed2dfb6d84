"""Toolstacks and the selection of one for an application."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence, Type

from ..errors import ConfigurationError
from .base import BuildPlan, Toolstack
from .composer import Composer, Symfony
from .drupal import Drupal
from .nodejs import NodeJs
from .none import NoToolstack

# Checked in order: specific before general, the catch-all last.
TOOLSTACKS: tuple[Type[Toolstack], ...] = (Drupal, Symfony, Composer, NodeJs, NoToolstack)


def select_toolstack(app_root: Path, toolstacks: Sequence[Type[Toolstack]] = TOOLSTACKS) -> Type[Toolstack]:
    """Return the first toolstack that recognises *app_root*."""

    for toolstack in toolstacks:
        if toolstack.detect(app_root):
            return toolstack
    raise ConfigurationError(f"No toolstack matched the application in {app_root}")


def toolstack_for_key(key: str, toolstacks: Sequence[Type[Toolstack]] = TOOLSTACKS) -> Type[Toolstack]:
    """Look a toolstack up by its key or one of its aliases."""

    normalized = key.strip().lower()
    for toolstack in toolstacks:
        if normalized in toolstack.keys():
            return toolstack
    known = ", ".join(toolstack.key for toolstack in toolstacks)
    raise ConfigurationError(f"Unknown toolstack '{key}'. Known toolstacks: {known}")


__all__ = [
    "BuildPlan",
    "Composer",
    "Drupal",
    "NoToolstack",
    "NodeJs",
    "Symfony",
    "TOOLSTACKS",
    "Toolstack",
    "select_toolstack",
    "toolstack_for_key",
]

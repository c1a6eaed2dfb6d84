"""Local builds of web applications: detection, placement and retention."""

from .application import LocalApplication, find_applications
from .build import BUILD_VERSION, BuildReport, LocalBuild
from .drush import Drush
from .errors import BuildError, ConfigurationError, DependencyMissingError
from .filesystem import Filesystem, matches_any
from .retention import ArchiveIndex, BuildRetention
from .settings import BuildSettings, LocalConfig
from .toolstacks import (
    TOOLSTACKS,
    BuildPlan,
    Composer,
    Drupal,
    NodeJs,
    NoToolstack,
    Symfony,
    Toolstack,
    select_toolstack,
    toolstack_for_key,
)

__all__ = [
    "LocalApplication",
    "find_applications",
    "BUILD_VERSION",
    "BuildReport",
    "LocalBuild",
    "Drush",
    "BuildError",
    "ConfigurationError",
    "DependencyMissingError",
    "Filesystem",
    "matches_any",
    "ArchiveIndex",
    "BuildRetention",
    "BuildSettings",
    "LocalConfig",
    "TOOLSTACKS",
    "BuildPlan",
    "Composer",
    "Drupal",
    "NodeJs",
    "NoToolstack",
    "Symfony",
    "Toolstack",
    "select_toolstack",
    "toolstack_for_key",
]

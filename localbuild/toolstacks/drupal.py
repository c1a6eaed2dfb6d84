"""Drupal builds: profile, project (Drush make) and vanilla modes."""
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Sequence
import fnmatch
import os

from core.console import Verbosity

from ..drush import Drush
from ..errors import BuildError, ConfigurationError
from .base import BuildPlan, Toolstack
from .composer import composer_requires

MAKE_FILES: tuple[str, ...] = (
    "project.make.yml",
    "project.make",
    "drupal-org.make.yml",
    "drupal-org.make",
)
LOCKED_MAKE_FILES: tuple[str, ...] = (
    "project.make.lock",
    "project.make.yml.lock",
    "drupal-org.make.yml.lock",
    "drupal-org.make.lock",
)
MAKE_FILE_IGNORES: tuple[str, ...] = (
    "*.make",
    "*.make.lock",
    "*.make.yml",
    "*.make.yml.lock",
    "settings.local.php",
)
DRUPAL_COMPOSER_PACKAGES: tuple[str, ...] = (
    "drupal/core",
    "drupal/core-recommended",
    "drupal/core-composer-scaffold",
    "drupal/phing-drush-task",
)

# How much of an index.php to read when looking for the word "Drupal".
INDEX_PHP_SCAN_BYTES = 3178


def _iter_files(directory: Path, max_depth: int) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(directory):
        current = Path(dirpath)
        depth = len(current.relative_to(directory).parts)
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
        for filename in sorted(filenames):
            if not filename.startswith("."):
                yield current / filename


def is_drupal(directory: Path, max_depth: int = 1) -> bool:
    """Look for signs of a Drupal application at most *max_depth* levels down.

    Any of these is enough: a Drush make file, an ``index.php`` mentioning
    Drupal near its top, or a ``composer.json`` requiring Drupal core.
    """

    if not directory.is_dir():
        return False

    files = list(_iter_files(directory, max_depth))
    for path in files:
        if fnmatch.fnmatchcase(path.name, "project.make*") or fnmatch.fnmatchcase(path.name, "drupal-org.make*"):
            return True

    for path in files:
        if path.name != "index.php" or not path.is_file():
            continue
        with path.open("rb") as handle:
            if b"Drupal" in handle.read(INDEX_PHP_SCAN_BYTES):
                return True

    for path in files:
        if path.name != "composer.json":
            continue
        requires = composer_requires(path.parent)
        if any(package in requires for package in DRUPAL_COMPOSER_PACKAGES):
            return True

    return False


class Drupal(Toolstack):
    """Builds Drupal sites, using Drush make where the application has make files."""

    key = "php:drupal"
    aliases = ("drupal",)

    def __init__(self, *, drush: Drush | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._drush = drush or Drush(self._runner, self._console)

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        return is_drupal(app_root)

    def drush_flags(self, plan: BuildPlan) -> List[str]:
        settings = plan.settings
        flags = ["--yes"]

        if settings.verbosity <= Verbosity.QUIET:
            flags.append("--quiet")
        elif settings.verbosity >= Verbosity.DEBUG:
            flags.append("--debug")
        elif settings.verbosity >= Verbosity.VERY_VERBOSE:
            flags.append("--verbose")

        if settings.drush_working_copy:
            flags.append("--working-copy")

        if settings.no_cache:
            flags.append("--no-cache")
        else:
            flags.append("--cache-duration-releasexml=300")

        if settings.drush_concurrency:
            flags.append(f"--concurrency={settings.drush_concurrency}")

        return flags

    def make_file_candidates(self, plan: BuildPlan, *, core: bool = False) -> List[str]:
        candidates = list(MAKE_FILES)
        if not plan.settings.drush_update_lock:
            candidates = [*LOCKED_MAKE_FILES, *candidates]
        if core:
            candidates = [name.replace(".make", "-core.make") for name in candidates]
        return candidates

    def find_make_file(self, plan: BuildPlan, *, required: bool = False, core: bool = False) -> Path | None:
        """Return the preferred make file in the app root, if there is one."""

        candidates = self.make_file_candidates(plan, core=core)
        for name in candidates:
            path = plan.app_root / name
            if path.exists():
                return path

        if required:
            kind = "core make file" if core else "make file"
            raise ConfigurationError(
                f"Couldn't find a {kind} in the directory. Possible filenames: {', '.join(candidates)}"
            )
        return None

    def _make_args(self, plan: BuildPlan, make_file: Path, head: Sequence[str], destination: Path) -> List[str]:
        args = ["make", *head, str(make_file), str(destination), *self.drush_flags(plan)]
        # Write a lock file next to an unlocked make file.
        if (
            ".lock" not in make_file.name
            and plan.settings.drush_update_lock
            and self._drush.supports_make_lock()
        ):
            args.append(f"--lock={make_file}.lock")
        return args

    def _run_make(self, plan: BuildPlan, args: Sequence[str], make_file: Path) -> None:
        # Relative "copy" downloads resolve against the working directory.
        self._drush.execute(args, cwd=make_file.parent, stream=plan.settings.verbosity >= Verbosity.NORMAL)

    def build(self, plan: BuildPlan) -> BuildPlan:
        profiles = sorted(plan.app_root.glob("*.profile"))
        if len(profiles) > 1:
            raise ConfigurationError("Found multiple files ending in '*.profile' in the directory.")

        if profiles:
            plan = self.build_profile(plan, profiles[0].name.split(".", 1)[0])
        else:
            make_file = self.find_make_file(plan)
            if make_file is not None:
                plan = self.build_project(plan, make_file)
            else:
                plan = self.build_vanilla(plan)

        self.process_special_destinations(plan)
        return plan

    def build_project(self, plan: BuildPlan, make_file: Path) -> BuildPlan:
        """Resolve a make file into the web root, then place the app in sites/default."""

        self._drush.ensure_installed()
        web_root = plan.web_root
        self._console.info(f"Building from {make_file.name}")
        self._run_make(plan, self._make_args(plan, make_file, (), web_root), make_file)

        plan = self.process_settings_php(plan)
        plan = plan.with_ignored(*MAKE_FILE_IGNORES).with_special_destination("sites.php", "{webroot}/sites")

        # Non-recursive: top-level app files only, the make result stays intact.
        self._fs.symlink_all(
            plan.app_root,
            web_root / "sites" / "default",
            skip_existing=True,
            recursive=False,
            ignore=plan.placement_ignores(),
            copy=plan.copy,
        )
        return plan

    def build_profile(self, plan: BuildPlan, profile_name: str) -> BuildPlan:
        """Build an installation profile, with optional contrib and core make files."""

        make_file = self.find_make_file(plan)
        core_make_file = self.find_make_file(plan, core=True)
        web_root = plan.web_root
        profile_dir = web_root / "profiles" / profile_name

        self._console.info(f"Building profile {profile_name}")
        if make_file is not None or core_make_file is not None:
            self._drush.ensure_installed()

        temp_profile_dir: Path | None = None
        if make_file is not None:
            temp_profile_dir = plan.build_dir / f"tmp-{profile_name}"
            if os.path.lexists(temp_profile_dir):
                self._fs.remove(temp_profile_dir)
            self._fs.mkdir(temp_profile_dir)
            head = ("--no-core", "--contrib-destination=.")
            self._run_make(plan, self._make_args(plan, make_file, head, temp_profile_dir), make_file)

        if core_make_file is not None:
            self._run_make(plan, self._make_args(plan, core_make_file, (), web_root), core_make_file)

        if temp_profile_dir is not None and temp_profile_dir.is_dir():
            self._fs.mkdir(profile_dir.parent)
            try:
                temp_profile_dir.rename(profile_dir)
            except OSError as exc:
                raise BuildError(f"Failed to move profile directory to: {profile_dir}") from exc

        action = "Copying" if plan.copy else "Symlinking"
        self._console.info(f"{action} existing app files to the profile")

        plan = (
            plan.with_ignored(*MAKE_FILE_IGNORES)
            .with_special_destination("settings*.php", "{webroot}/sites/default")
            .with_special_destination("sites.php", "{webroot}/sites")
        )
        plan = self.process_settings_php(plan)
        self._fs.mkdir(web_root / "sites" / "default")

        # Recursive and skipping existing paths: contrib code from the make
        # file stays, custom code from the app is added alongside it.
        self._fs.symlink_all(
            plan.app_root,
            profile_dir,
            skip_existing=True,
            recursive=True,
            ignore=plan.placement_ignores(),
            copy=plan.copy,
        )
        return plan

    def build_vanilla(self, plan: BuildPlan) -> BuildPlan:
        self._console.warning("No make file or profile found: building in vanilla mode")
        plan = self.copy_to_build_dir(plan)
        if not plan.copy:
            self.copy_gitignore(plan, "drupal/gitignore-vanilla")
            self.check_ignored(plan, "sites/default/settings.local.php")
            self.check_ignored(plan, "sites/default/files")
        return plan

    def process_settings_php(self, plan: BuildPlan) -> BuildPlan:
        """Copy a custom settings.php into the build.

        A symlinked settings.php would resolve its includes relative to the
        source tree, so it is always a real copy.
        """

        source = plan.app_root / "settings.php"
        if not source.exists():
            return plan

        destination = plan.web_root / "sites" / "default" / "settings.php"
        self._console.info(f"Found a custom settings.php file: {source}")
        if os.path.lexists(destination):
            self._console.warning("Overriding existing path 'sites/default/settings.php' in destination")
            self._fs.remove(destination)
        self._fs.copy(source, destination)
        self._console.info(
            "  Your settings.php file has been copied (not symlinked) into the build directory.\n"
            "  You will need to rebuild if you edit this file."
        )
        return plan.with_ignored("settings.php")

    def copy_gitignore(self, plan: BuildPlan, resource: str) -> None:
        """Give the app a default .gitignore when its repository has none."""

        if self._git is None:
            return
        app_gitignore = plan.app_root / ".gitignore"
        if app_gitignore.exists() or (self._git.root_dir / ".gitignore").exists():
            return
        self._console.info("Creating a .gitignore file")
        self._fs.copy(self._config.resources_dir / resource, app_gitignore)

    def check_ignored(self, plan: BuildPlan, filename: str) -> None:
        if self._git is None:
            return
        path = plan.app_root / filename
        if not self._git.is_ignored(path):
            relative = self._git.relpath(path).as_posix()
            self._console.warning(f"You should exclude this file using .gitignore: {relative}")

    def install(self, plan: BuildPlan) -> None:
        self.process_shared_file_mounts(plan)

        sites_default = plan.web_root / "sites" / "default"
        if not sites_default.is_dir():
            return

        templates = self._config.resources_dir / "drupal"
        settings_php = sites_default / "settings.php"
        if not os.path.lexists(settings_php):
            is_d8 = (plan.web_root / "core" / "includes" / "bootstrap.inc").exists()
            template = "settings.php.d8.dist" if is_d8 else "settings.php.dist"
            self._console.info("Creating file: sites/default/settings.php")
            self._fs.copy(templates / template, settings_php)

        platform_settings = sites_default / "settings.platformsh.php"
        if not os.path.lexists(platform_settings):
            self._fs.copy(templates / "settings.platformsh.php.dist", platform_settings)

        self.install_settings_local(plan, sites_default)

        shared = self.ensure_shared_dir(plan)
        files_dir = shared / "files"
        if not files_dir.exists():
            self._fs.mkdir(files_dir, 0o775)

        # Hidden files and the targets of mounts stay out of sites/default.
        skip = [".*"]
        skip.extend(mount.split("/", 1)[0] for mount in plan.app.shared_mounts.values())
        self._fs.symlink_all(shared, sites_default, skip_existing=True, recursive=False, ignore=skip)

    def install_settings_local(self, plan: BuildPlan, sites_default: Path) -> None:
        """Symlink the shared settings.local.php into the build, creating it once."""

        link = sites_default / "settings.local.php"
        if os.path.lexists(link):
            return

        shared = self.ensure_shared_dir(plan)
        shared_settings = shared / "settings.local.php"
        relative = shared_settings.relative_to(plan.app.source_dir).as_posix()
        if not shared_settings.exists():
            self._console.info(f"Creating file: {relative}")
            self._fs.copy(self._config.resources_dir / "drupal" / "settings.local.php.dist", shared_settings)
            self._console.info("Edit this file to add your database credentials and other Drupal configuration.")
        else:
            self._console.info(f"Symlinking {relative} into sites/default")
        self._fs.symlink(shared_settings, link)


__all__ = ["Drupal", "INDEX_PHP_SCAN_BYTES", "MAKE_FILES", "is_drupal"]

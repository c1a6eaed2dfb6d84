"""Build plan and the base class shared by every toolstack."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import ClassVar, Iterable, Mapping, Sequence, Tuple

from core.command_runner import CommandResult, CommandRunner
from core.console import Console, Verbosity
from core.git import GitRepository

from ..application import LocalApplication
from ..errors import DependencyMissingError
from ..filesystem import Filesystem
from ..settings import BuildSettings, LocalConfig

DEFAULT_IGNORED_FILES: Tuple[str, ...] = (".*",)
DEFAULT_SPECIAL_DESTINATIONS: Tuple[Tuple[str, str], ...] = (
    ("favicon.ico", "{webroot}"),
    ("robots.txt", "{webroot}"),
)


@dataclass(frozen=True, slots=True)
class BuildPlan:
    """Everything a toolstack needs to build one application.

    ``prepare()`` creates the plan; ``build()`` returns an updated copy, which
    ``install()`` then consumes. A plan is never modified in place.
    """

    app: LocalApplication
    build_dir: Path
    document_root: str
    settings: BuildSettings
    shared_dir: Path
    move_to_root: bool = False
    ignored_files: Tuple[str, ...] = DEFAULT_IGNORED_FILES
    special_destinations: Tuple[Tuple[str, str], ...] = DEFAULT_SPECIAL_DESTINATIONS
    in_place: bool = False

    @property
    def app_root(self) -> Path:
        return self.app.root

    @property
    def copy(self) -> bool:
        return self.settings.copy

    @property
    def web_root(self) -> Path:
        return self.build_dir / self.document_root

    @property
    def app_dir(self) -> Path:
        """Where the application's own files land inside the build."""

        return self.web_root if self.move_to_root else self.build_dir

    def with_ignored(self, *patterns: str) -> "BuildPlan":
        added = tuple(pattern for pattern in patterns if pattern not in self.ignored_files)
        return replace(self, ignored_files=self.ignored_files + added)

    def with_special_destination(self, pattern: str, template: str) -> "BuildPlan":
        kept = tuple(item for item in self.special_destinations if item[0] != pattern)
        return replace(self, special_destinations=kept + ((pattern, template),))

    def placement_ignores(self) -> Tuple[str, ...]:
        """Ignore patterns plus special-destination sources, for bulk placement."""

        return self.ignored_files + tuple(pattern for pattern, _ in self.special_destinations)


class Toolstack(ABC):
    """A way of turning an application source tree into a servable build."""

    key: ClassVar[str] = ""
    aliases: ClassVar[Tuple[str, ...]] = ()
    ignored_files: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        *,
        console: Console,
        runner: CommandRunner,
        fs: Filesystem,
        config: LocalConfig,
        git: GitRepository | None = None,
    ) -> None:
        self._console = console
        self._runner = runner
        self._fs = fs
        self._config = config
        self._git = git

    @classmethod
    def detect(cls, app_root: Path) -> bool:
        """Whether this toolstack recognises the application at *app_root*."""

        return False

    @classmethod
    def keys(cls) -> Tuple[str, ...]:
        return (cls.key, *cls.aliases)

    def prepare(
        self,
        build_dir: Path,
        app: LocalApplication,
        settings: BuildSettings,
        *,
        ignored: Iterable[str] = (),
    ) -> BuildPlan:
        """Describe the build without touching the filesystem."""

        self._fs.relative_links = not settings.absolute_links
        document_root = app.document_root(settings.document_root)
        plan = BuildPlan(
            app=app,
            build_dir=Path(build_dir),
            document_root=document_root,
            settings=settings,
            shared_dir=app.shared_dir(self._config),
            move_to_root=app.should_move_to_root(settings.document_root),
        )
        return plan.with_ignored(*self.ignored_files, *ignored)

    @abstractmethod
    def build(self, plan: BuildPlan) -> BuildPlan:
        """Materialise the application into ``plan.build_dir``."""

    def install(self, plan: BuildPlan) -> None:
        """Wire persistent state into a finished build."""

        self.process_shared_file_mounts(plan)

    def can_archive(self, plan: BuildPlan) -> bool:
        # Links back into the mutable source tree cannot be reused later.
        return not plan.in_place or plan.copy

    def copy_to_build_dir(self, plan: BuildPlan) -> BuildPlan:
        """Copy or symlink the whole application into the build."""

        target = plan.app_dir
        action = "Copying" if plan.copy else "Symlinking"
        self._console.info(f"{action} files from {plan.app_root} to {target}")
        self._fs.symlink_all(
            plan.app_root,
            target,
            skip_existing=False,
            ignore=plan.ignored_files,
            copy=plan.copy,
            prune=True,
        )
        return replace(plan, in_place=True)

    def process_special_destinations(self, plan: BuildPlan) -> None:
        self._fs.place_special_destinations(
            app_root=plan.app_root,
            destinations=plan.special_destinations,
            web_root=plan.web_root,
            app_dir=plan.build_dir,
            ignored=plan.ignored_files,
            copy=plan.copy,
            in_place=plan.in_place,
        )

    def ensure_shared_dir(self, plan: BuildPlan) -> Path:
        self._fs.mkdir(plan.shared_dir)
        return plan.shared_dir

    def process_shared_file_mounts(self, plan: BuildPlan) -> None:
        """Symlink each shared mount into the build from the shared directory."""

        mounts = plan.app.shared_mounts
        if not mounts:
            return

        shared = self.ensure_shared_dir(plan)
        build_real = plan.build_dir.resolve()
        self._console.info("Creating symbolic links to mimic shared file mounts")
        for app_path, shared_path in sorted(mounts.items()):
            target = shared / shared_path
            link = plan.build_dir / app_path
            if not link.parent.resolve().is_relative_to(build_real):
                self._console.warning(f"Skipping mount '{app_path}': it resolves outside the build directory")
                continue
            if link.is_symlink():
                self._console.info(f"  Removing existing link {app_path}")
                self._fs.remove(link)
            elif link.exists():
                self._console.info(f"  Removing existing file {app_path}")
                self._fs.remove(link)
            if not target.exists():
                self._fs.mkdir(target, 0o775)
            self._console.info(f"  Symlinking {app_path} to {self._config.shared_dir}/{shared_path}")
            self._fs.symlink(target, link)

    def run_command(
        self,
        plan: BuildPlan,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run a dependency manager; its output is streamed unless quiet."""

        self._console.verbose(f"Running: {self._runner.format_command(command)}")
        return self._runner.run(
            command,
            cwd=cwd,
            env=env,
            check=True,
            stream=plan.settings.verbosity >= Verbosity.NORMAL,
        )

    def require_command(self, name: str, hint: str | None = None) -> None:
        if not self._runner.command_exists(name):
            raise DependencyMissingError(name, hint)


__all__ = [
    "BuildPlan",
    "DEFAULT_IGNORED_FILES",
    "DEFAULT_SPECIAL_DESTINATIONS",
    "Toolstack",
]

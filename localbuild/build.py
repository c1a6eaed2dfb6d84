"""The build orchestrator: one build directory per application per run."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Sequence, Tuple, Type
import hashlib
import json
import os

from core.archive import ArchiveManager, archive_suffix
from core.command_runner import CommandRunner, SubprocessCommandRunner
from core.console import Console, Verbosity
from core.git import GitRepository
from core.lock import BuildLock

from .application import LocalApplication, find_applications
from .errors import ConfigurationError
from .filesystem import Filesystem, matches_any
from .retention import ArchiveIndex, BuildRetention
from .settings import BuildSettings, LocalConfig, slugify
from .toolstacks import TOOLSTACKS, Toolstack, select_toolstack, toolstack_for_key
from .toolstacks.base import BuildPlan

# Bump when archives made by earlier versions can no longer be reused.
BUILD_VERSION = 3

TIMESTAMP_FORMAT = "%Y-%m-%d--%H-%M-%S"

# Past this many modified files, hashing them costs more than rebuilding.
MAX_CHANGED_FILES = 5000


@dataclass(frozen=True, slots=True)
class BuildReport:
    """The outcome of building one application."""

    app_name: str
    toolstack: str
    build_dir: Path
    web_root: Path
    link: Path
    archived: bool = False
    extracted: bool = False
    success: bool = True


class LocalBuild:
    """Builds every application in a source tree and publishes the result.

    Collaborators are injected so that tests can record commands instead of
    running composer, npm or drush.
    """

    def __init__(
        self,
        config: LocalConfig | None = None,
        *,
        console: Console | None = None,
        runner: CommandRunner | None = None,
        fs: Filesystem | None = None,
        archive_manager: ArchiveManager | None = None,
        toolstacks: Sequence[Type[Toolstack]] = TOOLSTACKS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or LocalConfig()
        self._console = console or Console()
        self._runner = runner or SubprocessCommandRunner(self._console)
        self._fs = fs or Filesystem(self._console)
        self._archives = archive_manager or ArchiveManager(self._console)
        self._toolstacks = tuple(toolstacks)
        self._clock = clock
        self._retention = BuildRetention(self.config, self._console, self._fs)

    def build(
        self,
        source_dir: Path,
        destination: Path | None = None,
        settings: BuildSettings | None = None,
        *,
        apps: Sequence[str] = (),
    ) -> List[BuildReport]:
        """Build the applications in *source_dir*.

        *destination* is where the web root link goes (``<source>/www`` by
        default). *apps* limits the build to the named applications.
        """

        settings = settings or BuildSettings()
        source_dir = Path(source_dir).resolve()
        if not source_dir.is_dir():
            raise ConfigurationError(f"Source directory not found: {source_dir}")
        link_root = Path(os.path.abspath(destination)) if destination else source_dir / self.config.web_root
        self._fs.relative_links = not settings.absolute_links

        git = GitRepository.discover(source_dir)
        with BuildLock(source_dir / self.config.lock_file):
            if git is not None and git.root_dir == source_dir:
                git.write_exclude(self._exclude_patterns(source_dir, link_root))

            applications = find_applications(source_dir, self.config)
            selected = [app for app in applications if not apps or app.name in apps]
            for missing in sorted(set(apps) - {app.name for app in applications}):
                self._console.warning(f"Application not found: {missing}")

            reports = [self.build_app(app, link_root, settings, git=git) for app in selected]

            if not settings.no_clean:
                self._console.info("Cleaning up...")
                self.clean_builds(source_dir)
                self.clean_archives(source_dir)

        return reports

    def build_app(
        self,
        app: LocalApplication,
        link_root: Path,
        settings: BuildSettings,
        *,
        git: GitRepository | None = None,
    ) -> BuildReport:
        toolstack_cls = self.choose_toolstack(app, settings)
        toolstack = toolstack_cls(
            console=self._console,
            runner=self._runner,
            fs=self._fs,
            config=self.config,
            git=git,
        )
        environment_id = self.environment_id(settings, git)
        build_dir = self.new_build_dir(app, environment_id)
        ignored = self.layout_ignores(app, link_root)
        plan = toolstack.prepare(build_dir, app, settings, ignored=ignored)

        archive: Path | None = None
        tree_id: str | None = None
        if not settings.no_archive and not settings.no_cache and git is not None:
            tree_id = self.tree_id(app.root, settings, git, ignored=ignored)
            if tree_id is not None:
                self._console.verbose(f"Tree ID: {tree_id}")
                archive_dir = app.source_dir / self.config.archive_dir
                archive = archive_dir / f"{tree_id}{archive_suffix(self.config.archive_format)}"

        self._fs.mkdir(build_dir)
        success = True
        archived = extracted = False
        if archive is not None and archive.exists():
            self._console.info(f"Extracting archive for application {app.name}")
            self._archives.extract_archive(archive_path=archive, destination_dir=build_dir)
            extracted = True
        else:
            self._console.info(f"Building application {app.name} (toolstack: {toolstack.key})")
            plan = toolstack.build(plan)
            if self.run_build_hooks(app, plan) is False:
                # A failed hook leaves a build worth inspecting, not reusing.
                success = False
                archive = None
            if archive is not None and toolstack.can_archive(plan):
                self._console.info("Saving build archive")
                self._archives.create_archive(
                    source_dir=build_dir,
                    target_path=archive,
                    format_hint=self.config.archive_format,
                )
                archived = True

        if tree_id is not None and (archived or extracted):
            ArchiveIndex(app.source_dir / self.config.archive_dir).record(build_dir.name, tree_id)

        toolstack.install(plan)

        web_root = plan.web_root
        if not web_root.is_dir():
            raise ConfigurationError(f"Web root not found: {web_root}")

        link = self.local_web_root(app, link_root)
        self.publish(web_root, link, single=app.single)
        self._console.info(f"Build complete for application {app.name}")
        self._console.info(f"Web root: {link}")

        return BuildReport(
            app_name=app.name,
            toolstack=toolstack.key,
            build_dir=build_dir,
            web_root=web_root,
            link=link,
            archived=archived,
            extracted=extracted,
            success=success,
        )

    def choose_toolstack(self, app: LocalApplication, settings: BuildSettings) -> Type[Toolstack]:
        key = settings.toolstack or app.toolstack_key
        if key:
            return toolstack_for_key(key, self._toolstacks)
        return select_toolstack(app.root, self._toolstacks)

    def environment_id(self, settings: BuildSettings, git: GitRepository | None) -> str:
        value = settings.environment_id
        if not value and git is not None:
            value = git.get_head_branch()
        return slugify(value or "") or "default"

    def new_build_dir(self, app: LocalApplication, environment_id: str) -> Path:
        """A build directory path that does not exist yet."""

        builds_dir = app.source_dir / self.config.builds_dir
        stamp = self._clock().strftime(TIMESTAMP_FORMAT)
        suffix = f"--{environment_id}"
        if not app.single:
            suffix += f"--{app.slug}"

        candidate = builds_dir / f"{stamp}{suffix}"
        sequence = 1
        while os.path.lexists(candidate):
            candidate = builds_dir / f"{stamp}.{sequence}{suffix}"
            sequence += 1
        return candidate

    def layout_ignores(self, app: LocalApplication, link_root: Path) -> List[str]:
        """Anchored ignore patterns for layout paths that sit inside the app."""

        source_dir = app.source_dir
        candidates = [source_dir / name for name in self.config.layout_paths()]
        candidates.append(source_dir / self.config.lock_file)
        candidates.append(link_root)

        patterns: List[str] = []
        for path in candidates:
            try:
                relative = path.relative_to(app.root)
            except ValueError:
                continue
            pattern = "/" + relative.as_posix()
            if relative.parts and pattern not in patterns:
                patterns.append(pattern)
        return patterns

    def _exclude_patterns(self, source_dir: Path, link_root: Path) -> List[str]:
        patterns = ["/" + name for name in self.config.layout_paths()]
        patterns.append("/" + self.config.lock_file)
        try:
            relative = link_root.relative_to(source_dir).as_posix()
        except ValueError:
            relative = ""
        if relative and "/" + relative not in patterns:
            patterns.append("/" + relative)
        return patterns

    def tree_id(
        self,
        app_root: Path,
        settings: BuildSettings,
        git: GitRepository,
        *,
        ignored: Sequence[str] = (),
    ) -> str | None:
        """Hash the application's files and the output-relevant settings.

        Returns None when there are too many modified files to hash.
        """

        tracked = "\n".join(f"{entry.oid} {entry.path}" for entry in git.tracked_entries(app_root))
        hashes = [hashlib.sha1(tracked.encode("utf-8")).hexdigest()]

        changed = [
            path
            for path in git.changed_paths(app_root)
            if not matches_any(Path(path).name, path, ignored)
        ]
        if len(changed) > MAX_CHANGED_FILES:
            self._console.verbose("Too many modified files to compute a tree ID")
            return None
        for relative in changed:
            path = app_root / relative
            if path.is_file():
                with path.open("rb") as handle:
                    hashes.append(hashlib.file_digest(handle, "sha1").hexdigest())

        hashes.append(json.dumps(settings.archive_fingerprint(), sort_keys=True))
        hashes.append(str(BUILD_VERSION))
        return hashlib.sha1(" ".join(hashes).encode("utf-8")).hexdigest()

    def run_build_hooks(self, app: LocalApplication, plan: BuildPlan) -> bool | None:
        """Run the app's build hooks; None when there are none to run."""

        hooks = app.build_hooks
        if not hooks:
            return None
        if plan.settings.no_build_hooks:
            self._console.info("Skipping post-build hooks")
            return None

        self._console.info("Running post-build hooks")
        result = self._runner.run(
            ["/bin/sh", "-c", "\n".join(hooks)],
            cwd=plan.build_dir,
            check=False,
            note="build hook",
            stream=plan.settings.verbosity >= Verbosity.NORMAL,
        )
        if not result.ok:
            self._console.warning(f"The hook failed with the exit code: {result.returncode}")
            return False
        return True

    def local_web_root(self, app: LocalApplication, link_root: Path) -> Path:
        return link_root if app.single else link_root / app.slug

    def publish(self, web_root: Path, link: Path, *, single: bool = True) -> None:
        """Re-point the active web root link at *web_root*."""

        if link.is_dir() and not link.is_symlink():
            raise ConfigurationError(f"Cannot replace the directory {link} with a link to the build")
        if not single and link.parent.is_symlink():
            # Previously a single-app project: www pointed straight at a build.
            self._console.warning(f"Replacing the link {link.parent} with a directory")
            self._fs.remove(link.parent)
        self._fs.replace_symlink(web_root, link)

    def clean_builds(
        self,
        project_root: Path,
        max_age: int | None = None,
        keep_count: int | None = None,
        include_active: bool = False,
    ) -> Tuple[int, int]:
        """Delete old builds, by default per the configured retention policy."""

        if max_age is None:
            max_age = self.config.max_build_age
        if keep_count is None:
            keep_count = self.config.keep_builds
        return self._retention.clean_builds(Path(project_root), max_age, keep_count, include_active)

    def clean_archives(self, project_root: Path) -> int:
        return self._retention.clean_archives(Path(project_root))


__all__ = ["BUILD_VERSION", "BuildReport", "LocalBuild"]

from __future__ import annotations

from pathlib import Path
import json
import os
import tempfile
import time
import unittest

from core.console import RecordingConsole
from localbuild.filesystem import Filesystem
from localbuild.retention import ArchiveIndex, BuildRetention
from localbuild.settings import LocalConfig

DAY = 24 * 60 * 60


class BuildRetentionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        self.builds = self.root / "builds"
        self.console = RecordingConsole()
        self.retention = BuildRetention(LocalConfig(), self.console, Filesystem(self.console))
        self.now = time.time()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def make_builds(self, count: int = 10, step: int = 2 * DAY) -> None:
        """Create build-01 (oldest) to build-<count> (newest, age zero)."""

        for number in range(1, count + 1):
            build = self.builds / f"build-{number:02d}"
            (build / "public").mkdir(parents=True)
            (build / "public" / "index.html").write_text(str(number))
            mtime = self.now - (count - number) * step
            os.utime(build, (mtime, mtime))

    def remaining(self) -> list[str]:
        return sorted(path.name for path in self.builds.iterdir())

    def test_lists_newest_first(self) -> None:
        self.make_builds(3)
        (self.builds / ".partial").mkdir()

        names = [path.name for path in self.retention.list_builds(self.root)]

        self.assertEqual(names, ["build-03", "build-02", "build-01"])

    def test_active_build_is_kept_outside_the_count(self) -> None:
        self.make_builds()
        (self.root / "www").symlink_to("builds/build-10/public")

        result = self.retention.clean_builds(self.root, 7 * DAY, 5, now=self.now)

        self.assertEqual(result, (4, 6))
        self.assertEqual(self.remaining(), [f"build-{number:02d}" for number in range(5, 11)])
        self.assertIn("Deleting build: build-01", self.console.lines("info"))

    def test_include_active(self) -> None:
        self.make_builds()
        (self.root / "www").symlink_to("builds/build-10/public")

        result = self.retention.clean_builds(self.root, 7 * DAY, 5, include_active=True, now=self.now)

        self.assertEqual(result, (5, 5))
        self.assertEqual(self.remaining(), [f"build-{number:02d}" for number in range(6, 11)])

    def test_young_builds_are_kept(self) -> None:
        self.make_builds()

        result = self.retention.clean_builds(self.root, 30 * DAY, 5, now=self.now)

        self.assertEqual(result, (0, 10))

    def test_without_max_age_only_the_count_matters(self) -> None:
        self.make_builds()

        result = self.retention.clean_builds(self.root, None, 3, include_active=True, now=self.now)

        self.assertEqual(result, (7, 3))
        self.assertEqual(self.remaining(), ["build-08", "build-09", "build-10"])

    def test_active_builds_from_links_in_a_web_root_directory(self) -> None:
        self.make_builds(3)
        www = self.root / "www"
        www.mkdir()
        (www / "api").symlink_to("../builds/build-01/public")
        (www / "front").symlink_to(self.root)
        (www / "notes.txt").write_text("not a link")

        self.assertEqual(self.retention.active_builds(self.root), {self.builds / "build-01"})

        result = self.retention.clean_builds(self.root, None, 0, now=self.now)

        self.assertEqual(result, (2, 1))
        self.assertEqual(self.remaining(), ["build-01"])

    def test_missing_builds_directory(self) -> None:
        self.assertEqual(self.retention.clean_builds(self.root, None, 0), (0, 0))
        self.assertEqual(self.retention.clean_archives(self.root), 0)


class CleanArchivesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        self.archives = self.root / ".build-archives"
        self.archives.mkdir()
        (self.root / "builds" / "build-09").mkdir(parents=True)
        self.console = RecordingConsole()
        self.retention = BuildRetention(LocalConfig(), self.console, Filesystem(self.console))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_unreferenced_archives_are_deleted(self) -> None:
        ArchiveIndex(self.archives).save({"build-09": "aaa", "build-01": "bbb"})
        for name in ("aaa.tar.zst", "bbb.tar.zst", "ccc.tar.gz", "ddd.tar.zst.partial", "notes.txt"):
            (self.archives / name).write_bytes(b"x")

        deleted = self.retention.clean_archives(self.root)

        self.assertEqual(deleted, 3)
        self.assertEqual(
            sorted(path.name for path in self.archives.iterdir()),
            ["aaa.tar.zst", "index.json", "notes.txt"],
        )
        self.assertEqual(json.loads((self.archives / "index.json").read_text()), {"build-09": "aaa"})

    def test_index_records_builds(self) -> None:
        index = ArchiveIndex(self.archives)

        index.record("build-02", "bbb")
        index.record("build-01", "aaa")

        self.assertEqual(index.load(), {"build-01": "aaa", "build-02": "bbb"})
        self.assertEqual(list(json.loads(index.path.read_text())), ["build-01", "build-02"])


if __name__ == "__main__":
    unittest.main()

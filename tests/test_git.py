from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

import pygit2

from core.git import GitRepository, IndexEntry


def commit_all(repo: pygit2.Repository, message: str = "commit") -> None:
    index = repo.index
    index.add_all()
    index.write()
    tree = index.write_tree()
    signature = pygit2.Signature("Test", "test@example.com")
    parents = [] if repo.head_is_unborn else [repo.head.target]
    repo.create_commit("HEAD", signature, signature, message, tree, parents)


class GitRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve() / "repo"
        self.root.mkdir()
        self.repo = pygit2.init_repository(str(self.root), initial_head="main")
        (self.root / "app").mkdir()
        (self.root / "app" / "index.php").write_text("<?php echo 'hi';\n")
        (self.root / "README.md").write_text("readme\n")
        (self.root / ".gitignore").write_text("*.log\n")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_discover_from_subdirectory(self) -> None:
        git = GitRepository.discover(self.root / "app")

        self.assertIsNotNone(git)
        self.assertEqual(git.root_dir, self.root)

    def test_discover_outside_repository(self) -> None:
        outside = Path(self.temp_dir.name) / "plain"
        outside.mkdir()

        self.assertIsNone(GitRepository.discover(outside))

    def test_branch_of_unborn_and_committed_head(self) -> None:
        git = GitRepository.discover(self.root)
        self.assertEqual(git.get_head_branch(), "main")

        commit_all(self.repo)
        self.assertEqual(GitRepository.discover(self.root).get_head_branch(), "main")

    def test_tracked_entries_are_relative_to_subdirectory(self) -> None:
        commit_all(self.repo)
        git = GitRepository.discover(self.root)

        entries = git.tracked_entries(self.root / "app")

        self.assertEqual([entry.path for entry in entries], ["index.php"])
        self.assertIsInstance(entries[0], IndexEntry)
        self.assertEqual(len(entries[0].oid), 40)

    def test_changed_paths_skip_ignored_files(self) -> None:
        commit_all(self.repo)
        (self.root / "app" / "index.php").write_text("<?php echo 'changed';\n")
        (self.root / "app" / "new.txt").write_text("new\n")
        (self.root / "app" / "debug.log").write_text("noise\n")
        git = GitRepository.discover(self.root)

        self.assertEqual(git.changed_paths(self.root / "app"), ["index.php", "new.txt"])

    def test_is_ignored(self) -> None:
        git = GitRepository.discover(self.root)

        self.assertTrue(git.is_ignored(self.root / "app" / "debug.log"))
        self.assertFalse(git.is_ignored(self.root / "app" / "index.php"))

    def test_write_exclude_is_idempotent(self) -> None:
        git = GitRepository.discover(self.root)

        self.assertTrue(git.write_exclude(["/builds", "/www"]))
        self.assertFalse(git.write_exclude(["/builds"]))
        exclude = (git.git_dir / "info" / "exclude").read_text()
        self.assertIn("/builds\n", exclude)
        self.assertIn("/www\n", exclude)


if __name__ == "__main__":
    unittest.main()

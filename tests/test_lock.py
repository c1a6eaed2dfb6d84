from __future__ import annotations

from pathlib import Path
import os
import tempfile
import unittest

from core.lock import BuildLock, LockError


class BuildLockTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "project" / ".build.lock"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_second_holder_is_refused(self) -> None:
        with BuildLock(self.path) as first:
            self.assertTrue(first.held)
            self.assertEqual(self.path.read_text().strip(), str(os.getpid()))
            with self.assertRaises(LockError):
                BuildLock(self.path).acquire()

    def test_lock_can_be_taken_again_after_release(self) -> None:
        lock = BuildLock(self.path)
        lock.acquire()
        lock.release()
        self.assertFalse(lock.held)

        other = BuildLock(self.path)
        other.acquire()
        self.assertTrue(other.held)
        other.release()


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

from pathlib import Path
import sys
import unittest

from core.command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from core.console import RecordingConsole


class RecordingCommandRunnerTests(unittest.TestCase):
    def test_records_commands_and_canned_output(self) -> None:
        runner = RecordingCommandRunner(outputs={("drush", "version"): "8.4.12\n"})

        result = runner.run(["drush", "version", "--format=string"], cwd=Path("/srv/app"), stream=True)

        self.assertEqual(result.stdout, "8.4.12\n")
        self.assertTrue(result.streamed)
        self.assertEqual(runner.command_lists(), [["drush", "version", "--format=string"]])
        self.assertEqual(runner.commands[0].cwd, "/srv/app")

    def test_failure_prefix_raises_only_when_checked(self) -> None:
        runner = RecordingCommandRunner(failures=[("composer",)])

        with self.assertRaises(CommandError) as ctx:
            runner.run(["composer", "install"])
        self.assertEqual(ctx.exception.result.returncode, 1)

        result = runner.run(["composer", "install"], check=False)
        self.assertFalse(result.ok)

    def test_execute_skips_missing_executables(self) -> None:
        runner = RecordingCommandRunner(available=["git"])

        self.assertIsNone(runner.execute(["drush", "version"]))
        self.assertEqual(runner.commands, [])

    def test_execute_returns_stripped_output(self) -> None:
        runner = RecordingCommandRunner(outputs={("git",): "  main \n"})

        self.assertEqual(runner.execute(["git", "branch", "--show-current"]), "main")

    def test_execute_failure(self) -> None:
        runner = RecordingCommandRunner(failures=[("npm",)])

        self.assertIsNone(runner.execute(["npm", "--version"]))
        with self.assertRaises(CommandError):
            runner.execute(["npm", "--version"], must_succeed=True)


class SubprocessCommandRunnerTests(unittest.TestCase):
    def test_captures_output(self) -> None:
        runner = SubprocessCommandRunner()

        result = runner.run([sys.executable, "-c", "print('hello')"])

        self.assertEqual(result.stdout.strip(), "hello")
        self.assertTrue(result.ok)

    def test_non_zero_exit_raises(self) -> None:
        runner = SubprocessCommandRunner()

        with self.assertRaises(CommandError) as ctx:
            runner.run([sys.executable, "-c", "import sys; sys.exit(3)"])
        self.assertEqual(ctx.exception.result.returncode, 3)

    def test_environment_is_merged(self) -> None:
        runner = SubprocessCommandRunner()

        result = runner.run(
            [sys.executable, "-c", "import os; print(os.environ['APP_ENV'])"],
            env={"APP_ENV": "prod"},
        )

        self.assertEqual(result.stdout.strip(), "prod")

    def test_note_labels_debug_output(self) -> None:
        console = RecordingConsole()
        runner = SubprocessCommandRunner(console)

        runner.run(["sh", "-c", "exit 0"], note="build hook")

        self.assertEqual(console.lines("debug"), ["exec (build hook): sh -c 'exit 0'"])

    def test_command_exists(self) -> None:
        runner = SubprocessCommandRunner()

        self.assertTrue(runner.command_exists("sh"))
        self.assertFalse(runner.command_exists("definitely-not-an-installed-tool"))


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
import io
import unittest

from core.console import Console, RecordingConsole, Verbosity


class ConsoleTests(unittest.TestCase):
    def test_quiet_console_only_reports_errors(self) -> None:
        console = Console(Verbosity.QUIET)
        out, err = io.StringIO(), io.StringIO()

        with redirect_stdout(out), redirect_stderr(err):
            console.info("building")
            console.warning("careful")
            console.error("broken")

        self.assertEqual(out.getvalue(), "")
        self.assertEqual(err.getvalue(), "[ERROR] broken\n")

    def test_verbose_console(self) -> None:
        console = Console("verbose")
        out, err = io.StringIO(), io.StringIO()

        with redirect_stdout(out), redirect_stderr(err):
            console.info("one")
            console.verbose("two")
            console.debug("three")
            console.warning("four")

        self.assertEqual(out.getvalue(), "one\ntwo\n")
        self.assertEqual(err.getvalue(), "[WARN] four\n")

    def test_parse(self) -> None:
        self.assertIs(Verbosity.parse("very-verbose"), Verbosity.VERY_VERBOSE)
        self.assertIs(Verbosity.parse(2), Verbosity.VERBOSE)
        with self.assertRaises(ValueError):
            Verbosity.parse("loud")

    def test_recording_console_filters_by_level(self) -> None:
        console = RecordingConsole(Verbosity.NORMAL)

        console.info("a")
        console.verbose("b")
        console.warning("c")

        self.assertEqual(console.lines(), ["a", "c"])
        self.assertEqual(console.lines("warning"), ["c"])


if __name__ == "__main__":
    unittest.main()

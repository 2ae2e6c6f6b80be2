import asyncio
import io
import unittest
from unittest.mock import patch

from life_manager.__main__ import CONSOLE_SESSION_ID, run_console
from life_manager.app_config import parse_app_config
from life_manager.bootstrap import AppRuntime
from life_manager.coordinator import SessionRunCoordinator
from life_manager.session_store import SessionStore
from life_manager.transport import StreamTransport
from tests.fakes import FakeCalendarTasks, ScriptedEngine


class RunConsoleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = ScriptedEngine(reply="Here is your summary")
        self.runtime = AppRuntime(
            config=parse_app_config({"Provider": "none", "Mode": "console"}),
            registry=FakeCalendarTasks().registry(),
            engine=self.engine,
            coordinator=SessionRunCoordinator(SessionStore(), self.engine),
            transport=StreamTransport(delay_seconds=0),
        )

    def _run(self, *lines: str) -> str:
        with patch("builtins.input", side_effect=[*lines, EOFError()]), patch("sys.stdout", new_callable=io.StringIO) as out:
            asyncio.run(run_console(self.runtime))
        return out.getvalue()

    def test_digest_command_sends_marker_and_prints_suggestions(self) -> None:
        output = self._run("/digest", "exit")

        self.assertEqual(["[INITIAL_SUMMARY]"], self.engine.requests)
        self.assertIn("assistant> Here is your summary", output)
        self.assertIn("Suggestions: ", output)

    def test_new_clears_history(self) -> None:
        self._run("hello", "/new", "quit")
        self.assertEqual([], self.runtime.coordinator.history(CONSOLE_SESSION_ID))

    def test_blank_lines_are_skipped_and_eof_exits(self) -> None:
        self._run("   ")
        self.assertEqual(0, self.engine.runs)

    def test_engine_errors_do_not_end_the_session(self) -> None:
        self.engine.error = RuntimeError("boom")
        self._run("first", "exit")
        self.assertEqual(1, self.engine.runs)


if __name__ == "__main__":
    unittest.main()

import asyncio
import unittest

from life_manager.coordinator import SessionRunCoordinator
from life_manager.models import ActionButton, Role
from life_manager.session_store import SessionStore
from life_manager.transport import (
    DIGEST_ACTION_BUTTONS,
    StreamTransport,
    agent_response_frame,
    split_increments,
    suggested_action_buttons,
)
from tests.fakes import RecordingConnection, ScriptedEngine

TEN_WORDS = "one two three four five six seven eight nine ten"


class SplitIncrementsTests(unittest.TestCase):
    def test_increments_concatenate_back_to_text(self) -> None:
        for text in (TEN_WORDS, "## 📅 Today\n- **Standup** | ⏰ 9:00 AM", "double  space", "single", " lead"):
            self.assertEqual(text, "".join(split_increments(text)))

    def test_each_word_keeps_trailing_space_except_last(self) -> None:
        self.assertEqual(["a ", "b ", "c"], split_increments("a b c"))

    def test_empty_text(self) -> None:
        self.assertEqual([], split_increments(""))


class StreamTransportTests(unittest.TestCase):
    def test_streams_words_then_done_then_buttons(self) -> None:
        connection = RecordingConnection()
        buttons = (ActionButton("x", "X", "do x"),)

        outcome = asyncio.run(StreamTransport(delay_seconds=0).stream(connection, "s1", TEN_WORDS, buttons))

        self.assertTrue(outcome.completed)
        self.assertEqual(10, outcome.increments_sent)
        self.assertEqual(["agent_response"] * 10 + ["done", "action_buttons"], connection.types())
        self.assertEqual(TEN_WORDS, "".join(connection.increments()))
        self.assertEqual("assistant", connection.frames[0]["role"])
        self.assertEqual([{"id": "x", "label": "X", "action": "do x"}], connection.frames[-1]["buttons"])

    def test_no_buttons_frame_without_buttons(self) -> None:
        connection = RecordingConnection()
        asyncio.run(StreamTransport(delay_seconds=0).stream(connection, "s1", "hi"))
        self.assertEqual(["agent_response", "done"], connection.types())

    def test_stops_when_connection_closes(self) -> None:
        connection = RecordingConnection(close_after_increments=3)

        outcome = asyncio.run(StreamTransport(delay_seconds=0).stream(connection, "s1", TEN_WORDS))

        self.assertFalse(outcome.completed)
        self.assertEqual(3, outcome.increments_sent)
        self.assertEqual(10, outcome.total_increments)
        self.assertEqual(["one ", "two ", "three "], connection.increments())
        self.assertNotIn("done", connection.types())

    def test_send_on_closed_connection_is_a_noop(self) -> None:
        connection = RecordingConnection()
        connection.close()
        sent = asyncio.run(StreamTransport().send(connection, agent_response_frame("s1", "x")))
        self.assertFalse(sent)
        self.assertEqual([], connection.frames)

    def test_inter_word_delay(self) -> None:
        connection = RecordingConnection()
        loop_times: list[float] = []

        async def scenario() -> None:
            loop = asyncio.get_running_loop()
            start = loop.time()
            await StreamTransport(delay_seconds=0.01).stream(connection, "s1", "a b c d e")
            loop_times.append(loop.time() - start)

        asyncio.run(scenario())
        self.assertGreaterEqual(loop_times[0], 0.035)

    def test_digest_buttons(self) -> None:
        self.assertEqual(DIGEST_ACTION_BUTTONS, suggested_action_buttons(True))
        self.assertEqual((), suggested_action_buttons(False))


class DisconnectDuringRunTests(unittest.TestCase):
    def test_full_reply_is_committed_after_mid_stream_disconnect(self) -> None:
        connection = RecordingConnection(close_after_increments=3)
        transport = StreamTransport(delay_seconds=0)
        coordinator = SessionRunCoordinator(SessionStore(), ScriptedEngine(reply=TEN_WORDS))

        async def deliver(text, buttons):
            return await transport.stream(connection, "s1", text, buttons)

        asyncio.run(coordinator.submit("s1", "hi", deliver=deliver))

        self.assertEqual(3, len(connection.increments()))
        assistant = [m for m in coordinator.history("s1") if m.role is Role.ASSISTANT]
        self.assertEqual([TEN_WORDS], [m.content for m in assistant])


if __name__ == "__main__":
    unittest.main()

import asyncio
import unittest

from pydantic import BaseModel, ConfigDict, Field

from life_manager.errors import InvalidArguments, ToolExecutionError, ToolNotFound
from life_manager.models import RunHandle, RunStatus, ToolCall
from life_manager.tool_registry import ToolRegistry, build_registry, current_run, current_session_id


class _EchoInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1)
    times: int = 1


class ToolRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[_EchoInput] = []

        async def echo(tool_input: _EchoInput) -> str:
            self.calls.append(tool_input)
            return tool_input.text * tool_input.times

        async def explode(tool_input: _EchoInput) -> str:
            raise RuntimeError("upstream is down")

        self.registry = ToolRegistry()
        self.registry.register("echo", _EchoInput, echo, description="Echo text")
        self.registry.register("explode", _EchoInput, explode, is_mutating=True)

    def test_invoke_validates_and_calls_handler(self) -> None:
        output = asyncio.run(self.registry.invoke("echo", {"text": "ab", "times": 2}, call_id="c1"))
        self.assertTrue(output.ok)
        self.assertEqual("abab", output.result)
        self.assertEqual("c1", output.call_id)
        self.assertEqual(1, len(self.calls))

    def test_invoke_accepts_json_string_arguments(self) -> None:
        output = asyncio.run(self.registry.invoke("echo", '{"text": "hi"}'))
        self.assertEqual("hi", output.result)

    def test_invalid_arguments_never_reach_handler(self) -> None:
        output = asyncio.run(self.registry.invoke("echo", {"text": "", "unexpected": 1}))
        self.assertFalse(output.ok)
        self.assertIsInstance(output.error, InvalidArguments)
        self.assertGreaterEqual(len(output.error.details), 2)
        self.assertEqual([], self.calls)

    def test_unknown_tool_returns_not_found(self) -> None:
        output = asyncio.run(self.registry.invoke("missing", {}))
        self.assertIsInstance(output.error, ToolNotFound)
        self.assertEqual("tool_not_found", output.error.to_dict()["error"])

    def test_handler_exception_becomes_execution_error(self) -> None:
        output = asyncio.run(self.registry.invoke("explode", {"text": "x"}))
        self.assertIsInstance(output.error, ToolExecutionError)
        self.assertIn("upstream is down", str(output.error))

    def test_duplicate_registration_is_rejected(self) -> None:
        async def noop(tool_input: _EchoInput) -> None:
            return None

        with self.assertRaises(ValueError):
            self.registry.register("echo", _EchoInput, noop)

    def test_subset_exposes_only_named_tools(self) -> None:
        view = self.registry.subset(["echo"])
        self.assertEqual(["echo"], view.names())
        self.assertNotIn("explode", view)
        output = asyncio.run(view.invoke("explode", {"text": "x"}))
        self.assertIsInstance(output.error, ToolNotFound)
        with self.assertRaises(ValueError):
            self.registry.subset(["nope"])

    def test_describe_uses_json_schema(self) -> None:
        described = {d["name"]: d for d in self.registry.describe()}
        self.assertEqual("Echo text", described["echo"]["description"])
        self.assertIn("text", described["echo"]["input_schema"]["properties"])

    def test_invoke_many_preserves_call_order(self) -> None:
        calls = [ToolCall("echo", {"text": "a"}, call_id="1"), ToolCall("explode", {"text": "b"}, call_id="2")]
        outputs = asyncio.run(self.registry.invoke_many(calls))
        self.assertEqual(["1", "2"], [o.call_id for o in outputs])
        self.assertTrue(outputs[0].ok)
        self.assertFalse(outputs[1].ok)

    def test_observers_see_invocations_inside_a_session(self) -> None:
        seen: list[tuple] = []
        self.registry.add_observer(lambda sid, args, output: seen.append((sid, args, output.tool_name)))
        view = self.registry.subset(["echo"])

        async def scenario() -> None:
            await view.invoke("echo", {"text": "outside"})
            token = current_session_id.set("s1")
            try:
                await view.invoke("echo", {"text": "inside"})
            finally:
                current_session_id.reset(token)

        asyncio.run(scenario())
        self.assertEqual([("s1", {"text": "inside"}, "echo")], seen)

    def test_observers_skip_invocations_finishing_after_the_run_timed_out(self) -> None:
        seen: list[str] = []
        self.registry.add_observer(lambda sid, args, output: seen.append(args["text"]))
        handle = RunHandle("s1")
        handle.transition(RunStatus.RUNNING)

        async def scenario() -> None:
            session_token = current_session_id.set("s1")
            run_token = current_run.set(handle)
            try:
                await self.registry.invoke("echo", {"text": "in time"})
                handle.transition(RunStatus.TIMED_OUT)
                output = await self.registry.invoke("echo", {"text": "late"})
                self.assertTrue(output.ok)
            finally:
                current_run.reset(run_token)
                current_session_id.reset(session_token)

        asyncio.run(scenario())
        self.assertEqual(["in time"], seen)

    def test_failing_observer_does_not_break_invoke(self) -> None:
        def broken(sid, args, output) -> None:
            raise RuntimeError("disk full")

        self.registry.add_observer(broken)

        async def scenario():
            token = current_session_id.set("s1")
            try:
                return await self.registry.invoke("echo", {"text": "x"})
            finally:
                current_session_id.reset(token)

        self.assertTrue(asyncio.run(scenario()).ok)


class BuildRegistryTests(unittest.TestCase):
    def test_sample_tools_without_google_credentials(self) -> None:
        registry = build_registry()
        self.assertEqual(
            [
                "calendar_list_events",
                "calendar_create_event",
                "tasks_list",
                "tasks_create",
                "tasks_complete",
                "tasks_delete",
                "tasks_list_lists",
                "calendar_list_calendars",
            ],
            registry.names(),
        )

    def test_google_tools_with_credentials(self) -> None:
        registry = build_registry("client-id", "client-secret")
        self.assertEqual(8, len(registry))
        self.assertIn("calendar_list_events", registry)
        self.assertIn("tasks_delete", registry)


if __name__ == "__main__":
    unittest.main()

import asyncio
import unittest
from datetime import UTC, datetime, time, timedelta

from life_manager.agents.calendar_agent import CalendarAgent
from life_manager.agents.tasks_agent import TasksAgent
from life_manager.aggregator import NO_TASKS, Aggregator
from life_manager.classifier import KeywordClassifier
from life_manager.errors import RunTimeout
from life_manager.models import AgentResult, RoutingDecision, RunHandle, RunStatus, Session
from life_manager.orchestrator import DIGEST_REQUEST, Orchestrator, OrchestratorState, RunContext, parse_request
from tests.fakes import FakeAgent, FakeCalendarTasks, FakeClassifier, google_event, google_task, today


class _RecordingAggregator(Aggregator):
    def __init__(self):
        super().__init__()
        self.seen: list[list[AgentResult]] = []
        self.decisions: list[RoutingDecision] = []

    async def format(self, request, decision, results, **kwargs) -> str:
        self.seen.append(list(results))
        self.decisions.append(decision)
        return await super().format(request, decision, results, **kwargs)


def _run(orchestrator: Orchestrator, request: str) -> tuple[str, RunContext]:
    handle = RunHandle("s1", status=RunStatus.RUNNING)
    context = RunContext(request=request)
    text = asyncio.run(orchestrator.run(request, Session("s1"), handle, context))
    return text, context


class ParseRequestTests(unittest.TestCase):
    def test_digest_marker_is_stripped(self) -> None:
        self.assertEqual(("Plan my day", True), parse_request("[INITIAL_SUMMARY] Plan my day"))

    def test_bare_marker_gets_default_request(self) -> None:
        self.assertEqual((DIGEST_REQUEST, True), parse_request("[INITIAL_SUMMARY]"))

    def test_plain_request(self) -> None:
        self.assertEqual(("hi", False), parse_request("  hi "))


class OrchestratorTests(unittest.TestCase):
    def test_zero_agent_routing_invokes_no_tool(self) -> None:
        fake = FakeCalendarTasks()
        registry = fake.registry()
        aggregator = _RecordingAggregator()
        orchestrator = Orchestrator(KeywordClassifier(), [CalendarAgent(registry), TasksAgent(registry)], aggregator)

        _, context = _run(orchestrator, "hello, how are you?")

        self.assertEqual([], fake.calls)
        self.assertNotIn(OrchestratorState.EXECUTE, context.states)
        self.assertEqual(
            [OrchestratorState.START, OrchestratorState.ROUTE, OrchestratorState.AGGREGATE, OrchestratorState.END],
            context.states,
        )

    def test_join_barrier_waits_for_slow_and_failing_agents(self) -> None:
        slow = FakeAgent("calendar", data=["late event"], delay=0.05)
        broken = FakeAgent("tasks", error=RuntimeError("boom"))
        aggregator = _RecordingAggregator()
        orchestrator = Orchestrator(FakeClassifier("calendar", "tasks"), [slow, broken], aggregator)

        _run(orchestrator, "my schedule")

        seen = {r.agent_name: r for r in aggregator.seen[0]}
        self.assertEqual(["late event"], seen["calendar"].data)
        self.assertEqual("boom", seen["tasks"].error)

    def test_classifier_failure_replies_conversationally(self) -> None:
        agent = FakeAgent("calendar")
        aggregator = _RecordingAggregator()
        orchestrator = Orchestrator(FakeClassifier(error=ValueError("bad json")), [agent], aggregator)

        _run(orchestrator, "meetings?")

        self.assertEqual(0, agent.calls)
        self.assertTrue(aggregator.decisions[0].is_conversational)

    def test_unknown_agents_are_dropped(self) -> None:
        agent = FakeAgent("calendar")
        orchestrator = Orchestrator(FakeClassifier("calendar", "weather"), [agent], _RecordingAggregator())
        _, context = _run(orchestrator, "x")
        self.assertEqual(frozenset({"calendar"}), context.decision.agents)
        self.assertEqual(1, agent.calls)

    def test_digest_routes_to_both_agents(self) -> None:
        classifier = FakeClassifier()
        calendar, tasks = FakeAgent("calendar"), FakeAgent("tasks")
        orchestrator = Orchestrator(classifier, [calendar, tasks], _RecordingAggregator())

        text, context = _run(orchestrator, "[INITIAL_SUMMARY]")

        self.assertEqual([], classifier.requests)
        self.assertEqual((1, 1), (calendar.calls, tasks.calls))
        self.assertTrue(context.digest)
        self.assertEqual("Next 3 Days", context.window.label)
        self.assertIn("## 💡 Recommendations", text)

    def test_tasks_failure_still_renders_calendar(self) -> None:
        start = datetime.combine(today(), time(23, 0), tzinfo=UTC) - timedelta(hours=1)
        fake = FakeCalendarTasks(
            events=[google_event("e1", "Team sync", start)],
            tasks=[google_task("t1", "Anything", 0)],
            tasks_error=RuntimeError("Google Tasks unavailable"),
        )
        registry = fake.registry()
        orchestrator = Orchestrator(KeywordClassifier(), [CalendarAgent(registry), TasksAgent(registry)], Aggregator())

        text, context = _run(orchestrator, "what's my schedule today")

        self.assertIn("Team sync", text)
        self.assertIn(NO_TASKS, text)
        self.assertEqual(OrchestratorState.END, context.state)

    def test_stops_when_handle_is_terminal(self) -> None:
        agent = FakeAgent("calendar", delay=0.05)
        aggregator = _RecordingAggregator()
        orchestrator = Orchestrator(FakeClassifier("calendar"), [agent], aggregator)
        handle = RunHandle("s1", status=RunStatus.RUNNING)
        context = RunContext(request="x")

        async def scenario() -> None:
            task = asyncio.create_task(orchestrator.run("x", Session("s1"), handle, context))
            await asyncio.sleep(0.01)
            handle.transition(RunStatus.TIMED_OUT)
            with self.assertRaises(RunTimeout):
                await task

        asyncio.run(scenario())
        self.assertEqual([], aggregator.seen)
        self.assertEqual([], context.results)


if __name__ == "__main__":
    unittest.main()

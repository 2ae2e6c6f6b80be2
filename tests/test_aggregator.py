import asyncio
import unittest
from datetime import UTC, date, datetime

from life_manager.aggregator import (
    CONVERSATIONAL_FALLBACK,
    NO_EVENTS,
    NO_TASKS,
    Aggregator,
    format_fallback,
    strip_code_fence,
)
from life_manager.errors import BackendUnavailable
from life_manager.models import AgentResult, CalendarEvent, Message, Role, RoutingDecision, TaskItem
from tests.fakes import FakeProvider

TODAY = date(2025, 7, 16)
BOTH = RoutingDecision(frozenset({"calendar", "tasks"}), "both")


def _event(event_id: str, title: str, day: int, hour: int) -> CalendarEvent:
    start = datetime(2025, 7, day, hour, tzinfo=UTC)
    return CalendarEvent(event_id, title, start, start.replace(hour=hour + 1))


def _digest_results() -> list[AgentResult]:
    return [
        AgentResult("calendar", data=[_event("e2", "Dentist", 17, 10), _event("e1", "Standup", 16, 9)]),
        AgentResult("tasks", data=[TaskItem("t1", "File taxes", priority="high", due=date(2025, 7, 17))]),
    ]


class FormatFallbackTests(unittest.TestCase):
    def test_digest_scenario(self) -> None:
        text = format_fallback(_digest_results(), digest=True, today=TODAY)

        self.assertIn("## 📅 Next 3 Days", text)
        self.assertLess(text.index("Standup"), text.index("Dentist"))
        self.assertIn("### Today", text)
        self.assertIn("### Tomorrow", text)
        high = text.index("High Priority")
        self.assertLess(high, text.index("File taxes"))
        recs = text[text.index("## 💡 Recommendations"):]
        self.assertIn("1. ", recs)
        self.assertIn("2. ", recs)
        self.assertNotIn("```", text)

    def test_failed_agent_renders_not_found_and_keeps_other_section(self) -> None:
        results = [
            AgentResult("calendar", data=[_event("e1", "Standup", 16, 9)]),
            AgentResult("tasks", data=[], error="tasks API down"),
        ]
        text = format_fallback(results, today=TODAY)
        self.assertIn("Standup", text)
        self.assertIn(NO_TASKS, text)

    def test_only_selected_sections_are_rendered(self) -> None:
        text = format_fallback([AgentResult("calendar")], label="This Week", today=TODAY)
        self.assertIn("## 📅 This Week", text)
        self.assertIn(NO_EVENTS, text)
        self.assertNotIn("Tasks", text)

    def test_no_results_is_conversational(self) -> None:
        self.assertEqual(CONVERSATIONAL_FALLBACK, format_fallback([]))

    def test_tasks_grouped_by_priority(self) -> None:
        tasks = [
            TaskItem("a", "Low one", priority="low"),
            TaskItem("b", "High one", priority="high"),
            TaskItem("c", "Medium one", priority="medium", due=date(2025, 7, 14)),
        ]
        text = format_fallback([AgentResult("tasks", data=tasks)], today=TODAY)
        self.assertLess(text.index("High Priority"), text.index("Medium Priority"))
        self.assertLess(text.index("Medium Priority"), text.index("Low Priority"))
        self.assertIn("Overdue by 2 days", text)


class StripCodeFenceTests(unittest.TestCase):
    def test_removes_fence(self) -> None:
        self.assertEqual("## Hi", strip_code_fence("```markdown\n## Hi\n```"))

    def test_leaves_plain_text(self) -> None:
        self.assertEqual("plain", strip_code_fence("  plain  "))


class AggregatorTests(unittest.TestCase):
    def test_without_provider_uses_fallback(self) -> None:
        text = asyncio.run(Aggregator().format("today", BOTH, _digest_results(), digest=True))
        self.assertIn("## 💡 Recommendations", text)

    def test_model_reply_is_unfenced(self) -> None:
        provider = FakeProvider(["```markdown\n## 📅 Today\n- Standup\n```"])
        text = asyncio.run(Aggregator(provider, model="m").format("today", BOTH, _digest_results()))
        self.assertEqual("## 📅 Today\n- Standup", text)
        self.assertIn("Standup", provider.calls[0]["messages"][0]["content"])

    def test_digest_reply_gets_recommendations_appended(self) -> None:
        provider = FakeProvider(["## 📅 Next 3 Days\n- Standup"])
        text = asyncio.run(Aggregator(provider, model="m").format("s", BOTH, _digest_results(), digest=True))
        self.assertIn("## 💡 Recommendations", text)

    def test_backend_unavailable_uses_fallback(self) -> None:
        provider = FakeProvider(error=BackendUnavailable("overloaded"))
        text = asyncio.run(Aggregator(provider, model="m").format("today", BOTH, _digest_results()))
        self.assertIn("Standup", text)
        self.assertIn("High Priority", text)

    def test_conversational_uses_history(self) -> None:
        provider = FakeProvider(["Hi! How can I help?"])
        history = [
            Message(Role.USER, "hello", "s1"),
        ]
        text = asyncio.run(Aggregator(provider, model="m").format(
            "hello", RoutingDecision.conversational("small talk"), [], history=history
        ))
        self.assertEqual("Hi! How can I help?", text)
        self.assertEqual([{"role": "user", "content": "hello"}], provider.calls[0]["messages"])

    def test_conversational_without_provider(self) -> None:
        text = asyncio.run(Aggregator().format("hello", RoutingDecision.conversational("x"), []))
        self.assertEqual(CONVERSATIONAL_FALLBACK, text)


if __name__ == "__main__":
    unittest.main()

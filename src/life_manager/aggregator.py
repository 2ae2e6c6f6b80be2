"""Compose the final reply from agent results.

``format_fallback`` is the single deterministic renderer. It is used directly
when no model is configured and on every failure path (model outage, run
timeout), and it only ever reflects the literal ``AgentResult`` data.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime

from loguru import logger

from life_manager.errors import BackendUnavailable
from life_manager.models import (
    CALENDAR_AGENT,
    TASKS_AGENT,
    AgentResult,
    CalendarEvent,
    Message,
    Role,
    RoutingDecision,
    TaskItem,
)
from life_manager.provider import LLMProvider
from life_manager.system_prompt import build_conversational_prompt, build_formatting_prompt

NO_EVENTS = "No events found."
NO_TASKS = "No tasks found."

CONVERSATIONAL_FALLBACK = (
    "I can help you with your calendar and tasks. Try asking for \"this week's schedule\", "
    "\"all tasks\" or \"what's due today\"."
)

_PRIORITY_HEADINGS = (
    ("high", "### 🔴 High Priority"),
    ("medium", "### 🟡 Medium Priority"),
    ("low", "### 🟢 Low Priority"),
)

_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*\n(.*?)\n?\s*```\s*$", re.S)


def strip_code_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _clock(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def _day_heading(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if (day - today).days == 1:
        return "Tomorrow"
    return f"{day:%A}, {day:%B} {day.day}"


def _due_label(due: date, today: date) -> str:
    if due < today:
        days = (today - due).days
        return f"Overdue by {days} day{'s' if days > 1 else ''}"
    if due == today:
        return "Today"
    if (due - today).days == 1:
        return "Tomorrow"
    return f"{due:%a}, {due:%b} {due.day}"


def _event_line(event: CalendarEvent) -> str:
    parts = [f"**{event.title}**"]
    if event.all_day:
        parts.append("⏰ All day")
    elif event.start and event.end:
        parts.append(f"⏰ {_clock(event.start)} - {_clock(event.end)}")
    elif event.start:
        parts.append(f"⏰ {_clock(event.start)}")
    if event.location:
        parts.append(f"📍 {event.location}")
    if event.status == "tentative":
        parts.append("(tentative)")
    return "- " + " | ".join(parts)


def _task_line(task: TaskItem, today: date) -> str:
    parts = [f"**{task.title}**"]
    if task.due:
        parts.append(f"📅 Due: {_due_label(task.due, today)}")
    if task.task_list_title:
        parts.append(f"📂 {task.task_list_title}")
    return "- " + " | ".join(parts)


def render_events(events: Sequence[CalendarEvent], today: date) -> list[str]:
    if not events:
        return [NO_EVENTS]
    lines: list[str] = []
    current: date | None = None
    undated: list[CalendarEvent] = []
    for event in sorted(events, key=lambda e: e.start or datetime.max.replace(tzinfo=UTC)):
        if event.start is None:
            undated.append(event)
            continue
        day = event.start.date()
        if day != current:
            if lines:
                lines.append("")
            lines.append(f"### {_day_heading(day, today)}")
            current = day
        lines.append(_event_line(event))
    if undated:
        if lines:
            lines.append("")
        lines.append("### Unscheduled")
        lines.extend(_event_line(e) for e in undated)
    return lines


def render_tasks(tasks: Sequence[TaskItem], today: date) -> list[str]:
    if not tasks:
        return [NO_TASKS]
    lines: list[str] = []
    for priority, heading in _PRIORITY_HEADINGS:
        group = [t for t in tasks if t.priority == priority]
        if not group:
            continue
        if lines:
            lines.append("")
        lines.append(heading)
        lines.extend(_task_line(t, today) for t in group)
    return lines


def build_recommendations(
    events: Sequence[CalendarEvent],
    tasks: Sequence[TaskItem],
    today: date,
) -> list[str]:
    recs: list[str] = []
    high = [t for t in tasks if t.priority == "high"]
    overdue = [t for t in tasks if t.due and t.due < today]
    timed = [e for e in events if e.start and not e.all_day]

    if high:
        recs.append(f"Start with your high-priority work: \"{high[0].title}\"" +
                    (f" and {len(high) - 1} more." if len(high) > 1 else "."))
    if overdue:
        recs.append(f"Finish or reschedule {len(overdue)} overdue task{'s' if len(overdue) > 1 else ''}.")
    if timed:
        first = timed[0]
        recs.append(f"Prepare for \"{first.title}\" ({_day_heading(first.start.date(), today)}, {_clock(first.start)}).")
    if len(recs) < 2:
        recs.append("Block focused time in your calendar for your most important tasks.")
    return [f"{i}. {rec}" for i, rec in enumerate(recs[:3], start=1)]


def _result_for(results: Iterable[AgentResult], name: str) -> AgentResult | None:
    for result in results:
        if result.agent_name == name:
            return result
    return None


def format_fallback(
    results: Sequence[AgentResult],
    *,
    digest: bool = False,
    label: str = "Next 7 Days",
    today: date | None = None,
) -> str:
    """Render agent results without a language model.

    Sections are emitted only for agents that ran; a failed or empty agent
    renders its "No ... found" line so the remaining sections still show.
    """
    today = today or datetime.now(UTC).date()
    calendar = _result_for(results, CALENDAR_AGENT)
    tasks = _result_for(results, TASKS_AGENT)

    if calendar is None and tasks is None and not digest:
        return CONVERSATIONAL_FALLBACK

    events = [e for e in calendar.data if isinstance(e, CalendarEvent)] if calendar else []
    open_tasks = [t for t in tasks.data if isinstance(t, TaskItem)] if tasks else []

    sections: list[str] = []
    if calendar is not None or digest:
        heading = "## 📅 Next 3 Days" if digest else f"## 📅 {label}"
        sections.append("\n".join([heading, "", *render_events(events, today)]))
    if tasks is not None or digest:
        sections.append("\n".join(["## ✅ Tasks", "", *render_tasks(open_tasks, today)]))
    if digest:
        sections.append("\n".join(["## 💡 Recommendations", "", *build_recommendations(events, open_tasks, today)]))
    return "\n\n".join(sections)


class Aggregator:
    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        model: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ):
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def format(
        self,
        request: str,
        decision: RoutingDecision,
        results: Sequence[AgentResult],
        *,
        digest: bool = False,
        label: str = "Next 7 Days",
        history: Sequence[Message] = (),
    ) -> str:
        if decision.is_conversational:
            return await self._converse(request, history)

        fallback = format_fallback(results, digest=digest, label=label)
        if self._provider is None:
            return fallback

        try:
            reply = await self._provider.complete(
                build_formatting_prompt(digest=digest, label=label),
                [{"role": "user", "content": f"Request: {request}\n\nData:\n{fallback}"}],
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except BackendUnavailable as ex:
            logger.warning(f"Formatting model unavailable, using fallback formatter: {ex}")
            return fallback

        reply = strip_code_fence(reply)
        if not reply:
            return fallback
        if digest and "Recommendations" not in reply:
            recs = fallback[fallback.index("## 💡 Recommendations"):]
            reply = f"{reply}\n\n{recs}"
        return reply

    async def _converse(self, request: str, history: Sequence[Message]) -> str:
        if self._provider is None:
            return CONVERSATIONAL_FALLBACK

        messages = [
            {"role": m.role.value, "content": m.content}
            for m in history
            if m.role in (Role.USER, Role.ASSISTANT)
        ]
        if not messages or messages[-1]["content"] != request:
            messages.append({"role": "user", "content": request})

        try:
            reply = await self._provider.complete(
                build_conversational_prompt(),
                messages,
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except BackendUnavailable as ex:
            logger.warning(f"Conversation model unavailable: {ex}")
            return CONVERSATIONAL_FALLBACK
        return strip_code_fence(reply) or CONVERSATIONAL_FALLBACK

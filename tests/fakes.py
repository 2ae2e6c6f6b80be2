import asyncio
from datetime import UTC, date, datetime, timedelta
from typing import Any

from life_manager.errors import BackendUnavailable, TransportClosed
from life_manager.models import AgentResult, RoutingDecision, RunHandle, Session
from life_manager.orchestrator import RunContext, parse_request
from life_manager.tool_registry import ToolRegistry
from life_manager.tools.calendar.calendar_list_events_tool import CalendarListEventsInput
from life_manager.tools.tasks.tasks_complete_tool import TasksCompleteInput
from life_manager.tools.tasks.tasks_create_tool import TasksCreateInput
from life_manager.tools.tasks.tasks_list_tool import TasksListInput


def today() -> date:
    return datetime.now(UTC).date()


def google_event(event_id: str, summary: str, start: datetime, hours: int = 1, **extra: Any) -> dict:
    return {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": (start + timedelta(hours=hours)).isoformat()},
        **extra,
    }


def google_task(task_id: str, title: str, due_in_days: int | None = None, **extra: Any) -> dict:
    task = {"id": task_id, "title": title, "status": "needsAction", "taskListId": "@default"}
    if due_in_days is not None:
        task["due"] = f"{(today() + timedelta(days=due_in_days)).isoformat()}T00:00:00.000Z"
    task.update(extra)
    return task


class FakeCalendarTasks:
    """Registers the calendar and tasks tool names over canned data and records every call."""

    def __init__(
        self,
        events: list[dict] | None = None,
        tasks: list[dict] | None = None,
        *,
        calendar_error: Exception | None = None,
        tasks_error: Exception | None = None,
        calendar_delay: float = 0.0,
        tasks_delay: float = 0.0,
    ):
        self.events = events or []
        self.tasks = tasks or []
        self.calendar_error = calendar_error
        self.tasks_error = tasks_error
        self.calendar_delay = calendar_delay
        self.tasks_delay = tasks_delay
        self.calls: list[tuple[str, Any]] = []

    def registry(self) -> ToolRegistry:
        registry = ToolRegistry()
        registry.register("calendar_list_events", CalendarListEventsInput, self._list_events)
        registry.register("tasks_list", TasksListInput, self._list_tasks)
        registry.register("tasks_create", TasksCreateInput, self._create_task, is_mutating=True)
        registry.register("tasks_complete", TasksCompleteInput, self._complete_task, is_mutating=True)
        return registry

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def _list_events(self, tool_input: CalendarListEventsInput) -> list[dict]:
        self.calls.append(("calendar_list_events", tool_input))
        if self.calendar_delay:
            await asyncio.sleep(self.calendar_delay)
        if self.calendar_error is not None:
            raise self.calendar_error
        return list(self.events)

    async def _list_tasks(self, tool_input: TasksListInput) -> list[dict]:
        self.calls.append(("tasks_list", tool_input))
        if self.tasks_delay:
            await asyncio.sleep(self.tasks_delay)
        if self.tasks_error is not None:
            raise self.tasks_error
        return list(self.tasks)

    async def _create_task(self, tool_input: TasksCreateInput) -> dict:
        self.calls.append(("tasks_create", tool_input))
        task = {"id": f"new_{len(self.calls)}", "title": tool_input.title, "status": "needsAction"}
        if tool_input.due:
            task["due"] = f"{tool_input.due.isoformat()}T00:00:00.000Z"
        return {"status": "task_created", "task": task}

    async def _complete_task(self, tool_input: TasksCompleteInput) -> dict:
        self.calls.append(("tasks_complete", tool_input))
        for task in self.tasks:
            if task["id"] == tool_input.taskId:
                return {"status": "task_completed", "task": {**task, "status": "completed"}}
        raise ValueError(f"No task with id {tool_input.taskId!r}")


class FakeProvider:
    def __init__(self, replies: list[str] | None = None, error: Exception | None = None):
        self._replies = list(replies or [])
        self._error = error
        self.calls: list[dict] = []

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict],
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append({"system_prompt": system_prompt, "messages": messages, "model": model})
        if self._error is not None:
            raise self._error
        if not self._replies:
            raise BackendUnavailable("no scripted reply left")
        return self._replies.pop(0)


class FakeClassifier:
    def __init__(self, *agents: str, error: Exception | None = None):
        self._decision = RoutingDecision(frozenset(agents), "scripted")
        self._error = error
        self.requests: list[str] = []

    async def classify(self, request: str) -> RoutingDecision:
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        return self._decision


class FakeAgent:
    def __init__(self, name: str, data: list | None = None, *, delay: float = 0.0, error: Exception | None = None):
        self.name = name
        self._data = data or []
        self._delay = delay
        self._error = error
        self.calls = 0

    async def process(self, request: str, time_window_hint=None) -> AgentResult:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return AgentResult(self.name, data=list(self._data))


class RecordingConnection:
    """``Connection`` that records frames and can drop after a number of ``agent_response`` frames."""

    def __init__(self, close_after_increments: int | None = None):
        self.frames: list[dict] = []
        self._close_after = close_after_increments
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    async def send_json(self, frame: dict[str, Any]) -> None:
        if not self._open:
            raise TransportClosed("closed")
        if frame["type"] == "agent_response" and self._close_after is not None:
            if len(self.increments()) >= self._close_after:
                self._open = False
                raise TransportClosed("peer went away")
        self.frames.append(frame)

    def increments(self) -> list[str]:
        return [f["content"] for f in self.frames if f["type"] == "agent_response"]

    def types(self) -> list[str]:
        return [f["type"] for f in self.frames]


class ScriptedEngine:
    """``Engine`` returning a fixed reply after an optional delay; counts executions."""

    def __init__(self, reply: str = "Done.", *, delay: float = 0.0, error: Exception | None = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.runs = 0
        self.active = 0
        self.max_active = 0
        self.requests: list[str] = []

    async def run(self, request: str, session: Session, handle: RunHandle, context: RunContext) -> str:
        self.runs += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.requests.append(request)
        context.request, context.digest = parse_request(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.reply
        finally:
            self.active -= 1

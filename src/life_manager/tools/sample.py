"""In-memory calendar and task data used when no Google credentials are configured.

The store registers the same tool names and input models as the Google tools so
agents cannot tell the two apart. Events use the flat ``date`` / ``time`` shape
("2025-07-12", "09:00 AM") and tasks carry an explicit ``priority`` and
``dueDate``; the agents normalize both shapes.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from pydantic import BaseModel

from life_manager.tool import Tool
from life_manager.tools.calendar.calendar_create_event_tool import CalendarCreateEventInput
from life_manager.tools.calendar.calendar_list_calendars_tool import CalendarListCalendarsInput
from life_manager.tools.calendar.calendar_list_events_tool import CalendarListEventsInput
from life_manager.tools.tasks.tasks_complete_tool import TasksCompleteInput
from life_manager.tools.tasks.tasks_create_tool import TasksCreateInput
from life_manager.tools.tasks.tasks_delete_tool import TasksDeleteInput
from life_manager.tools.tasks.tasks_list_lists_tool import TasksListListsInput
from life_manager.tools.tasks.tasks_list_tool import TasksListInput

SAMPLE_TASK_LIST_ID = "@default"
SAMPLE_TASK_LIST_TITLE = "My Tasks"

# (day offset, title, start, end, location, description, status)
_SEED_EVENTS = [
    (0, "Team Sprint Planning", "09:00 AM", "11:00 AM", "Conference Room A",
     "Planning session for sprint goals and backlog prioritization", "confirmed"),
    (1, "Doctor Appointment - Annual Checkup", "2:00 PM", "3:00 PM", "Medical Center, Suite 204",
     "Annual physical examination with Dr. Smith", "confirmed"),
    (2, "Client Presentation - Quarterly Review", "3:30 PM", "5:00 PM", "Virtual Meeting (Zoom)",
     "Quarterly business review with ABC Corp client", "confirmed"),
    (3, "Lunch with Mom", "12:30 PM", "2:00 PM", "Italian Bistro downtown",
     "Monthly lunch catch-up", "confirmed"),
    (4, "Dentist Appointment", "10:00 AM", "11:00 AM", "Smile Dental Clinic",
     "Routine dental cleaning", "confirmed"),
    (5, "Project Demo - Marketing Team", "4:00 PM", "5:30 PM", "Meeting Room B",
     "Demo new analytics dashboard features", "tentative"),
    (7, "Weekend Hiking Trip", "8:00 AM", "6:00 PM", "Blue Ridge Trail Head",
     "Day hike at Blue Ridge Mountains with friends", "confirmed"),
    (9, "1:1 with Manager", "2:00 PM", "3:00 PM", "Manager's Office",
     "Monthly check-in and performance review", "confirmed"),
]

# (due day offset, title, priority, notes, completed)
_SEED_TASKS = [
    (3, "Complete Project Proposal", "high",
     "Finalize the proposal document including budget analysis and timeline", False),
    (0, "Buy Groceries for Week", "medium", "Milk, bread, eggs, vegetables, fruits, chicken", False),
    (8, "Schedule Annual Physical Exam", "low", "Call Dr. Smith's office", True),
    (5, "Prepare Marketing Dashboard Demo", "high", "Create slides and demo script", False),
    (6, "Research Weekend Hiking Gear", "low", "Boots and backpack for the Blue Ridge trip", False),
    (13, "Update Resume with Recent Projects", "medium", "Add recent accomplishments", False),
    (18, "Plan Mom's Birthday Celebration", "medium", "Dinner reservation and gift", False),
    (1, "Submit Expense Reports", "high", "Complete and submit expense reports with receipts", False),
    (8, "Car Oil Change", "medium", "Oil change at 50,000 miles", False),
    (2, "Review Team Performance Reports", "high", "Provide feedback on team performance reports", False),
]


def _format_clock(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def _event_start(event: dict[str, Any]) -> datetime:
    day = date.fromisoformat(event["date"])
    clock = datetime.strptime(event.get("time") or "12:00 AM", "%I:%M %p").time()
    return datetime.combine(day, clock, tzinfo=UTC)


def _parse_bound(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SampleDataStore:
    """Mutable event and task collections shared by the sample tools.

    Every read and write goes through ``_lock`` so concurrent sessions never
    observe a half-applied mutation.
    """

    def __init__(self, events: list[dict[str, Any]] | None = None, tasks: list[dict[str, Any]] | None = None):
        self._events: dict[str, dict[str, Any]] = {e["id"]: e for e in events or []}
        self._tasks: dict[str, dict[str, Any]] = {t["id"]: t for t in tasks or []}
        self._next_event_id = 100
        self._next_task_id = 100
        self._lock = asyncio.Lock()

    @classmethod
    def seeded(cls, today: date | None = None) -> SampleDataStore:
        today = today or datetime.now(UTC).date()
        events = []
        for i, (offset, title, start, end, location, description, status) in enumerate(_SEED_EVENTS, start=1):
            events.append({
                "id": f"cal_{i:03d}",
                "title": title,
                "date": (today + timedelta(days=offset)).isoformat(),
                "time": start,
                "endTime": end,
                "location": location,
                "description": description,
                "status": status,
            })
        tasks = []
        for i, (offset, title, priority, notes, completed) in enumerate(_SEED_TASKS, start=1):
            tasks.append({
                "id": f"task_{i:03d}",
                "title": title,
                "notes": notes,
                "priority": priority,
                "dueDate": (today + timedelta(days=offset)).isoformat(),
                "completed": completed,
            })
        return cls(events, tasks)

    async def list_events(
        self,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        query: str | None = None,
        max_results: int = 50,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            events = [copy.deepcopy(e) for e in self._events.values()]

        selected = []
        for event in sorted(events, key=_event_start):
            start = _event_start(event)
            if time_min and start < time_min:
                continue
            if time_max and start > time_max:
                continue
            if query:
                haystack = f"{event['title']} {event.get('description', '')} {event.get('location', '')}".lower()
                if query.lower() not in haystack:
                    continue
            selected.append(event)
        return selected[:max_results]

    async def add_event(self, event: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._next_event_id += 1
            created = {**event, "id": f"cal_{self._next_event_id:03d}"}
            self._events[created["id"]] = created
            return copy.deepcopy(created)

    async def list_tasks(self, include_completed: bool = False) -> list[dict[str, Any]]:
        async with self._lock:
            tasks = [copy.deepcopy(t) for t in self._tasks.values()]
        if not include_completed:
            tasks = [t for t in tasks if not t["completed"]]
        return tasks

    async def add_task(self, task: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._next_task_id += 1
            created = {**task, "id": f"task_{self._next_task_id:03d}"}
            self._tasks[created["id"]] = created
            return copy.deepcopy(created)

    async def complete_task(self, task_id: str) -> dict[str, Any]:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise ValueError(f"No task with id {task_id!r}")
            task["completed"] = True
            task["completedDate"] = datetime.now(UTC).date().isoformat()
            return copy.deepcopy(task)

    async def delete_task(self, task_id: str) -> None:
        async with self._lock:
            if self._tasks.pop(task_id, None) is None:
                raise ValueError(f"No task with id {task_id!r}")


class SampleTool:
    """Adapts a store coroutine to the ``Tool`` protocol."""

    def __init__(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: Callable[[Any], Awaitable[Any]],
        is_mutating: bool = False,
    ):
        self._name = name
        self._description = description
        self._input_model = input_model
        self._handler = handler
        self._is_mutating = is_mutating

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_model(self) -> type[BaseModel]:
        return self._input_model

    @property
    def is_mutating(self) -> bool:
        return self._is_mutating

    async def execute(self, tool_input: BaseModel) -> Any:
        return await self._handler(tool_input)


def _tagged(task: dict[str, Any]) -> dict[str, Any]:
    return {**task, "taskListId": SAMPLE_TASK_LIST_ID, "taskListTitle": SAMPLE_TASK_LIST_TITLE}


def build_sample_tools(store: SampleDataStore) -> list[Tool]:
    async def list_events(tool_input: CalendarListEventsInput) -> list[dict[str, Any]]:
        return await store.list_events(
            _parse_bound(tool_input.timeMin),
            _parse_bound(tool_input.timeMax),
            tool_input.query,
            tool_input.maxResults,
        )

    async def create_event(tool_input: CalendarCreateEventInput) -> dict[str, Any]:
        start = _parse_bound(tool_input.start) if "T" in tool_input.start else None
        end = _parse_bound(tool_input.end) if "T" in tool_input.end else None
        event = {
            "title": tool_input.summary,
            "date": start.date().isoformat() if start else tool_input.start,
            "time": _format_clock(start) if start else "",
            "endTime": _format_clock(end) if end else "",
            "location": tool_input.location,
            "description": tool_input.description,
            "status": "confirmed",
        }
        return {"status": "event_created", "event": await store.add_event(event)}

    async def list_tasks(tool_input: TasksListInput) -> list[dict[str, Any]]:
        tasks = await store.list_tasks(include_completed=tool_input.showCompleted)
        return [_tagged(t) for t in tasks]

    async def create_task(tool_input: TasksCreateInput) -> dict[str, Any]:
        task = {
            "title": tool_input.title,
            "notes": tool_input.notes or "",
            "dueDate": tool_input.due.isoformat() if tool_input.due else "",
            "completed": False,
        }
        return {"status": "task_created", "task": _tagged(await store.add_task(task))}

    async def complete_task(tool_input: TasksCompleteInput) -> dict[str, Any]:
        return {"status": "task_completed", "task": _tagged(await store.complete_task(tool_input.taskId))}

    async def delete_task(tool_input: TasksDeleteInput) -> dict[str, Any]:
        await store.delete_task(tool_input.taskId)
        return {"status": "task_deleted", "taskId": tool_input.taskId, "taskListId": SAMPLE_TASK_LIST_ID}

    async def list_task_lists(tool_input: TasksListListsInput) -> list[dict[str, Any]]:
        return [{"id": SAMPLE_TASK_LIST_ID, "title": SAMPLE_TASK_LIST_TITLE}]

    async def list_calendars(tool_input: CalendarListCalendarsInput) -> list[dict[str, Any]]:
        return [{
            "id": "primary",
            "summary": "Sample Calendar",
            "timeZone": "UTC",
            "primary": True,
            "accessRole": "owner",
        }]

    return [
        SampleTool("calendar_list_events", "List sample calendar events by date range or query.",
                   CalendarListEventsInput, list_events),
        SampleTool("calendar_create_event", "Create a sample calendar event.",
                   CalendarCreateEventInput, create_event, is_mutating=True),
        SampleTool("tasks_list", "List sample tasks.", TasksListInput, list_tasks),
        SampleTool("tasks_create", "Create a sample task.", TasksCreateInput, create_task, is_mutating=True),
        SampleTool("tasks_complete", "Mark a sample task as completed.",
                   TasksCompleteInput, complete_task, is_mutating=True),
        SampleTool("tasks_delete", "Delete a sample task.", TasksDeleteInput, delete_task, is_mutating=True),
        SampleTool("tasks_list_lists", "List sample task lists.", TasksListListsInput, list_task_lists),
        SampleTool("calendar_list_calendars", "List sample calendars.", CalendarListCalendarsInput, list_calendars),
    ]

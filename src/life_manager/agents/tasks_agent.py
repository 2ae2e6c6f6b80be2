from __future__ import annotations

import re
from datetime import UTC, date, datetime

from loguru import logger

from life_manager.agents.base import BaseAgent
from life_manager.agents.normalize import PRIORITIES, normalize_task
from life_manager.agents.time_window import TimeWindow, resolve_time_window
from life_manager.models import TASKS_AGENT, AgentResult, TaskItem

_QUOTED = r'["“]([^"”]+)["”]'
_COMPLETE_RE = re.compile(r"\b(?:complete|finish|finished|done with|mark|check off)\b[^\"“]*" + _QUOTED, re.I)
_CREATE_RE = re.compile(r"\b(?:add|create|new|remind me to)\b[^\"“]*" + _QUOTED, re.I)

_HIGH_PRIORITY_RE = re.compile(r"\b(high[\s-]priority|urgent|important)\b")
_OVERDUE_RE = re.compile(r"\b(overdue|late|past due)\b")


def _task_sort_key(task: TaskItem) -> tuple[int, date]:
    return PRIORITIES.index(task.priority), task.due or date.max


def filter_tasks(tasks: list[TaskItem], request: str, window: TimeWindow, today: date) -> list[TaskItem]:
    """Select the open tasks the request is asking about."""
    text = request.lower()
    open_tasks = [t for t in tasks if not t.completed]

    if _HIGH_PRIORITY_RE.search(text):
        selected = [t for t in open_tasks if t.priority == "high"]
    elif _OVERDUE_RE.search(text):
        selected = [t for t in open_tasks if t.due and t.due < today]
    elif window.kind == "digest":
        # Digest: anything due by the end of the window (overdue included) plus every high-priority task.
        selected = [
            t for t in open_tasks
            if (t.due and t.due <= window.end.date()) or t.priority == "high"
        ]
    elif window.explicit:
        selected = [t for t in open_tasks if t.due and window.contains(t.due)]
    else:
        selected = open_tasks

    return sorted(selected, key=_task_sort_key)


def _find_task(tasks: list[TaskItem], title: str) -> TaskItem | None:
    wanted = title.strip().lower()
    open_tasks = [t for t in tasks if not t.completed]
    for task in open_tasks:
        if task.title.lower() == wanted:
            return task
    for task in open_tasks:
        if wanted in task.title.lower():
            return task
    return None


class TasksAgent(BaseAgent):
    agent_name = TASKS_AGENT
    tool_names = ("tasks_list", "tasks_create", "tasks_complete")

    async def process(self, request: str, time_window_hint: TimeWindow | None = None) -> AgentResult:
        window = time_window_hint or resolve_time_window(request)

        match = _COMPLETE_RE.search(request)
        if match:
            return await self._complete(match.group(1))

        match = _CREATE_RE.search(request)
        if match:
            return await self._create(match.group(1), window)

        output = await self.tools.invoke("tasks_list", {"showCompleted": False})
        if not output.ok:
            return self._failed(output)

        tasks = self._normalize_all(output.result, normalize_task)
        selected = filter_tasks(tasks, request, window, datetime.now(UTC).date())
        logger.info(f"tasks agent: {len(selected)} of {len(tasks)} task(s) selected for {window.label}")
        return AgentResult(self.agent_name, data=selected)

    async def _complete(self, title: str) -> AgentResult:
        listed = await self.tools.invoke("tasks_list", {"showCompleted": False})
        if not listed.ok:
            return self._failed(listed)

        task = _find_task(self._normalize_all(listed.result, normalize_task), title)
        if task is None:
            return AgentResult(self.agent_name, data=[], error=f'No open task matching "{title}"')

        args = {"taskId": task.id}
        if task.task_list_id:
            args["taskListId"] = task.task_list_id
        output = await self.tools.invoke("tasks_complete", args)
        if not output.ok:
            return self._failed(output)

        completed = self._normalize_all([output.result.get("task", {})], normalize_task)
        logger.info(f"tasks agent: completed {task.id} ({task.title})")
        return AgentResult(self.agent_name, data=completed)

    async def _create(self, title: str, window: TimeWindow) -> AgentResult:
        args: dict = {"title": title}
        if window.kind in ("today", "tomorrow"):
            args["due"] = window.start.date().isoformat()

        output = await self.tools.invoke("tasks_create", args)
        if not output.ok:
            return self._failed(output)

        created = self._normalize_all([output.result.get("task", {})], normalize_task)
        logger.info(f"tasks agent: created task {title!r}")
        return AgentResult(self.agent_name, data=created)

import asyncio
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_tasks_service


class TasksCreateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, description="Task title.")
    notes: str | None = Field(default=None, description="Task notes.")
    due: date | None = Field(default=None, description="Due date (YYYY-MM-DD).")
    taskListId: str = Field(default="@default", description="Task list ID.")


class TasksCreateTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "tasks_create"

    @property
    def description(self) -> str:
        return "Create a Google Task with an optional due date and notes."

    @property
    def input_model(self) -> type[BaseModel]:
        return TasksCreateInput

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: TasksCreateInput) -> dict[str, Any]:
        service = await get_tasks_service(self._google_client_id, self._google_client_secret)

        body: dict[str, Any] = {"title": tool_input.title}
        if tool_input.notes:
            body["notes"] = tool_input.notes
        if tool_input.due:
            # Google Tasks stores only the date part of an RFC 3339 timestamp.
            body["due"] = f"{tool_input.due.isoformat()}T00:00:00.000Z"

        request = service.tasks().insert(tasklist=tool_input.taskListId, body=body)
        created = await asyncio.to_thread(request.execute)
        return {
            "status": "task_created",
            "task": {**created, "taskListId": tool_input.taskListId},
        }

import asyncio
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_tasks_service


class TasksCompleteInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    taskId: str = Field(min_length=1, description="ID of the task to complete.")
    taskListId: str = Field(default="@default", description="Task list ID.")


class TasksCompleteTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "tasks_complete"

    @property
    def description(self) -> str:
        return "Mark a Google Task as completed."

    @property
    def input_model(self) -> type[BaseModel]:
        return TasksCompleteInput

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: TasksCompleteInput) -> dict[str, Any]:
        service = await get_tasks_service(self._google_client_id, self._google_client_secret)
        body = {
            "status": "completed",
            "completed": datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
        }
        request = service.tasks().patch(tasklist=tool_input.taskListId, task=tool_input.taskId, body=body)
        updated = await asyncio.to_thread(request.execute)
        return {
            "status": "task_completed",
            "task": {**updated, "taskListId": tool_input.taskListId},
        }

import asyncio
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_tasks_service


class TasksDeleteInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    taskId: str = Field(min_length=1, description="ID of the task to delete.")
    taskListId: str = Field(default="@default", description="Task list ID containing the task.")


class TasksDeleteTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "tasks_delete"

    @property
    def description(self) -> str:
        return "Delete a Google Task permanently."

    @property
    def input_model(self) -> type[BaseModel]:
        return TasksDeleteInput

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: TasksDeleteInput) -> dict[str, Any]:
        service = await get_tasks_service(self._google_client_id, self._google_client_secret)
        request = service.tasks().delete(tasklist=tool_input.taskListId, task=tool_input.taskId)
        await asyncio.to_thread(request.execute)
        return {"status": "task_deleted", "taskId": tool_input.taskId, "taskListId": tool_input.taskListId}

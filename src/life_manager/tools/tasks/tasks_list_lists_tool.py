from typing import Any

from pydantic import BaseModel, ConfigDict

from life_manager.tools.google_auth import get_tasks_service, list_all_items
from life_manager.tools.tasks.tasks_list_tool import PAGE_SIZE


class TasksListListsInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TasksListListsTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "tasks_list_lists"

    @property
    def description(self) -> str:
        return "List the user's Google Tasks task lists (id, title, updated)."

    @property
    def input_model(self) -> type[BaseModel]:
        return TasksListListsInput

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: TasksListListsInput) -> list[dict[str, Any]]:
        service = await get_tasks_service(self._google_client_id, self._google_client_secret)
        return await list_all_items(service.tasklists().list, maxResults=PAGE_SIZE)

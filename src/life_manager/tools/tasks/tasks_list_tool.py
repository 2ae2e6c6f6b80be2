from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_tasks_service, list_all_items

PAGE_SIZE = 100


class TasksListInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    taskListId: str | None = Field(
        default=None,
        description="Task list ID. Lists tasks across every task list when omitted.",
    )
    showCompleted: bool = Field(default=False, description="Include completed tasks.")


class TasksListTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "tasks_list"

    @property
    def description(self) -> str:
        return (
            "List Google Tasks. Returns raw task resources (id, title, notes, due, status), "
            "each tagged with the taskListId and taskListTitle it belongs to."
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return TasksListInput

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: TasksListInput) -> list[dict[str, Any]]:
        service = await get_tasks_service(self._google_client_id, self._google_client_secret)

        if tool_input.taskListId:
            task_lists = [{"id": tool_input.taskListId, "title": ""}]
        else:
            task_lists = await list_all_items(service.tasklists().list, maxResults=PAGE_SIZE)

        tasks: list[dict[str, Any]] = []
        for task_list in task_lists:
            items = await list_all_items(
                service.tasks().list,
                tasklist=task_list["id"],
                maxResults=PAGE_SIZE,
                showCompleted=tool_input.showCompleted,
                showHidden=tool_input.showCompleted,
            )
            for item in items:
                tasks.append({
                    **item,
                    "taskListId": task_list["id"],
                    "taskListTitle": task_list.get("title", ""),
                })

        logger.debug(f"tasks_list: {len(tasks)} task(s) across {len(task_lists)} list(s)")
        return tasks

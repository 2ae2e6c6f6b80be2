from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, ValidationError

from life_manager.errors import InvalidArguments, ToolExecutionError, ToolNotFound
from life_manager.models import RunHandle, ToolCall, ToolOutput
from life_manager.tool import Tool

Handler = Callable[[BaseModel], Awaitable[Any]]
ToolObserver = Callable[[str, Any, ToolOutput], None]

# Set by the run coordinator so observers can attribute invocations to a session.
current_session_id: ContextVar[str | None] = ContextVar("current_session_id", default=None)
# Invocations finishing after their run went terminal are not reported.
current_run: ContextVar[RunHandle | None] = ContextVar("current_run", default=None)


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    input_model: type[BaseModel]
    handler: Handler
    description: str = ""
    is_mutating: bool = False


class ToolRegistry:
    """Named, schema-validated capabilities.

    ``invoke`` never raises for tool failures: unknown names, schema mismatches
    and handler exceptions come back as a ``ToolOutput`` carrying a typed error,
    so callers can keep aggregating whatever else succeeded. Nothing is retried
    here; a side-effecting handler runs exactly once per ``invoke``.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self._entries: dict[str, RegisteredTool] = {}
        self._observers: list[ToolObserver] = []
        for tool in tools:
            self.register_tool(tool)

    def register(
        self,
        name: str,
        input_model: type[BaseModel],
        handler: Handler,
        *,
        description: str = "",
        is_mutating: bool = False,
    ) -> None:
        if name in self._entries:
            raise ValueError(f"Tool already registered: {name!r}")
        self._entries[name] = RegisteredTool(
            name=name,
            input_model=input_model,
            handler=handler,
            description=description,
            is_mutating=is_mutating,
        )

    def register_tool(self, tool: Tool) -> None:
        self.register(
            tool.name,
            tool.input_model,
            tool.execute,
            description=tool.description,
            is_mutating=bool(getattr(tool, "is_mutating", False)),
        )

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def subset(self, names: Iterable[str]) -> ToolRegistry:
        """Return a registry exposing only ``names`` (an agent's capability set)."""
        view = ToolRegistry()
        view._observers = self._observers
        for name in names:
            entry = self._entries.get(name)
            if entry is None:
                raise ValueError(f"Cannot build capability set, unknown tool: {name!r}")
            view._entries[name] = entry
        return view

    def describe(self) -> list[dict]:
        return [
            {
                "name": entry.name,
                "description": entry.description,
                "input_schema": entry.input_model.model_json_schema(),
            }
            for entry in self._entries.values()
        ]

    def add_observer(self, observer: ToolObserver) -> None:
        """Call ``observer(session_id, args, output)`` after every invocation made inside a live session run."""
        self._observers.append(observer)

    async def invoke(self, name: str, args: dict[str, Any] | str | None, *, call_id: str | None = None) -> ToolOutput:
        output = await self._invoke(name, args, call_id or f"call_{uuid4().hex[:12]}")
        session_id = current_session_id.get()
        run = current_run.get()
        if run is not None and run.is_terminal:
            logger.info(f"{name} finished after run {run.run_id} ended as {run.status.value}; not recorded")
        elif session_id is not None:
            for observer in self._observers:
                try:
                    observer(session_id, args, output)
                except Exception as ex:
                    logger.warning(f"Tool observer failed for {name}: {ex}")
        return output

    async def _invoke(self, name: str, args: dict[str, Any] | str | None, call_id: str) -> ToolOutput:
        entry = self._entries.get(name)
        if entry is None:
            logger.warning(f"Tool not found: {name}")
            return ToolOutput(call_id, name, error=ToolNotFound(name, f'Unknown tool "{name}"'))

        try:
            if isinstance(args, str):
                validated = entry.input_model.model_validate_json(args or "{}")
            else:
                validated = entry.input_model.model_validate(args or {})
        except ValidationError as ex:
            logger.warning(f"{name}: rejected arguments ({ex.error_count()} error(s))")
            return ToolOutput(
                call_id,
                name,
                error=InvalidArguments(
                    name,
                    f"Invalid arguments for {name}",
                    details=ex.errors(include_url=False, include_context=False),
                ),
            )

        try:
            result = await entry.handler(validated)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.error(f"{name} failed: {ex}")
            return ToolOutput(call_id, name, error=ToolExecutionError(name, str(ex) or type(ex).__name__))

        logger.debug(f"{name} completed (call_id={call_id})")
        return ToolOutput(call_id, name, result=result)

    async def invoke_call(self, call: ToolCall) -> ToolOutput:
        return await self.invoke(call.tool_name, call.arguments, call_id=call.call_id)

    async def invoke_many(self, calls: Iterable[ToolCall]) -> list[ToolOutput]:
        return list(await asyncio.gather(*(self.invoke_call(c) for c in calls)))


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _google_enabled(ctx: dict) -> bool:
    return bool(ctx.get("google_client_id") and ctx.get("google_client_secret"))


def _google_tools(ctx: dict) -> list[Tool]:
    google_client_id = ctx["google_client_id"]
    google_client_secret = ctx["google_client_secret"]

    from life_manager.tools.calendar.calendar_create_event_tool import CalendarCreateEventTool
    from life_manager.tools.calendar.calendar_list_calendars_tool import CalendarListCalendarsTool
    from life_manager.tools.calendar.calendar_list_events_tool import CalendarListEventsTool
    from life_manager.tools.tasks.tasks_complete_tool import TasksCompleteTool
    from life_manager.tools.tasks.tasks_create_tool import TasksCreateTool
    from life_manager.tools.tasks.tasks_delete_tool import TasksDeleteTool
    from life_manager.tools.tasks.tasks_list_lists_tool import TasksListListsTool
    from life_manager.tools.tasks.tasks_list_tool import TasksListTool

    return [
        CalendarListEventsTool(google_client_id, google_client_secret),
        CalendarCreateEventTool(google_client_id, google_client_secret),
        TasksListTool(google_client_id, google_client_secret),
        TasksCreateTool(google_client_id, google_client_secret),
        TasksCompleteTool(google_client_id, google_client_secret),
        TasksDeleteTool(google_client_id, google_client_secret),
        TasksListListsTool(google_client_id, google_client_secret),
        CalendarListCalendarsTool(google_client_id, google_client_secret),
    ]


def _sample_enabled(ctx: dict) -> bool:
    return not _google_enabled(ctx)


def _sample_tools(ctx: dict) -> list[Tool]:
    from life_manager.tools.sample import SampleDataStore, build_sample_tools

    return build_sample_tools(SampleDataStore.seeded())


_GROUPS = [
    ToolGroup(enabled=_google_enabled, build=_google_tools),
    ToolGroup(enabled=_sample_enabled, build=_sample_tools),
]


def build_registry(
    google_client_id: str | None = None,
    google_client_secret: str | None = None,
) -> ToolRegistry:
    ctx = {
        "google_client_id": google_client_id,
        "google_client_secret": google_client_secret,
    }

    registry = ToolRegistry()
    for group in _GROUPS:
        if group.enabled(ctx):
            for tool in group.build(ctx):
                registry.register_tool(tool)
    return registry

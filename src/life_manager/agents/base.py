from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from life_manager.agents.time_window import TimeWindow
from life_manager.models import AgentResult, ToolOutput
from life_manager.tool_registry import ToolRegistry


@runtime_checkable
class SpecializedAgent(Protocol):
    @property
    def name(self) -> str: ...

    async def process(self, request: str, time_window_hint: TimeWindow | None = None) -> AgentResult: ...


class BaseAgent:
    """Shared plumbing for agents that own a fixed slice of the tool registry."""

    agent_name = ""
    tool_names: tuple[str, ...] = ()

    def __init__(self, registry: ToolRegistry):
        self._tools = registry.subset(self.tool_names)

    @property
    def name(self) -> str:
        return self.agent_name

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def _failed(self, output: ToolOutput) -> AgentResult:
        logger.warning(f"{self.agent_name} agent: {output.tool_name} failed: {output.error}")
        return AgentResult(self.agent_name, data=[], error=str(output.error))

    def _normalize_all(self, records: Any, normalize: Callable[[dict], Any]) -> list[Any]:
        if not isinstance(records, list):
            logger.warning(f"{self.agent_name} agent: expected a list of records, got {type(records).__name__}")
            return []
        normalized = []
        for raw in records:
            try:
                normalized.append(normalize(raw))
            except (KeyError, TypeError, ValueError) as ex:
                logger.warning(f"{self.agent_name} agent: skipping malformed record: {ex}")
        return normalized

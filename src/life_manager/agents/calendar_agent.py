from __future__ import annotations

from loguru import logger

from life_manager.agents.base import BaseAgent
from life_manager.agents.normalize import normalize_event, sort_events
from life_manager.agents.time_window import TimeWindow, resolve_time_window
from life_manager.models import CALENDAR_AGENT, AgentResult

MAX_EVENTS = 50


class CalendarAgent(BaseAgent):
    agent_name = CALENDAR_AGENT
    tool_names = ("calendar_list_events",)

    async def process(self, request: str, time_window_hint: TimeWindow | None = None) -> AgentResult:
        window = time_window_hint or resolve_time_window(request)
        args = {**window.to_tool_args(), "maxResults": MAX_EVENTS}

        output = await self.tools.invoke("calendar_list_events", args)
        if not output.ok:
            return self._failed(output)

        events = sort_events(self._normalize_all(output.result, normalize_event))
        logger.info(f"calendar agent: {len(events)} event(s) for {window.label}")
        return AgentResult(self.agent_name, data=events)

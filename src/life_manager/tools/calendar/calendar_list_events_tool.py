import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_calendar_service

DEFAULT_RANGE = timedelta(days=7)


class CalendarListEventsInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeMin: str | None = Field(
        default=None,
        description="Start of time range in ISO 8601 format (e.g. '2025-06-01T00:00:00Z'). With neither bound the range is today plus six days.",
    )
    timeMax: str | None = Field(
        default=None,
        description="End of time range in ISO 8601 format (e.g. '2025-06-01T23:59:59Z'). Open-ended when omitted, unless timeMin is omitted too.",
    )
    query: str | None = Field(
        default=None,
        description="Free-text search query to filter events (searches summary, description, location, attendees).",
    )
    maxResults: int = Field(default=50, ge=1, le=250, description="Max number of results.")
    calendarId: str = Field(default="primary", description="Calendar ID.")


class CalendarListEventsTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "calendar_list_events"

    @property
    def description(self) -> str:
        return (
            "List Google Calendar events by date range or search query. "
            "Returns raw event resources (id, summary, start/end, location, status). "
            "Without a range it covers today and the following six days."
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CalendarListEventsInput

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: CalendarListEventsInput) -> list[dict[str, Any]]:
        time_min, time_max = tool_input.timeMin, tool_input.timeMax
        if not time_min and not time_max:
            start = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
            time_min, time_max = start.isoformat(), (start + DEFAULT_RANGE).isoformat()

        request: dict[str, Any] = {
            "calendarId": tool_input.calendarId,
            "maxResults": tool_input.maxResults,
            "singleEvents": True,
            "orderBy": "startTime",
            "timeMin": time_min,
            "timeMax": time_max,
            "q": tool_input.query,
        }
        service = await get_calendar_service(self._google_client_id, self._google_client_secret)
        response = await asyncio.to_thread(
            service.events().list(**{k: v for k, v in request.items() if v}).execute
        )
        items = response.get("items", [])
        logger.debug(f"calendar_list_events: {len(items)} event(s) in [{time_min}, {time_max}]")
        return items

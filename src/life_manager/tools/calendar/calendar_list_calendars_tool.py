from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from life_manager.tools.google_auth import get_calendar_service, list_all_items

_FIELDS = ("id", "summary", "description", "timeZone", "primary", "accessRole")


class CalendarListCalendarsInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CalendarListCalendarsTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "calendar_list_calendars"

    @property
    def description(self) -> str:
        return (
            "List the Google Calendars the user can see (id, summary, timeZone, primary, accessRole). "
            "Use an id as calendarId for calendar_list_events."
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CalendarListCalendarsInput

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: CalendarListCalendarsInput) -> list[dict[str, Any]]:
        service = await get_calendar_service(self._google_client_id, self._google_client_secret)
        items = await list_all_items(service.calendarList().list, maxResults=250)
        logger.debug(f"calendar_list_calendars: {len(items)} calendar(s)")
        return [{key: item[key] for key in _FIELDS if key in item} for item in items]

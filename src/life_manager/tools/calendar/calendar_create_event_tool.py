import asyncio
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from life_manager.tools.google_auth import get_calendar_service


class CalendarCreateEventInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    summary: str = Field(min_length=1, description="Event title.")
    start: str = Field(
        description="Start time in ISO 8601 (e.g. '2025-06-15T14:00:00') or date only for all-day events (e.g. '2025-06-15').",
    )
    end: str = Field(
        description="End time in ISO 8601 (e.g. '2025-06-15T15:00:00') or date only for all-day events (e.g. '2025-06-16').",
    )
    description: str = Field(default="", description="Event description/notes.")
    location: str = Field(default="", description="Event location.")
    attendees: str = Field(default="", description="Comma-separated email addresses of attendees.")
    calendarId: str = Field(default="primary", description="Calendar ID.")


def build_event_body(tool_input: CalendarCreateEventInput) -> dict[str, Any]:
    is_all_day = "T" not in tool_input.start

    if is_all_day:
        start_body = {"date": tool_input.start}
        end_body = {"date": tool_input.end}
    else:
        start_body = {"dateTime": tool_input.start}
        end_body = {"dateTime": tool_input.end}

    event_body: dict[str, Any] = {
        "summary": tool_input.summary,
        "start": start_body,
        "end": end_body,
    }

    if tool_input.description:
        event_body["description"] = tool_input.description
    if tool_input.location:
        event_body["location"] = tool_input.location
    if tool_input.attendees:
        emails = [e.strip() for e in tool_input.attendees.split(",") if e.strip()]
        event_body["attendees"] = [{"email": e} for e in emails]
    return event_body


class CalendarCreateEventTool:
    def __init__(self, google_client_id: str, google_client_secret: str):
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret

    @property
    def name(self) -> str:
        return "calendar_create_event"

    @property
    def description(self) -> str:
        return (
            "Create a Google Calendar event. Supports timed events (ISO 8601 with time) "
            "and all-day events (YYYY-MM-DD date only). Can add attendees by email."
        )

    @property
    def input_model(self) -> type[BaseModel]:
        return CalendarCreateEventInput

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: CalendarCreateEventInput) -> dict[str, Any]:
        cal = await get_calendar_service(self._google_client_id, self._google_client_secret)
        request = cal.events().insert(calendarId=tool_input.calendarId, body=build_event_body(tool_input))
        created = await asyncio.to_thread(request.execute)
        return {
            "status": "event_created",
            "event": created,
        }

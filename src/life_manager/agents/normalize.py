"""Convert upstream calendar and task payloads into ``CalendarEvent`` / ``TaskItem``.

Two shapes are accepted for each record type: the Google API resources
(``start.dateTime`` / ``start.date``, ``due`` + ``status``) and the flat sample
provider records (``date`` + ``time``, ``dueDate`` + ``completed``).
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from typing import Any

from life_manager.models import CalendarEvent, TaskItem

PRIORITIES = ("high", "medium", "low")

_HIGH_PRIORITY_WORDS = ("urgent", "important", "asap")
_LOW_PRIORITY_WORDS = ("low", "someday", "maybe")

_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_date(value: str) -> date:
    return date.fromisoformat(value[:10])


def _parse_clock(value: str) -> time:
    return datetime.strptime(value.strip().upper(), "%I:%M %p").time()


def _google_bound(bound: dict[str, Any] | None) -> tuple[datetime | None, bool]:
    if not bound:
        return None, False
    if bound.get("dateTime"):
        return _parse_datetime(bound["dateTime"]), False
    if bound.get("date"):
        return datetime.combine(_parse_date(bound["date"]), time.min, tzinfo=UTC), True
    return None, False


def normalize_event(raw: dict[str, Any]) -> CalendarEvent:
    if "id" not in raw:
        raise ValueError("Event record has no id")

    if isinstance(raw.get("start"), dict) or isinstance(raw.get("end"), dict):
        start, all_day = _google_bound(raw.get("start"))
        end, _ = _google_bound(raw.get("end"))
    else:
        day = _parse_date(raw["date"]) if raw.get("date") else None
        start = end = None
        all_day = bool(day) and not raw.get("time")
        if day is not None:
            start_clock = _parse_clock(raw["time"]) if raw.get("time") else time.min
            start = datetime.combine(day, start_clock, tzinfo=UTC)
            if raw.get("endTime"):
                end = datetime.combine(day, _parse_clock(raw["endTime"]), tzinfo=UTC)

    return CalendarEvent(
        id=str(raw["id"]),
        title=raw.get("summary") or raw.get("title") or "Untitled Event",
        start=start,
        end=end,
        all_day=all_day,
        location=raw.get("location") or "",
        description=raw.get("description") or "",
        status=raw.get("status") or "confirmed",
    )


def infer_priority(title: str) -> str:
    lowered = title.lower()
    if any(word in lowered for word in _HIGH_PRIORITY_WORDS):
        return "high"
    if any(word in lowered for word in _LOW_PRIORITY_WORDS):
        return "low"
    return "medium"


def normalize_task(raw: dict[str, Any]) -> TaskItem:
    if "id" not in raw:
        raise ValueError("Task record has no id")

    title = raw.get("title") or "Untitled Task"
    priority = str(raw.get("priority") or "").lower()
    if priority not in PRIORITIES:
        priority = infer_priority(title)

    due_value = raw.get("due") or raw.get("dueDate")
    if "completed" in raw and isinstance(raw["completed"], bool):
        completed = raw["completed"]
    else:
        completed = raw.get("status") == "completed"

    return TaskItem(
        id=str(raw["id"]),
        title=title,
        priority=priority,
        due=_parse_date(due_value) if due_value else None,
        notes=raw.get("notes") or raw.get("description") or "",
        completed=completed,
        task_list_id=raw.get("taskListId") or "",
        task_list_title=raw.get("taskListTitle") or "",
    )


def event_sort_key(event: CalendarEvent) -> datetime:
    return event.start or _FAR_FUTURE


def sort_events(events: list[CalendarEvent]) -> list[CalendarEvent]:
    return sorted(events, key=event_sort_key)

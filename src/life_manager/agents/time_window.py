from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

DIGEST_DAYS = 3
DEFAULT_DAYS = 7


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime
    label: str
    kind: str = "default"

    @property
    def explicit(self) -> bool:
        """True when the request named the range rather than falling back to the default."""
        return self.kind != "default"

    def contains(self, day: date) -> bool:
        return self.start.date() <= day <= self.end.date()

    def to_tool_args(self) -> dict[str, str]:
        return {
            "timeMin": self.start.isoformat(),
            "timeMax": self.end.isoformat(),
        }


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def _end_of(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59), tzinfo=UTC)


def _span(today: date, days: int, label: str, kind: str) -> TimeWindow:
    return TimeWindow(_start_of(today), _end_of(today + timedelta(days=days - 1)), label, kind)


_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(next\s+7\s+days|next\s+seven\s+days|next\s+week|upcoming)\b"), "next_7_days"),
    (re.compile(r"\btomorrow\b"), "tomorrow"),
    (re.compile(r"\btoday\b|\btonight\b"), "today"),
    (re.compile(r"\b(this\s+)?week\b"), "this_week"),
    (re.compile(r"\b(this\s+)?month\b"), "this_month"),
    (re.compile(r"\b(this\s+)?year\b"), "this_year"),
]


def resolve_time_window(request: str, *, digest: bool = False, now: datetime | None = None) -> TimeWindow:
    """Map the time phrase in ``request`` to a concrete UTC range.

    Ranges start at the beginning of today (past days are never included) and
    end at the last second of their final day.
    """
    today = (now or datetime.now(UTC)).date()

    if digest:
        return _span(today, DIGEST_DAYS, "Next 3 Days", "digest")

    text = request.lower()
    kind = "default"
    for pattern, candidate in _PATTERNS:
        if pattern.search(text):
            kind = candidate
            break

    if kind == "today":
        return _span(today, 1, "Today", kind)
    if kind == "tomorrow":
        tomorrow = today + timedelta(days=1)
        return TimeWindow(_start_of(tomorrow), _end_of(tomorrow), "Tomorrow", kind)
    if kind == "this_week":
        sunday = today + timedelta(days=6 - today.weekday())
        return TimeWindow(_start_of(today), _end_of(sunday), "This Week", kind)
    if kind == "this_month":
        last_day = calendar.monthrange(today.year, today.month)[1]
        return TimeWindow(_start_of(today), _end_of(today.replace(day=last_day)), "This Month", kind)
    if kind == "this_year":
        return TimeWindow(_start_of(today), _end_of(date(today.year, 12, 31)), "This Year", kind)
    if kind == "next_7_days":
        return _span(today, DEFAULT_DAYS, "Next 7 Days", kind)
    return _span(today, DEFAULT_DAYS, "Next 7 Days", "default")

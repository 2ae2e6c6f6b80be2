from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from life_manager.errors import TransportClosed
from life_manager.models import ActionButton

DIGEST_ACTION_BUTTONS = (
    ActionButton("this_week", "Get this week's schedule", "Show me my schedule for this week"),
    ActionButton("this_month", "Get this month's schedule", "Show me my schedule for this month"),
    ActionButton("all_tasks", "Show all tasks", "Show me all my tasks organized by priority"),
    ActionButton("upcoming_7days", "Next 7 days", "Show me my schedule for the next 7 days"),
)


def suggested_action_buttons(digest: bool) -> tuple[ActionButton, ...]:
    return DIGEST_ACTION_BUTTONS if digest else ()


@runtime_checkable
class Connection(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_json(self, frame: dict[str, Any]) -> None:
        """Send one frame. Raises ``TransportClosed`` if the peer has gone away."""
        ...


@dataclass(frozen=True)
class StreamOutcome:
    increments_sent: int
    total_increments: int
    completed: bool


def connected_frame(session_id: str = "") -> dict[str, Any]:
    return {"type": "connected", "sessionId": session_id}


def typing_frame(session_id: str) -> dict[str, Any]:
    return {"type": "typing", "sessionId": session_id}


def agent_response_frame(session_id: str, content: str) -> dict[str, Any]:
    return {"type": "agent_response", "content": content, "sessionId": session_id, "role": "assistant"}


def done_frame(session_id: str) -> dict[str, Any]:
    return {"type": "done", "sessionId": session_id}


def action_buttons_frame(session_id: str, buttons: Sequence[ActionButton]) -> dict[str, Any]:
    return {"type": "action_buttons", "sessionId": session_id, "buttons": [b.to_dict() for b in buttons]}


def error_frame(session_id: str, content: str) -> dict[str, Any]:
    return {"type": "error", "content": content, "sessionId": session_id}


def split_increments(text: str) -> list[str]:
    """Split into words that keep their trailing space (all but the last), so ``"".join`` restores ``text``."""
    if not text:
        return []
    words = text.split(" ")
    return [w + " " for w in words[:-1]] + [words[-1]]


class StreamTransport:
    def __init__(self, delay_seconds: float = 0.02):
        self._delay_seconds = delay_seconds

    async def send(self, connection: Connection, frame: dict[str, Any]) -> bool:
        if not connection.is_open:
            return False
        try:
            await connection.send_json(frame)
        except TransportClosed:
            return False
        return True

    async def stream(
        self,
        connection: Connection,
        session_id: str,
        text: str,
        action_buttons: Sequence[ActionButton] = (),
    ) -> StreamOutcome:
        increments = split_increments(text)
        sent = 0
        for i, increment in enumerate(increments):
            if not await self.send(connection, agent_response_frame(session_id, increment)):
                logger.info(f"Session {session_id}: connection closed after {sent} of {len(increments)} increments")
                return StreamOutcome(sent, len(increments), completed=False)
            sent += 1
            if self._delay_seconds > 0 and i < len(increments) - 1:
                await asyncio.sleep(self._delay_seconds)

        if not await self.send(connection, done_frame(session_id)):
            return StreamOutcome(sent, len(increments), completed=False)
        if action_buttons:
            await self.send(connection, action_buttons_frame(session_id, action_buttons))
        return StreamOutcome(sent, len(increments), completed=True)

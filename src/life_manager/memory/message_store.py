from __future__ import annotations

import json
from datetime import datetime

from loguru import logger

from life_manager.memory.events import RunEventLog
from life_manager.memory.pruning import PruneReport, prune_memory
from life_manager.memory.session_manager import SessionManager
from life_manager.memory.store import MemoryStore
from life_manager.models import ActionButton, Message, Role, ToolOutput


class SqliteMessageStore:
    """``MessageStore`` backed by the local SQLite history database.

    Besides chat history it receives the tool registry's observer callbacks
    and the coordinator's run events, so a session can be audited after the
    fact through the HTTP API.
    """

    def __init__(self, store: MemoryStore):
        self._store = store
        self._sessions = SessionManager(store)
        self._events = RunEventLog(store)

    def _ensure_session(self, session_id: str) -> None:
        if self._sessions.ensure_session(session_id):
            self._events.record(session_id, "session.started", {})

    def append(self, message: Message) -> None:
        self._ensure_session(message.session_id)
        self._sessions.append_message(
            message.session_id,
            message.role.value,
            message.content,
            action_buttons=[b.to_dict() for b in message.action_buttons],
            created_at=message.timestamp.isoformat(timespec="seconds"),
        )

    def get_session(self, session_id: str) -> dict | None:
        return self._sessions.get_session(session_id)

    def load_messages(self, session_id: str) -> list[Message]:
        return [
            Message(
                role=Role(row["role"]),
                content=row["content"],
                session_id=session_id,
                timestamp=datetime.fromisoformat(row["created_at"]),
                action_buttons=tuple(ActionButton(**b) for b in json.loads(row["action_buttons_json"])),
            )
            for row in self._sessions.load_messages(session_id)
        ]

    def list_sessions(self, *, limit: int = 50) -> list[dict]:
        return self._sessions.list_sessions(limit=limit)

    def list_events(self, session_id: str, *, event_type: str | None = None) -> list[dict]:
        return self._events.events_for(session_id, event_type=event_type)

    def clear(self, session_id: str) -> None:
        if self._sessions.get_session(session_id) is None:
            return
        deleted = self._sessions.clear_messages(session_id)
        self._events.record(session_id, "session.cleared", {"deleted": deleted})

    def record_tool_output(self, session_id: str, arguments: object, output: ToolOutput) -> None:
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments or "{}")
            except json.JSONDecodeError:
                arguments = {"raw": arguments}
        self._ensure_session(session_id)
        self._sessions.record_tool_call(
            session_id,
            call_id=output.call_id,
            tool_name=output.tool_name,
            arguments=arguments,
            outcome=output.error.to_dict() if output.error else output.result,
            error_kind=output.error.kind if output.error else None,
        )

    def record_event(self, session_id: str, event_type: str, payload: dict) -> None:
        self._ensure_session(session_id)
        self._events.record(session_id, event_type, payload)

    def prune(self, *, max_sessions: int, max_messages_per_session: int, retention_days: int) -> PruneReport:
        return prune_memory(
            self._store,
            max_sessions=max_sessions,
            max_messages_per_session=max_messages_per_session,
            retention_days=retention_days,
        )

    def close(self) -> None:
        logger.debug("Closing message store")
        self._store.close()

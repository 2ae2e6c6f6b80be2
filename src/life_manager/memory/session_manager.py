from __future__ import annotations

import json
import sqlite3

from life_manager.memory.store import MemoryStore, utc_now

_TITLE_CHARS = 60
_PREVIEW_CHARS = 140

_SUMMARY_SQL = """
SELECT
    s.id, s.title, s.created_at, s.updated_at,
    (SELECT COUNT(*) FROM messages m WHERE m.session_id = s.id AND m.role = 'user') AS user_messages,
    (SELECT COUNT(*) FROM messages m WHERE m.session_id = s.id AND m.role = 'assistant') AS assistant_messages,
    (SELECT COUNT(*) FROM tool_calls t WHERE t.session_id = s.id) AS tool_calls,
    (SELECT content FROM messages m WHERE m.session_id = s.id AND m.role = 'assistant'
        ORDER BY m.seq DESC LIMIT 1) AS last_reply
FROM sessions s
"""


def _preview(text: str | None, max_chars: int) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= max_chars else text[: max_chars - 3] + "..."


def _summary(row: sqlite3.Row) -> dict:
    return {
        "sessionId": row["id"],
        "title": row["title"] or row["id"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
        "userMessages": int(row["user_messages"]),
        "assistantMessages": int(row["assistant_messages"]),
        "toolCalls": int(row["tool_calls"]),
        "lastReplyPreview": _preview(row["last_reply"], _PREVIEW_CHARS),
    }


class SessionManager:
    """Persisted chat sessions: ordered messages (with their action buttons) and tool calls.

    A session row is created on first write. Its title is taken from the first
    user message so session listings read like a conversation index.
    """

    def __init__(self, store: MemoryStore):
        self._store = store

    def ensure_session(self, session_id: str) -> bool:
        """Create the session row if missing; returns True when it was created."""
        now = utc_now()
        with self._store.write() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO sessions (id, created_at, updated_at) VALUES (?, ?, ?)",
                (session_id, now, now),
            )
        return cursor.rowcount == 1

    def get_session(self, session_id: str) -> dict | None:
        row = self._store.query_one(_SUMMARY_SQL + " WHERE s.id = ?", (session_id,))
        return _summary(row) if row is not None else None

    def list_sessions(self, *, limit: int = 50) -> list[dict]:
        rows = self._store.query(
            _SUMMARY_SQL + " ORDER BY s.updated_at DESC, s.created_at DESC LIMIT ?",
            (max(1, limit),),
        )
        return [_summary(row) for row in rows]

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        action_buttons: list[dict] | None = None,
        created_at: str | None = None,
    ) -> int:
        now = utc_now()
        with self._store.write() as conn:
            seq = conn.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()[0]
            conn.execute(
                """
                INSERT INTO messages (session_id, seq, role, content, action_buttons_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (session_id, seq, role, content, json.dumps(action_buttons or []), created_at or now),
            )
            conn.execute("UPDATE sessions SET updated_at = ? WHERE id = ?", (now, session_id))
            if role == "user":
                conn.execute(
                    "UPDATE sessions SET title = ? WHERE id = ? AND title = ''",
                    (_preview(content, _TITLE_CHARS), session_id),
                )
        return int(seq)

    def load_messages(self, session_id: str) -> list[sqlite3.Row]:
        return self._store.query(
            "SELECT seq, role, content, action_buttons_json, created_at FROM messages WHERE session_id = ? ORDER BY seq",
            (session_id,),
        )

    def clear_messages(self, session_id: str) -> int:
        with self._store.write() as conn:
            deleted = conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,)).rowcount
            conn.execute("UPDATE sessions SET title = '', updated_at = ? WHERE id = ?", (utc_now(), session_id))
        return deleted

    def record_tool_call(
        self,
        session_id: str,
        *,
        call_id: str,
        tool_name: str,
        arguments: object,
        outcome: object,
        error_kind: str | None = None,
    ) -> None:
        with self._store.write() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO tool_calls
                    (call_id, session_id, tool_name, arguments_json, outcome_json, error_kind, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    call_id,
                    session_id,
                    tool_name,
                    json.dumps(arguments, ensure_ascii=True, default=str),
                    json.dumps(outcome, ensure_ascii=True, default=str),
                    error_kind,
                    utc_now(),
                ),
            )

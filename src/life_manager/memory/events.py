from __future__ import annotations

import json

from life_manager.memory.store import MemoryStore, utc_now


class RunEventLog:
    """Append-only log of run lifecycle events (``run.started``, ``run.timed_out``, ...)."""

    def __init__(self, store: MemoryStore):
        self._store = store

    def record(self, session_id: str, event_type: str, payload: dict) -> None:
        with self._store.write() as conn:
            conn.execute(
                "INSERT INTO run_events (session_id, run_id, type, payload_json, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    session_id,
                    payload.get("run_id"),
                    event_type,
                    json.dumps(payload, ensure_ascii=True, default=str),
                    utc_now(),
                ),
            )

    def events_for(self, session_id: str, *, event_type: str | None = None) -> list[dict]:
        sql = "SELECT run_id, type, payload_json, created_at FROM run_events WHERE session_id = ?"
        params: tuple = (session_id,)
        if event_type:
            sql += " AND type = ?"
            params += (event_type,)
        return [
            {
                "type": row["type"],
                "runId": row["run_id"],
                "payload": json.loads(row["payload_json"]),
                "createdAt": row["created_at"],
            }
            for row in self._store.query(sql + " ORDER BY id", params)
        ]

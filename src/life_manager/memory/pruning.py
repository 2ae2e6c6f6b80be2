from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from life_manager.memory.store import MemoryStore


@dataclass(frozen=True)
class PruneReport:
    expired_sessions: int = 0
    trimmed_messages: int = 0
    evicted_sessions: int = 0


def prune_memory(
    store: MemoryStore,
    *,
    max_sessions: int,
    max_messages_per_session: int,
    retention_days: int,
) -> PruneReport:
    """Apply retention in three passes: age, per-session message cap, session count cap.

    Deleting a session cascades to its messages, tool calls and run events.
    A cap of 0 disables that pass.
    """
    cutoff = (datetime.now(UTC) - timedelta(days=max(1, retention_days))).isoformat(timespec="seconds")

    with store.write() as conn:
        expired = conn.execute("DELETE FROM sessions WHERE updated_at < ?", (cutoff,)).rowcount

        trimmed = 0
        if max_messages_per_session > 0:
            trimmed = conn.execute(
                """
                DELETE FROM messages
                WHERE (session_id, seq) IN (
                    SELECT session_id, seq FROM (
                        SELECT session_id, seq,
                               ROW_NUMBER() OVER (PARTITION BY session_id ORDER BY seq DESC) AS newest_first
                        FROM messages
                    )
                    WHERE newest_first > ?
                )
                """,
                (max_messages_per_session,),
            ).rowcount

        evicted = 0
        if max_sessions > 0:
            evicted = conn.execute(
                """
                DELETE FROM sessions
                WHERE id IN (
                    SELECT id FROM sessions ORDER BY updated_at DESC, created_at DESC LIMIT -1 OFFSET ?
                )
                """,
                (max_sessions,),
            ).rowcount

    report = PruneReport(expired, trimmed, evicted)
    if expired or trimmed or evicted:
        logger.info(
            f"Memory pruned: {expired} expired session(s), {trimmed} old message(s), {evicted} evicted session(s)"
        )
    return report

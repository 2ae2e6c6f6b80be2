from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from loguru import logger

from life_manager.models import Message, Role, Session


@runtime_checkable
class MessageStore(Protocol):
    def append(self, message: Message) -> None: ...

    def get_session(self, session_id: str) -> dict | None: ...

    def load_messages(self, session_id: str) -> list[Message]: ...

    def clear(self, session_id: str) -> None: ...

    def list_sessions(self, *, limit: int = 50) -> list[dict]: ...


def _live_summary(session_id: str, messages: list[Message]) -> dict:
    return {
        "sessionId": session_id,
        "userMessages": sum(1 for m in messages if m.role is Role.USER),
        "assistantMessages": sum(1 for m in messages if m.role is Role.ASSISTANT),
        "updatedAt": messages[-1].timestamp.isoformat(timespec="seconds") if messages else None,
    }


class InMemoryMessageStore:
    def __init__(self):
        self._messages: dict[str, list[Message]] = {}

    def append(self, message: Message) -> None:
        self._messages.setdefault(message.session_id, []).append(message)

    def get_session(self, session_id: str) -> dict | None:
        messages = self._messages.get(session_id)
        if messages is None:
            return None
        return _live_summary(session_id, messages)

    def list_sessions(self, *, limit: int = 50) -> list[dict]:
        ordered = sorted(self._messages.items(), key=lambda item: item[1][-1].timestamp, reverse=True)
        return [_live_summary(sid, messages) for sid, messages in ordered[: max(1, limit)]]

    def load_messages(self, session_id: str) -> list[Message]:
        return list(self._messages.get(session_id, []))

    def clear(self, session_id: str) -> None:
        self._messages.pop(session_id, None)


class SessionStore:
    """Arena of live sessions and their locks.

    A ``Session`` is created (and its history loaded from the message store) on
    first use and kept until the process exits; ``clear`` empties it in place.
    Only the run that holds ``lock(session_id)`` may mutate a session.
    """

    def __init__(self, messages: MessageStore | None = None):
        self._messages = messages or InMemoryMessageStore()
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def messages(self) -> MessageStore:
        return self._messages

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id, history=self._messages.load_messages(session_id))
            self._sessions[session_id] = session
            if session.history:
                logger.debug(f"Session {session_id}: restored {len(session.history)} message(s)")
        return session

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def append(self, session: Session, message: Message) -> None:
        self._messages.append(message)
        session.history.append(message)

    def clear(self, session: Session) -> None:
        self._messages.clear(session.session_id)
        session.history.clear()
        session.thread_id = None
        session.thread_run_id = None

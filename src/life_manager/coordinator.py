"""Per-session run coordination.

At most one run executes per session; a different message arriving while a
run is active waits on the session lock and runs afterwards. An identical
message (same normalized text) arriving while the first is running, or within
``dedup_window_seconds`` after it finished, is not executed again: the caller
gets the first run's result flagged ``deduplicated``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from life_manager.errors import SessionBusy, TransportClosed
from life_manager.models import ActionButton, Message, Role, RunHandle, RunResult, RunStatus, Session
from life_manager.orchestrator import Engine, RunContext, parse_request
from life_manager.session_store import SessionStore
from life_manager.tool_registry import current_run, current_session_id
from life_manager.transport import suggested_action_buttons

Deliver = Callable[[str, tuple[ActionButton, ...]], Awaitable[object]]
EventSink = Callable[[str, str, dict], None]


def fingerprint(content: str) -> str:
    normalized = " ".join(content.split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass
class _Submission:
    future: asyncio.Future
    finished_at: float | None = None


class SessionRunCoordinator:
    def __init__(
        self,
        sessions: SessionStore,
        engine: Engine,
        *,
        run_timeout_seconds: float = 60.0,
        dedup_window_seconds: float = 5.0,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sessions = sessions
        self._engine = engine
        self._run_timeout_seconds = run_timeout_seconds
        self._dedup_window_seconds = dedup_window_seconds
        self._events = events
        self._clock = clock
        self._submissions: dict[tuple[str, str], _Submission] = {}
        self._active: dict[str, RunHandle] = {}

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def active_run(self, session_id: str) -> RunHandle | None:
        return self._active.get(session_id)

    def history(self, session_id: str) -> list[Message]:
        return list(self._sessions.get(session_id).history)

    def new_chat(self, session_id: str) -> None:
        if session_id in self._active or self._sessions.lock(session_id).locked():
            raise SessionBusy(session_id)
        self._sessions.clear(self._sessions.get(session_id))
        for key in [k for k in self._submissions if k[0] == session_id]:
            del self._submissions[key]
        self._emit(session_id, "session.new_chat", {})
        logger.info(f"Session {session_id}: history cleared")

    async def submit(self, session_id: str, content: str, *, deliver: Deliver | None = None) -> RunResult:
        self._expire_submissions()
        key = (session_id, fingerprint(content))

        existing = self._submissions.get(key)
        if existing is not None:
            logger.info(f"Session {session_id}: duplicate message, joining the existing run")
            self._emit(session_id, "run.deduplicated", {})
            result = await asyncio.shield(existing.future)
            return dataclasses.replace(result, deduplicated=True)

        submission = _Submission(asyncio.get_running_loop().create_future())
        self._submissions[key] = submission
        try:
            result = await self._execute(session_id, content, deliver)
        except BaseException as ex:
            self._submissions.pop(key, None)
            if isinstance(ex, asyncio.CancelledError):
                submission.future.cancel()
            else:
                submission.future.set_exception(ex)
                # Mark retrieved; joiners (if any) still receive it.
                submission.future.exception()
            raise
        submission.future.set_result(result)
        submission.finished_at = self._clock()
        return result

    def _expire_submissions(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, sub in self._submissions.items()
            if sub.finished_at is not None and now - sub.finished_at > self._dedup_window_seconds
        ]
        for key in expired:
            del self._submissions[key]

    async def _execute(self, session_id: str, content: str, deliver: Deliver | None) -> RunResult:
        handle = RunHandle(session_id)
        lock = self._sessions.lock(session_id)
        if lock.locked():
            logger.info(f"Session {session_id}: run in progress, queuing {handle.run_id}")

        with logger.contextualize(session_id=session_id):
            async with lock:
                session = self._sessions.get(session_id)
                handle.transition(RunStatus.RUNNING)
                session.active_run_id = handle.run_id
                self._active[session_id] = handle
                self._emit(session_id, "run.started", {"run_id": handle.run_id})
                try:
                    return await self._run(session, handle, content, deliver)
                except BaseException as ex:
                    handle.transition(RunStatus.FAILED)
                    logger.error(f"Run {handle.run_id} failed: {type(ex).__name__}: {ex}")
                    self._emit(session_id, "run.failed", {"run_id": handle.run_id, "error": type(ex).__name__})
                    raise
                finally:
                    session.active_run_id = None
                    self._active.pop(session_id, None)

    async def _run(self, session: Session, handle: RunHandle, content: str, deliver: Deliver | None) -> RunResult:
        session_id = session.session_id
        self._sessions.append(session, Message(Role.USER, content, session_id))

        request, digest = parse_request(content)
        context = RunContext(request=request, digest=digest)
        text = await self._run_engine(session, handle, content, context)
        buttons = suggested_action_buttons(context.digest)

        if deliver is not None:
            try:
                await deliver(text, buttons)
            except TransportClosed:
                logger.info(f"Run {handle.run_id}: client disconnected during delivery, committing anyway")

        self._sessions.append(session, Message(Role.ASSISTANT, text, session_id, action_buttons=buttons))
        handle.transition(RunStatus.COMPLETED)
        self._emit(session_id, f"run.{handle.status.value}", {"run_id": handle.run_id})
        logger.info(f"Run {handle.run_id} {handle.status.value} ({len(text)} chars)")

        return RunResult(
            handle=handle,
            text=text,
            decision=context.decision,
            results=list(context.results),
            action_buttons=buttons,
        )

    async def _run_engine(self, session: Session, handle: RunHandle, content: str, context: RunContext) -> str:
        session_token = current_session_id.set(session.session_id)
        run_token = current_run.set(handle)
        try:
            task = asyncio.create_task(self._engine.run(content, session, handle, context))
        finally:
            current_run.reset(run_token)
            current_session_id.reset(session_token)

        try:
            done, _ = await asyncio.wait({task}, timeout=self._run_timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        handle.transition(RunStatus.TIMED_OUT)
        task.add_done_callback(_discard_abandoned)
        logger.warning(
            f"Run {handle.run_id} exceeded {self._run_timeout_seconds}s; "
            f"replying from {len(context.results)} partial result(s)"
        )
        return context.fallback_text()

    def _emit(self, session_id: str, event_type: str, payload: dict) -> None:
        if self._events is None:
            return
        try:
            self._events(session_id, event_type, payload)
        except Exception as ex:
            logger.warning(f"Failed to record {event_type} for {session_id}: {ex}")


def _discard_abandoned(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    ex = task.exception()
    if ex is not None:
        logger.debug(f"Abandoned run finished with {type(ex).__name__}: {ex}")
    else:
        logger.debug("Abandoned run finished; result discarded")

"""Alternative engine backed by a remote "thread + run" assistant API.

A remote run is polled until it reaches a terminal status. While it reports
``requires_action`` the pending tool calls are executed through the
``ToolRegistry`` and their outputs submitted as one batch. Polling is bounded:
after ``max_polls`` attempts the run is reported as timed out and left for the
next turn in the same session to drain before it appends a new message.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import openai
from loguru import logger
from tenacity import AsyncRetrying, retry, retry_if_result, stop_after_attempt, wait_fixed

from life_manager.aggregator import strip_code_fence
from life_manager.errors import BackendUnavailable, RunTimeout
from life_manager.models import RunHandle, RunStatus, Session, ToolCall, ToolOutput
from life_manager.orchestrator import RunContext, parse_request
from life_manager.providers.common import default_retry_kwargs
from life_manager.tool_registry import ToolRegistry

REMOTE_COMPLETED = "completed"
REMOTE_REQUIRES_ACTION = "requires_action"
REMOTE_FAILED = frozenset({"failed", "cancelled", "expired", "incomplete"})
REMOTE_TERMINAL = REMOTE_FAILED | {REMOTE_COMPLETED}

DIGEST_UNAVAILABLE = """\
## 📅 Next 3 Days
Unable to fetch calendar events - please check your Google Calendar connection.

## ✅ Tasks
Unable to fetch tasks - please check your Google Tasks connection.

## 💡 Recommendations
1. Verify your Google account is properly connected
2. Check that you have granted Calendar and Tasks permissions
3. Try refreshing your connection if needed"""

REQUEST_UNAVAILABLE = """\
I'm unable to process your request at the moment. Please ensure:
- Your Google account is properly connected
- You have granted necessary permissions for Calendar and Tasks
- Your internet connection is stable"""


def assistant_fallback(digest: bool) -> str:
    return DIGEST_UNAVAILABLE if digest else REQUEST_UNAVAILABLE


@dataclass(frozen=True)
class RemoteRun:
    id: str
    status: str
    tool_calls: tuple[ToolCall, ...] = ()
    last_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in REMOTE_TERMINAL


@dataclass(frozen=True)
class ThreadRunOutcome:
    status: RunStatus
    run: RemoteRun
    polls: int


@runtime_checkable
class ThreadBackend(Protocol):
    async def create_thread(self) -> str: ...

    async def add_message(self, thread_id: str, content: str) -> None: ...

    async def create_run(self, thread_id: str) -> RemoteRun: ...

    async def retrieve_run(self, thread_id: str, run_id: str) -> RemoteRun: ...

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: list[dict]) -> RemoteRun: ...

    async def latest_assistant_text(self, thread_id: str) -> str | None: ...


def to_function_tools(registry: ToolRegistry) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
        for tool in registry.describe()
    ]


_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)


def _to_remote_run(run: Any) -> RemoteRun:
    calls: list[ToolCall] = []
    action = getattr(run, "required_action", None)
    if action is not None and getattr(action, "type", None) == "submit_tool_outputs":
        for call in action.submit_tool_outputs.tool_calls:
            calls.append(ToolCall(call.function.name, call.function.arguments or "{}", call_id=call.id))
    last_error = getattr(run, "last_error", None)
    return RemoteRun(
        id=run.id,
        status=run.status,
        tool_calls=tuple(calls),
        last_error=getattr(last_error, "message", None),
    )


class OpenAIThreadBackend:
    """``ThreadBackend`` over ``openai.AsyncOpenAI().beta``; the assistant is created on first use."""

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        *,
        model: str,
        instructions: str,
        tools: list[dict],
        assistant_id: str | None = None,
    ):
        self._client = client
        self._model = model
        self._instructions = instructions
        self._tools = tools
        self._assistant_id = assistant_id
        self._assistant_lock = asyncio.Lock()

    async def _call(self, operation: str, coro_factory) -> Any:
        try:
            return await self._with_retry(coro_factory)
        except openai.APIError as ex:
            raise BackendUnavailable(f"Assistant API {operation} failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _with_retry(self, coro_factory) -> Any:
        return await coro_factory()

    async def _ensure_assistant(self) -> str:
        async with self._assistant_lock:
            if self._assistant_id is None:
                assistant = await self._call(
                    "assistant creation",
                    lambda: self._client.beta.assistants.create(
                        model=self._model,
                        name="Life Manager",
                        instructions=self._instructions,
                        tools=self._tools,
                    ),
                )
                self._assistant_id = assistant.id
                logger.info(f"Created assistant {assistant.id} with {len(self._tools)} tool(s)")
            return self._assistant_id

    async def create_thread(self) -> str:
        thread = await self._call("thread creation", lambda: self._client.beta.threads.create())
        return thread.id

    async def add_message(self, thread_id: str, content: str) -> None:
        await self._call(
            "message creation",
            lambda: self._client.beta.threads.messages.create(thread_id, role="user", content=content),
        )

    async def create_run(self, thread_id: str) -> RemoteRun:
        assistant_id = await self._ensure_assistant()
        run = await self._call(
            "run creation",
            lambda: self._client.beta.threads.runs.create(thread_id, assistant_id=assistant_id),
        )
        return _to_remote_run(run)

    async def retrieve_run(self, thread_id: str, run_id: str) -> RemoteRun:
        run = await self._call(
            "run retrieval",
            lambda: self._client.beta.threads.runs.retrieve(run_id, thread_id=thread_id),
        )
        return _to_remote_run(run)

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: list[dict]) -> RemoteRun:
        run = await self._call(
            "tool output submission",
            lambda: self._client.beta.threads.runs.submit_tool_outputs(
                run_id, thread_id=thread_id, tool_outputs=outputs
            ),
        )
        return _to_remote_run(run)

    async def latest_assistant_text(self, thread_id: str) -> str | None:
        page = await self._call(
            "message listing",
            lambda: self._client.beta.threads.messages.list(thread_id, order="desc", limit=10),
        )
        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [block.text.value for block in message.content if block.type == "text"]
            if parts:
                return "\n\n".join(parts)
        return None


def _tool_output_payload(output: ToolOutput) -> dict[str, str]:
    if output.error is not None:
        body = json.dumps({"error": str(output.error)})
    elif isinstance(output.result, str):
        body = output.result
    else:
        body = json.dumps(output.result, default=str)
    return {"tool_call_id": output.call_id, "output": body}


class ThreadRunDriver:
    def __init__(
        self,
        backend: ThreadBackend,
        registry: ToolRegistry,
        *,
        poll_interval_seconds: float = 1.0,
        max_polls: int = 30,
    ):
        self._backend = backend
        self._registry = registry
        self._poll_interval_seconds = poll_interval_seconds
        self._max_polls = max(1, max_polls)

    async def drive(self, thread_id: str, run_id: str, handle: RunHandle | None = None) -> ThreadRunOutcome:
        polls = 0

        async def poll_once() -> RemoteRun:
            nonlocal polls
            polls += 1
            self._ensure_live(handle)
            run = await self._backend.retrieve_run(thread_id, run_id)
            if run.status == REMOTE_REQUIRES_ACTION and run.tool_calls:
                run = await self._submit_tool_outputs(thread_id, run, handle)
            return run

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda run: not run.is_terminal),
            wait=wait_fixed(self._poll_interval_seconds),
            stop=stop_after_attempt(self._max_polls),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        run = await retrying(poll_once)

        if run.status == REMOTE_COMPLETED:
            status = RunStatus.COMPLETED
        elif run.status in REMOTE_FAILED:
            status = RunStatus.FAILED
            logger.warning(f"Remote run {run_id} ended {run.status}: {run.last_error}")
        else:
            status = RunStatus.TIMED_OUT
            logger.warning(f"Remote run {run_id} still {run.status} after {polls} poll(s)")
        return ThreadRunOutcome(status, run, polls)

    async def _submit_tool_outputs(self, thread_id: str, run: RemoteRun, handle: RunHandle | None) -> RemoteRun:
        if handle is not None:
            handle.transition(RunStatus.AWAITING_TOOL_OUTPUT)
        logger.info(f"Remote run {run.id}: executing {len(run.tool_calls)} tool call(s)")
        outputs = await self._registry.invoke_many(run.tool_calls)
        self._ensure_live(handle)
        submitted = await self._backend.submit_tool_outputs(
            thread_id, run.id, [_tool_output_payload(o) for o in outputs]
        )
        if handle is not None:
            handle.transition(RunStatus.RUNNING)
        return submitted

    @staticmethod
    def _ensure_live(handle: RunHandle | None) -> None:
        if handle is not None and handle.is_terminal:
            raise RunTimeout(handle.run_id, "abandoned")


class AssistantEngine:
    """``Engine`` that delegates the whole turn to a remote assistant thread.

    A thread accepts no new message while one of its runs is active, so the
    session's ``thread_run_id`` is recorded as soon as a run exists (even by a
    turn that has already timed out) and is cleared only once that run is seen
    to end.
    """

    def __init__(self, backend: ThreadBackend, driver: ThreadRunDriver):
        self._backend = backend
        self._driver = driver

    async def run(self, request: str, session: Session, handle: RunHandle, context: RunContext) -> str:
        context.request, context.digest = parse_request(request)
        try:
            thread_id = await self._ensure_thread(session, handle)
            if session.thread_run_id and not await self._drain(thread_id, session, handle):
                return assistant_fallback(context.digest)

            await self._backend.add_message(thread_id, context.request)
            run = await self._backend.create_run(thread_id)
            session.thread_run_id = run.id
            self._ensure_live(handle)

            outcome = await self._driver.drive(thread_id, run.id, handle)
            if outcome.status is not RunStatus.TIMED_OUT:
                session.thread_run_id = None
            if outcome.status is RunStatus.COMPLETED:
                text = await self._backend.latest_assistant_text(thread_id)
                if text and text.strip():
                    return strip_code_fence(text)
                logger.warning(f"Remote run {run.id} completed without an assistant message")
        except BackendUnavailable as ex:
            logger.error(f"Assistant backend unavailable: {ex}")

        return assistant_fallback(context.digest)

    async def _ensure_thread(self, session: Session, handle: RunHandle) -> str:
        # The coordinator holds the session lock for the whole turn, so at most one creation per session.
        if session.thread_id is None:
            session.thread_id = await self._backend.create_thread()
            logger.info(f"Session {session.session_id}: created thread {session.thread_id}")
            self._ensure_live(handle)
        return session.thread_id

    async def _drain(self, thread_id: str, session: Session, handle: RunHandle) -> bool:
        """Wait for the previous run to end; False (mapping kept) when it is still active or unreachable."""
        previous = session.thread_run_id
        logger.info(f"Session {session.session_id}: draining previous run {previous}")
        try:
            outcome = await self._driver.drive(thread_id, previous, handle)
        except BackendUnavailable as ex:
            logger.warning(f"Could not drain previous run {previous}: {ex}")
            return False
        if outcome.status is RunStatus.TIMED_OUT:
            logger.warning(f"Previous run {previous} is still {outcome.run.status}; not adding a message")
            return False
        logger.info(f"Previous run {previous} drained with status {outcome.status.value}")
        session.thread_run_id = None
        self._ensure_live(handle)
        return True

    @staticmethod
    def _ensure_live(handle: RunHandle) -> None:
        if handle.is_terminal:
            raise RunTimeout(handle.run_id, "abandoned")

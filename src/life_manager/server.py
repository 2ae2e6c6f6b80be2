"""FastAPI surface: the ``/ws`` chat endpoint and a small HTTP API."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from starlette.websockets import WebSocketState

from life_manager.bootstrap import AppRuntime
from life_manager.errors import SessionBusy, TransportClosed
from life_manager.models import ActionButton
from life_manager.transport import connected_frame, done_frame, error_frame, typing_frame

DEFAULT_SESSION_ID = "default"
FAILED_TO_PROCESS = "Failed to process message"
FAILED_TO_GENERATE = "Failed to generate response"


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_text: str = Field(alias="userText", min_length=1)
    session_id: str = Field(default=DEFAULT_SESSION_ID, alias="sessionId")


class WebSocketConnection:
    """``Connection`` over a Starlette websocket."""

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_json(self, frame: dict[str, Any]) -> None:
        if not self.is_open:
            raise TransportClosed("websocket is closed")
        try:
            await self._websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as ex:
            self._closed = True
            raise TransportClosed(str(ex) or type(ex).__name__) from ex


class ChatSocketHandler:
    """Reads frames from one websocket; each user message is run as its own task."""

    def __init__(self, runtime: AppRuntime, connection: WebSocketConnection):
        self._runtime = runtime
        self._connection = connection
        self._tasks: set[asyncio.Task] = set()

    async def handle_frame(self, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as ex:
            logger.warning(f"Invalid websocket payload (not JSON): {ex}")
            await self._send(error_frame("", "Invalid JSON payload"))
            return
        if not isinstance(payload, dict):
            await self._send(error_frame("", "Invalid message format"))
            return

        session_id = str(payload.get("sessionId") or DEFAULT_SESSION_ID)
        frame_type = payload.get("type")

        if frame_type == "user_message":
            content = str(payload.get("content") or "").strip()
            if not content:
                await self._send(error_frame(session_id, "Empty message"))
                return
            task = asyncio.create_task(self._process(session_id, content))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif frame_type == "new_chat":
            self._new_chat(session_id)
            await self._send(connected_frame(session_id))
        else:
            logger.debug(f"Ignoring websocket frame of type {frame_type!r}")

    async def _process(self, session_id: str, content: str) -> None:
        await self._send(typing_frame(session_id))

        async def deliver(text: str, buttons: tuple[ActionButton, ...]) -> None:
            await self._runtime.transport.stream(self._connection, session_id, text, buttons)

        try:
            result = await self._runtime.coordinator.submit(session_id, content, deliver=deliver)
        except Exception as ex:
            logger.exception(f"Session {session_id}: run failed: {ex}")
            await self._send(error_frame(session_id, FAILED_TO_PROCESS))
            return

        if result.deduplicated:
            await self._send(done_frame(session_id))

    def _new_chat(self, session_id: str) -> None:
        try:
            self._runtime.coordinator.new_chat(session_id)
        except SessionBusy as ex:
            logger.info(str(ex))

    async def _send(self, frame: dict[str, Any]) -> None:
        await self._runtime.transport.send(self._connection, frame)

    async def drain(self) -> None:
        """Let in-flight runs finish; their replies are committed even though nobody is listening."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def create_app(runtime: AppRuntime) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"life-manager ready: engine={runtime.config.engine_name} tools={len(runtime.registry)}")
        yield
        logger.info("Shutting down...")
        runtime.close()

    app = FastAPI(title="Life Manager", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok"}

    @app.get("/api/status")
    async def status() -> dict[str, Any]:
        return {
            "status": "ok",
            "engine": runtime.config.engine_name,
            "provider": runtime.config.provider_name,
            "tools": runtime.registry.names(),
            "sessions": len(runtime.sessions),
            "memoryEnabled": runtime.message_store is not None,
        }

    @app.get("/api/sessions")
    async def list_sessions(limit: int = 50) -> dict[str, Any]:
        return {"sessions": runtime.sessions.messages.list_sessions(limit=limit)}

    @app.get("/api/sessions/{session_id}/events")
    async def session_events(session_id: str, event_type: str | None = Query(default=None, alias="type")) -> dict[str, Any]:
        if runtime.message_store is None:
            raise HTTPException(status_code=404, detail="Memory is disabled")
        return {"sessionId": session_id, "events": runtime.message_store.list_events(session_id, event_type=event_type)}

    @app.get("/api/sessions/{session_id}/messages")
    async def session_messages(session_id: str) -> dict[str, Any]:
        history = runtime.coordinator.history(session_id)
        return {"sessionId": session_id, "messages": [m.to_dict() for m in history]}

    @app.post("/api/sessions/{session_id}/clear")
    async def clear_session(session_id: str) -> dict[str, Any]:
        try:
            runtime.coordinator.new_chat(session_id)
        except SessionBusy as ex:
            raise HTTPException(status_code=409, detail=str(ex)) from ex
        return {"sessionId": session_id, "cleared": True}

    @app.post("/api/chat")
    async def chat(request: ChatRequest) -> dict[str, Any]:
        try:
            result = await runtime.coordinator.submit(request.session_id, request.user_text)
        except Exception as ex:
            logger.exception(f"Session {request.session_id}: run failed: {ex}")
            raise HTTPException(status_code=500, detail=FAILED_TO_GENERATE) from ex
        return {
            "response": result.text,
            "sessionId": request.session_id,
            "status": result.handle.status.value,
            "actionButtons": [b.to_dict() for b in result.action_buttons],
            "deduplicated": result.deduplicated,
        }

    @app.websocket("/ws")
    async def chat_ws(websocket: WebSocket) -> None:
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        handler = ChatSocketHandler(runtime, connection)
        await runtime.transport.send(connection, connected_frame())
        logger.info("Websocket connected")
        try:
            while True:
                raw = await websocket.receive_text()
                await handler.handle_frame(raw)
        except WebSocketDisconnect:
            logger.info("Websocket disconnected")
        finally:
            connection.mark_closed()
            await handler.drain()

    return app

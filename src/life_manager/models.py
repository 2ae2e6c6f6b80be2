from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from life_manager.errors import ToolError

CALENDAR_AGENT = "calendar"
TASKS_AGENT = "tasks"
KNOWN_AGENTS = frozenset({CALENDAR_AGENT, TASKS_AGENT})

DIGEST_MARKER = "[INITIAL_SUMMARY]"


def utc_now() -> datetime:
    return datetime.now(UTC)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    AWAITING_TOOL_OUTPUT = "awaiting_tool_output"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_ACTIVE_STATUSES = frozenset({RunStatus.RUNNING, RunStatus.AWAITING_TOOL_OUTPUT})
_TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.TIMED_OUT})


@dataclass(frozen=True)
class ActionButton:
    id: str
    label: str
    action: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "action": self.action}


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    session_id: str
    timestamp: datetime = field(default_factory=utc_now)
    action_buttons: tuple[ActionButton, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "sessionId": self.session_id,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "actionButtons": [b.to_dict() for b in self.action_buttons],
        }


@dataclass
class Session:
    session_id: str
    history: list[Message] = field(default_factory=list)
    active_run_id: str | None = None
    thread_id: str | None = None
    thread_run_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class RoutingDecision:
    agents: frozenset[str]
    reasoning: str = ""

    @property
    def is_conversational(self) -> bool:
        return not self.agents

    @classmethod
    def conversational(cls, reasoning: str) -> RoutingDecision:
        return cls(agents=frozenset(), reasoning=reasoning)


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime | None
    end: datetime | None = None
    all_day: bool = False
    location: str = ""
    description: str = ""
    status: str = "confirmed"


@dataclass(frozen=True)
class TaskItem:
    id: str
    title: str
    priority: str = "medium"
    due: date | None = None
    notes: str = ""
    completed: bool = False
    task_list_id: str = ""
    task_list_title: str = ""


@dataclass
class AgentResult:
    agent_name: str
    data: list[Any] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ToolCall:
    tool_name: str
    arguments: dict[str, Any] | str
    call_id: str = field(default_factory=lambda: f"call_{uuid4().hex[:12]}")


@dataclass(frozen=True)
class ToolOutput:
    call_id: str
    tool_name: str
    result: Any = None
    error: ToolError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunHandle:
    session_id: str
    run_id: str = field(default_factory=lambda: f"run_{uuid4().hex[:12]}")
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in _ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_STATUSES

    def transition(self, status: RunStatus) -> bool:
        """Move to ``status`` unless the handle is already terminal.

        Returns False when the transition was refused, which is how late
        writers (an abandoned run still executing in the background) find out
        their work is discarded.
        """
        if self.is_terminal:
            return False
        self.status = status
        if status in _TERMINAL_STATUSES:
            self.finished_at = utc_now()
        return True


@dataclass
class RunResult:
    handle: RunHandle
    text: str
    decision: RoutingDecision | None = None
    results: list[AgentResult] = field(default_factory=list)
    action_buttons: tuple[ActionButton, ...] = ()
    deduplicated: bool = False

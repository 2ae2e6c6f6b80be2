"""
Exception hierarchy for the orchestration core.

Tool failures are never raised across the registry boundary; they travel inside
``ToolOutput.error``. The remaining types are raised internally and converted
to typed results (fallback text, error frames) at the component that owns them.
"""

from __future__ import annotations


class LifeManagerError(Exception):
    """Base exception for all life-manager errors."""


class ToolError(LifeManagerError):
    """Base for failures reported by the tool registry."""

    kind = "tool_error"

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name

    def to_dict(self) -> dict:
        return {"error": self.kind, "tool": self.tool_name, "message": str(self)}


class InvalidArguments(ToolError):
    """Arguments did not match the tool's input schema."""

    kind = "invalid_arguments"

    def __init__(self, tool_name: str, message: str, details: list[dict] | None = None):
        super().__init__(tool_name, message)
        self.details = details or []


class ToolNotFound(ToolError):
    """No tool is registered under the requested name."""

    kind = "tool_not_found"


class ToolExecutionError(ToolError):
    """The upstream capability failed while executing."""

    kind = "tool_execution_error"


class BackendUnavailable(LifeManagerError):
    """The language-model (or assistant thread) backend cannot be reached."""


class RunTimeout(LifeManagerError):
    """A run exceeded its iteration or time budget."""

    def __init__(self, run_id: str, budget: float | int | str):
        super().__init__(f"Run {run_id} exceeded its budget ({budget})")
        self.run_id = run_id
        self.budget = budget


class TransportClosed(LifeManagerError):
    """The client connection closed while frames were still being sent."""


class SessionBusy(LifeManagerError):
    """The session has an active run and cannot be modified right now."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} has an active run")
        self.session_id = session_id

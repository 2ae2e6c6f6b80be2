from __future__ import annotations

from loguru import logger
from tenacity import RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

MAX_ATTEMPTS = 4


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0.0
    logger.warning(
        f"{state.fn.__qualname__ if state.fn else 'call'} failed with {type(error).__name__}; "
        f"attempt {state.attempt_number}/{MAX_ATTEMPTS}, next try in {delay:.1f}s"
    )


def default_retry_kwargs(exception_types: tuple[type[Exception], ...]) -> dict:
    """Exponential backoff for transient backend errors; the last error is re-raised."""
    return {
        "retry": retry_if_exception_type(exception_types),
        "wait": wait_exponential(multiplier=1, min=1, max=20),
        "stop": stop_after_attempt(MAX_ATTEMPTS),
        "before_sleep": _log_retry,
        "reraise": True,
    }

import inspect
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

# Bound per run with ``logger.contextualize(session_id=...)``.
_SESSION_PLACEHOLDER = "-"

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> "
    "<magenta>[{extra[session_id]}]</magenta> <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session_id]} | {name}:{function}:{line} - {message}"

# Stdlib loggers routed into loguru so server output shares the same sinks.
_INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


@dataclass(frozen=True)
class ConsoleSink:
    colorize: bool = True

    def add(self, level: str) -> int:
        return logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=self.colorize)

    def label(self, level: str) -> str:
        return f"console (stderr, {level})"


@dataclass(frozen=True)
class FileSink:
    path: str = "life_manager.log"
    rotation: str = "10 MB"
    retention: int = 3
    serialize: bool = False

    def add(self, level: str) -> int:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            self.path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
            serialize=self.serialize,
        )

    def label(self, level: str) -> str:
        suffix = ", json" if self.serialize else ""
        return f"file ({self.path}, {level}{suffix})"


_SINKS: dict[str, type] = {"console": ConsoleSink, "file": FileSink}

_DEFAULT_SINKS: list[dict[str, Any]] = [
    {"type": "console"},
    {"type": "file", "path": "life_manager.log"},
]


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_stdlib_logging(names: tuple[str, ...] = _INTERCEPTED_LOGGERS) -> None:
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace loguru's sinks with the configured ``LogConsumers``.

    Each entry is ``{"type": "console" | "file", "level"?: ..., **sink options}``.
    Unknown types are reported and skipped. Returns one label per sink added.
    """
    logger.remove()
    logger.configure(extra={"session_id": _SESSION_PLACEHOLDER})

    labels: list[str] = []
    for entry in _DEFAULT_SINKS if consumers is None else consumers:
        options = dict(entry)
        sink_type = options.pop("type", "")
        sink_level = options.pop("level", level)
        sink_cls = _SINKS.get(sink_type)
        if sink_cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue
        sink = sink_cls(**options)
        sink.add(sink_level)
        labels.append(sink.label(sink_level))

    intercept_stdlib_logging()
    return labels

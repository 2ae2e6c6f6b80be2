from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

_PROVIDER_KEY_VARS = {"anthropic": "ANTHROPIC_API_KEY", "openai": "OPENAI_API_KEY"}

_DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
    "none": "",
}


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str
    openai_api_key: str
    google_client_id: str | None
    google_client_secret: str | None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    engine_name: str
    classifier_name: str
    mode: str
    host: str
    port: int
    run_timeout_seconds: float
    dedup_window_seconds: float
    stream_delay_seconds: float
    thread_poll_interval_seconds: float
    thread_max_polls: int
    assistant_id: str | None
    memory_enabled: bool
    memory_db_path: str
    memory_max_sessions: int
    memory_max_messages_per_session: int
    memory_retention_days: int
    log_level: str
    log_consumers: list | None


def load_json_config(path: str | Path | None = None) -> dict:
    """Read ``config.json`` (PascalCase keys); a missing file means all defaults."""
    config_path = Path(path) if path else Path.cwd() / "config.json"
    if not config_path.exists():
        return {}
    return json.loads(config_path.read_text(encoding="utf-8"))


_BOOL_WORDS = {"1": True, "true": True, "yes": True, "on": True, "0": False, "false": False, "no": False, "off": False}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return _BOOL_WORDS.get(value.strip().lower(), bool(value))
    return bool(value)


def _choice(value: object, allowed: tuple[str, ...], key: str) -> str:
    lowered = str(value).strip().lower()
    if lowered not in allowed:
        raise ValueError(f"Invalid {key}: {value!r}. Supported: {', '.join(repr(a) for a in allowed)}")
    return lowered


def parse_app_config(config: dict) -> AppConfig:
    provider_name = _choice(config.get("Provider", "anthropic"), ("anthropic", "openai", "none"), "Provider")
    return AppConfig(
        provider_name=provider_name,
        model=config.get("Model", _DEFAULT_MODELS[provider_name]),
        max_tokens=int(config.get("MaxTokens", 2048)),
        temperature=float(config.get("Temperature", 0.3)),
        engine_name=_choice(config.get("Engine", "orchestrator"), ("orchestrator", "assistant"), "Engine"),
        classifier_name=_choice(config.get("Classifier", "llm"), ("llm", "keyword"), "Classifier"),
        mode=_choice(config.get("Mode", "server"), ("server", "console"), "Mode"),
        host=str(config.get("Host", "127.0.0.1")),
        port=int(config.get("Port", 5000)),
        run_timeout_seconds=float(config.get("RunTimeoutSeconds", 60)),
        dedup_window_seconds=float(config.get("DedupWindowSeconds", 5)),
        stream_delay_seconds=float(config.get("StreamDelaySeconds", 0.02)),
        thread_poll_interval_seconds=float(config.get("ThreadPollIntervalSeconds", 1)),
        thread_max_polls=int(config.get("ThreadMaxPolls", 30)),
        assistant_id=str(config.get("AssistantId", "")).strip() or None,
        memory_enabled=_to_bool(config.get("MemoryEnabled")),
        memory_db_path=str(config.get("MemoryDbPath", ".life_manager/memory.db")),
        memory_max_sessions=int(config.get("MemoryMaxSessions", 200)),
        memory_max_messages_per_session=int(config.get("MemoryMaxMessagesPerSession", 5000)),
        memory_retention_days=int(config.get("MemoryRetentionDays", 30)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    env_var = _PROVIDER_KEY_VARS.get(provider_name, "")
    return RuntimeEnv(
        provider_api_key=os.environ.get(env_var, "") if env_var else "",
        provider_env_var=env_var,
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        google_client_id=os.environ.get("GOOGLE_CLIENT_ID"),
        google_client_secret=os.environ.get("GOOGLE_CLIENT_SECRET"),
    )

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import openai
from loguru import logger

from life_manager.agents.calendar_agent import CalendarAgent
from life_manager.agents.tasks_agent import TasksAgent
from life_manager.aggregator import Aggregator
from life_manager.app_config import AppConfig, RuntimeEnv
from life_manager.classifier import Classifier, KeywordClassifier, LLMClassifier
from life_manager.coordinator import SessionRunCoordinator
from life_manager.logging_config import setup_logging
from life_manager.memory import MemoryStore, SqliteMessageStore
from life_manager.orchestrator import Engine, Orchestrator
from life_manager.provider import LLMProvider, create_provider
from life_manager.session_store import SessionStore
from life_manager.system_prompt import build_conversational_prompt
from life_manager.thread_runs import AssistantEngine, OpenAIThreadBackend, ThreadRunDriver, to_function_tools
from life_manager.tool_registry import ToolRegistry, build_registry
from life_manager.transport import StreamTransport


@dataclass
class AppRuntime:
    config: AppConfig
    registry: ToolRegistry
    engine: Engine
    coordinator: SessionRunCoordinator
    transport: StreamTransport
    message_store: SqliteMessageStore | None = None
    log_descriptions: list[str] = field(default_factory=list)

    @property
    def sessions(self) -> SessionStore:
        return self.coordinator.sessions

    def close(self) -> None:
        if self.message_store is not None:
            self.message_store.close()


def build_classifier(app: AppConfig, provider: LLMProvider | None) -> Classifier:
    keyword = KeywordClassifier()
    if app.classifier_name == "keyword" or provider is None:
        return keyword
    return LLMClassifier(provider, model=app.model, fallback=keyword)


def build_engine(app: AppConfig, env: RuntimeEnv, registry: ToolRegistry) -> Engine:
    if app.engine_name == "assistant":
        if not env.openai_api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required for the assistant engine.")
        backend = OpenAIThreadBackend(
            openai.AsyncOpenAI(api_key=env.openai_api_key),
            model=app.model if app.provider_name == "openai" else "gpt-4o",
            instructions=build_conversational_prompt(),
            tools=to_function_tools(registry),
            assistant_id=app.assistant_id,
        )
        driver = ThreadRunDriver(
            backend,
            registry,
            poll_interval_seconds=app.thread_poll_interval_seconds,
            max_polls=app.thread_max_polls,
        )
        return AssistantEngine(backend, driver)

    if app.provider_name != "none" and not env.provider_api_key:
        raise ValueError(f"{env.provider_env_var} environment variable is required.")
    provider = create_provider(app.provider_name, env.provider_api_key)
    agents = [CalendarAgent(registry), TasksAgent(registry)]
    aggregator = Aggregator(
        provider,
        model=app.model,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
    )
    return Orchestrator(build_classifier(app, provider), agents, aggregator)


def open_message_store(app: AppConfig) -> SqliteMessageStore:
    db_path = Path(app.memory_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    store = SqliteMessageStore(MemoryStore(str(db_path)))
    store.prune(
        max_sessions=app.memory_max_sessions,
        max_messages_per_session=app.memory_max_messages_per_session,
        retention_days=app.memory_retention_days,
    )
    return store


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv, *, configure_logging: bool = True) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    registry = build_registry(env.google_client_id, env.google_client_secret)
    logger.info(f"Registered tools: {', '.join(registry.names())}")

    message_store: SqliteMessageStore | None = None
    if app.memory_enabled:
        message_store = open_message_store(app)
        registry.add_observer(message_store.record_tool_output)

    engine = build_engine(app, env, registry)
    coordinator = SessionRunCoordinator(
        SessionStore(message_store),
        engine,
        run_timeout_seconds=app.run_timeout_seconds,
        dedup_window_seconds=app.dedup_window_seconds,
        events=message_store.record_event if message_store else None,
    )

    return AppRuntime(
        config=app,
        registry=registry,
        engine=engine,
        coordinator=coordinator,
        transport=StreamTransport(delay_seconds=app.stream_delay_seconds),
        message_store=message_store,
        log_descriptions=log_descriptions,
    )

import asyncio
import sys

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from life_manager.app_config import load_json_config, parse_app_config, resolve_runtime_env
from life_manager.bootstrap import AppRuntime, bootstrap_runtime
from life_manager.models import DIGEST_MARKER
from life_manager.server import create_app

CONSOLE_SESSION_ID = "console"


def _print_banner(runtime: AppRuntime) -> None:
    print("life-manager (type 'exit' to quit, '/digest' for a summary, '/new' to start over)")
    print(f"Engine: {runtime.config.engine_name} ({runtime.config.provider_name})")
    print("Tools:")
    for name in runtime.registry.names():
        print(f"  - {name}")
    if runtime.message_store is not None:
        print(f"Memory: enabled ({runtime.config.memory_db_path})")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()


async def run_console(runtime: AppRuntime) -> None:
    _print_banner(runtime)
    coordinator = runtime.coordinator

    try:
        while True:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue
            if trimmed == "/new":
                coordinator.new_chat(CONSOLE_SESSION_ID)
                print("Started a new chat.\n")
                continue
            if trimmed == "/digest":
                trimmed = DIGEST_MARKER

            try:
                result = await coordinator.submit(CONSOLE_SESSION_ID, trimmed)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
                continue

            print(f"\nassistant> {result.text}\n")
            if result.action_buttons:
                print("Suggestions: " + " | ".join(b.label for b in result.action_buttons))
                print()
    finally:
        runtime.close()


def main() -> None:
    load_dotenv()

    try:
        app = parse_app_config(load_json_config())
        runtime = bootstrap_runtime(app, resolve_runtime_env(app.provider_name))
    except ValueError as ex:
        logger.error(str(ex))
        sys.exit(1)

    if app.mode == "console":
        asyncio.run(run_console(runtime))
        return

    logger.info(f"Serving on http://{app.host}:{app.port} (websocket: /ws)")
    uvicorn.run(create_app(runtime), host=app.host, port=app.port, log_config=None)


if __name__ == "__main__":
    main()

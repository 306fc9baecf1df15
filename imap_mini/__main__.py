"""Entry point for running a single tool call.

Usage::

    python -m imap_mini --list                       # print tool schemas
    python -m imap_mini --check                      # log in and NOOP, exit 1 on failure
    python -m imap_mini <tool> ['{"json": "args"}']  # run one tool

The JSON result goes to stdout; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import structlog

from .config import ImapConfig, load_config
from .connection import ConnectionManager
from .errors import ImapConnectionError, StartupConfigError
from .logging import setup_logging
from .shutdown import install_exception_handlers, install_signal_handlers
from .tools import ToolResult, error_result, handle_tool_call, registry, tool_schemas

logger = structlog.get_logger()

USAGE = "Usage: python -m imap_mini <tool> [json-arguments] | --list | --check"


async def run_tool(config: ImapConfig, name: str, arguments: dict[str, Any]) -> ToolResult:
    """Run one tool call; a SIGINT/SIGTERM cancels it and still logs out.

    A protocol command already sent runs to completion before the logout.
    """
    install_exception_handlers()
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)

    manager = ConnectionManager(config)
    call = asyncio.create_task(handle_tool_call(manager, name, arguments))
    stop = asyncio.create_task(shutdown_event.wait())
    try:
        done, _ = await asyncio.wait({call, stop}, return_when=asyncio.FIRST_COMPLETED)
        if call not in done:
            call.cancel()
            logger.warning("tool_call_interrupted", tool=name)
            await asyncio.wait({call})
            return error_result(f"Error executing {name}: interrupted")
        return call.result()
    finally:
        stop.cancel()
        await manager.disconnect()


async def check_connection(config: ImapConfig) -> bool:
    """Log in, check the session with NOOP and log out again."""
    manager = ConnectionManager(config)
    try:
        await manager.connect()
        return await manager.is_connected()
    except ImapConnectionError as exc:
        logger.error("health_check_failed", category=exc.category.value, error=str(exc))
        return False
    finally:
        await manager.disconnect()


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if raw is None:
        return {}
    arguments = json.loads(raw)
    if not isinstance(arguments, dict):
        raise ValueError("tool arguments must be a JSON object")
    return arguments


def _load_config() -> ImapConfig | None:
    try:
        return load_config()
    except StartupConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE, file=sys.stderr)
        return 1

    if argv[0] == "--list":
        print(json.dumps(tool_schemas(), indent=2))
        return 0

    if argv[0] == "--check":
        config = _load_config()
        if config is None:
            return 1
        setup_logging(json=config.log_json, level=config.log_level)
        connected = asyncio.run(check_connection(config))
        print(json.dumps({"host": config.host, "connected": connected}, indent=2))
        return 0 if connected else 1

    name = argv[0]
    if name not in registry:
        print(f"Unknown tool: {name}\n{USAGE}", file=sys.stderr)
        return 1

    try:
        arguments = _parse_arguments(argv[1] if len(argv) > 1 else None)
    except ValueError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 1

    config = _load_config()
    if config is None:
        return 1

    setup_logging(json=config.log_json, level=config.log_level)
    result = asyncio.run(run_tool(config, name, arguments))
    print(result.text)
    return 1 if result.is_error else 0


if __name__ == "__main__":
    sys.exit(main())

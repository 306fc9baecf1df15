"""Graceful shutdown and last-resort exception logging."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import threading
from typing import Any

import structlog

logger = structlog.get_logger()


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Register SIGTERM and SIGINT handlers that set *shutdown_event*.

    Call this once from the running event loop.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle, sig)


def _diagnostics(label: str, exc: BaseException | None) -> dict[str, Any]:
    details: dict[str, Any] = {
        "label": label,
        "pid": os.getpid(),
        "python": sys.version.split()[0],
        "cwd": os.getcwd(),
    }
    if exc is not None:
        details["error_type"] = type(exc).__name__
        details["error"] = str(exc)
        code = getattr(exc, "errno", None) or getattr(exc, "code", None)
        if code:
            details["code"] = code
        if exc.__cause__ is not None:
            details["cause"] = repr(exc.__cause__)
    return details


def install_exception_handlers() -> None:
    """Log exceptions nobody handled instead of letting them kill the process.

    Covers asyncio tasks whose exceptions were never retrieved, exceptions
    escaping worker threads (``asyncio.to_thread`` included) and exceptions
    reaching the top of the main thread.  Must be called from the running
    event loop.
    """
    loop = asyncio.get_running_loop()

    def _loop_handler(_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(
            "unhandled_async_exception",
            message=context.get("message"),
            exc_info=exc,
            **_diagnostics("UNHANDLED REJECTION", exc),
        )

    def _thread_hook(args: threading.ExceptHookArgs) -> None:
        logger.error(
            "uncaught_thread_exception",
            thread=args.thread.name if args.thread else None,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
            **_diagnostics("UNCAUGHT EXCEPTION", args.exc_value),
        )

    def _sys_hook(exc_type: type[BaseException], exc: BaseException, tb: Any) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        logger.error(
            "uncaught_exception",
            exc_info=(exc_type, exc, tb),
            **_diagnostics("UNCAUGHT EXCEPTION", exc),
        )

    loop.set_exception_handler(_loop_handler)
    threading.excepthook = _thread_hook
    sys.excepthook = _sys_hook

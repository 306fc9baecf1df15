"""Tests for imap_mini.shutdown."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import threading
from unittest.mock import patch

import pytest

from imap_mini.shutdown import install_exception_handlers, install_signal_handlers


@pytest.fixture(autouse=True)
def _restore_hooks():
    sys_hook, thread_hook = sys.excepthook, threading.excepthook
    yield
    sys.excepthook, threading.excepthook = sys_hook, thread_hook


class TestSignalHandlers:
    @pytest.mark.asyncio
    async def test_sigterm_sets_event(self):
        event = asyncio.Event()
        install_signal_handlers(event)
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(event.wait(), timeout=2)
            assert event.is_set()
        finally:
            loop = asyncio.get_running_loop()
            loop.remove_signal_handler(signal.SIGTERM)
            loop.remove_signal_handler(signal.SIGINT)


class TestExceptionHandlers:
    @pytest.mark.asyncio
    async def test_thread_exception_is_logged_not_raised(self):
        previous = threading.excepthook
        install_exception_handlers()
        worker = threading.Thread(target=lambda: 1 / 0, name="boom-thread")
        worker.start()
        worker.join()
        assert threading.excepthook is not previous

    @pytest.mark.asyncio
    async def test_loop_handler_installed(self):
        install_exception_handlers()
        loop = asyncio.get_running_loop()
        assert loop.get_exception_handler() is not None
        loop.call_exception_handler({"message": "test", "exception": RuntimeError("x")})

    @pytest.mark.asyncio
    async def test_uncaught_exception_goes_to_structlog(self):
        install_exception_handlers()
        with patch("imap_mini.shutdown.logger") as logger:
            try:
                raise UnicodeEncodeError("ascii", "é", 0, 1, "ordinal not in range(128)")
            except UnicodeEncodeError:
                sys.excepthook(*sys.exc_info())
        logger.error.assert_called_once()
        args, kwargs = logger.error.call_args
        assert args == ("uncaught_exception",)
        assert kwargs["error_type"] == "UnicodeEncodeError"
        assert kwargs["label"] == "UNCAUGHT EXCEPTION"

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_left_to_default_hook(self):
        install_exception_handlers()
        with patch("imap_mini.shutdown.logger") as logger, patch.object(sys, "__excepthook__") as default:
            sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)
        default.assert_called_once()
        logger.error.assert_not_called()

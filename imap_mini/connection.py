"""ConnectionManager: the single owner of the live IMAP session.

The manager creates the transport lazily, drops it as soon as the transport
reports ``"close"`` or ``"error"`` (the next caller gets a fresh one), and
hands out the folder lock that serializes folder-scoped commands.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_none,
)

from .classify import classify_failure, is_transient_transport_error
from .config import ImapConfig
from .errors import ImapCommandError, MailboxLockError
from .transport import TRANSPORT_ERRORS, ImapTransport

logger = structlog.get_logger()


class ConnectionState(str, Enum):
    """Lifecycle of the cached session."""

    ABSENT = "absent"
    CONNECTING = "connecting"
    LIVE = "live"
    STALE = "stale"


@dataclass
class MailboxLock:
    """Exclusive right to issue commands against :attr:`path` on :attr:`transport`."""

    path: str
    transport: ImapTransport
    released: bool = False


def _is_retryable_lock_failure(error: BaseException) -> bool:
    return isinstance(error, MailboxLockError) and error.transient


class ConnectionManager:
    """Owns the IMAP session, its state and the folder lock.

    Usage::

        manager = ConnectionManager(load_config())
        async with manager.open_mailbox("INBOX") as mailbox:
            uids = await mailbox.transport.uid_search("ALL")
    """

    def __init__(
        self,
        config: ImapConfig,
        transport_factory: Callable[[ImapConfig], ImapTransport] = ImapTransport,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._transport: ImapTransport | None = None
        self._state = ConnectionState.ABSENT
        self._connect_lock = asyncio.Lock()
        self._mailbox_lock = asyncio.Lock()

    @property
    def config(self) -> ImapConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> ImapTransport:
        """Return the live session, creating one if needed.

        Raises :class:`~imap_mini.errors.ImapConnectionError` when the server
        cannot be reached or rejects the login.
        """
        async with self._connect_lock:
            if self._transport is not None and not self._transport.usable:
                self._discard("unusable")
            if self._transport is not None:
                return self._transport

            self._state = ConnectionState.CONNECTING
            transport = self._transport_factory(self._config)
            try:
                await transport.open()
            except Exception as exc:
                self._state = ConnectionState.ABSENT
                classified = classify_failure(exc, self._config)
                logger.warning(
                    "imap_connect_failed",
                    host=self._config.host,
                    category=classified.category.value,
                    error=str(exc),
                )
                raise classified from exc

            transport.on("close", lambda: self._on_close(transport))
            transport.on("error", lambda error: self._on_error(transport, error))
            self._transport = transport
            self._state = ConnectionState.LIVE
            return transport

    def _on_close(self, transport: ImapTransport) -> None:
        if transport is self._transport:
            self._discard("closed")

    def _on_error(self, transport: ImapTransport, error: BaseException) -> None:
        classified = classify_failure(error, self._config)
        logger.warning(
            "imap_connection_error",
            category=classified.category.value,
            error=str(classified),
        )
        if transport is self._transport:
            self._discard("error")

    def _discard(self, reason: str) -> None:
        if self._transport is None:
            return
        self._transport = None
        self._state = ConnectionState.STALE
        logger.info("imap_session_stale", reason=reason)

    async def disconnect(self) -> None:
        """Log out (if connected) and forget the session."""
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.logout()
        self._state = ConnectionState.ABSENT

    async def is_connected(self) -> bool:
        """Check session liveness with a NOOP round trip."""
        transport = self._transport
        if transport is None or not transport.usable:
            return False
        try:
            await transport.noop()
        except (ImapCommandError, *TRANSPORT_ERRORS):
            return False
        return True

    # ------------------------------------------------------------------
    # Folder lock
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def open_mailbox(self, path: str | None = None) -> AsyncIterator[MailboxLock]:
        """Hold the folder lock on *path* for the duration of the ``async with`` block.

        The folder is selected before the block runs.  A connection-related
        failure while opening the folder is retried exactly once on a fresh
        session; anything else propagates untouched.  The lock is not
        re-entrant.
        """
        path = path or self._config.mailbox
        async with self._mailbox_lock:
            transport = await self._select_with_retry(path)
            lock = MailboxLock(path=path, transport=transport)
            try:
                yield lock
            finally:
                lock.released = True

    async def _select_with_retry(self, path: str) -> ImapTransport:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_none(),
            retry=retry_if_exception(_is_retryable_lock_failure),
            before_sleep=self._before_lock_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                transport = await self.connect()
                await self._select(transport, path)
        return transport

    def _before_lock_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("mailbox_lock_retry", error=str(error))
        self._discard("lock-retry")

    @staticmethod
    async def _select(transport: ImapTransport, path: str) -> None:
        try:
            await transport.select(path)
        except ImapCommandError as exc:
            raise MailboxLockError(path, exc.detail or str(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            raise MailboxLockError(
                path,
                str(exc) or type(exc).__name__,
                transient=is_transient_transport_error(exc),
            ) from exc

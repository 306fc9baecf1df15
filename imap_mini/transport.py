"""Async IMAP transport wrapping stdlib imaplib with asyncio.to_thread.

One :class:`ImapTransport` owns one server connection.  Commands are
serialized with an :class:`asyncio.Lock` and executed in a worker thread so
the event loop is never blocked.  A worker thread cannot be interrupted, so
a cancelled caller keeps the command lock until its command has returned.
Transport-level failures are published as ``"error"`` and ``"close"``
events; the transport never tries to repair itself.

Folder names go over the wire in modified UTF-7.  ``imaplib`` only sends
ASCII arguments, so a non-ASCII search value is sent as a ``CHARSET UTF-8``
literal.
"""

from __future__ import annotations

import asyncio
import imaplib
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

import structlog

from .config import ImapConfig, SecurityMode
from .errors import AuthenticationFailed, ImapCommandError
from .responses import (
    FetchedMessage,
    MailboxListing,
    encode_mailbox,
    format_uid_set,
    parse_append_uid,
    parse_fetch_response,
    parse_list_response,
    parse_search_response,
    quote,
    unquote,
)

logger = structlog.get_logger()

T = TypeVar("T")

EVENTS = ("error", "close")

# Failures that mean the connection itself is gone.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (imaplib.IMAP4.abort, OSError)


class ImapTransport:
    """Async-friendly IMAP connection with close/error event subscriptions."""

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4 | None = None
        self._closed = False
        self._capabilities: frozenset[str] = frozenset()
        self._command_lock = asyncio.Lock()
        self._listeners: dict[str, list[Callable[..., None]]] = {name: [] for name in EVENTS}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe *callback* to ``"error"`` (called with the exception) or ``"close"``."""
        if event not in self._listeners:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                logger.exception("transport_listener_failed", transport_event=event)

    def _mark_closed(self, error: BaseException | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        if error is not None:
            self._emit("error", error)
        self._emit("close")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def usable(self) -> bool:
        """Cheap liveness check: opened and no close/error observed since."""
        return self._conn is not None and not self._closed

    @property
    def capabilities(self) -> frozenset[str]:
        return self._capabilities

    async def open(self) -> None:
        """Connect, negotiate TLS per policy and log in."""
        await asyncio.to_thread(self._open_sync)
        logger.info(
            "imap_connected",
            host=self._config.host,
            port=self._config.port,
            security=self._config.security.mode.value,
        )

    def _open_sync(self) -> None:
        cfg = self._config
        security = cfg.security
        context = security.ssl_context()

        if security.mode is SecurityMode.TLS:
            conn: imaplib.IMAP4 = imaplib.IMAP4_SSL(
                cfg.host, cfg.port, ssl_context=context, timeout=cfg.timeout_seconds
            )
        else:
            conn = imaplib.IMAP4(cfg.host, cfg.port, timeout=cfg.timeout_seconds)

        try:
            if security.mode is SecurityMode.STARTTLS and "STARTTLS" in conn.capabilities:
                conn.starttls(ssl_context=context)
            try:
                conn.login(cfg.username, cfg.password.get_secret_value())
            except imaplib.IMAP4.abort:
                raise
            except imaplib.IMAP4.error as exc:
                raise AuthenticationFailed(f"Authentication failed: {exc}") from exc
            self._capabilities = self._read_capabilities(conn)
        except BaseException:
            try:
                conn.shutdown()
            except OSError:
                pass
            raise

        self._conn = conn
        self._closed = False

    @staticmethod
    def _read_capabilities(conn: imaplib.IMAP4) -> frozenset[str]:
        typ, data = conn.capability()
        if typ == "OK" and data and data[-1]:
            raw = data[-1]
            text = raw.decode("ascii", errors="replace") if isinstance(raw, bytes) else str(raw)
            return frozenset(text.upper().split())
        return frozenset(str(c).upper() for c in conn.capabilities)

    async def logout(self) -> None:
        """Log out and close; emits ``"close"``."""
        if self._conn is None or self._closed:
            self._mark_closed()
            return
        conn = self._conn
        try:
            async with self._command_lock:
                await asyncio.to_thread(conn.logout)
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.debug("imap_logout_failed", error=str(exc))
        finally:
            self._mark_closed()
            logger.info("imap_disconnected", host=self._config.host)

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        """Run one blocking imaplib call in a worker thread, serialized."""
        if self._conn is None or self._closed:
            raise imaplib.IMAP4.abort("IMAP connection is closed")
        name = getattr(func, "__name__", "command").lstrip("_").upper()
        async with self._command_lock:
            work = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.shield(work)
            except asyncio.CancelledError:
                await self._finish_abandoned(work)
                raise
            except imaplib.IMAP4.readonly as exc:
                raise ImapCommandError(name, "NO", str(exc)) from exc
            except TRANSPORT_ERRORS as exc:
                self._mark_closed(exc)
                raise
            except imaplib.IMAP4.error as exc:
                raise ImapCommandError(name, "BAD", str(exc)) from exc
            except ValueError as exc:
                # imaplib refuses arguments it cannot encode before sending anything.
                raise ImapCommandError(name, "BAD", f"cannot send command: {exc}") from exc

    async def _finish_abandoned(self, work: asyncio.Future) -> None:
        """Wait for a command whose caller was cancelled; the lock stays held until it returns."""
        while not work.done():
            try:
                await asyncio.wait({work})
            except asyncio.CancelledError:
                continue
        error = None if work.cancelled() else work.exception()
        logger.debug("imap_command_abandoned", error=str(error) if error else None)
        if isinstance(error, TRANSPORT_ERRORS):
            self._mark_closed(error)

    async def _checked(self, command: str, func: Callable[..., tuple[str, list]], *args: Any) -> list:
        typ, data = await self._run(func, *args)
        if typ != "OK":
            raise ImapCommandError(command, typ, _detail(data))
        return data

    @property
    def _connection(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise imaplib.IMAP4.abort("IMAP connection is not open")
        return self._conn

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def noop(self) -> None:
        await self._checked("NOOP", self._connection.noop)

    async def list_mailboxes(self) -> list[MailboxListing]:
        data = await self._checked("LIST", self._connection.list)
        return parse_list_response(data)

    async def select(self, path: str) -> None:
        await self._checked("SELECT", self._connection.select, _mailbox(path))

    async def create(self, path: str) -> None:
        await self._checked("CREATE", self._connection.create, _mailbox(path))

    async def uid_search(self, *criteria: str) -> list[int]:
        """UID SEARCH; a non-ASCII value must be the last criterion."""
        if all(item.isascii() for item in criteria):
            data = await self._checked("SEARCH", self._connection.uid, "SEARCH", *criteria)
            return parse_search_response(data)
        *head, value = criteria
        if not all(item.isascii() for item in head):
            raise ImapCommandError("SEARCH", "BAD", "only the last search value may contain non-ASCII text")
        data = await self._checked("SEARCH", self._search_literal, head, unquote(value).encode("utf-8"))
        return parse_search_response(data)

    def _search_literal(self, criteria: list[str], literal: bytes) -> tuple[str, list]:
        # imaplib appends ``self.literal`` after the last argument of the next command.
        conn = self._connection
        conn.literal = literal
        return conn.uid("SEARCH", "CHARSET", "UTF-8", *criteria)

    async def uid_fetch(self, uids: list[int], items: str) -> list[FetchedMessage]:
        if not uids:
            return []
        data = await self._checked("FETCH", self._connection.uid, "FETCH", format_uid_set(uids), items)
        return parse_fetch_response(data)

    async def uid_store(self, uids: list[int], operation: str, flags: list[str]) -> None:
        await self._checked(
            "STORE",
            self._connection.uid,
            "STORE",
            format_uid_set(uids),
            operation,
            "(" + " ".join(flags) + ")",
        )

    async def uid_expunge(self, uids: list[int]) -> None:
        """Expunge ``\\Deleted`` messages, limited to *uids* when UIDPLUS is available."""
        if "UIDPLUS" in self._capabilities:
            await self._checked("EXPUNGE", self._connection.uid, "EXPUNGE", format_uid_set(uids))
        else:
            await self._checked("EXPUNGE", self._connection.expunge)

    async def uid_move(self, uids: list[int], destination: str) -> None:
        """Move *uids* out of the selected folder (MOVE, else COPY + delete)."""
        uid_set = format_uid_set(uids)
        if "MOVE" in self._capabilities:
            await self._checked("MOVE", self._connection.uid, "MOVE", uid_set, _mailbox(destination))
            return
        await self._checked("COPY", self._connection.uid, "COPY", uid_set, _mailbox(destination))
        await self.uid_store(uids, "+FLAGS.SILENT", ["\\Deleted"])
        await self.uid_expunge(uids)

    async def append(
        self,
        path: str,
        message: bytes,
        flags: list[str],
        when: datetime | None = None,
    ) -> int | None:
        """Append *message* to *path*; returns the new UID when the server reports it."""
        data = await self._checked(
            "APPEND",
            self._connection.append,
            _mailbox(path),
            "(" + " ".join(flags) + ")",
            when,
            message,
        )
        return parse_append_uid(data)


def _mailbox(path: str) -> str:
    return quote(encode_mailbox(path))


def _detail(data: list) -> str:
    parts = []
    for item in data or []:
        if isinstance(item, bytes):
            parts.append(item.decode("utf-8", errors="replace"))
        elif item is not None:
            parts.append(str(item))
    return " ".join(parts)

"""Map raw connection failures onto actionable causes.

Structured attributes (exception type, ``errno``, the transport's
``authentication_failed`` flag) are consulted first; the failure text is
only a fallback.
"""

from __future__ import annotations

import errno
import imaplib
import re
import socket
import ssl

from .config import ImapConfig
from .errors import FailureCategory, ImapCommandError, ImapConnectionError

_TEXT_PATTERNS: list[tuple[FailureCategory, re.Pattern[str]]] = [
    (FailureCategory.AUTHENTICATION, re.compile(r"authenticationfailed|authentication failed|invalid credentials", re.I)),
    (FailureCategory.CONNECTION_REFUSED, re.compile(r"connection refused|econnrefused", re.I)),
    (
        FailureCategory.NAME_RESOLUTION,
        re.compile(r"name or service not known|nodename nor servname|getaddrinfo|name resolution|enotfound", re.I),
    ),
    (FailureCategory.TIMEOUT, re.compile(r"timed out|timeout", re.I)),
    (FailureCategory.TLS, re.compile(r"tls|ssl|certificate", re.I)),
]

_TRANSIENT_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.EPIPE,
        errno.ETIMEDOUT,
        errno.ECONNREFUSED,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.ECONNABORTED,
    }
)

_TRANSIENT_TEXT = re.compile(r"connection|socket|not connected|closed|broken pipe|timeout|timed out", re.I)


def _structured_category(error: BaseException) -> FailureCategory | None:
    if getattr(error, "authentication_failed", False):
        return FailureCategory.AUTHENTICATION
    code = getattr(error, "errno", None)
    if isinstance(error, ConnectionRefusedError) or code == errno.ECONNREFUSED:
        return FailureCategory.CONNECTION_REFUSED
    if isinstance(error, socket.gaierror):
        return FailureCategory.NAME_RESOLUTION
    if isinstance(error, TimeoutError) or code == errno.ETIMEDOUT:
        return FailureCategory.TIMEOUT
    if isinstance(error, ssl.SSLError):
        return FailureCategory.TLS
    return None


def categorize(error: BaseException) -> FailureCategory:
    """Return the failure category of *error*."""
    if isinstance(error, ImapConnectionError):
        return error.category
    category = _structured_category(error)
    if category is not None:
        return category
    text = str(error)
    for candidate, pattern in _TEXT_PATTERNS:
        if pattern.search(text):
            return candidate
    return FailureCategory.UNCLASSIFIED


def classify_failure(error: BaseException, config: ImapConfig) -> ImapConnectionError:
    """Turn *error* into an :class:`ImapConnectionError` with a fixed message."""
    if isinstance(error, ImapConnectionError):
        return error

    category = categorize(error)
    if category is FailureCategory.AUTHENTICATION:
        message = "IMAP authentication failed: check IMAP_USERNAME and IMAP_PASSWORD credentials."
    elif category is FailureCategory.CONNECTION_REFUSED:
        message = (
            f"Cannot reach IMAP server at {config.host}:{config.port}: "
            "connection refused. Is the server running?"
        )
    elif category is FailureCategory.NAME_RESOLUTION:
        message = f"Cannot resolve IMAP server hostname '{config.host}': check IMAP_HOST."
    elif category is FailureCategory.TIMEOUT:
        message = "Connection to IMAP server timed out: server may be slow or unreachable."
    elif category is FailureCategory.TLS:
        message = "TLS/SSL error connecting to IMAP server: check IMAP_SECURE and IMAP_TLS_VERIFY."
    else:
        message = f"IMAP error: {error}"
    return ImapConnectionError(category, message)


def is_transient_transport_error(error: BaseException) -> bool:
    """True when *error* means the connection broke, not that the server said no."""
    if isinstance(error, ImapCommandError) or getattr(error, "authentication_failed", False):
        return False
    if isinstance(error, ImapConnectionError):
        return error.category in (
            FailureCategory.CONNECTION_REFUSED,
            FailureCategory.NAME_RESOLUTION,
            FailureCategory.TIMEOUT,
        )
    if isinstance(error, (imaplib.IMAP4.abort, socket.gaierror, TimeoutError, BrokenPipeError)):
        return True
    if getattr(error, "errno", None) in _TRANSIENT_ERRNOS:
        return True
    return bool(_TRANSIENT_TEXT.search(str(error)))

"""Exception hierarchy for imap-mini.

Everything raised on purpose by this package derives from
:class:`ImapMiniError`, so the tool dispatch boundary can turn any of them
into a caller-visible error result.
"""

from __future__ import annotations

from enum import Enum


class ImapMiniError(Exception):
    """Base class for all imap-mini failures."""


class StartupConfigError(ImapMiniError):
    """Configuration is missing or invalid; raised before any session exists."""


class FailureCategory(str, Enum):
    """Actionable cause of a connection failure."""

    AUTHENTICATION = "authentication"
    CONNECTION_REFUSED = "connection_refused"
    NAME_RESOLUTION = "name_resolution"
    TIMEOUT = "timeout"
    TLS = "tls"
    UNCLASSIFIED = "unclassified"


class ImapConnectionError(ImapMiniError):
    """A classified failure to reach or authenticate against the server."""

    def __init__(self, category: FailureCategory, message: str) -> None:
        super().__init__(message)
        self.category = category


class AuthenticationFailed(ImapMiniError):
    """The server rejected LOGIN.

    Raised by the transport; ``authentication_failed`` is the structured
    flag the classifier looks at before falling back to message text.
    """

    authentication_failed = True


class ImapCommandError(ImapMiniError):
    """The server answered a command with NO or BAD."""

    def __init__(self, command: str, status: str, detail: str) -> None:
        super().__init__(f"{command} failed: {status} {detail}".rstrip())
        self.command = command
        self.status = status
        self.detail = detail


class MailboxLockError(ImapMiniError):
    """A folder could not be opened for folder-scoped commands."""

    def __init__(self, path: str, reason: str, *, transient: bool = False) -> None:
        super().__init__(f"Cannot open mailbox '{path}': {reason}")
        self.path = path
        self.reason = reason
        self.transient = transient


class IdentifierFormatError(ImapMiniError, ValueError):
    """A portable identifier does not have the ``<19-char date>.<message-id>`` shape."""


class MessageNotFoundError(ImapMiniError):
    """A portable identifier could not be resolved in any searched folder."""


class DraftScopeError(ImapMiniError):
    """The identifier given to a draft replace does not live in the drafts folder."""


class DraftsFolderNotFoundError(ImapMiniError):
    """The server has no discoverable drafts folder."""


class NoMatchesError(ImapMiniError):
    """A bulk operation matched no messages."""


class AttachmentNotFoundError(ImapMiniError):
    """The requested attachment id is not present on the message."""

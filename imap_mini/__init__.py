"""imap-mini: session and identity layer for agent access to an IMAP mailbox.

Public API re-exported here for convenience::

    from imap_mini import ConnectionManager, load_config, handle_tool_call
"""

from .config import ImapConfig, SecurityMode, TransportSecurity, load_config
from .connection import ConnectionManager, ConnectionState, MailboxLock
from .errors import (
    DraftScopeError,
    DraftsFolderNotFoundError,
    FailureCategory,
    IdentifierFormatError,
    ImapCommandError,
    ImapConnectionError,
    ImapMiniError,
    MailboxLockError,
    MessageNotFoundError,
    NoMatchesError,
    StartupConfigError,
)
from .identity import build_composite_id, parse_composite_id
from .logging import setup_logging
from .resolver import ResolvedEmail, resolve_email_id
from .tools import ToolResult, handle_tool_call, tool_schemas

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "DraftScopeError",
    "DraftsFolderNotFoundError",
    "FailureCategory",
    "IdentifierFormatError",
    "ImapCommandError",
    "ImapConfig",
    "ImapConnectionError",
    "ImapMiniError",
    "MailboxLock",
    "MailboxLockError",
    "MessageNotFoundError",
    "NoMatchesError",
    "ResolvedEmail",
    "SecurityMode",
    "StartupConfigError",
    "ToolResult",
    "TransportSecurity",
    "build_composite_id",
    "handle_tool_call",
    "load_config",
    "parse_composite_id",
    "resolve_email_id",
    "setup_logging",
    "tool_schemas",
]

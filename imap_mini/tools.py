"""Named tools exposed to agent callers.

Each tool pairs a pydantic arguments model, a description and an async
handler.  :func:`handle_tool_call` is the outermost error boundary: every
failure is turned into an error result, nothing escapes to the caller.
"""

from __future__ import annotations

import imaplib
import json
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .connection import ConnectionManager
from .drafts import create_draft, draft_reply, update_draft
from .errors import AttachmentNotFoundError, ImapMiniError, MessageNotFoundError
from .flags import list_all_starred_emails, mark_read, mark_unread, star_email, unstar_email
from .folders import create_folder, list_folders
from .mime import DraftOptions
from .models import EmailEntry
from .moves import bulk_move_by_sender, move_email
from .resolver import resolve_email_id
from .search import (
    days_ago,
    fetch_email_attachment,
    fetch_email_content,
    list_emails,
    list_emails_from_domain,
    list_emails_from_sender,
    list_inbox_messages,
)

logger = structlog.get_logger()

Handler = Callable[[ConnectionManager, Any], Awaitable[Any]]

LIST_DESCRIPTION_SUFFIX = (
    "Returns an array of {id, subject, from, date} objects sorted newest-first. "
    "The id is a globally unique identifier; use it with fetch_email_content to read the full email."
)
MAILBOX_HINT = "Optional folder hint for faster lookup. If omitted, searches all folders."


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent]
    is_error: bool = Field(default=False, alias="isError")

    @property
    def text(self) -> str:
        return "\n".join(part.text for part in self.content)


def json_result(data: Any) -> ToolResult:
    return ToolResult(content=[TextContent(text=json.dumps(data, indent=2))])


def error_result(message: str) -> ToolResult:
    return ToolResult(content=[TextContent(text=message)], is_error=True)


def _listing(emails: list[EmailEntry]) -> dict:
    return {"count": len(emails), "emails": [e.to_wire() for e in emails]}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler

    def schema(self) -> dict:
        input_schema = self.args_model.model_json_schema()
        input_schema.pop("title", None)
        return {"name": self.name, "description": self.description, "inputSchema": input_schema}


class ToolRegistry:
    """Name -> tool map; adding a tool never touches the dispatch code."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(
        self, name: str, description: str, args_model: type[BaseModel]
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            if name in self._tools:
                raise ValueError(f"Tool {name!r} is already registered")
            self._tools[name] = Tool(name, description, args_model, handler)
            return handler

        return decorator

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


registry = ToolRegistry()


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore")


class MailboxArgs(_Args):
    mailbox: str = Field(default="INBOX", description='Mailbox to list from. Default: "INBOX".')


class NoArgs(_Args):
    pass


class InboxArgs(_Args):
    n: int = Field(ge=1, description="Number of recent messages to return.")


class DomainArgs(MailboxArgs):
    domain: str = Field(
        min_length=1,
        description='The domain to search for (e.g. "example.com"). Do not include the @ sign.',
    )


class SenderArgs(MailboxArgs):
    sender: str = Field(
        min_length=1,
        description='The sender email address to search for (e.g. "alice@example.com").',
    )


class EmailArgs(_Args):
    id: str = Field(min_length=1, description="The email identifier from list results.")
    mailbox: str | None = Field(default=None, description=MAILBOX_HINT)


class AttachmentArgs(EmailArgs):
    attachment_id: str = Field(
        min_length=1, description="The attachment identifier from fetch_email_content results."
    )


class CreateFolderArgs(_Args):
    path: str = Field(min_length=1, description='Full path of the folder to create (e.g. "INBOX/Receipts").')


class MoveArgs(_Args):
    id: str = Field(min_length=1, description="The email identifier.")
    source_folder: str | None = Field(default=None, description=MAILBOX_HINT)
    destination_folder: str = Field(min_length=1, description="Folder to move the email to.")


class BulkMoveArgs(_Args):
    sender: str = Field(
        min_length=1, description='Sender address or "@domain" to match in the From header.'
    )
    source_folder: str = Field(default="INBOX", description='Folder to move from. Default: "INBOX".')
    destination_folder: str = Field(min_length=1, description="Folder to move the emails to.")


class DraftArgs(_Args):
    to: str = Field(min_length=1, description="Recipient email address.")
    subject: str = Field(min_length=1, description="Email subject line.")
    body: str = Field(min_length=1, description="Plain text email body.")
    cc: str | None = Field(default=None, description="CC recipient(s).")
    bcc: str | None = Field(default=None, description="BCC recipient(s).")
    in_reply_to: str | None = Field(
        default=None,
        description="ID of the email being replied to. Sets In-Reply-To and References headers.",
    )

    def options(self) -> DraftOptions:
        return DraftOptions(
            to=self.to,
            subject=self.subject,
            body=self.body,
            cc=self.cc,
            bcc=self.bcc,
            in_reply_to=self.in_reply_to,
        )


class UpdateDraftArgs(DraftArgs):
    id: str = Field(min_length=1, description="ID of the existing draft to replace.")


class DraftReplyArgs(_Args):
    id: str = Field(min_length=1, description="ID of the email to reply to.")
    body: str = Field(min_length=1, description="Plain text reply body.")
    reply_all: bool = Field(default=False, description="Include original recipients as CC.")
    mailbox: str | None = Field(default=None, description=MAILBOX_HINT)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _register_list_tool(name: str, days: int | None, label: str) -> None:
    if days is None:
        description = (
            "List ALL emails in the mailbox (no date filter). "
            "Warning: this may return a very large number of results. " + LIST_DESCRIPTION_SUFFIX
        )
    else:
        description = f"List all emails received in the {label}. " + LIST_DESCRIPTION_SUFFIX

    @registry.register(name, description, MailboxArgs)
    async def _list(manager: ConnectionManager, args: MailboxArgs) -> dict:
        since = days_ago(days) if days is not None else None
        return _listing(await list_emails(manager, since, args.mailbox))


for _name, _days, _label in (
    ("list_emails_24h", 1, "last 24 hours"),
    ("list_emails_7days", 7, "last 7 days"),
    ("list_emails_month", 30, "last 30 days"),
    ("list_emails_quarter", 90, "last 90 days"),
    ("list_emails_year", 365, "last 365 days"),
    ("list_emails_all", None, ""),
):
    _register_list_tool(_name, _days, _label)


@registry.register(
    "list_inbox_messages",
    "List the most recent N messages in the inbox. " + LIST_DESCRIPTION_SUFFIX,
    InboxArgs,
)
async def _list_inbox(manager: ConnectionManager, args: InboxArgs) -> dict:
    return _listing(await list_inbox_messages(manager, args.n))


@registry.register(
    "list_emails_from_domain",
    'List all emails from a specific domain (e.g. "you.com" finds all emails from @you.com senders). '
    + LIST_DESCRIPTION_SUFFIX,
    DomainArgs,
)
async def _list_from_domain(manager: ConnectionManager, args: DomainArgs) -> dict:
    return _listing(await list_emails_from_domain(manager, args.domain, args.mailbox))


@registry.register(
    "list_emails_from_sender",
    'List all emails from a specific sender email address (e.g. "alice@example.com"). '
    + LIST_DESCRIPTION_SUFFIX,
    SenderArgs,
)
async def _list_from_sender(manager: ConnectionManager, args: SenderArgs) -> dict:
    return _listing(await list_emails_from_sender(manager, args.sender, args.mailbox))


@registry.register(
    "fetch_email_content",
    "Fetch the full content of a single email by its id. "
    "Returns {id, subject, from, to, date, body, attachments}. "
    "The attachments array contains metadata only (id, filename, contentType, size); "
    "use fetch_email_attachment to download attachment data.",
    EmailArgs,
)
async def _fetch_content(manager: ConnectionManager, args: EmailArgs) -> dict:
    uid, mailbox = await resolve_email_id(manager, args.id, args.mailbox)
    content = await fetch_email_content(manager, uid, mailbox)
    if content is None:
        raise MessageNotFoundError(f'No email found for id "{args.id}".')
    return content.to_wire()


@registry.register(
    "fetch_email_attachment",
    "Download a specific attachment from an email. "
    "Requires the email id and the attachment id (obtained from fetch_email_content). "
    "Returns {id, filename, contentType, size, base64Content}.",
    AttachmentArgs,
)
async def _fetch_attachment(manager: ConnectionManager, args: AttachmentArgs) -> dict:
    uid, mailbox = await resolve_email_id(manager, args.id, args.mailbox)
    attachment = await fetch_email_attachment(manager, uid, args.attachment_id, mailbox)
    if attachment is None:
        raise AttachmentNotFoundError(
            f'No attachment "{args.attachment_id}" found for email "{args.id}".'
        )
    return attachment.to_wire()


@registry.register(
    "list_folders",
    "List all folders in the email account. Returns an array of {path, name, delimiter} objects. "
    "Use the path value when specifying a folder in other tools.",
    NoArgs,
)
async def _list_folders(manager: ConnectionManager, args: NoArgs) -> dict:
    folders = await list_folders(manager)
    return {"count": len(folders), "folders": [f.to_wire() for f in folders]}


@registry.register(
    "create_folder",
    "Create a new folder. Use a path with the server's delimiter for subfolders "
    '(e.g. "INBOX/Receipts"). Use list_folders first to discover the delimiter if unsure.',
    CreateFolderArgs,
)
async def _create_folder(manager: ConnectionManager, args: CreateFolderArgs) -> dict:
    return {"created": await create_folder(manager, args.path)}


@registry.register(
    "move_email",
    "Move an email to another folder. Requires the email's id and the destination folder. "
    "Returns {id, destination}.",
    MoveArgs,
)
async def _move_email(manager: ConnectionManager, args: MoveArgs) -> dict:
    result = await move_email(manager, args.id, args.destination_folder, args.source_folder)
    return result.to_wire()


@registry.register(
    "bulk_move_by_sender",
    "Move every email from a sender (or @domain) out of a folder in one command. "
    "Returns {movedCount, sourcePath, destinationPath, matchValue}.",
    BulkMoveArgs,
)
async def _bulk_move(manager: ConnectionManager, args: BulkMoveArgs) -> dict:
    result = await bulk_move_by_sender(
        manager, args.source_folder, args.destination_folder, args.sender
    )
    return result.to_wire()


@registry.register(
    "create_draft",
    "Create a new email draft in the Drafts folder. Returns {id, subject, to, date}. "
    "Optionally set in_reply_to with an email id to create a threaded reply draft.",
    DraftArgs,
)
async def _create_draft(manager: ConnectionManager, args: DraftArgs) -> dict:
    result = await create_draft(manager, manager.config.username, args.options())
    return result.to_wire()


@registry.register(
    "draft_reply",
    "Create a reply draft to an existing email. Recipient, subject (Re: prefix) and threading "
    "headers are derived from the original. Set reply_all to include original recipients as CC.",
    DraftReplyArgs,
)
async def _draft_reply(manager: ConnectionManager, args: DraftReplyArgs) -> dict:
    result = await draft_reply(
        manager,
        manager.config.username,
        args.id,
        args.body,
        reply_all=args.reply_all,
        mailbox_hint=args.mailbox,
    )
    return result.to_wire()


@registry.register(
    "update_draft",
    "Replace an existing draft with new content. The id must refer to an email in the "
    "Drafts folder; this tool cannot modify emails in other folders.",
    UpdateDraftArgs,
)
async def _update_draft(manager: ConnectionManager, args: UpdateDraftArgs) -> dict:
    result = await update_draft(manager, manager.config.username, args.id, args.options())
    return result.to_wire()


def _register_flag_tool(name: str, description: str, operation: Callable[..., Awaitable[Any]]) -> None:
    @registry.register(name, description, EmailArgs)
    async def _flag(manager: ConnectionManager, args: EmailArgs) -> dict:
        result = await operation(manager, args.id, args.mailbox)
        return result.to_wire()


_register_flag_tool("star_email", "Add a star (flag) to an email. Returns {id, starred: true}.", star_email)
_register_flag_tool("unstar_email", "Remove the star (flag) from an email. Returns {id, starred: false}.", unstar_email)
_register_flag_tool("mark_read", "Mark an email as read (adds the \\Seen flag). Returns {id, read: true}.", mark_read)
_register_flag_tool(
    "mark_unread", "Mark an email as unread (removes the \\Seen flag). Returns {id, read: false}.", mark_unread
)


@registry.register(
    "list_starred_emails",
    "List all starred (flagged) emails across all folders, grouped by folder. " + LIST_DESCRIPTION_SUFFIX,
    NoArgs,
)
async def _list_starred(manager: ConnectionManager, args: NoArgs) -> dict:
    groups = await list_all_starred_emails(manager)
    return {
        "totalCount": sum(group.count for group in groups),
        "folders": [group.to_wire() for group in groups],
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def tool_schemas() -> list[dict]:
    """``{name, description, inputSchema}`` for every registered tool."""
    return [tool.schema() for tool in registry]


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)


async def handle_tool_call(
    manager: ConnectionManager,
    name: str,
    arguments: dict[str, Any] | None = None,
) -> ToolResult:
    """Run tool *name*; failures come back as ``is_error`` results, never as exceptions."""
    tool = registry.get(name)
    if tool is None:
        return error_result(f"Unknown tool: {name}")

    try:
        args = tool.args_model.model_validate(arguments or {})
    except ValidationError as exc:
        return error_result(f"Error: invalid arguments for {name}: {_validation_message(exc)}")

    try:
        data = await tool.handler(manager, args)
    except (ImapMiniError, imaplib.IMAP4.error, OSError) as exc:
        logger.warning("tool_call_failed", tool=name, error_type=type(exc).__name__, error=str(exc))
        return error_result(f"Error executing {name}: {exc}")

    logger.debug("tool_call_completed", tool=name)
    return json_result(data)

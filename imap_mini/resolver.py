"""Resolve portable identifiers back to (UID, folder).

Search order: the caller's folder hint, then INBOX, then every other folder
in listing order.  Each folder is searched under its own folder lock.  The
first hit wins; servers that implement HEADER search as a substring match
may therefore return a broader candidate set, and the first UID is taken
without further checks.
"""

from __future__ import annotations

from typing import NamedTuple

import structlog

from .connection import ConnectionManager
from .errors import MessageNotFoundError
from .folders import list_folders
from .identity import parse_composite_id
from .responses import quote

logger = structlog.get_logger()

INBOX = "INBOX"


class ResolvedEmail(NamedTuple):
    uid: int
    mailbox: str


async def resolve_in_mailbox(
    manager: ConnectionManager,
    message_id: str,
    mailbox: str,
) -> int | None:
    """Search one folder for *message_id*; returns the first UID or None."""
    async with manager.open_mailbox(mailbox) as lock:
        uids = await lock.transport.uid_search("HEADER", "Message-ID", quote(message_id))
    return uids[0] if uids else None


async def resolve_email_id(
    manager: ConnectionManager,
    composite_id: str,
    mailbox_hint: str | None = None,
) -> ResolvedEmail:
    """Locate the message behind *composite_id*.

    Raises :class:`~imap_mini.errors.IdentifierFormatError` for malformed ids
    and :class:`~imap_mini.errors.MessageNotFoundError` once every folder
    has been searched.
    """
    message_id = parse_composite_id(composite_id).message_id
    if not message_id:
        raise MessageNotFoundError(f'Email ID "{composite_id}" carries no Message-ID and cannot be resolved.')

    # INBOX is case-insensitive (RFC 3501 section 5.1).
    if mailbox_hint and mailbox_hint.upper() == INBOX:
        mailbox_hint = INBOX

    if mailbox_hint:
        uid = await resolve_in_mailbox(manager, message_id, mailbox_hint)
        if uid:
            return ResolvedEmail(uid, mailbox_hint)

    if mailbox_hint != INBOX:
        uid = await resolve_in_mailbox(manager, message_id, INBOX)
        if uid:
            return ResolvedEmail(uid, INBOX)

    tried = {mailbox_hint, INBOX}
    for folder in await list_folders(manager):
        if folder.path in tried or folder.path.upper() == INBOX or not folder.selectable:
            continue
        uid = await resolve_in_mailbox(manager, message_id, folder.path)
        if uid:
            logger.debug("email_resolved_by_scan", mailbox=folder.path)
            return ResolvedEmail(uid, folder.path)

    raise MessageNotFoundError(f'Email not found for ID "{composite_id}". It may have been deleted.')

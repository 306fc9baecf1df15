"""Star (``\\Flagged``) and read (``\\Seen``) state.

Flag changes are single STORE commands and idempotent: adding a flag that
is already set is not an error.
"""

from __future__ import annotations

import structlog

from .connection import ConnectionManager
from .errors import MailboxLockError
from .folders import list_folders
from .models import EmailEntry, ReadResult, StarredFolder, StarResult
from .resolver import resolve_email_id
from .search import list_by_criteria

logger = structlog.get_logger()

FLAGGED = "\\Flagged"
SEEN = "\\Seen"


async def store_flags(
    manager: ConnectionManager,
    uid: int,
    mailbox: str,
    flags: list[str],
    *,
    add: bool,
) -> None:
    operation = "+FLAGS.SILENT" if add else "-FLAGS.SILENT"
    async with manager.open_mailbox(mailbox) as lock:
        await lock.transport.uid_store([uid], operation, flags)


async def _set_flag(
    manager: ConnectionManager,
    composite_id: str,
    flag: str,
    add: bool,
    mailbox_hint: str | None,
) -> None:
    uid, mailbox = await resolve_email_id(manager, composite_id, mailbox_hint)
    await store_flags(manager, uid, mailbox, [flag], add=add)
    logger.info("flag_updated", flag=flag, added=add, mailbox=mailbox, uid=uid)


async def star_email(
    manager: ConnectionManager, composite_id: str, mailbox_hint: str | None = None
) -> StarResult:
    await _set_flag(manager, composite_id, FLAGGED, True, mailbox_hint)
    return StarResult(id=composite_id, starred=True)


async def unstar_email(
    manager: ConnectionManager, composite_id: str, mailbox_hint: str | None = None
) -> StarResult:
    await _set_flag(manager, composite_id, FLAGGED, False, mailbox_hint)
    return StarResult(id=composite_id, starred=False)


async def mark_read(
    manager: ConnectionManager, composite_id: str, mailbox_hint: str | None = None
) -> ReadResult:
    await _set_flag(manager, composite_id, SEEN, True, mailbox_hint)
    return ReadResult(id=composite_id, read=True)


async def mark_unread(
    manager: ConnectionManager, composite_id: str, mailbox_hint: str | None = None
) -> ReadResult:
    await _set_flag(manager, composite_id, SEEN, False, mailbox_hint)
    return ReadResult(id=composite_id, read=False)


async def list_starred_emails(
    manager: ConnectionManager,
    mailbox: str = "INBOX",
) -> list[EmailEntry]:
    """Starred emails in one folder, newest first."""
    return await list_by_criteria(manager, mailbox, ["FLAGGED"])


async def list_all_starred_emails(manager: ConnectionManager) -> list[StarredFolder]:
    """Starred emails of every folder, grouped by folder; empty folders are left out."""
    groups: list[StarredFolder] = []
    for folder in await list_folders(manager):
        if not folder.selectable:
            continue
        try:
            emails = await list_starred_emails(manager, folder.path)
        except MailboxLockError as exc:
            if exc.transient:
                raise
            logger.info("starred_scan_skipped_folder", mailbox=folder.path, error=str(exc))
            continue
        if emails:
            groups.append(StarredFolder(folder=folder.path, count=len(emails), emails=emails))
    return groups

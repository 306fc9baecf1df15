"""Moving messages between folders.

A move may give the message a new UID in the destination folder.  Callers
only ever see the portable identifier, which stays valid across the move.
"""

from __future__ import annotations

import structlog

from .connection import ConnectionManager
from .errors import NoMatchesError
from .models import BulkMoveResult, MoveResult
from .resolver import resolve_email_id
from .responses import quote

logger = structlog.get_logger()


async def move_uids(
    manager: ConnectionManager,
    uids: list[int],
    source: str,
    destination: str,
) -> None:
    async with manager.open_mailbox(source) as lock:
        await lock.transport.uid_move(uids, destination)


async def move_email(
    manager: ConnectionManager,
    composite_id: str,
    destination: str,
    source_hint: str | None = None,
) -> MoveResult:
    """Resolve *composite_id* and move it to *destination*."""
    uid, mailbox = await resolve_email_id(manager, composite_id, source_hint)
    await move_uids(manager, [uid], mailbox, destination)
    logger.info("email_moved", source=mailbox, destination=destination)
    return MoveResult(id=composite_id, destination=destination)


async def bulk_move_by_sender(
    manager: ConnectionManager,
    source: str,
    destination: str,
    match_value: str,
) -> BulkMoveResult:
    """Move every message in *source* whose From matches *match_value*.

    *match_value* is a full address or ``@domain``.  Raises
    :class:`~imap_mini.errors.NoMatchesError` when nothing matches.
    """
    async with manager.open_mailbox(source) as lock:
        uids = await lock.transport.uid_search("FROM", quote(match_value))
        if not uids:
            raise NoMatchesError(f'No emails from "{match_value}" found in "{source}".')
        await lock.transport.uid_move(uids, destination)

    logger.info("emails_bulk_moved", source=source, destination=destination, count=len(uids))
    return BulkMoveResult(
        moved_count=len(uids),
        source_path=source,
        destination_path=destination,
        match_value=match_value,
    )

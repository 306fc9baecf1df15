"""Draft creation, replacement and reply drafts.

Replacing a draft is not atomic: the new draft is appended first and the
old one deleted afterwards.  If the delete fails both drafts remain in the
folder; nothing tries to undo the append.
"""

from __future__ import annotations

import structlog

from .connection import ConnectionManager
from .errors import DraftScopeError, DraftsFolderNotFoundError, MessageNotFoundError
from .folders import list_folders
from .identity import build_composite_id, parse_composite_id
from .mime import DraftOptions, build_draft_message
from .models import DraftResult
from .resolver import resolve_email_id, resolve_in_mailbox
from .search import fetch_email_content, format_date

logger = structlog.get_logger()

DRAFT_FLAGS = ["\\Draft", "\\Seen"]
REPLY_PREFIX = "Re: "


async def find_drafts_folder(manager: ConnectionManager) -> str:
    """Path of the drafts folder: ``\\Drafts`` special-use first, then by name."""
    folders = await list_folders(manager)
    for folder in folders:
        if folder.special_use and folder.special_use.lower() == "\\drafts":
            return folder.path
    for folder in folders:
        if folder.name.lower() == "drafts":
            return folder.path
    raise DraftsFolderNotFoundError(
        "Could not find Drafts folder. Available folders can be listed with list_folders."
    )


async def create_draft(
    manager: ConnectionManager,
    sender: str,
    options: DraftOptions,
) -> DraftResult:
    """Append a new draft to the drafts folder.

    When ``options.in_reply_to`` holds a portable identifier, its Message-ID
    is used for In-Reply-To/References; no server lookup is needed.
    """
    reply_message_id = None
    if options.in_reply_to:
        reply_message_id = parse_composite_id(options.in_reply_to).message_id or None

    composed = build_draft_message(sender, options, reply_message_id)
    drafts_folder = await find_drafts_folder(manager)
    transport = await manager.connect()
    uid = await transport.append(drafts_folder, composed.raw, DRAFT_FLAGS, composed.date)

    logger.info("draft_created", mailbox=drafts_folder, uid=uid)
    return DraftResult(
        id=build_composite_id(composed.date, composed.message_id),
        uid=uid,
        subject=options.subject,
        to=options.to,
        date=format_date(composed.date),
    )


async def update_draft(
    manager: ConnectionManager,
    sender: str,
    composite_id: str,
    options: DraftOptions,
) -> DraftResult:
    """Replace the draft behind *composite_id* with a new one built from *options*.

    The identifier is only looked up in the drafts folder; anything else
    raises :class:`~imap_mini.errors.DraftScopeError` before any change.
    """
    drafts_folder = await find_drafts_folder(manager)
    message_id = parse_composite_id(composite_id).message_id
    old_uid = await resolve_in_mailbox(manager, message_id, drafts_folder) if message_id else None
    if not old_uid:
        raise DraftScopeError(
            "Draft not found. The id must refer to an email in the Drafts folder."
        )

    new_draft = await create_draft(manager, sender, options)

    try:
        async with manager.open_mailbox(drafts_folder) as lock:
            await lock.transport.uid_store([old_uid], "+FLAGS.SILENT", ["\\Deleted"])
            await lock.transport.uid_expunge([old_uid])
    except Exception:
        logger.error(
            "draft_replace_incomplete",
            mailbox=drafts_folder,
            old_uid=old_uid,
            new_id=new_draft.id,
        )
        raise

    logger.info("draft_replaced", mailbox=drafts_folder, old_uid=old_uid, new_uid=new_draft.uid)
    return new_draft


def reply_subject(subject: str) -> str:
    return subject if subject.startswith(REPLY_PREFIX) else f"{REPLY_PREFIX}{subject}"


def reply_all_cc(original_to: str, current_user: str) -> str | None:
    """Original recipients minus the current user, or None when nobody is left."""
    me = current_user.lower()
    recipients = [addr.strip() for addr in original_to.split(",")]
    recipients = [addr for addr in recipients if addr and addr.lower() != me]
    return ", ".join(recipients) if recipients else None


async def draft_reply(
    manager: ConnectionManager,
    sender: str,
    composite_id: str,
    body: str,
    reply_all: bool = False,
    mailbox_hint: str | None = None,
) -> DraftResult:
    """Create a threaded reply draft to the email behind *composite_id*."""
    uid, mailbox = await resolve_email_id(manager, composite_id, mailbox_hint)
    original = await fetch_email_content(manager, uid, mailbox)
    if original is None:
        raise MessageNotFoundError(f'Email not found for id "{composite_id}".')

    options = DraftOptions(
        to=original.from_,
        subject=reply_subject(original.subject),
        body=body,
        cc=reply_all_cc(original.to, sender) if reply_all else None,
        in_reply_to=composite_id,
    )
    return await create_draft(manager, sender, options)

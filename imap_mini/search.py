"""Listing, search and content retrieval.

Every listing takes one folder lock, runs one UID SEARCH and one bulk
header FETCH, then sorts by the message date, newest first.  UID order and
date order can disagree (imported or moved mail); the date wins.
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime, timedelta

import structlog

from .connection import ConnectionManager
from .identity import EPOCH, build_composite_id, to_utc
from .mime import MimeParser, attachment_id, parse_address_list, parse_envelope
from .models import AttachmentData, AttachmentInfo, EmailContent, EmailEntry
from .responses import FetchedMessage, quote

logger = structlog.get_logger()

NO_SUBJECT = "(no subject)"
NO_TEXT_BODY = "(no text body)"

ENVELOPE_ITEMS = "(UID BODY.PEEK[HEADER.FIELDS (MESSAGE-ID DATE SUBJECT FROM)])"
SOURCE_ITEMS = "(UID BODY.PEEK[])"

_parser = MimeParser()


def days_ago(n: int) -> datetime:
    """Midnight UTC, *n* days before today."""
    today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=n)


def extract_email_address(header_value: str | None) -> str:
    """First bare address of an address header (``"Alice <a@x.com>"`` -> ``"a@x.com"``)."""
    addresses = parse_address_list(header_value)
    return addresses[0] if addresses else ""


def format_date(value: datetime | None) -> str:
    """ISO 8601 in UTC with milliseconds and a ``Z`` suffix; ``""`` when unknown."""
    if value is None:
        return ""
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def imap_date(value: datetime) -> str:
    """Date in the ``01-Jan-2025`` form SEARCH expects."""
    return value.strftime("%d-%b-%Y")


def _entry(message: FetchedMessage) -> tuple[float, EmailEntry]:
    envelope = parse_envelope(message.payload)
    date = to_utc(envelope.date) if envelope.date else None
    entry = EmailEntry(
        id=build_composite_id(date or EPOCH, envelope.message_id),
        subject=envelope.subject or NO_SUBJECT,
        from_=envelope.from_address,
        date=format_date(date),
    )
    return (date.timestamp() if date else 0.0), entry


def sort_newest_first(fetched: list[FetchedMessage]) -> list[EmailEntry]:
    """Build entries and order them by date, newest first.

    Servers return FETCH results in their own order, so messages are put in
    descending UID order first; equal dates keep that order.
    """
    ordered = sorted(fetched, key=lambda message: message.uid, reverse=True)
    keyed = [_entry(message) for message in ordered]
    keyed.sort(key=lambda pair: pair[0], reverse=True)
    return [entry for _, entry in keyed]


async def list_by_criteria(
    manager: ConnectionManager,
    mailbox: str,
    criteria: list[str],
    limit: int | None = None,
) -> list[EmailEntry]:
    """Search *mailbox* and return envelope entries, newest first.

    With *limit*, only the *limit* highest UIDs are fetched.
    """
    async with manager.open_mailbox(mailbox) as lock:
        uids = await lock.transport.uid_search(*criteria)
        if not uids:
            return []
        uids = sorted(uids, reverse=True)
        if limit is not None:
            uids = uids[:limit]
        fetched = await lock.transport.uid_fetch(uids, ENVELOPE_ITEMS)
    return sort_newest_first(fetched)


async def list_emails(
    manager: ConnectionManager,
    since: datetime | None = None,
    mailbox: str = "INBOX",
) -> list[EmailEntry]:
    """List emails received since *since* (day granularity); all emails when None."""
    criteria = ["SINCE", imap_date(since)] if since is not None else ["ALL"]
    return await list_by_criteria(manager, mailbox, criteria)


async def list_emails_from_domain(
    manager: ConnectionManager,
    domain: str,
    mailbox: str = "INBOX",
) -> list[EmailEntry]:
    """List emails whose From contains ``@<domain>``."""
    return await list_by_criteria(manager, mailbox, ["FROM", quote(f"@{domain}")])


async def list_emails_from_sender(
    manager: ConnectionManager,
    sender: str,
    mailbox: str = "INBOX",
) -> list[EmailEntry]:
    return await list_by_criteria(manager, mailbox, ["FROM", quote(sender)])


async def list_inbox_messages(
    manager: ConnectionManager,
    count: int,
    mailbox: str = "INBOX",
) -> list[EmailEntry]:
    """The *count* most recent messages, picked by UID and ordered by date."""
    return await list_by_criteria(manager, mailbox, ["ALL"], limit=count)


# ---------------------------------------------------------------------------
# Content and attachments
# ---------------------------------------------------------------------------


async def _fetch_source(manager: ConnectionManager, uid: int, mailbox: str) -> bytes | None:
    async with manager.open_mailbox(mailbox) as lock:
        fetched = await lock.transport.uid_fetch([uid], SOURCE_ITEMS)
    for message in fetched:
        if message.uid == uid and message.payload:
            return message.payload
    return None


async def fetch_email_content(
    manager: ConnectionManager,
    uid: int,
    mailbox: str = "INBOX",
) -> EmailContent | None:
    """Fetch and parse one message; attachments are listed as metadata only."""
    raw = await _fetch_source(manager, uid, mailbox)
    if raw is None:
        return None

    parsed = _parser.parse(raw)
    date = to_utc(parsed.date) if parsed.date else None
    attachments = [
        AttachmentInfo(
            id=attachment_id(att, index),
            filename=att.filename or f"unnamed-{index}",
            content_type=att.content_type or "application/octet-stream",
            size=len(att.payload),
        )
        for index, att in enumerate(parsed.attachments)
    ]
    return EmailContent(
        id=build_composite_id(date or EPOCH, parsed.message_id),
        subject=parsed.subject or NO_SUBJECT,
        from_=parsed.from_address,
        to=", ".join(parsed.to_addresses),
        date=format_date(date),
        body=parsed.body_text or NO_TEXT_BODY,
        attachments=attachments,
    )


async def fetch_email_attachment(
    manager: ConnectionManager,
    uid: int,
    attachment_key: str,
    mailbox: str = "INBOX",
) -> AttachmentData | None:
    """Fetch one attachment's payload, base64-encoded."""
    raw = await _fetch_source(manager, uid, mailbox)
    if raw is None:
        return None

    parsed = _parser.parse(raw)
    for index, att in enumerate(parsed.attachments):
        if attachment_id(att, index) != attachment_key:
            continue
        return AttachmentData(
            id=attachment_key,
            filename=att.filename or "unnamed",
            content_type=att.content_type or "application/octet-stream",
            size=len(att.payload),
            base64_content=base64.b64encode(att.payload).decode("ascii"),
        )
    logger.debug("attachment_not_found", uid=uid, mailbox=mailbox, attachment_id=attachment_key)
    return None

"""Portable, folder-independent message identifiers.

An identifier is ``YYYY-MM-DDTHH:MM:SS.<Message-ID>``: the message date in
UTC truncated to seconds (always 19 characters), a ``.`` separator and the
Message-ID header verbatim.  UIDs change when a message moves between
folders; this identifier does not.
"""

from __future__ import annotations

import email.utils
from datetime import UTC, datetime
from typing import NamedTuple

from .errors import IdentifierFormatError

DATE_LENGTH = 19
SEPARATOR = "."

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class CompositeId(NamedTuple):
    date: str
    message_id: str


def to_utc(value: datetime | str) -> datetime:
    """Normalize an aware/naive datetime, ISO string or RFC 2822 date to UTC."""
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = email.utils.parsedate_to_datetime(text)
        value = parsed
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def build_composite_id(date: datetime | str, message_id: str) -> str:
    """Encode *date* and *message_id* into a portable identifier."""
    stamp = to_utc(date).replace(tzinfo=None, microsecond=0).isoformat(timespec="seconds")
    return f"{stamp}{SEPARATOR}{message_id}"


def parse_composite_id(composite_id: str) -> CompositeId:
    """Split a portable identifier into its date and Message-ID parts.

    The date part is not checked for being a real calendar date.
    """
    if len(composite_id) <= DATE_LENGTH or composite_id[DATE_LENGTH] != SEPARATOR:
        raise IdentifierFormatError(
            f'Invalid composite ID format: "{composite_id}". '
            'Expected "YYYY-MM-DDTHH:mm:ss.<messageId>".'
        )
    return CompositeId(
        date=composite_id[:DATE_LENGTH],
        message_id=composite_id[DATE_LENGTH + 1 :],
    )

"""MIME parsing and draft composition.

Parsing walks the whole message (body text plus attachments); header-only
parsing is used for listings where only the envelope fields matter.
"""

from __future__ import annotations

import email
import email.message
import email.parser
import email.policy
import email.utils
import html
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass
class EnvelopeHeaders:
    """The handful of headers a listing needs."""

    message_id: str
    subject: str
    from_address: str
    date: datetime | None


@dataclass
class ParsedAttachment:
    """A single attachment extracted from a MIME email."""

    filename: str | None
    content_type: str
    payload: bytes
    content_id: str | None = None


@dataclass
class ParsedEmail:
    """Structured representation of a fully parsed email."""

    message_id: str
    subject: str
    from_address: str
    to_addresses: list[str]
    date: datetime | None
    body_text: str | None
    attachments: list[ParsedAttachment] = field(default_factory=list)


@dataclass
class DraftOptions:
    """What goes into a draft."""

    to: str
    subject: str
    body: str
    cc: str | None = None
    bcc: str | None = None
    in_reply_to: str | None = None  # portable identifier of the replied-to email


@dataclass
class ComposedDraft:
    raw: bytes
    message_id: str
    date: datetime


_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def _header_text(msg: email.message.Message, name: str) -> str:
    value = msg.get(name)
    return str(value).strip() if value is not None else ""


def _header_date(msg: email.message.Message) -> datetime | None:
    value = msg.get("Date")
    if value is None:
        return None
    parsed = getattr(value, "datetime", None)
    if parsed is not None:
        return parsed
    try:
        return email.utils.parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        return None


def _first_address(header_value: str) -> str:
    addresses = parse_address_list(header_value)
    return addresses[0] if addresses else ""


def parse_address_list(header_value: str | None) -> list[str]:
    """Parse an RFC 2822 address list into bare email addresses."""
    if not header_value:
        return []
    return [addr for _, addr in email.utils.getaddresses([header_value]) if addr]


def parse_envelope(raw_headers: bytes) -> EnvelopeHeaders:
    """Parse header bytes (e.g. a ``BODY[HEADER.FIELDS ...]`` section)."""
    headers = email.parser.BytesHeaderParser(policy=email.policy.default).parsebytes(raw_headers)
    return EnvelopeHeaders(
        message_id=_header_text(headers, "Message-ID"),
        subject=_header_text(headers, "Subject"),
        from_address=_first_address(_header_text(headers, "From")),
        date=_header_date(headers),
    )


def html_to_text(markup: str) -> str:
    text = _TAG_RE.sub("", markup)
    return _BLANK_LINES_RE.sub("\n\n", html.unescape(text)).strip()


class MimeParser:
    """Stateless parser: raw RFC 822 bytes -> ParsedEmail."""

    def parse(self, raw_bytes: bytes) -> ParsedEmail:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)

        body_text, body_html = self._extract_bodies(msg)
        if body_text is None and body_html is not None:
            body_text = html_to_text(body_html)

        return ParsedEmail(
            message_id=_header_text(msg, "Message-ID"),
            subject=_header_text(msg, "Subject"),
            from_address=_header_text(msg, "From"),
            to_addresses=parse_address_list(_header_text(msg, "To")),
            date=_header_date(msg),
            body_text=body_text,
            attachments=self._extract_attachments(msg),
        )

    def _extract_bodies(self, msg: email.message.Message) -> tuple[str | None, str | None]:
        """Walk MIME parts and return (plain_text, html_text)."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue

            content_type = part.get_content_type()
            if content_type not in ("text/plain", "text/html"):
                continue
            try:
                payload = part.get_content()
            except (LookupError, ValueError):
                continue
            if not isinstance(payload, str):
                continue
            if content_type == "text/plain" and body_text is None:
                body_text = payload
            elif content_type == "text/html" and body_html is None:
                body_html = payload

        return body_text, body_html

    def _extract_attachments(self, msg: email.message.Message) -> list[ParsedAttachment]:
        attachments: list[ParsedAttachment] = []

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            disposition = str(part.get("Content-Disposition", ""))
            filename = part.get_filename()

            if "attachment" not in disposition and not filename:
                continue

            payload = part.get_payload(decode=True)
            if payload is None:
                continue

            content_id = part.get("Content-ID")
            attachments.append(
                ParsedAttachment(
                    filename=filename,
                    content_type=part.get_content_type(),
                    payload=payload,
                    content_id=str(content_id).strip() if content_id else None,
                )
            )

        return attachments


def attachment_id(attachment: ParsedAttachment, index: int) -> str:
    """Stable id of an attachment within its message."""
    return attachment.content_id or f"attachment-{index}"


def build_draft_message(
    sender: str,
    options: DraftOptions,
    reply_message_id: str | None = None,
) -> ComposedDraft:
    """Serialize *options* into raw RFC 822 bytes ready for APPEND."""
    msg = email.message.EmailMessage(policy=email.policy.default)
    now = datetime.now(UTC).replace(microsecond=0)
    domain = sender.rsplit("@", 1)[1] if "@" in sender else None
    message_id = email.utils.make_msgid(domain=domain)

    if sender:
        msg["From"] = sender
    msg["To"] = options.to
    if options.cc:
        msg["Cc"] = options.cc
    if options.bcc:
        msg["Bcc"] = options.bcc
    msg["Subject"] = options.subject
    msg["Date"] = email.utils.format_datetime(now)
    msg["Message-ID"] = message_id
    if reply_message_id:
        msg["In-Reply-To"] = reply_message_id
        msg["References"] = reply_message_id
    msg.set_content(options.body)

    return ComposedDraft(raw=msg.as_bytes(), message_id=message_id, date=now)

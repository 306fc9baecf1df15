"""Parsers for the raw response data returned by :mod:`imaplib`.

``imaplib`` hands back untagged response payloads more or less verbatim:
a mix of ``bytes`` lines and ``(prefix, literal)`` tuples.  The helpers here
turn them into plain Python values and never touch the network.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field

_LIST_RE = re.compile(
    rb'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:\\.|[^"\\])*"|NIL)\s*(?P<name>.*)$',
    re.IGNORECASE,
)
_LITERAL_RE = re.compile(rb"\{(\d+)\}$")
_UID_RE = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)
_APPENDUID_RE = re.compile(rb"\[APPENDUID\s+\d+\s+(\d+)\]", re.IGNORECASE)
_UTF7_SHIFT_RE = re.compile(r"&([^-]*)-")

ResponseItem = bytes | tuple[bytes, bytes] | None


@dataclass
class MailboxListing:
    """One parsed ``LIST`` response line."""

    path: str
    delimiter: str
    flags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        if self.delimiter and self.delimiter in self.path:
            return self.path.rsplit(self.delimiter, 1)[-1]
        return self.path

    @property
    def selectable(self) -> bool:
        return not any(f.lower() in ("\\noselect", "\\nonexistent") for f in self.flags)


@dataclass
class FetchedMessage:
    """UID plus the literal payload of one ``FETCH`` response."""

    uid: int
    payload: bytes


def quote(value: str) -> str:
    """Quote *value* as an IMAP quoted string."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def unquote(value: str) -> str:
    """Inverse of :func:`quote`; unquoted input is returned unchanged."""
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def encode_mailbox(name: str) -> str:
    """Encode a folder name as IMAP modified UTF-7 (RFC 3501 section 5.1.3)."""
    encoded: list[str] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            chunk = base64.b64encode("".join(pending).encode("utf-16-be")).rstrip(b"=")
            encoded.append("&" + chunk.decode("ascii").replace("/", ",") + "-")
            pending.clear()

    for char in name:
        if " " <= char <= "~":
            flush()
            encoded.append("&-" if char == "&" else char)
        else:
            pending.append(char)
    flush()
    return "".join(encoded)


def decode_mailbox(name: str) -> str:
    """Decode a modified UTF-7 folder name; malformed shifts are left as-is."""

    def _shift(match: re.Match[str]) -> str:
        chunk = match.group(1)
        if not chunk:
            return "&"
        padded = chunk.replace(",", "/") + "=" * (-len(chunk) % 4)
        try:
            return base64.b64decode(padded).decode("utf-16-be")
        except ValueError:
            return match.group(0)

    return _UTF7_SHIFT_RE.sub(_shift, name)


def _unquote(value: bytes) -> bytes:
    value = value.strip()
    if len(value) >= 2 and value[:1] == b'"' and value[-1:] == b'"':
        inner = value[1:-1]
        return re.sub(rb"\\(.)", rb"\1", inner)
    return value


def _decode(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def parse_list_response(data: list[ResponseItem]) -> list[MailboxListing]:
    """Parse the payload of ``IMAP4.list()``; order is preserved."""
    listings: list[MailboxListing] = []
    for item in data:
        if item is None:
            continue
        literal: bytes | None = None
        if isinstance(item, tuple):
            line, literal = item[0], item[1]
        else:
            line = item
        match = _LIST_RE.match(line.strip())
        if match is None:
            continue

        flags = tuple(_decode(f) for f in match.group("flags").split())
        raw_delimiter = match.group("delimiter")
        delimiter = "" if raw_delimiter.upper() == b"NIL" else _decode(_unquote(raw_delimiter))

        raw_name = match.group("name").strip()
        if literal is not None and _LITERAL_RE.search(raw_name):
            name = literal
        else:
            name = _unquote(raw_name)

        listings.append(MailboxListing(path=decode_mailbox(_decode(name)), delimiter=delimiter, flags=flags))
    return listings


def parse_search_response(data: list[ResponseItem]) -> list[int]:
    """Parse ``UID SEARCH`` output into a list of UIDs (server order)."""
    uids: list[int] = []
    for item in data:
        if not item or isinstance(item, tuple):
            continue
        uids.extend(int(token) for token in item.split() if token.isdigit())
    return uids


def parse_fetch_response(data: list[ResponseItem]) -> list[FetchedMessage]:
    """Parse ``UID FETCH`` output carrying one literal section per message.

    The UID may be reported before the literal (inside the tuple prefix) or
    after it (in the trailing ``bytes`` item), depending on the server.
    """
    messages: list[FetchedMessage] = []
    for index, item in enumerate(data):
        if not isinstance(item, tuple):
            continue
        prefix, payload = item[0], item[1]
        match = _UID_RE.search(prefix)
        if match is None and index + 1 < len(data):
            trailer = data[index + 1]
            if isinstance(trailer, bytes):
                match = _UID_RE.search(trailer)
        if match is None:
            continue
        messages.append(FetchedMessage(uid=int(match.group(1)), payload=payload or b""))
    return messages


def parse_append_uid(data: list[ResponseItem]) -> int | None:
    """Extract the new UID from an ``APPEND`` response (UIDPLUS servers)."""
    for item in data:
        line = item[0] if isinstance(item, tuple) else item
        if not line:
            continue
        match = _APPENDUID_RE.search(line)
        if match is not None:
            return int(match.group(1))
    return None


def format_uid_set(uids: list[int]) -> str:
    """Render UIDs as an IMAP sequence set (``"3,7,9"``)."""
    return ",".join(str(uid) for uid in uids)

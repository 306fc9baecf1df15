"""Tests for imap_mini.flags."""

from __future__ import annotations

import pytest

from imap_mini.connection import ConnectionManager
from imap_mini.flags import (
    list_all_starred_emails,
    list_starred_emails,
    mark_read,
    mark_unread,
    star_email,
    unstar_email,
)
from tests.conftest import _build_plain_email
from tests.fakes import FakeMailServer

COMPOSITE_ID = "2025-06-02T12:00:00.<flag-me@x>"


@pytest.fixture
def message(fake_server: FakeMailServer):
    fake_server.add_message("INBOX", _build_plain_email(message_id="<flag-me@x>"))
    return fake_server.messages("INBOX")[0]


class TestStar:
    @pytest.mark.asyncio
    async def test_star_and_unstar(self, manager: ConnectionManager, message):
        result = await star_email(manager, COMPOSITE_ID)
        assert result.to_wire() == {"id": COMPOSITE_ID, "starred": True}
        assert "\\Flagged" in message.flags

        result = await unstar_email(manager, COMPOSITE_ID)
        assert result.starred is False
        assert "\\Flagged" not in message.flags

    @pytest.mark.asyncio
    async def test_star_is_idempotent(self, manager: ConnectionManager, fake_server: FakeMailServer, message):
        await star_email(manager, COMPOSITE_ID)
        await star_email(manager, COMPOSITE_ID)
        assert message.flags == {"\\Flagged"}
        assert fake_server.count("UID STORE") == 2

    @pytest.mark.asyncio
    async def test_unstar_unflagged_is_not_an_error(self, manager: ConnectionManager, message):
        result = await unstar_email(manager, COMPOSITE_ID)
        assert result.starred is False


class TestRead:
    @pytest.mark.asyncio
    async def test_mark_read_and_unread(self, manager: ConnectionManager, fake_server: FakeMailServer, message):
        result = await mark_read(manager, COMPOSITE_ID, "INBOX")
        assert result.to_wire() == {"id": COMPOSITE_ID, "read": True}
        assert "\\Seen" in message.flags

        await mark_unread(manager, COMPOSITE_ID, "INBOX")
        assert "\\Seen" not in message.flags
        stores = fake_server.calls_of("UID STORE")
        assert stores[0][1] == "+FLAGS.SILENT"
        assert stores[1][1] == "-FLAGS.SILENT"


class TestStarredListings:
    @pytest.mark.asyncio
    async def test_single_folder(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email(message_id="<a@x>"), flags=("\\Flagged",))
        fake_server.add_message("INBOX", _build_plain_email(message_id="<b@x>"))
        emails = await list_starred_emails(manager, "INBOX")
        assert [e.id for e in emails] == ["2025-06-02T12:00:00.<a@x>"]

    @pytest.mark.asyncio
    async def test_grouped_across_folders(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email(message_id="<a@x>"), flags=("\\Flagged",))
        fake_server.add_message("Sent", _build_plain_email(message_id="<b@x>"), flags=("\\Flagged",))
        fake_server.add_message("Sent", _build_plain_email(message_id="<c@x>"), flags=("\\Flagged", "\\Seen"))
        fake_server.add_message("Archive", _build_plain_email(message_id="<d@x>"))

        groups = await list_all_starred_emails(manager)

        assert [(g.folder, g.count) for g in groups] == [("INBOX", 1), ("Sent", 2)]
        # [Gmail] is \Noselect and is never opened
        assert "[Gmail]" not in [args[0] for args in fake_server.calls_of("SELECT")]

    @pytest.mark.asyncio
    async def test_unopenable_folder_is_skipped(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email(message_id="<a@x>"), flags=("\\Flagged",))
        # Listed as selectable, but the server refuses SELECT.
        fake_server.folders["Archive"].refuse_select = True
        groups = await list_all_starred_emails(manager)
        assert [g.folder for g in groups] == ["INBOX"]

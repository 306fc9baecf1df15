"""Tests for imap_mini.tools (the dispatch boundary)."""

from __future__ import annotations

import imaplib
import json

import pytest

from imap_mini.connection import ConnectionManager
from imap_mini.tools import handle_tool_call, registry, tool_schemas
from tests.conftest import _build_plain_email
from tests.fakes import FakeMailServer

EXPECTED_TOOLS = {
    "list_emails_24h",
    "list_emails_7days",
    "list_emails_month",
    "list_emails_quarter",
    "list_emails_year",
    "list_emails_all",
    "list_inbox_messages",
    "list_emails_from_domain",
    "list_emails_from_sender",
    "fetch_email_content",
    "fetch_email_attachment",
    "list_folders",
    "create_folder",
    "move_email",
    "bulk_move_by_sender",
    "create_draft",
    "draft_reply",
    "update_draft",
    "star_email",
    "unstar_email",
    "mark_read",
    "mark_unread",
    "list_starred_emails",
}


def _payload(result) -> dict:
    assert result.is_error is False, result.text
    return json.loads(result.text)


class TestRegistry:
    def test_all_tools_registered(self):
        assert {tool.name for tool in registry} == EXPECTED_TOOLS

    def test_schemas(self):
        schemas = {s["name"]: s for s in tool_schemas()}
        move = schemas["move_email"]["inputSchema"]
        assert move["type"] == "object"
        assert set(move["required"]) == {"id", "destination_folder"}
        assert "source_folder" in move["properties"]
        assert schemas["list_folders"]["description"]

    def test_duplicate_registration_rejected(self):
        from imap_mini.tools import NoArgs

        with pytest.raises(ValueError):
            registry.register("list_folders", "again", NoArgs)(lambda manager, args: None)


class TestHandleToolCall:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, manager: ConnectionManager):
        result = await handle_tool_call(manager, "delete_everything", {})
        assert result.is_error is True
        assert result.text == "Unknown tool: delete_everything"

    @pytest.mark.asyncio
    async def test_missing_argument(self, manager: ConnectionManager, fake_server: FakeMailServer):
        result = await handle_tool_call(manager, "fetch_email_content", {})
        assert result.is_error is True
        assert "invalid arguments for fetch_email_content" in result.text
        assert fake_server.connections == 0

    @pytest.mark.asyncio
    async def test_non_positive_count(self, manager: ConnectionManager):
        result = await handle_tool_call(manager, "list_inbox_messages", {"n": 0})
        assert result.is_error is True

    @pytest.mark.asyncio
    async def test_list_tool(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email())
        payload = _payload(await handle_tool_call(manager, "list_emails_all", {}))
        assert payload["count"] == 1
        assert payload["emails"][0]["from"] == "sender@example.com"

    @pytest.mark.asyncio
    async def test_fetch_content_round_trip(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("Archive", _build_plain_email(message_id="<found@x>"))
        listing = _payload(await handle_tool_call(manager, "list_emails_all", {"mailbox": "Archive"}))
        email_id = listing["emails"][0]["id"]

        content = _payload(await handle_tool_call(manager, "fetch_email_content", {"id": email_id}))
        assert content["id"] == email_id
        assert content["subject"] == "Test Subject"

    @pytest.mark.asyncio
    async def test_malformed_id_is_error_result(self, manager: ConnectionManager):
        result = await handle_tool_call(manager, "star_email", {"id": "nope"})
        assert result.is_error is True
        assert result.text.startswith("Error executing star_email: Invalid composite ID format")

    @pytest.mark.asyncio
    async def test_not_found_is_error_result(self, manager: ConnectionManager):
        result = await handle_tool_call(manager, "mark_read", {"id": "2025-06-02T12:00:00.<ghost@x>"})
        assert result.is_error is True
        assert "Email not found" in result.text

    @pytest.mark.asyncio
    async def test_connection_failure_is_error_result(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.fail("CONNECT", ConnectionRefusedError(111, "Connection refused"))
        result = await handle_tool_call(manager, "list_folders", {})
        assert result.is_error is True
        assert "connection refused" in result.text

    @pytest.mark.asyncio
    async def test_protocol_failure_is_error_result(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email())
        fake_server.fail("UID SEARCH", imaplib.IMAP4.abort("socket error: EOF"))
        result = await handle_tool_call(manager, "list_emails_all", {})
        assert result.is_error is True
        assert result.text.startswith("Error executing list_emails_all:")

    @pytest.mark.asyncio
    async def test_bulk_move_zero_matches(self, manager: ConnectionManager):
        result = await handle_tool_call(
            manager,
            "bulk_move_by_sender",
            {"sender": "@nobody.example", "destination_folder": "Archive"},
        )
        assert result.is_error is True
        assert "No emails" in result.text

    @pytest.mark.asyncio
    async def test_starred_totals(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email(message_id="<a@x>"), flags=("\\Flagged",))
        fake_server.add_message("Archive", _build_plain_email(message_id="<b@x>"), flags=("\\Flagged",))
        payload = _payload(await handle_tool_call(manager, "list_starred_emails", {}))
        assert payload["totalCount"] == 2
        assert [f["folder"] for f in payload["folders"]] == ["INBOX", "Archive"]

    @pytest.mark.asyncio
    async def test_update_draft_scope_error(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email(message_id="<inbox@x>"))
        result = await handle_tool_call(
            manager,
            "update_draft",
            {"id": "2025-06-02T12:00:00.<inbox@x>", "to": "a@x.com", "subject": "s", "body": "b"},
        )
        assert result.is_error is True
        assert "Drafts folder" in result.text
        assert fake_server.count("APPEND") == 0

    @pytest.mark.asyncio
    async def test_create_draft_uses_configured_user_as_sender(
        self, manager: ConnectionManager, fake_server: FakeMailServer
    ):
        payload = _payload(
            await handle_tool_call(manager, "create_draft", {"to": "a@x.com", "subject": "s", "body": "b"})
        )
        assert payload["subject"] == "s"
        assert b"From: testuser" in fake_server.messages("Drafts")[0].raw


class TestNonAsciiArguments:
    @pytest.mark.asyncio
    async def test_sender_search(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_message("INBOX", _build_plain_email())
        result = await handle_tool_call(manager, "list_emails_from_sender", {"sender": "josé@example.com"})
        assert _payload(result) == {"count": 0, "emails": []}

    @pytest.mark.asyncio
    async def test_create_and_list_folder(self, manager: ConnectionManager, fake_server: FakeMailServer):
        assert _payload(await handle_tool_call(manager, "create_folder", {"path": "Entwürfe"})) == {
            "created": "Entwürfe"
        }
        assert "Entw&APw-rfe" in fake_server.folders
        folders = _payload(await handle_tool_call(manager, "list_folders", {}))["folders"]
        assert "Entwürfe" in [f["path"] for f in folders]

    @pytest.mark.asyncio
    async def test_move_into_non_ascii_folder(self, manager: ConnectionManager, fake_server: FakeMailServer):
        fake_server.add_folder("Entw&APw-rfe")
        fake_server.add_message("INBOX", _build_plain_email(message_id="<move@x>"))
        result = await handle_tool_call(
            manager,
            "move_email",
            {"id": "2025-06-02T12:00:00.<move@x>", "destination_folder": "Entwürfe"},
        )
        assert _payload(result)["destination"] == "Entwürfe"
        assert len(fake_server.messages("Entw&APw-rfe")) == 1

    @pytest.mark.asyncio
    async def test_unknown_non_ascii_message_id(self, manager: ConnectionManager):
        result = await handle_tool_call(manager, "star_email", {"id": "2025-06-02T12:00:00.<café@x>"})
        assert result.is_error is True
        assert "Email not found" in result.text

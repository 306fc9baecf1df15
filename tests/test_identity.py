"""Tests for imap_mini.identity."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from imap_mini.errors import IdentifierFormatError
from imap_mini.identity import (
    DATE_LENGTH,
    EPOCH,
    build_composite_id,
    parse_composite_id,
    to_utc,
)


class TestBuildCompositeId:
    def test_utc_datetime(self):
        date = datetime(2025, 6, 2, 12, 30, 45, tzinfo=UTC)
        assert build_composite_id(date, "<abc@example.com>") == "2025-06-02T12:30:45.<abc@example.com>"

    def test_truncates_subseconds(self):
        date = datetime(2025, 6, 2, 12, 30, 45, 987654, tzinfo=UTC)
        assert build_composite_id(date, "<x@y>").startswith("2025-06-02T12:30:45.")

    def test_converts_offset_to_utc(self):
        date = datetime(2025, 6, 2, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert build_composite_id(date, "<x@y>") == "2025-06-02T12:00:00.<x@y>"

    def test_rfc2822_string(self):
        composite = build_composite_id("Mon, 02 Jun 2025 08:00:00 -0400", "<x@y>")
        assert composite == "2025-06-02T12:00:00.<x@y>"

    def test_naive_datetime_treated_as_utc(self):
        assert build_composite_id(datetime(2025, 1, 1), "<x@y>") == "2025-01-01T00:00:00.<x@y>"

    def test_epoch_placeholder(self):
        assert build_composite_id(EPOCH, "<x@y>") == "1970-01-01T00:00:00.<x@y>"

    def test_date_part_is_fixed_width(self):
        composite = build_composite_id(datetime(2025, 6, 2, tzinfo=UTC), "m")
        assert composite[DATE_LENGTH] == "."


class TestParseCompositeId:
    def test_round_trip(self):
        date = datetime(2024, 12, 31, 23, 59, 59, tzinfo=UTC)
        parsed = parse_composite_id(build_composite_id(date, "<round@trip.example>"))
        assert parsed.date == "2024-12-31T23:59:59"
        assert parsed.message_id == "<round@trip.example>"

    def test_message_id_containing_dots(self):
        parsed = parse_composite_id("2025-06-02T12:00:00.<a.b.c@mail.example.com>")
        assert parsed.message_id == "<a.b.c@mail.example.com>"

    def test_empty_message_id_segment_is_accepted(self):
        parsed = parse_composite_id("2025-06-02T12:00:00.")
        assert parsed.message_id == ""

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "2025-06-02T12:00:00",
            "2025-06-02 12:00:00<x@y>",
            "short.<x@y>",
            "not-a-composite-id-at-all",
        ],
    )
    def test_malformed_raises_format_error(self, value):
        with pytest.raises(IdentifierFormatError, match="Invalid composite ID format"):
            parse_composite_id(value)

    def test_format_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_composite_id("bad")

    def test_date_part_not_validated(self):
        parsed = parse_composite_id("9999-99-99T99:99:99.<x@y>")
        assert parsed.date == "9999-99-99T99:99:99"


class TestToUtc:
    def test_iso_string_with_offset(self):
        assert to_utc("2025-06-02T14:00:00+02:00") == datetime(2025, 6, 2, 12, tzinfo=UTC)

    def test_aware_datetime_is_normalized(self):
        value = datetime(2025, 6, 2, 7, tzinfo=timezone(timedelta(hours=-5)))
        assert to_utc(value) == datetime(2025, 6, 2, 12, tzinfo=UTC)

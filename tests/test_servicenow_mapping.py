"""Unit tests for ServiceNow record mapping and ticket refresh.

Run with: pytest tests/test_servicenow_mapping.py -v
"""

from datetime import datetime, timezone

import pytest

from incident_hub.tickets.domain import ticket_from_servicenow
from incident_hub.tickets.domain.mapping import parse_datetime, reference_id, split_tags

from tests.conftest import servicenow_record


class TestReferenceFields:
    """Test the shapes a reference field can arrive in."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            ("", None),
            ("abc123", "abc123"),
            ({"value": "abc123", "display_value": "Jane"}, "abc123"),
            ({"sys_id": "def456"}, "def456"),
            ({"display_value": "Service Desk"}, "Service Desk"),
            ({}, None),
        ],
    )
    def test_reference_id(self, value, expected):
        assert reference_id(value) == expected


class TestParsing:
    """Test timestamp and tag parsing."""

    def test_servicenow_timestamp_is_utc(self):
        assert parse_datetime("2024-05-01 10:00:00") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_iso_timestamp_with_offset(self):
        parsed = parse_datetime("2024-05-01T10:00:00+02:00")
        assert parsed.astimezone(timezone.utc) == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable_timestamp(self, value):
        assert parse_datetime(value) is None

    def test_split_tags(self):
        assert split_tags("email, outage,, ") == ["email", "outage"]
        assert split_tags(None) == []


class TestTicketFromServiceNow:
    """Test the record → Ticket mapping."""

    def test_maps_fields(self):
        ticket = ticket_from_servicenow(servicenow_record("INC0010001"), "ServiceNow")

        assert ticket.id is None
        assert ticket.ticket_id == "INC0010001"
        assert ticket.source == "ServiceNow"
        assert ticket.short_description == "Email outage INC0010001"
        assert ticket.status == "New"
        assert ticket.requester_id == "user-1"
        assert ticket.assignment_group == "grp-1"
        assert ticket.tags == ["email", "outage"]
        assert ticket.opened_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert ticket.raw["sys_id"] == "sys-INC0010001"

    def test_missing_optional_fields(self):
        ticket = ticket_from_servicenow({"number": "INC1"}, "ServiceNow")
        assert ticket.short_description == ""
        assert ticket.category is None
        assert ticket.tags == []

    def test_missing_number_rejected(self):
        with pytest.raises(ValueError):
            ticket_from_servicenow({"short_description": "orphan"}, "ServiceNow")


class TestTicketApply:
    """Test overwrite-in-place of stored tickets."""

    def test_apply_reports_change(self):
        stored = ticket_from_servicenow(servicenow_record("INC1"), "ServiceNow")
        stored.id = "t-1"
        fresh = ticket_from_servicenow(servicenow_record("INC1", state="Resolved"), "ServiceNow")

        assert stored.apply(fresh) is True
        assert stored.status == "Resolved"
        assert stored.id == "t-1"

    def test_apply_without_change(self):
        stored = ticket_from_servicenow(servicenow_record("INC1"), "ServiceNow")
        fresh = ticket_from_servicenow(servicenow_record("INC1"), "ServiceNow")
        before = stored.updated_at

        assert stored.apply(fresh) is False
        assert stored.updated_at == before

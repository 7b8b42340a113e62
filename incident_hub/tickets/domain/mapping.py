"""
ServiceNow Record Mapping
=========================

Pure functions turning a flat ServiceNow table API record into a Ticket.

Reference fields (caller_id, assigned_to, ...) arrive either as a plain
string or as an object with ``value``/``sys_id`` (and ``display_value``
when display values are requested).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from incident_hub.tickets.domain.entities import Ticket

SERVICENOW_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d")


def reference_id(value: Any) -> Optional[str]:
    """Id of a reference field, whichever shape it arrived in."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        for key in ("value", "sys_id", "display_value"):
            if value.get(key):
                return str(value[key])
        return None
    return str(value)


def _text(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("display_value", value.get("value"))
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a ServiceNow timestamp; naive values are taken as UTC."""
    text = _text(value)
    if not text:
        return None

    parsed = None
    for fmt in SERVICENOW_DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def split_tags(value: Any) -> List[str]:
    """Comma-separated tag string to a list, blanks dropped."""
    text = _text(value)
    if not text:
        return []
    return [tag.strip() for tag in text.split(",") if tag.strip()]


def ticket_from_servicenow(record: Dict[str, Any], source: str) -> Ticket:
    """
    Build a Ticket from a ServiceNow incident record.

    The original record is kept in ``raw``.

    Raises:
        ValueError: If the record has no ticket number
    """
    number = _text(record.get("number"))
    if not number:
        raise ValueError("ServiceNow record has no 'number'")

    return Ticket(
        id=None,
        ticket_id=number,
        source=source,
        short_description=_text(record.get("short_description")) or "",
        description=_text(record.get("description")) or "",
        category=_text(record.get("category")),
        subcategory=_text(record.get("subcategory")),
        status=_text(record.get("state")),
        priority=_text(record.get("priority")),
        impact=_text(record.get("impact")),
        urgency=_text(record.get("urgency")),
        opened_at=parse_datetime(record.get("opened_at")),
        closed_at=parse_datetime(record.get("closed_at")),
        resolved_at=parse_datetime(record.get("resolved_at")),
        requester_id=reference_id(record.get("caller_id")),
        assigned_to=reference_id(record.get("assigned_to")),
        assignment_group=reference_id(record.get("assignment_group")),
        company=reference_id(record.get("company")),
        location=reference_id(record.get("location")),
        tags=split_tags(record.get("tags")),
        raw=dict(record),
    )

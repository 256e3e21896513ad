"""iCalendar (.ics) helpers."""

from __future__ import annotations

import html
import re
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from eventdesk.models import Event


_tag_pattern = re.compile(r"<[^>]+>")


def _format_utc(dt: datetime) -> str:
    """Format a datetime as an RFC5545 UTC timestamp."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).replace(microsecond=0).strftime("%Y%m%dT%H%M%SZ")


def _escape_text(value: str | None) -> str:
    """Escape text for ICS fields and strip any HTML tags."""

    if not value:
        return ""
    stripped = _tag_pattern.sub("", html.unescape(value))
    normalized = stripped.replace("\r\n", "\n").replace("\r", "\n")
    cleaned_lines: list[str] = []
    for line in normalized.split("\n"):
        trimmed = line.lstrip()
        if trimmed.startswith("#"):
            trimmed = trimmed.lstrip("#").lstrip()
        if trimmed.startswith(("- ", "* ")):
            trimmed = trimmed[2:].lstrip()
        cleaned_lines.append(trimmed)
    normalized = "\n".join(cleaned_lines)
    return (
        normalized.replace("\\", "\\\\")
        .replace(";", r"\;")
        .replace(",", r"\,")
        .replace("\n", "\\n")
    )


def _event_location(event: Event) -> str:
    parts = [part for part in (event.city, event.country) if part]
    return ", ".join(parts)


def generate_ics(event: Event, *, now: datetime | None = None) -> str:
    """Return ICS text for an event as an all-day entry."""

    dtstamp = _format_utc(now or datetime.now(UTC))
    # DTEND is exclusive for all-day events.
    end_date = (event.end_date or event.start_date) + timedelta(days=1)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//EventDesk//EN",
        "BEGIN:VEVENT",
        f"UID:{event.id}@eventdesk",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;VALUE=DATE:{event.start_date.strftime('%Y%m%d')}",
        f"DTEND;VALUE=DATE:{end_date.strftime('%Y%m%d')}",
        f"SUMMARY:{_escape_text(event.name)}",
        f"DESCRIPTION:{_escape_text(event.description)}",
        f"LOCATION:{_escape_text(_event_location(event))}",
    ]
    if event.website:
        lines.append(f"URL:{event.website}")
    lines.extend(["END:VEVENT", "END:VCALENDAR"])
    return "\r\n".join(lines) + "\r\n"

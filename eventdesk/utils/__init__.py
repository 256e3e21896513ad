"""Utility helpers for EventDesk."""

from __future__ import annotations

from datetime import UTC, date, datetime
import html
import re

from markupsafe import Markup

_link_pattern = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_bold_pattern = re.compile(r"\*\*(.+?)\*\*")
_italic_pattern = re.compile(r"(?<!\*)\*(?!\*)([^*]+?)(?<!\*)\*(?!\*)")
_code_pattern = re.compile(r"`([^`]+)`")
_scheme_pattern = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def today() -> date:
    """Return the current UTC calendar day."""

    return utcnow().date()


def parse_date(raw: str | date | None) -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` value, returning ``None`` for blanks.

    Raises ``ValueError`` for malformed input.
    """

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    cleaned = raw.strip()
    if not cleaned:
        return None
    return date.fromisoformat(cleaned)


def normalize_url(raw: str | None) -> str | None:
    """Return a URL with an explicit scheme, or ``None`` when blank.

    Bare hosts such as ``somelink.tada`` get an ``https://`` prefix.
    """

    cleaned = (raw or "").strip()
    if not cleaned:
        return None
    if _scheme_pattern.match(cleaned):
        return cleaned
    return f"https://{cleaned}"


def _sanitize_href(raw: str | None) -> str | None:
    """Return a safe URL for anchors or ``None`` when unsafe."""

    normalized = (raw or "").strip()
    if not normalized:
        return None
    lowered = normalized.lower()
    if lowered.startswith(("http://", "https://", "mailto:")) or normalized.startswith(
        ("/", "#")
    ):
        return html.escape(normalized, quote=True)
    return None


def _render_inline(text: str) -> str:
    """Render inline Markdown (emphasis, code, and links) into sanitized HTML."""

    coded = _code_pattern.sub(lambda match: f"<code>{match.group(1)}</code>", text)
    bolded = _bold_pattern.sub(lambda match: f"<strong>{match.group(1)}</strong>", coded)
    emphasized = _italic_pattern.sub(lambda match: f"<em>{match.group(1)}</em>", bolded)

    def replace_link(match: re.Match[str]) -> str:
        href = _sanitize_href(html.unescape(match.group(2)))
        if not href:
            return match.group(0)
        label = _render_inline(match.group(1))
        return f'<a href="{href}" rel="nofollow noopener noreferrer">{label}</a>'

    return _link_pattern.sub(replace_link, emphasized)


def render_markdown(value: str | None) -> Markup:
    """Convert Markdown text into sanitized HTML safe for templates."""

    if not value:
        return Markup("")

    escaped = html.escape(value.strip())
    if not escaped:
        return Markup("")

    blocks: list[str] = []
    list_items: list[str] = []
    paragraph_parts: list[str] = []

    def flush_paragraph() -> None:
        if paragraph_parts:
            paragraph = " ".join(paragraph_parts).strip()
            if paragraph:
                blocks.append(f"<p>{_render_inline(paragraph)}</p>")
            paragraph_parts.clear()

    def flush_list() -> None:
        if list_items:
            items = "".join(f"<li>{_render_inline(item)}</li>" for item in list_items)
            blocks.append(f"<ul>{items}</ul>")
            list_items.clear()

    for raw_line in escaped.splitlines():
        stripped = raw_line.strip()
        if not stripped:
            flush_paragraph()
            flush_list()
            continue

        if stripped.startswith("#"):
            flush_paragraph()
            flush_list()
            hashes = len(stripped) - len(stripped.lstrip("#"))
            # Event pages already use h1-h3 for their own structure.
            level = min(max(hashes + 3, 4), 6)
            content = stripped[hashes:].strip()
            blocks.append(f"<h{level}>{_render_inline(content)}</h{level}>")
            continue

        if stripped.startswith(("- ", "* ")):
            flush_paragraph()
            list_items.append(stripped[2:].strip())
            continue

        paragraph_parts.append(stripped)

    flush_paragraph()
    flush_list()

    return Markup("\n".join(blocks))


def _day_month(value: date) -> str:
    return f"{value.day} {value.strftime('%B')}"


def _day_month_year(value: date) -> str:
    return f"{value.day} {value.strftime('%B %Y')}"


def format_date_range(start: date | None, end: date | None) -> str:
    """Return a compact range such as ``3 - 5 May 2026``."""
    if not start:
        return ""
    if not end or end == start:
        return _day_month_year(start)
    if (start.year, start.month) == (end.year, end.month):
        return f"{start.day} - {_day_month_year(end)}"
    if start.year == end.year:
        return f"{_day_month(start)} - {_day_month_year(end)}"
    return f"{_day_month_year(start)} - {_day_month_year(end)}"


def deadline_text(deadline: date | None, *, now: date | None = None) -> str:
    """Return a friendly string such as 'closes in 3 days' or 'closed'."""
    if not deadline:
        return ""
    current = now or today()
    remaining = (deadline - current).days
    if remaining < 0:
        return "applications closed"
    if remaining == 0:
        return "closes today"
    if remaining == 1:
        return "closes tomorrow"
    if remaining < 14:
        return f"closes in {remaining} days"
    weeks = remaining // 7
    return f"closes in {weeks} weeks"

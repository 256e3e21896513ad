from __future__ import annotations

from datetime import date, datetime

import pytest

from eventdesk.utils import (
    deadline_text,
    format_date_range,
    normalize_url,
    parse_date,
    render_markdown,
)


def test_parse_date():
    assert parse_date("2026-05-03") == date(2026, 5, 3)
    assert parse_date(" ") is None
    assert parse_date(None) is None
    assert parse_date(datetime(2026, 5, 3, 12, 30)) == date(2026, 5, 3)
    with pytest.raises(ValueError):
        parse_date("03/05/2026")
    with pytest.raises(ValueError):
        parse_date("2026-10-29garbage")


def test_normalize_url_adds_scheme():
    assert normalize_url("somelink.tada") == "https://somelink.tada"
    assert normalize_url("http://example.org") == "http://example.org"
    assert normalize_url("  ") is None
    assert normalize_url(None) is None


def test_render_markdown_renders_blocks_and_inline_html():
    text = """
    # Schedule

    Talks are **free**, *friendly*, and `fun` with a [map](https://example.com).

    - Day one
    - Day two
    """
    html = render_markdown(text)
    assert "<h4>Schedule</h4>" in html
    assert "<strong>free</strong>" in html
    assert "<em>friendly</em>" in html
    assert "<code>fun</code>" in html
    assert '<a href="https://example.com"' in html
    assert "<ul><li>Day one</li><li>Day two</li></ul>" in html


def test_render_markdown_escapes_html_and_unsafe_links():
    html = render_markdown("<script>x</script> [bad](javascript:alert(1))")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert 'href="javascript' not in html


def test_format_date_range():
    assert format_date_range(date(2026, 5, 3), date(2026, 5, 5)) == "3 - 5 May 2026"
    assert format_date_range(date(2026, 5, 3), date(2026, 5, 3)) == "3 May 2026"
    assert format_date_range(date(2026, 5, 30), date(2026, 6, 1)) == "30 May - 1 June 2026"
    assert (
        format_date_range(date(2026, 12, 31), date(2027, 1, 1))
        == "31 December 2026 - 1 January 2027"
    )


def test_deadline_text():
    now = date(2026, 5, 1)
    assert deadline_text(date(2026, 4, 30), now=now) == "applications closed"
    assert deadline_text(now, now=now) == "closes today"
    assert deadline_text(date(2026, 5, 2), now=now) == "closes tomorrow"
    assert deadline_text(date(2026, 5, 6), now=now) == "closes in 5 days"
    assert deadline_text(date(2026, 5, 22), now=now) == "closes in 3 weeks"
    assert deadline_text(None, now=now) == ""

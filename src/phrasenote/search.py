"""Filters used by ad hoc searches over stored notes.

Citations are plain mappings. A search looks at three of their fields:

    {"phrase": "Cats", "when": ["2024-05-01T10:00:00+00:00"],
     "source": {"url": "https://example.com/pets"}}

``when`` values may be ISO 8601 strings or datetimes. Naive times are
taken to be UTC.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from phrasenote.exceptions import ValidationError
from phrasenote.models import NoteRecord

_DAY = timedelta(days=1)
_YEAR = 365 * _DAY

# How far before today's midnight each relative period starts
RELATIVE_PERIODS: dict[str, timedelta] = {
    "today": timedelta(0),
    "yesterday": _DAY,
    "the day before yesterday": 2 * _DAY,
    "a week ago": 7 * _DAY,
    "two weeks ago": 14 * _DAY,
    "a month ago": _YEAR / 12,
    "six months ago": _YEAR / 2,
    "a year ago": _YEAR,
}
EVER = "ever"


class Strictness(str, Enum):
    """How a search phrase must match a note's phrases."""

    EXACT = "exact"
    FUZZY = "fuzzy"


def relative_window(
    period: str = EVER,
    interpretation: str = "since",
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Start and end of a relative time period such as "a week ago".

    With ``interpretation="since"`` the window is open-ended; with ``"on"``
    it covers a day, a week for "a month ago", or 30 days for longer
    periods.
    """
    if period == EVER:
        return None, None
    if period not in RELATIVE_PERIODS:
        raise ValidationError(f"Unknown relative period: {period!r}")
    if interpretation not in ("since", "on"):
        raise ValidationError(f"Unknown interpretation: {interpretation!r}")
    now = now or datetime.now().astimezone()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = midnight - RELATIVE_PERIODS[period]
    if interpretation == "since":
        return start, None
    if RELATIVE_PERIODS[period] <= RELATIVE_PERIODS["two weeks ago"]:
        return start, start + _DAY
    if period == "a month ago":
        return start, start + 7 * _DAY
    return start, start + 30 * _DAY


def as_utc(moment: datetime | str) -> datetime:
    if isinstance(moment, str):
        moment = datetime.fromisoformat(moment)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def citation_times(citation: Mapping[str, Any]) -> list[datetime]:
    return [as_utc(w) for w in citation.get("when") or ()]


def citation_url(citation: Mapping[str, Any]) -> str:
    source = citation.get("source") or {}
    return str(source.get("url") or "")


def fuzzy_matcher(normalized: str) -> re.Pattern[str]:
    """Match the characters of ``normalized`` in order, with anything between."""
    return re.compile(".*?".join(re.escape(c) for c in normalized))


def note_phrases(note: NoteRecord) -> list[str]:
    """The note's phrase followed by the phrases of its citations."""
    phrases = [note.phrase]
    for citation in note.citations:
        phrase = citation.get("phrase")
        if phrase and phrase not in phrases:
            phrases.append(phrase)
    return phrases


def passes_filters(
    note: NoteRecord,
    *,
    tags: Iterable[str] = (),
    url: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> bool:
    """Apply the tag, URL and time filters of a search to one note."""
    if any(tag not in note.tags for tag in tags):
        return False
    if url is not None and not any(
        url in citation_url(c) for c in note.citations
    ):
        return False
    if start is not None or end is not None:
        times = [t for c in note.citations for t in citation_times(c)]
        if end is not None and not any(t <= end for t in times):
            return False
        if start is not None and not any(t >= start for t in times):
            return False
    return True

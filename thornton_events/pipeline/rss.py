from __future__ import annotations

import calendar
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import feedparser

from thornton_events.pipeline.errors import ExtractionError
from thornton_events.utils.text import clean_html

log = logging.getLogger(__name__)

# "Saturday, January 24 2026 9:15am - 10:00am"
DESCRIPTION_DATE = re.compile(
    r"(\w+),\s+(\w+)\s+(\d+)\s+(\d{4})\s+(\d{1,2}):(\d{2})(am|pm)\s*-\s*(\d{1,2}):(\d{2})(am|pm)",
    re.I,
)

MONTHS = {
    name: i
    for i, name in enumerate(
        ["january", "february", "march", "april", "may", "june", "july",
         "august", "september", "october", "november", "december"],
        start=1,
    )
}

FALLBACK_DURATION = timedelta(hours=1)

_CDATA_JUNK = re.compile(r"\[!\[CDATA\[|\]\]\]")


def _hour24(hour: str, ampm: str) -> int:
    h = int(hour)
    ampm = ampm.lower()
    if ampm == "pm" and h != 12:
        h += 12
    if ampm == "am" and h == 12:
        h = 0
    return h


def parse_description_times(description: str, tz: str) -> Optional[Tuple[datetime, datetime]]:
    """Start/end (UTC) from the description's date line, read in local ``tz``; None on a miss."""
    m = DESCRIPTION_DATE.search(clean_html(description or ""))
    if not m:
        return None
    _, month, day, year, sh, smin, sap, eh, emin, eap = m.groups()
    month_num = MONTHS.get(month.lower())
    if not month_num:
        return None
    zone = ZoneInfo(tz)
    try:
        start = datetime(int(year), month_num, int(day), _hour24(sh, sap), int(smin), tzinfo=zone)
        end = datetime(int(year), month_num, int(day), _hour24(eh, eap), int(emin), tzinfo=zone)
    except ValueError:
        return None
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def parse_datetime_from_description(
    description: str, pub_date: Optional[datetime], tz: str = "America/Denver"
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Event window from an RSS item. Falls back to ``pub_date`` plus one hour
    when the description has no recognizable date line.
    """
    parsed = parse_description_times(description, tz)
    if parsed:
        return parsed
    if pub_date is None:
        return None, None
    return pub_date, pub_date + FALLBACK_DURATION


def _clean(s: Optional[str]) -> str:
    return _CDATA_JUNK.sub("", s or "").strip()


def _pub_date(entry: Any) -> Optional[datetime]:
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)


def parse_feed(xml: str) -> List[Dict[str, Any]]:
    """RSS/Atom text -> plain item dicts. A document that is not a feed at all raises ExtractionError."""
    feed = feedparser.parse(xml)
    if feed.get("bozo") and not feed.get("entries"):
        raise ExtractionError(f"unparseable feed: {feed.get('bozo_exception')}")

    items: List[Dict[str, Any]] = []
    for entry in feed.get("entries", []):
        description = _clean(entry.get("summary") or entry.get("description"))
        content = ""
        if entry.get("content"):
            content = _clean(entry.content[0].get("value"))
        items.append(
            {
                "title": _clean(entry.get("title")),
                "description": description,
                "content": content or description,
                "link": (entry.get("link") or entry.get("id") or "").strip(),
                "guid": (entry.get("id") or "").strip(),
                "pub_date": _pub_date(entry),
                "pub_date_raw": entry.get("published") or "",
            }
        )
    log.info("parsed %d feed items", len(items))
    return items

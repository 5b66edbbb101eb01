"""
Map loosely-typed source candidates onto the canonical ``events`` row.

Every source hands over plain dicts (whatever its API, feed or the model
produced). ``normalize_event`` applies the source's defaults, builds the
deterministic id and returns ``None`` for anything without a usable start
time, so nothing startless ever reaches the upsert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, field_validator

from thornton_events.models.event import EVENT_COLUMNS
from thornton_events.utils.text import slugify, stable_uuid

log = logging.getLogger(__name__)

ID_BY_SLUG = "slug"                 # seed = "{slug}-{title slug}"
ID_BY_SLUG_AND_START = "slug+start" # recurring titles need the start time to stay unique
ID_BY_SOURCE_ID = "source_id"       # seed = "{slug}-{source_id}"


@dataclass(frozen=True)
class SourceProfile:
    slug: str                 # machine label, e.g. "city-thornton"
    source_name: str          # human label, half of the natural key
    source_type: str          # ai-scraped | rss-feed | api
    home_city: Optional[str] = None
    state: str = "CO"
    default_venue: Optional[str] = None
    default_category: Optional[str] = "Community"
    default_price: Optional[str] = "Free"
    default_url: Optional[str] = None
    timezone: Optional[str] = None
    id_strategy: str = ID_BY_SLUG


class CanonicalEvent(BaseModel):
    id: str
    source_name: str
    source_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    venue: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None
    price_text: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    source: Optional[str] = None
    source_type: Optional[str] = None
    status: str = "active"

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        return "canceled" if v in ("canceled", "cancelled") else "active"

    def to_row(self) -> Dict[str, Any]:
        data = self.model_dump()
        return {k: data.get(k) for k in EVENT_COLUMNS}


def parse_timestamp(value: Any, tz: Optional[str] = None) -> Optional[datetime]:
    """
    ISO 8601 string/datetime -> aware datetime. Naive values are read in
    ``tz`` (UTC when no zone is given). Anything unparseable -> None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz) if tz else timezone.utc)
    return dt


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def event_id(profile: SourceProfile, source_id: str, title_slug: str, start: Optional[str]) -> str:
    if profile.id_strategy == ID_BY_SOURCE_ID:
        return stable_uuid(f"{profile.slug}-{source_id}")
    if profile.id_strategy == ID_BY_SLUG_AND_START:
        return stable_uuid(f"{profile.slug}-{title_slug}-{start}")
    return stable_uuid(f"{profile.slug}-{title_slug}")


def normalize_event(candidate: Dict[str, Any], profile: SourceProfile) -> Optional[CanonicalEvent]:
    """One candidate -> canonical event, or None when it has no parseable start time."""
    title = _text(candidate.get("title")) or "Untitled Event"
    tz = _text(candidate.get("timezone")) or profile.timezone

    start = parse_timestamp(candidate.get("start_time"), tz)
    if start is None:
        return None
    end = parse_timestamp(candidate.get("end_time"), tz) or start

    title_slug = slugify(title)
    source_id = _text(candidate.get("source_id")) or title_slug
    raw_start = candidate.get("start_time")
    raw_start = raw_start.isoformat() if isinstance(raw_start, datetime) else str(raw_start)

    return CanonicalEvent(
        id=_text(candidate.get("id")) or event_id(profile, source_id, title_slug, raw_start),
        source_name=profile.source_name,
        source_id=source_id,
        title=title,
        description=_text(candidate.get("description")) or title,
        start_time=start,
        end_time=end,
        timezone=tz,
        venue=_text(candidate.get("venue")) or profile.default_venue,
        city=_text(candidate.get("city")) or profile.home_city,
        state=_text(candidate.get("state")) or profile.state,
        latitude=_float(candidate.get("latitude")),
        longitude=_float(candidate.get("longitude")),
        category=_text(candidate.get("category")) or profile.default_category,
        price_text=_text(candidate.get("price_text")) or profile.default_price,
        url=_text(candidate.get("url")) or profile.default_url,
        image_url=_text(candidate.get("image_url")),
        source=profile.slug,
        source_type=profile.source_type,
        status=_text(candidate.get("status")) or "active",
    )


def normalize_batch(
    candidates: Iterable[Dict[str, Any]], profile: SourceProfile
) -> Tuple[List[CanonicalEvent], int]:
    """
    Normalize a whole batch. Returns (events, dropped) where dropped counts
    candidates without a start time. Duplicate natural keys keep the last one.
    """
    by_key: Dict[str, CanonicalEvent] = {}
    dropped = 0
    for c in candidates:
        if not isinstance(c, dict):
            dropped += 1
            continue
        ev = normalize_event(c, profile)
        if ev is None:
            dropped += 1
            continue
        by_key[ev.source_id] = ev
    if dropped:
        log.info("[%s] dropped %d candidates without a start time", profile.slug, dropped)
    return list(by_key.values()), dropped

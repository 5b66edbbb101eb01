import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from thornton_events.pipeline.extract import Candidate
from thornton_events.pipeline.normalize import ID_BY_SOURCE_ID, SourceProfile
from thornton_events.services.fetch import fetch_json
from thornton_events.sources.base import EventSource, IngestContext

log = logging.getLogger(__name__)

DISCOVERY_URL = "https://app.ticketmaster.com/discovery/v2/events.json"
LAT, LON = 39.8680, -104.9719
RADIUS_MILES = 25
WINDOW_DAYS = 45
PAGE_SIZE = 100
CLASSIFICATIONS = "music,sports,arts,theatre,film"


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def price_text(ranges: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    if not ranges:
        return None
    pr = ranges[0]
    lo, hi = pr.get("min"), pr.get("max")
    sep = "-" if lo is not None and hi is not None else ""
    span = f"{lo if lo is not None else ''}{sep}{hi if hi is not None else ''}"
    return f"{span} {pr.get('currency') or ''}".strip() or None


def _float(v: Any) -> Optional[float]:
    try:
        return float(v) if v not in (None, "") else None
    except (TypeError, ValueError):
        return None


def event_to_candidate(ev: Dict[str, Any]) -> Candidate:
    venue = ((ev.get("_embedded") or {}).get("venues") or [{}])[0]
    dates = ev.get("dates") or {}
    state = venue.get("state") or {}
    location = venue.get("location") or {}
    classifications = ev.get("classifications") or [{}]
    images = ev.get("images") or [{}]
    return {
        "source_id": ev.get("id"),
        "title": ev.get("name") or "Untitled event",
        "description": ev.get("info") or ev.get("pleaseNote"),
        "start_time": (dates.get("start") or {}).get("dateTime"),
        "end_time": (dates.get("end") or {}).get("dateTime"),
        "timezone": dates.get("timezone"),
        "venue": venue.get("name"),
        "city": (venue.get("city") or {}).get("name"),
        "state": state.get("stateCode") or state.get("name"),
        "latitude": _float(location.get("latitude")),
        "longitude": _float(location.get("longitude")),
        "category": (classifications[0].get("segment") or {}).get("name"),
        "price_text": price_text(ev.get("priceRanges")),
        "url": ev.get("url"),
        "image_url": images[0].get("url"),
        "status": "canceled" if (dates.get("status") or {}).get("code") == "cancelled" else "active",
    }


class TicketmasterSource(EventSource):
    """Discovery API, everything within 25 miles of Thornton for the next 45 days."""

    profile = SourceProfile(
        slug="ticketmaster",
        source_name="ticketmaster",
        source_type="api",
        state="CO",
        default_category=None,
        default_price=None,
        id_strategy=ID_BY_SOURCE_ID,
    )
    required = ("ticketmaster_api_key",)

    def params(self, ctx: IngestContext, page: int) -> Dict[str, str]:
        now = ctx.now()
        return {
            "apikey": ctx.settings.ticketmaster_api_key,
            "latlong": f"{LAT},{LON}",
            "radius": str(RADIUS_MILES),
            "unit": "miles",
            "sort": "date,asc",
            "size": str(PAGE_SIZE),
            "page": str(page),
            "countryCode": "US",
            "startDateTime": _iso(now),
            "endDateTime": _iso(now + timedelta(days=WINDOW_DAYS)),
            "classificationName": CLASSIFICATIONS,
        }

    async def fetch(self, ctx: IngestContext) -> List[Dict[str, Any]]:
        events: List[Dict[str, Any]] = []
        page = 0
        while True:
            data = await fetch_json(ctx.http, DISCOVERY_URL, params=self.params(ctx, page))
            batch = (data.get("_embedded") or {}).get("events") or []
            if not batch:
                break
            events.extend(batch)
            info = data.get("page") or {}
            if info.get("number", 0) >= (info.get("totalPages") or 1) - 1:
                break
            page += 1
        log.info("[%s] fetched %d events over %d page(s)", self.slug, len(events), page + 1)
        return events

    async def extract(self, ctx: IngestContext, raw: List[Dict[str, Any]]) -> List[Candidate]:
        return [event_to_candidate(ev) for ev in raw if ev.get("id")]

from datetime import timedelta
from typing import Any, Dict, List

from thornton_events.pipeline.extract import Candidate
from thornton_events.pipeline.normalize import ID_BY_SOURCE_ID, SourceProfile
from thornton_events.services.fetch import fetch_json
from thornton_events.sources.base import EventSource, IngestContext

SEARCH_URL = "https://www.eventbriteapi.com/v3/events/search/"
LAT, LON = 39.8681, -104.9719
RADIUS = "25mi"
WINDOW_DAYS = 91


def price_text(ev: Dict[str, Any]) -> str:
    lowest = (ev.get("ticket_availability") or {}).get("minimum_ticket_price")
    if ev.get("is_free") is False and lowest:
        return f"From {lowest.get('currency')} {lowest.get('major_value')}"
    return "Free"


def event_to_candidate(ev: Dict[str, Any]) -> Candidate:
    venue = ev.get("venue") or {}
    address = venue.get("address") or {}
    start = ev.get("start") or {}
    end = ev.get("end") or {}
    logo = ev.get("logo") or {}
    return {
        "source_id": str(ev.get("id")),
        "title": (ev.get("name") or {}).get("text") or "Untitled Event",
        "description": (ev.get("description") or {}).get("text") or ev.get("summary"),
        "start_time": start.get("utc") or start.get("local"),
        "end_time": end.get("utc") or end.get("local"),
        "timezone": start.get("timezone"),
        "venue": venue.get("name"),
        "city": address.get("city"),
        "state": address.get("region"),
        "category": (ev.get("category") or {}).get("name"),
        "price_text": price_text(ev),
        "url": ev.get("url"),
        "image_url": logo.get("url") or (logo.get("original") or {}).get("url"),
    }


class EventbriteSource(EventSource):
    """
    Eventbrite v3 search. The public search endpoint has been retired
    upstream, so this usually ends in a failed fetch; it is kept for
    accounts that still have access.
    """

    profile = SourceProfile(
        slug="eventbrite",
        source_name="Eventbrite",
        source_type="api",
        home_city="Thornton",
        default_venue="Online Event",
        default_category="General",
        id_strategy=ID_BY_SOURCE_ID,
    )
    required = ("eventbrite_api_key",)

    async def fetch(self, ctx: IngestContext) -> List[Dict[str, Any]]:
        now = ctx.now()
        params = {
            "location.latitude": str(LAT),
            "location.longitude": str(LON),
            "location.within": RADIUS,
            "start_date.range_start": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "start_date.range_end": (now + timedelta(days=WINDOW_DAYS)).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "expand": "venue,category,organizer",
            "page_size": "100",
        }
        headers = {"Authorization": f"Bearer {ctx.settings.eventbrite_api_key}"}
        data = await fetch_json(ctx.http, SEARCH_URL, params=params, headers=headers)
        return data.get("events") or []

    async def extract(self, ctx: IngestContext, raw: List[Dict[str, Any]]) -> List[Candidate]:
        return [event_to_candidate(ev) for ev in raw if ev.get("id")]

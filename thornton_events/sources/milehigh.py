import re
from datetime import datetime
from typing import Optional

from thornton_events.pipeline.extract import Candidate
from thornton_events.pipeline.normalize import ID_BY_SOURCE_ID, SourceProfile
from thornton_events.services.sourcing import extract_page_content
from thornton_events.sources.base import AiPageSource, IngestContext

EVENTS_URL = "https://www.milehighonthecheap.com/events/"
DEFAULT_START = "09:00"

SYSTEM = (
    "You extract event data from web page content and return structured JSON. "
    "Be thorough and extract every event mentioned."
)

_NON_ALNUM_CHAR = re.compile(r"[^a-z0-9]")


def source_id_for(title: Optional[str], date: Optional[str]) -> str:
    # one dash per character, unlike slugify, so existing keys keep matching
    slug = _NON_ALNUM_CHAR.sub("-", (title or "").lower())[:50]
    return f"mhoc-{slug}-{date or 'nodate'}"


def _time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value if value.count(":") == 2 else f"{value}:00"


class MileHighSource(AiPageSource):
    """Mile High on the Cheap: page text via Tavily, events via JSON-mode completion."""

    profile = SourceProfile(
        slug="milehigh",
        source_name="milehighonthecheap",
        source_type="ai-scraped",
        home_city="Denver",
        default_category="Community",
        default_price=None,
        default_url=EVENTS_URL,
        timezone="America/Denver",
        id_strategy=ID_BY_SOURCE_ID,
    )
    page_url = EVENTS_URL
    max_chars = 0
    system_prompt = SYSTEM
    json_mode = True
    list_key = "events"
    required = ("tavily_api_key", "openai_api_key")
    enrich_images = False

    async def fetch(self, ctx: IngestContext) -> str:
        return await extract_page_content(self.page_url, api_key=ctx.settings.tavily_api_key)

    def build_prompt(self, html: str, now: datetime) -> str:
        today, year = now.date().isoformat(), now.year
        return f"""Extract ALL events from this Mile High on the Cheap events page content.
The current date is {today} and the year is {year}.

For each event, extract:
- title: Event name
- date: The date in YYYY-MM-DD format (use {year} for the year if not specified)
- startTime: Start time in HH:MM format (24-hour), or null if not specified
- endTime: End time in HH:MM format (24-hour), or null if not specified
- venue: Venue/location name
- city: City (default to "Denver" if in Denver area)
- state: State (default to "CO")
- price: Price text (e.g., "FREE", "$10", "$5-20")
- isFree: boolean, true if the event is free
- description: Brief description of the event
- url: The detail page URL from milehighonthecheap.com (full URL starting with https://)
- category: Category (one of: Family Fun, Music, Arts & Theatre, Sports, Food & Drink, Community, Education, Free Events)

Page Content:
{html}

Return as JSON:
{{
  "events": [
    {{
      "title": "Event Title",
      "date": "{year}-01-29",
      "startTime": "10:00",
      "endTime": "16:00",
      "venue": "Venue Name",
      "city": "Denver",
      "state": "CO",
      "price": "FREE",
      "isFree": true,
      "description": "Brief description",
      "url": "https://www.milehighonthecheap.com/event-page/",
      "category": "Free Events"
    }}
  ]
}}

Extract ALL events you can find. Return ONLY valid JSON."""

    def prepare(self, candidate: Candidate) -> Candidate:
        date = candidate.get("date")
        is_free = bool(candidate.get("isFree"))
        start = end = None
        if date:
            start = f"{date}T{_time(candidate.get('startTime')) or DEFAULT_START + ':00'}"
            end_t = _time(candidate.get("endTime"))
            end = f"{date}T{end_t}" if end_t else None
        return {
            "source_id": source_id_for(candidate.get("title"), date),
            "title": candidate.get("title") or "Untitled event",
            "description": candidate.get("description"),
            "start_time": start,
            "end_time": end,
            "timezone": "America/Denver",
            "venue": candidate.get("venue"),
            "city": candidate.get("city"),
            "state": candidate.get("state"),
            "category": candidate.get("category") or ("Free Events" if is_free else None),
            "price_text": candidate.get("price") or ("FREE" if is_free else None),
            "url": candidate.get("url"),
        }

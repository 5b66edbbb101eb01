from datetime import datetime

from thornton_events.pipeline.extract import Candidate
from thornton_events.pipeline.normalize import ID_BY_SLUG, SourceProfile
from thornton_events.sources.base import AiPageSource

EVENTS_URL = "https://www.thorntonco.gov/community-culture/festivals-events?view=list"


class ThorntonCitySource(AiPageSource):
    profile = SourceProfile(
        slug="city-thornton",
        source_name="City of Thornton",
        source_type="ai-scraped",
        home_city="Thornton",
        default_venue="City of Thornton",
        default_category="Community",
        timezone="America/Denver",
        id_strategy=ID_BY_SLUG,
    )
    page_url = EVENTS_URL

    def build_prompt(self, html: str, now: datetime) -> str:
        year = now.year
        return f"""You are a web scraping assistant. Extract event information from this City of Thornton events page HTML.

Look for event links in the format: href="/community-culture/festivals-events/[event-name]"

Major annual events to extract include:
- Thorntonfest, WinterFest, Fourth of July, Harvest Fest, Trunk or Treat, Concerts & Movies, etc.

For each unique event found, create:
{{
  "title": "Event Name" (clean, user-friendly),
  "description": "Brief description based on event type",
  "start_time": "{year}-MM-DDTHH:00:00-07:00" (estimate typical month/date),
  "end_time": "{year}-MM-DDTHH:00:00-07:00" (same or later),
  "venue": "City of Thornton",
  "url": "https://www.thorntonco.gov/community-culture/festivals-events/[slug]",
  "category": "Family Fun",
  "price_text": "Free"
}}

Date estimates: Thorntonfest=June 7, WinterFest=Dec 11-13, July 4th=July 4, Harvest Fest=Oct 3, Trunk or Treat=Oct 31

Skip: vendor-information, navigation, duplicates

Return ONLY valid JSON array.

HTML:
{html}"""

    def prepare(self, candidate: Candidate) -> Candidate:
        # the city site only lists its own events
        candidate["city"] = "Thornton"
        return candidate

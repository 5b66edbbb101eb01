from datetime import datetime

from thornton_events.pipeline.normalize import ID_BY_SLUG_AND_START, SourceProfile
from thornton_events.sources.base import AiPageSource

EVENTS_URL = "https://adamscountyco.gov/our-county/parks-open-space-cultural-arts/special-events/"

SYSTEM = (
    "You are a precise web scraping assistant. Extract event data and return valid JSON only. "
    "No explanations, no markdown code blocks."
)


class AdamsCountySource(AiPageSource):
    profile = SourceProfile(
        slug="adams-county",
        source_name="Adams County",
        source_type="ai-scraped",
        home_city="Brighton",
        default_venue="Adams County",
        default_category="Community",
        default_url=EVENTS_URL,
        timezone="America/Denver",
        id_strategy=ID_BY_SLUG_AND_START,
    )
    page_url = EVENTS_URL
    system_prompt = SYSTEM
    enrich_images = False

    def build_prompt(self, html: str, now: datetime) -> str:
        year = now.year
        return f"""You are a web scraping assistant. Extract event information from this Adams County Special Events page HTML.

Look for major annual events like:
- Adams County Fair (usually late July/early August)
- Adams County Pride (usually June)
- Festival Latino (usually September)
- Stars & Stripes / Independence Day celebration (usually July 3-4)
- Any other special events mentioned

For each event found, create a JSON object with:
{{
  "title": "Event Name",
  "description": "Description of the event from the page",
  "start_time": "{year}-MM-DDTHH:00:00-06:00" (use the date/time from the page, assume {year} if year not specified),
  "end_time": "{year}-MM-DDTHH:00:00-06:00" (end time if available, otherwise same day evening),
  "venue": "Venue name if mentioned",
  "address": "Address if mentioned",
  "city": "City name (Brighton, Commerce City, etc.)",
  "url": "{EVENTS_URL}",
  "category": "Community" or "Festival" or "Fair",
  "price_text": "Free" or price if mentioned
}}

Important date mappings for {year}:
- Adams County Pride: Usually 2nd Saturday of June
- Stars & Stripes: July 3rd
- Adams County Fair: Last week of July through first weekend of August (5 days)
- Festival Latino: 2nd Sunday of September

Return ONLY a valid JSON array of events. No explanations or markdown.

HTML content:
{html}"""

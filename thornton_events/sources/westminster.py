from datetime import datetime

from thornton_events.pipeline.extract import Candidate
from thornton_events.pipeline.normalize import ID_BY_SLUG_AND_START, SourceProfile
from thornton_events.sources.base import AiPageSource

CALENDAR_URL = "https://www.westminsterco.gov/calendar.aspx"

SYSTEM = (
    "You are a precise web scraping assistant. Extract community event data and return valid JSON only. "
    "No explanations, no markdown code blocks. Skip government meetings."
)


class WestminsterSource(AiPageSource):
    """
    Westminster's calendar mixes council/board meetings with community events.
    Off unless explicitly requested: the model kept returning meetings and
    wrong dates that parse fine but are not real events.
    """

    profile = SourceProfile(
        slug="westminster",
        source_name="City of Westminster",
        source_type="ai-scraped",
        home_city="Westminster",
        default_venue="Westminster",
        default_category="Community",
        default_url=CALENDAR_URL,
        timezone="America/Denver",
        id_strategy=ID_BY_SLUG_AND_START,
    )
    page_url = CALENDAR_URL
    max_chars = 60_000
    system_prompt = SYSTEM
    enrich_images = False
    default_enabled = False

    def build_prompt(self, html: str, now: datetime) -> str:
        year = now.year
        return f"""You are a web scraping assistant. Extract COMMUNITY and FAMILY-FRIENDLY events from this Westminster, Colorado calendar page HTML.

INCLUDE these types of events:
- Community events, festivals, and celebrations
- Library programs (book clubs, launch parties, readings)
- Recreation programs and classes
- Comedy shows, concerts, and entertainment
- Family activities and kids' programs
- Car seat clinics and safety programs
- Community update meetings with Mayor (these are open to public)

EXCLUDE these types of events (government/administrative):
- City Council Meetings
- Planning Commission Meetings
- Board Meetings (Environmental Advisory, Historic Landmark, etc.)
- Legislative Affairs Calls
- CANCELLED events
- Internal government meetings

For each valid community event found, create a JSON object with:
{{
  "title": "Event Name",
  "description": "Description of the event",
  "start_time": "{year}-MM-DDTHH:MM:00-07:00" (use the date/time from the page),
  "end_time": "{year}-MM-DDTHH:MM:00-07:00" (end time if available),
  "venue": "Venue name",
  "address": "Full address if available",
  "city": "Westminster",
  "url": "{CALENDAR_URL}",
  "category": "Community" or "Library" or "Recreation" or "Entertainment",
  "price_text": "Free" or price if mentioned
}}

Return ONLY a valid JSON array of events. No explanations or markdown.

HTML content:
{html}"""

    def prepare(self, candidate: Candidate) -> Candidate:
        candidate["city"] = "Westminster"
        return candidate

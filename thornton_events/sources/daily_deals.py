"""Today's and tomorrow's restaurant deals from Mile High on the Cheap, written to ``deals``."""

import logging
import re
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from thornton_events.pipeline.errors import ExtractionError, FetchError
from thornton_events.pipeline.extract import AiHtmlExtractor, Candidate, HtmlExtractor
from thornton_events.pipeline.persist import delete_expired_deals, upsert_deals
from thornton_events.pipeline.result import SourceReport, StepResult
from thornton_events.services.sourcing import extract_page_content
from thornton_events.sources.base import IngestContext, Source

log = logging.getLogger(__name__)

DEALS_URL = "https://www.milehighonthecheap.com/food-drink-restaurant-deals-denver/"
DEFAULT_BUSINESS = "Local Restaurant"
DEFAULT_CATEGORY = "Restaurants & Dining"

SYSTEM = (
    "You extract restaurant deals from web content. "
    "Be thorough and extract every deal for the specified days."
)

_NON_ALNUM_CHAR = re.compile(r"[^a-z0-9]")


def build_prompt(content: str, days: List[str]) -> str:
    return f"""Extract ALL restaurant and food deals from this page content for these specific days: {', '.join(days)}.

Page Content:
{content}

For each deal, extract:
- dayOfWeek: The day this deal is available ({' or '.join(days)})
- businessName: Restaurant/bar name
- title: Short deal title (e.g., "Kids Eat Free", "Half-Price Pizza", "$1 Tacos")
- description: Full deal description including what you get, times, conditions
- discountAmount: The discount (e.g., "Kids Eat Free", "50% Off", "BOGO", "$1 Tacos")
- location: City or address if mentioned
- times: Hours the deal is available (e.g., "3pm-6pm", "All Day")
- conditions: Any restrictions (e.g., "with adult purchase", "dine-in only")
- category: One of: "Restaurants & Dining", "Kids Activities", "Happy Hour", "Free Events"

Return as JSON:
{{
  "deals": [
    {{
      "dayOfWeek": "Monday",
      "businessName": "Restaurant Name",
      "title": "Short Deal Title",
      "description": "Full description with details",
      "discountAmount": "50% Off",
      "location": "Denver",
      "times": "All Day",
      "conditions": "Dine-in only",
      "category": "Restaurants & Dining"
    }}
  ]
}}

ONLY return deals for {' and '.join(days)}. Return ONLY valid JSON."""


def deal_date(day_of_week: Optional[str], today: date) -> date:
    """Deals are for today when the weekday matches, otherwise tomorrow."""
    if (day_of_week or "").strip().lower() == today.strftime("%A").lower():
        return today
    return today + timedelta(days=1)


def full_description(deal: Candidate) -> str:
    text = deal.get("description") or ""
    times, conditions = deal.get("times"), deal.get("conditions")
    if times and times not in text:
        text += f" Available {times}."
    if conditions and conditions not in text:
        text += f" {conditions}."
    return text.strip()


def deal_to_row(deal: Candidate, today: date, tz: ZoneInfo, stamp: int) -> Dict[str, Any]:
    business = deal.get("businessName") or DEFAULT_BUSINESS
    day = (deal.get("dayOfWeek") or "").lower()
    discount = deal.get("discountAmount")
    on = deal_date(deal.get("dayOfWeek"), today)
    # whole local day, stored as UTC
    start = datetime.combine(on, datetime.min.time(), tzinfo=tz)
    end = datetime.combine(on, datetime.max.time().replace(microsecond=0), tzinfo=tz)
    slug = f"{_NON_ALNUM_CHAR.sub('-', business.lower())}-{day}-{stamp}"[:100]
    return {
        "slug": slug,
        "title": deal.get("title") or f"{discount} at {business}",
        "description": full_description(deal),
        "business_name": business,
        "business_logo_url": None,
        "deal_type": "freebie" if "free" in (discount or "").lower() else "discount",
        "discount_amount": discount,
        "promo_code": None,
        "category": deal.get("category") or DEFAULT_CATEGORY,
        "terms": deal.get("conditions"),
        "start_date": start.astimezone(timezone.utc),
        "end_date": end.astimezone(timezone.utc),
        "url": DEALS_URL,
        "image_url": None,
        "status": "active",
        "featured": False,
    }


class DailyDealsSource(Source):
    slug = "daily-deals"
    name = "Mile High on the Cheap deals"
    required = ("tavily_api_key", "openai_api_key")

    def __init__(self, extractor: Optional[HtmlExtractor] = None):
        self._extractor = extractor

    def extractor(self, ctx: IngestContext, days: List[str]) -> HtmlExtractor:
        if self._extractor is not None:
            return self._extractor
        return AiHtmlExtractor(
            lambda content: build_prompt(content, days),
            api_key=ctx.settings.openai_api_key,
            model=ctx.settings.openai_model,
            max_chars=0,
            system=SYSTEM,
            json_mode=True,
            list_key="deals",
        )

    async def collect(self, ctx: IngestContext, days: List[str]) -> StepResult[Candidate]:
        try:
            content = await extract_page_content(DEALS_URL, api_key=ctx.settings.tavily_api_key)
        except FetchError as e:
            log.warning("[%s] fetch failed: %s", self.slug, e)
            return StepResult.failure(f"fetch: {e}")
        try:
            return StepResult.success(await self.extractor(ctx, days).extract(content))
        except ExtractionError as e:
            log.warning("[%s] extraction failed: %s", self.slug, e)
            return StepResult.failure(f"extract: {e}")

    async def run(self, ctx: IngestContext) -> SourceReport:
        started = time.monotonic()
        report = SourceReport(source=self.slug)
        tz = ZoneInfo(ctx.settings.timezone)
        now = ctx.now().astimezone(tz)
        today = now.date()
        days = [today.strftime("%A"), (today + timedelta(days=1)).strftime("%A")]
        log.info("Starting %s ingestion for %s", self.name, " and ".join(days))

        collected = await self.collect(ctx, days)
        if not collected.ok:
            report.fail(collected.error or "unknown error")
            report.duration = time.monotonic() - started
            return report

        report.extracted = len(collected.items)
        rows: List[Dict[str, Any]] = []
        seen = set()
        stamp = int(now.timestamp() * 1000)
        for deal in collected.items:
            row = deal_to_row(deal, today, tz, stamp)
            while row["slug"] in seen:
                stamp += 1
                row = deal_to_row(deal, today, tz, stamp)
            seen.add(row["slug"])
            rows.append(row)

        if rows:
            async with ctx.session_factory() as session:
                try:
                    removed = await delete_expired_deals(
                        session, DEALS_URL, (now - timedelta(days=1)).astimezone(timezone.utc)
                    )
                    log.info("[%s] cleared %d expired deals", self.slug, removed)
                except SQLAlchemyError as e:
                    await session.rollback()
                    log.warning("[%s] could not clear old deals: %s", self.slug, e)
                report.persisted = await upsert_deals(session, rows, chunk_size=ctx.settings.upsert_chunk_size)
        report.duration = time.monotonic() - started
        log.info("[%s] done: %d deals upserted (%.2fs)", self.slug, report.persisted, report.duration)
        return report

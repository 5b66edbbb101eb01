from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest
from sqlalchemy import select

from conftest import FIXED_NOW, FakeExtractor, count_events, html_handler
from thornton_events.models.deal import Deal
from thornton_events.models.event import Event
from thornton_events.pipeline.errors import ConfigurationError, FetchError
from thornton_events.pipeline.extract import SelectorHtmlExtractor
from thornton_events.pipeline.persist import upsert_deals
from thornton_events.pipeline.result import FAILED, SUCCEEDED
from thornton_events.services.deals import deal_window, list_active_deals
from thornton_events.sources import daily_deals, milehigh
from thornton_events.sources.adams_county import AdamsCountySource
from thornton_events.sources.anythink import AnythinkSource
from thornton_events.sources.daily_deals import DEALS_URL, DailyDealsSource, deal_date, deal_to_row
from thornton_events.sources.eventbrite import EventbriteSource
from thornton_events.sources.eventbrite import event_to_candidate as eventbrite_candidate
from thornton_events.sources.milehigh import MileHighSource, source_id_for
from thornton_events.sources.registry import SOURCES, get_source
from thornton_events.sources.thornton_city import EVENTS_URL, ThorntonCitySource
from thornton_events.sources.ticketmaster import DISCOVERY_URL, TicketmasterSource
from thornton_events.sources.ticketmaster import event_to_candidate as tm_candidate
from thornton_events.sources.ticketmaster import price_text as tm_price
from thornton_events.sources.westminster import WestminsterSource
from thornton_events.utils.config import Settings
from thornton_events.utils.text import stable_uuid

THORNTON_PAGE = EVENTS_URL.split("?")[0]


async def _events(session_factory, **filters):
    async with session_factory() as s:
        stmt = select(Event).order_by(Event.start_time)
        for k, v in filters.items():
            stmt = stmt.where(getattr(Event, k) == v)
        return list((await s.execute(stmt)).scalars())


class TestEnablement:
    def test_required_keys(self, settings):
        assert TicketmasterSource().disabled_reason(Settings()) == "missing TICKETMASTER_API_KEY"
        assert TicketmasterSource().is_enabled(settings)
        assert EventbriteSource().disabled_reason(settings) == "missing EVENTBRITE_API_KEY"
        assert MileHighSource().disabled_reason(Settings(openai_api_key="k")) == "missing TAVILY_API_KEY"

    def test_westminster_needs_force(self, settings):
        src = WestminsterSource()
        assert src.disabled_reason(settings) == "disabled by default"
        assert src.is_enabled(settings, force=True)

    def test_disabled_sources_setting(self):
        s = Settings(openai_api_key="k", disabled_sources=frozenset({"city-thornton"}))
        assert ThorntonCitySource().disabled_reason(s) == "disabled by DISABLED_SOURCES"

    def test_registry(self):
        assert set(SOURCES) == {
            "ticketmaster", "city-thornton", "adams-county", "eventbrite",
            "anythink", "westminster", "milehigh", "daily-deals",
        }
        assert isinstance(get_source("anythink"), AnythinkSource)
        with pytest.raises(ConfigurationError):
            get_source("denver-post")


class TestThorntonCity:
    ITEMS = [
        {"id": "model-made-up", "source_id": "x", "title": "Thorntonfest",
         "start_time": "2026-06-07T10:00:00-06:00", "city": "Denver"},
        {"title": "Harvest Fest", "start_time": "2026-10-03T10:00:00-06:00"},
        {"title": "Something, someday"},
    ]

    async def test_run_persists_normalized_events(self, make_ctx, session_factory):
        extractor = FakeExtractor(self.ITEMS)
        ctx = make_ctx(html_handler({THORNTON_PAGE: "<html>events</html>"}))
        report = await ThorntonCitySource(extractor=extractor).run(ctx)

        assert report.status == SUCCEEDED
        assert (report.extracted, report.dropped, report.persisted) == (3, 1, 2)
        assert extractor.seen == ["<html>events</html>"]

        rows = await _events(session_factory)
        assert [r.title for r in rows] == ["Thorntonfest", "Harvest Fest"]
        fest = rows[0]
        assert fest.id == stable_uuid("city-thornton-thorntonfest")
        assert fest.source_id == "thorntonfest"
        assert fest.city == "Thornton"
        assert fest.source_name == "City of Thornton"
        assert fest.source == "city-thornton"
        assert fest.price_text == "Free"

    async def test_rerun_does_not_duplicate(self, make_ctx, session_factory):
        ctx = make_ctx(html_handler({THORNTON_PAGE: "<html/>"}))
        src = ThorntonCitySource(extractor=FakeExtractor(self.ITEMS))
        await src.run(ctx)
        await src.run(ctx)
        assert await count_events(session_factory) == 2

    async def test_fetch_error_writes_nothing(self, make_ctx, session_factory):
        ctx = make_ctx(lambda r: httpx.Response(503, text="down"))
        extractor = FakeExtractor(self.ITEMS)
        report = await ThorntonCitySource(extractor=extractor).run(ctx)
        assert report.status == FAILED
        assert report.errors[0].startswith("fetch:")
        assert extractor.seen == []
        assert await count_events(session_factory) == 0

    async def test_extraction_error_writes_nothing(self, make_ctx, session_factory):
        ctx = make_ctx(html_handler({THORNTON_PAGE: "<html/>"}))
        report = await ThorntonCitySource(extractor=FakeExtractor(error="not JSON")).run(ctx)
        assert report.status == FAILED
        assert report.errors == ["extract: not JSON"]
        assert await count_events(session_factory) == 0

    async def test_empty_page_is_success(self, make_ctx, session_factory):
        ctx = make_ctx(html_handler({THORNTON_PAGE: "<html/>"}))
        report = await ThorntonCitySource(extractor=FakeExtractor([])).run(ctx)
        assert report.status == SUCCEEDED
        assert report.persisted == 0

    async def test_selector_extractor(self, make_ctx, session_factory):
        page = """
        <div class="event"><h3><a href="/events/movie-night">Movie Night</a></h3>
          <time datetime="2026-06-12T20:00:00-06:00">June 12</time></div>
        <div class="event"><h3><a href="/events/market">Farmers Market</a></h3>
          <time datetime="2026-06-13T08:00:00-06:00">June 13</time></div>
        <div class="event"><time datetime="2026-06-14T08:00:00-06:00">June 14</time></div>
        """
        extractor = SelectorHtmlExtractor(
            "div.event",
            {"title": "h3 a", "url": "h3 a@href", "start_time": "time@datetime"},
            base_url=THORNTON_PAGE,
        )
        ctx = make_ctx(html_handler({THORNTON_PAGE: page}))
        report = await ThorntonCitySource(extractor=extractor).run(ctx)

        assert report.status == SUCCEEDED
        assert (report.extracted, report.persisted) == (2, 2)
        rows = await _events(session_factory)
        assert [r.title for r in rows] == ["Movie Night", "Farmers Market"]
        assert rows[0].url == "https://www.thorntonco.gov/events/movie-night"
        assert {r.source for r in rows} == {"city-thornton"}

    async def test_images_added(self, make_ctx, session_factory):
        async def lookup(title, category):
            return f"https://img.test/{title}.jpg"

        ctx = make_ctx(html_handler({THORNTON_PAGE: "<html/>"}), image_lookup=lookup)
        report = await ThorntonCitySource(extractor=FakeExtractor(self.ITEMS[:1])).run(ctx)
        assert report.with_images == 1
        rows = await _events(session_factory)
        assert rows[0].image_url == "https://img.test/Thorntonfest.jpg"

    def test_prompt_uses_current_year(self):
        prompt = ThorntonCitySource().build_prompt("<p>hi</p>", datetime(2027, 3, 1, tzinfo=timezone.utc))
        assert "2027-MM-DD" in prompt
        assert prompt.endswith("<p>hi</p>")


class TestAdamsCounty:
    async def test_same_title_keeps_last(self, make_ctx, session_factory):
        items = [
            {"title": "Movies in the Park", "start_time": "2026-06-12T20:00:00-06:00"},
            {"title": "Movies in the Park", "start_time": "2026-07-10T20:00:00-06:00"},
        ]
        page = AdamsCountySource.page_url
        ctx = make_ctx(html_handler({page: "<html/>"}))
        report = await AdamsCountySource(extractor=FakeExtractor(items)).run(ctx)
        assert report.persisted == 1
        rows = await _events(session_factory)
        assert rows[0].city == "Brighton"
        assert rows[0].start_time.month == 7
        assert rows[0].url == page


TM_EVENT = {
    "id": "vvG1",
    "name": "Nuggets vs. Lakers",
    "info": "Home game",
    "url": "https://www.ticketmaster.com/event/vvG1",
    "dates": {
        "start": {"dateTime": "2026-02-02T02:00:00Z"},
        "timezone": "America/Denver",
        "status": {"code": "onsale"},
    },
    "classifications": [{"segment": {"name": "Sports"}}],
    "priceRanges": [{"min": 45, "max": 350, "currency": "USD"}],
    "images": [{"url": "https://s1.ticketm.net/dam/a/1.jpg"}],
    "_embedded": {
        "venues": [
            {
                "name": "Ball Arena",
                "city": {"name": "Denver"},
                "state": {"stateCode": "CO"},
                "location": {"latitude": "39.7486", "longitude": "-105.0075"},
            }
        ]
    },
}


class TestTicketmaster:
    def test_mapping(self):
        c = tm_candidate(TM_EVENT)
        assert c["source_id"] == "vvG1"
        assert c["venue"] == "Ball Arena"
        assert c["city"] == "Denver"
        assert c["state"] == "CO"
        assert c["latitude"] == pytest.approx(39.7486)
        assert c["category"] == "Sports"
        assert c["price_text"] == "45-350 USD"
        assert c["status"] == "active"

    def test_cancelled(self):
        ev = dict(TM_EVENT, dates={"start": {"dateTime": "2026-02-02T02:00:00Z"}, "status": {"code": "cancelled"}})
        assert tm_candidate(ev)["status"] == "canceled"

    def test_price(self):
        assert tm_price(None) is None
        assert tm_price([{"max": 20, "currency": "USD"}]) == "20 USD"
        assert tm_price([{"min": 0, "max": 15, "currency": "USD"}]) == "0-15 USD"
        assert tm_price([{"min": 10, "currency": "USD"}]) == "10 USD"

    async def test_pages_until_last(self, make_ctx, session_factory):
        pages_seen = []

        def handler(request):
            assert f"https://{request.url.host}{request.url.path}" == DISCOVERY_URL
            assert request.url.params["apikey"] == "tm-test"
            page = int(request.url.params["page"])
            pages_seen.append(page)
            ev = dict(TM_EVENT, id=f"ev{page}", name=f"Show {page}")
            return httpx.Response(
                200, json={"_embedded": {"events": [ev]}, "page": {"number": page, "totalPages": 2}}
            )

        report = await TicketmasterSource().run(make_ctx(handler))
        assert pages_seen == [0, 1]
        assert report.persisted == 2
        rows = await _events(session_factory, source_name="ticketmaster")
        assert {r.source_id for r in rows} == {"ev0", "ev1"}
        assert rows[0].category == "Sports"

    async def test_no_results(self, make_ctx):
        report = await TicketmasterSource().run(make_ctx(lambda r: httpx.Response(200, json={"page": {}})))
        assert report.status == SUCCEEDED
        assert report.extracted == 0

    async def test_bad_key_fails(self, make_ctx):
        report = await TicketmasterSource().run(make_ctx(lambda r: httpx.Response(401, json={"fault": {}})))
        assert report.status == FAILED


class TestEventbrite:
    def test_mapping(self):
        c = eventbrite_candidate(
            {
                "id": 778,
                "name": {"text": "Craft Fair"},
                "description": {"text": "Handmade goods"},
                "start": {"utc": "2026-03-07T17:00:00Z", "timezone": "America/Denver"},
                "end": {"utc": "2026-03-07T23:00:00Z"},
                "venue": {"name": "Thornton Arts", "address": {"city": "Thornton", "region": "CO"}},
                "is_free": False,
                "ticket_availability": {"minimum_ticket_price": {"currency": "USD", "major_value": "5.00"}},
                "logo": {"original": {"url": "https://img.evbuc.com/1.jpg"}},
            }
        )
        assert c["source_id"] == "778"
        assert c["title"] == "Craft Fair"
        assert c["price_text"] == "From USD 5.00"
        assert c["image_url"] == "https://img.evbuc.com/1.jpg"

    def test_free(self):
        assert eventbrite_candidate({"id": 1, "is_free": True})["price_text"] == "Free"


class TestMileHigh:
    def test_source_id_one_dash_per_char(self):
        assert source_id_for("Kids' Fishing Day!", "2026-05-02") == "mhoc-kids--fishing-day--2026-05-02"
        assert source_id_for("Expo", None) == "mhoc-expo-nodate"

    def test_prepare(self):
        c = MileHighSource().prepare(
            {"title": "Free Day at DMNS", "date": "2026-02-08", "isFree": True, "endTime": "17:00"}
        )
        assert c["start_time"] == "2026-02-08T09:00:00"
        assert c["end_time"] == "2026-02-08T17:00:00"
        assert c["price_text"] == "FREE"
        assert c["category"] == "Free Events"
        assert c["source_id"] == "mhoc-free-day-at-dmns-2026-02-08"

    def test_prepare_without_date(self):
        assert MileHighSource().prepare({"title": "Someday"})["start_time"] is None

    async def test_run(self, make_ctx, session_factory, monkeypatch):
        async def fake_extract(url, *, api_key):
            assert api_key == "tvly-test"
            return "page text"

        monkeypatch.setattr(milehigh, "extract_page_content", fake_extract)
        items = [
            {"title": "Winter Lights", "date": "2026-01-24", "startTime": "17:30", "price": "$5", "city": "Denver"},
            {"title": "No date"},
        ]
        report = await MileHighSource(extractor=FakeExtractor(items)).run(make_ctx())
        assert (report.persisted, report.dropped) == (1, 1)
        rows = await _events(session_factory, source_name="milehighonthecheap")
        assert rows[0].source_id == "mhoc-winter-lights-2026-01-24"
        # 17:30 MST
        assert rows[0].start_time.replace(tzinfo=None) == datetime(2026, 1, 25, 0, 30)


FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Anythink</title>
<item>
  <title>Past Story Time</title>
  <link>https://events.anythinklibraries.org/event/100</link>
  <description>Monday, January 19 2026 10:00am - 11:00am Anythink Brighton</description>
  <pubDate>Mon, 12 Jan 2026 12:00:00 +0000</pubDate>
</item>
<item>
  <title>Lego Club</title>
  <link>https://events.anythinklibraries.org/event/101</link>
  <description>Saturday, January 24 2026 2:00pm - 3:30pm Anythink Wright Farms</description>
  <pubDate>Mon, 12 Jan 2026 12:00:00 +0000</pubDate>
</item>
</channel></rss>"""


class TestAnythink:
    async def test_run_keeps_future_events_and_og_images(self, make_ctx, session_factory):
        pages = {
            "https://events.anythinklibraries.org/feeds": FEED,
            "https://events.anythinklibraries.org/event/101":
                '<html><head><meta property="og:image" content="https://cdn.test/lego.jpg"></head></html>',
        }
        report = await AnythinkSource().run(make_ctx(html_handler(pages)))
        assert report.status == SUCCEEDED
        assert report.extracted == 2
        assert report.persisted == 1
        rows = await _events(session_factory, source_name="Anythink Libraries")
        assert len(rows) == 1
        lego = rows[0]
        assert lego.source_id == "101"
        assert lego.city == "Thornton"
        assert lego.category == "Library"
        assert lego.image_url == "https://cdn.test/lego.jpg"
        assert lego.start_time.replace(tzinfo=None) == datetime(2026, 1, 24, 21, 0)

    async def test_missing_og_image_is_fine(self, make_ctx, session_factory):
        pages = {"https://events.anythinklibraries.org/feeds": FEED}
        report = await AnythinkSource().run(make_ctx(html_handler(pages)))
        assert report.status == SUCCEEDED
        rows = await _events(session_factory)
        assert rows[0].image_url is None


class TestDailyDeals:
    TZ = ZoneInfo("America/Denver")
    TUESDAY = date(2026, 1, 20)

    def test_deal_date(self):
        assert deal_date("Tuesday", self.TUESDAY) == self.TUESDAY
        assert deal_date("wednesday", self.TUESDAY) == date(2026, 1, 21)
        assert deal_date(None, self.TUESDAY) == date(2026, 1, 21)

    def test_row(self):
        row = deal_to_row(
            {"dayOfWeek": "Tuesday", "businessName": "Tacos & Co.", "discountAmount": "Kids Eat Free",
             "description": "One free kids meal", "times": "All Day", "conditions": "Dine-in only"},
            self.TUESDAY, self.TZ, 42,
        )
        assert row["slug"] == "tacos---co--tuesday-42"
        assert row["deal_type"] == "freebie"
        assert row["title"] == "Kids Eat Free at Tacos & Co."
        assert row["description"] == "One free kids meal Available All Day. Dine-in only."
        assert row["start_date"] == datetime(2026, 1, 20, 0, 0, tzinfo=self.TZ)
        assert row["end_date"] == datetime(2026, 1, 20, 23, 59, 59, tzinfo=self.TZ)
        assert row["url"] == DEALS_URL

    def test_discount_type(self):
        row = deal_to_row({"dayOfWeek": "Wednesday", "discountAmount": "50% Off"}, self.TUESDAY, self.TZ, 1)
        assert row["deal_type"] == "discount"
        assert row["business_name"] == "Local Restaurant"
        assert row["start_date"].date() == date(2026, 1, 21)

    async def test_stored_window_is_utc(self, session_factory):
        row = deal_to_row(
            {"dayOfWeek": "Tuesday", "businessName": "Taco Spot", "discountAmount": "$1 Tacos"},
            self.TUESDAY, self.TZ, 1,
        )
        assert row["end_date"].tzinfo is timezone.utc
        async with session_factory() as s:
            await upsert_deals(s, [row])

        # 8pm Tuesday in Denver
        now = datetime(2026, 1, 21, 3, 0, tzinfo=timezone.utc)
        async with session_factory() as s:
            deals = await list_active_deals(s, now=now)
        assert [d.slug for d in deals] == ["taco-spot-tuesday-1"]
        window = deal_window(deals[0].end_date, now)
        assert window.expired is False
        assert window.days_left == 1

    async def test_run(self, make_ctx, session_factory, monkeypatch):
        async def fake_extract(url, *, api_key):
            assert url == DEALS_URL
            return "deals text"

        monkeypatch.setattr(daily_deals, "extract_page_content", fake_extract)
        items = [
            {"dayOfWeek": "Tuesday", "businessName": "Pizza Place", "title": "Half-price pizza",
             "discountAmount": "50% Off"},
            {"dayOfWeek": "Tuesday", "businessName": "Pizza Place", "title": "Kids eat free",
             "discountAmount": "Kids Eat Free"},
        ]
        report = await DailyDealsSource(extractor=FakeExtractor(items)).run(make_ctx())
        assert report.status == SUCCEEDED
        assert report.persisted == 2
        async with session_factory() as s:
            deals = list((await s.execute(select(Deal).order_by(Deal.title))).scalars())
        assert [d.title for d in deals] == ["Half-price pizza", "Kids eat free"]
        assert len({d.slug for d in deals}) == 2

    async def test_fetch_failure(self, make_ctx, monkeypatch):
        async def fake_extract(url, *, api_key):
            raise FetchError("No content extracted")

        monkeypatch.setattr(daily_deals, "extract_page_content", fake_extract)
        report = await DailyDealsSource(extractor=FakeExtractor([])).run(make_ctx())
        assert report.status == FAILED
        assert "No content extracted" in report.errors[0]


def test_fixed_clock_is_a_tuesday_in_denver():
    assert FIXED_NOW.astimezone(ZoneInfo("America/Denver")).strftime("%A") == "Tuesday"

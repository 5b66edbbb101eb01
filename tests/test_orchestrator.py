import json

from conftest import FakeExtractor, count_events, html_handler
from thornton_events.pipeline.orchestrator import RunSummary, _parse_child_report, run_all, run_isolated, run_source
from thornton_events.pipeline.result import DISABLED, FAILED, SUCCEEDED
from thornton_events.sources.adams_county import AdamsCountySource
from thornton_events.sources.anythink import AnythinkSource
from thornton_events.sources.base import Source
from thornton_events.sources.thornton_city import EVENTS_URL, ThorntonCitySource
from thornton_events.sources.westminster import WestminsterSource
from thornton_events.utils.config import Settings

ITEM = {"title": "Thorntonfest", "start_time": "2026-06-07T10:00:00-06:00"}


class Exploding(Source):
    slug = "exploding"
    name = "Exploding"

    async def run(self, ctx):
        raise RuntimeError("boom")


class TestRunAll:
    async def test_one_failure_does_not_stop_the_rest(self, make_ctx, session_factory):
        # Westminster is forced off, Adams County's page is missing
        pages = {EVENTS_URL.split("?")[0]: "<html/>"}
        ctx = make_ctx(html_handler(pages))
        sources = [
            ThorntonCitySource(extractor=FakeExtractor([ITEM])),
            AdamsCountySource(extractor=FakeExtractor([ITEM])),
            WestminsterSource(extractor=FakeExtractor([ITEM])),
        ]
        summary = await run_all(sources, ctx)

        assert [r.source for r in summary.succeeded] == ["city-thornton"]
        assert [r.source for r in summary.failed] == ["adams-county"]
        assert [r.source for r in summary.disabled] == ["westminster"]
        assert await count_events(session_factory, source="city-thornton") == 1
        assert await count_events(session_factory, source="adams-county") == 0

    async def test_two_succeed_one_fetch_fails(self, make_ctx, session_factory):
        pages = {EVENTS_URL.split("?")[0]: "<html/>", AdamsCountySource.page_url: "<html/>"}
        ctx = make_ctx(html_handler(pages))
        # the Anythink feed is not served, so its fetch gets a 404
        sources = [
            ThorntonCitySource(extractor=FakeExtractor([ITEM])),
            AnythinkSource(),
            AdamsCountySource(extractor=FakeExtractor([ITEM])),
        ]
        summary = await run_all(sources, ctx)

        assert (len(summary.succeeded), len(summary.failed), len(summary.disabled)) == (2, 1, 0)
        assert summary.reports["anythink"].errors[0].startswith("fetch:")
        assert await count_events(session_factory, source="city-thornton") == 1
        assert await count_events(session_factory, source="adams-county") == 1

    async def test_siblings_all_persist(self, make_ctx, session_factory):
        pages = {EVENTS_URL.split("?")[0]: "<html/>", AdamsCountySource.page_url: "<html/>"}
        ctx = make_ctx(html_handler(pages))
        summary = await run_all(
            [
                ThorntonCitySource(extractor=FakeExtractor([ITEM])),
                AdamsCountySource(extractor=FakeExtractor([ITEM])),
                Exploding(),
            ],
            ctx,
            max_concurrency=1,
        )
        assert len(summary.succeeded) == 2
        assert summary.reports["exploding"].status == FAILED
        assert summary.reports["exploding"].errors == ["RuntimeError: boom"]
        assert await count_events(session_factory) == 2

    async def test_missing_key_is_disabled(self, make_ctx, session_factory):
        ctx = make_ctx(settings_override=Settings())
        extractor = FakeExtractor([ITEM])
        report = await run_source(ThorntonCitySource(extractor=extractor), ctx)
        assert report.status == DISABLED
        assert report.errors == ["missing OPENAI_API_KEY"]
        assert extractor.seen == []

    async def test_force_runs_default_off_source(self, make_ctx):
        page = WestminsterSource.page_url
        ctx = make_ctx(html_handler({page: "<html/>"}))
        report = await run_source(WestminsterSource(extractor=FakeExtractor([ITEM])), ctx, force=True)
        assert report.status == SUCCEEDED
        assert report.persisted == 1

    def test_summary_dict(self):
        summary = RunSummary()
        assert summary.as_dict() == {"succeeded": 0, "failed": 0, "disabled": 0, "duration": 0.0, "sources": []}


class TestChildProcesses:
    def test_parse_report_line(self):
        line = json.dumps({"source": "anythink", "status": "succeeded", "extracted": 4, "persisted": 3})
        report = _parse_child_report("anythink", f"log noise\n{line}\n".encode(), 0)
        assert report.status == SUCCEEDED
        assert report.persisted == 3
        assert report.exit_code == 0

    def test_nonzero_exit_is_failure(self):
        line = json.dumps({"status": "succeeded"})
        report = _parse_child_report("anythink", line.encode(), 2)
        assert report.status == FAILED
        assert report.errors == ["exited with code 2"]

    def test_no_report(self):
        report = _parse_child_report("anythink", b"Traceback ...\n{not json", 1)
        assert report.status == FAILED

    async def test_isolated_run(self, settings):
        # a child that prints a fixed report instead of ingesting anything
        def command(slug):
            payload = json.dumps({"source": slug, "status": "succeeded", "persisted": 5})
            return ["sh", "-c", f"echo '{payload}'"]

        sources = [ThorntonCitySource(), WestminsterSource()]
        summary = await run_isolated(sources, settings, command=command)
        assert summary.reports["city-thornton"].status == SUCCEEDED
        assert summary.reports["city-thornton"].persisted == 5
        assert summary.reports["westminster"].status == DISABLED

    async def test_isolated_crash(self, settings):
        summary = await run_isolated([ThorntonCitySource()], settings, command=lambda slug: ["sh", "-c", "exit 3"])
        report = summary.reports["city-thornton"]
        assert report.status == FAILED
        assert report.exit_code == 3

"""
Command line entry point.

    thornton-events ingest city-thornton
    thornton-events ingest-all [--isolated]
    thornton-events check-events
    thornton-events init-db
    thornton-events search-deals --location "Thornton, CO" [--import]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import asc, select

from thornton_events.db import create_all, make_engine, make_session_factory
from thornton_events.models.event import Event
from thornton_events.pipeline.errors import ConfigurationError, IngestError
from thornton_events.pipeline.orchestrator import RunSummary, run_all, run_isolated, run_source
from thornton_events.pipeline.result import DISABLED
from thornton_events.services.deals import import_external_deal, search_external_deals
from thornton_events.services.fetch import make_client
from thornton_events.services.images import make_image_lookup
from thornton_events.sources.base import IngestContext
from thornton_events.sources.registry import SOURCES, all_sources, get_source
from thornton_events.utils.config import Settings
from thornton_events.utils.text import shorten

log = logging.getLogger("thornton_events")


def _require_db(settings: Settings) -> None:
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL is not set")


@asynccontextmanager
async def open_context(settings: Settings) -> AsyncIterator[IngestContext]:
    _require_db(settings)
    engine = make_engine(settings.database_url)
    try:
        async with make_client(timeout=settings.http_timeout) as http:
            yield IngestContext(
                settings=settings,
                session_factory=make_session_factory(engine),
                http=http,
                image_lookup=make_image_lookup(settings, http),
            )
    finally:
        await engine.dispose()


def print_summary(summary: RunSummary) -> None:
    line = "=" * 50
    print(line)
    print("Aggregation Summary")
    print(line)
    for r in summary.reports.values():
        detail = "; ".join(r.errors) if r.errors else f"{r.persisted} upserted, {r.dropped} dropped"
        print(f"  {r.source:<15} {r.status:<10} {detail}")
    print(f"Successful: {len(summary.succeeded)}")
    print(f"Failed: {len(summary.failed)}")
    print(f"Disabled: {len(summary.disabled)}")
    print(f"Total time: {summary.duration:.2f}s")
    if summary.failed:
        print("Some sources failed. Check logs above for details.")


# ---------- Commands ----------
async def cmd_ingest(args, settings: Settings) -> int:
    source = get_source(args.source)
    async with open_context(settings) as ctx:
        report = await run_source(source, ctx, force=args.force)
    if args.report_json:
        print(json.dumps(report.as_dict()))
    if report.status == DISABLED:
        log.error("[%s] not run: %s", report.source, "; ".join(report.errors))
        return 1
    return 0 if report.succeeded else 1


async def cmd_ingest_all(args, settings: Settings) -> int:
    _require_db(settings)
    sources = [get_source(s) for s in args.only] if args.only else all_sources()
    if not any(s.is_enabled(settings) for s in sources):
        log.error("No event sources enabled. Configure API keys in .env")
        return 1
    if args.isolated:
        summary = await run_isolated(sources, settings, max_concurrency=args.concurrency)
    else:
        async with open_context(settings) as ctx:
            summary = await run_all(sources, ctx, max_concurrency=args.concurrency)
    print_summary(summary)
    return 0


async def cmd_check_events(args, settings: Settings) -> int:
    _require_db(settings)
    engine = make_engine(settings.database_url)
    now = datetime.now(timezone.utc)
    try:
        async with make_session_factory(engine)() as db:
            stmt = select(Event).where(Event.start_time >= now)
            if args.source:
                stmt = stmt.where(Event.source == args.source)
            rows = (await db.execute(stmt.order_by(asc(Event.start_time)).limit(args.limit))).scalars().all()
    finally:
        await engine.dispose()

    print(f"Current date: {now.isoformat()}")
    print("=" * 80)
    print(f"Future events: {len(rows)}")
    print("=" * 80)
    for e in rows:
        print(f"{shorten(e.title, 50):<53} | {e.start_time:%m/%d/%Y} | {(e.source or 'null'):<15} | {e.source_name}")
    return 0


async def cmd_init_db(args, settings: Settings) -> int:
    _require_db(settings)
    engine = make_engine(settings.database_url)
    try:
        await create_all(engine)
    finally:
        await engine.dispose()
    log.info("tables created")
    return 0


async def cmd_search_deals(args, settings: Settings) -> int:
    if not settings.tavily_api_key:
        raise ConfigurationError("TAVILY_API_KEY is not set")
    deals = await search_external_deals(
        args.location, args.query, api_key=settings.tavily_api_key, max_results=args.max_results
    )
    for d in deals:
        extra = f" [{d.discount_amount}]" if d.discount_amount else ""
        print(f"- {shorten(d.title, 60)}{extra} ({d.source}) {d.original_url}")
    if args.do_import and deals:
        _require_db(settings)
        engine = make_engine(settings.database_url)
        try:
            async with make_session_factory(engine)() as db:
                for d in deals:
                    row = await import_external_deal(db, d)
                    print(f"  imported {row.slug}")
        finally:
            await engine.dispose()
    return 0


COMMANDS = {
    "ingest": cmd_ingest,
    "ingest-all": cmd_ingest_all,
    "check-events": cmd_check_events,
    "init-db": cmd_init_db,
    "search-deals": cmd_search_deals,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="thornton-events")
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"),
                   help="logging level (default: INFO or $LOG_LEVEL)")
    sub = p.add_subparsers(dest="command", required=True)

    ing = sub.add_parser("ingest", help="run one source")
    ing.add_argument("source", choices=sorted(SOURCES))
    ing.add_argument("--force", action="store_true", help="run a source that is off by default")
    ing.add_argument("--report-json", action="store_true", help="print the run report as one JSON line")

    alls = sub.add_parser("ingest-all", help="run every enabled source")
    alls.add_argument("--isolated", action="store_true", help="one child process per source")
    alls.add_argument("--only", nargs="+", choices=sorted(SOURCES), metavar="SOURCE")
    alls.add_argument("--concurrency", type=int, default=None)

    chk = sub.add_parser("check-events", help="list upcoming events in the database")
    chk.add_argument("--limit", type=int, default=30)
    chk.add_argument("--source", default=None)

    sub.add_parser("init-db", help="create tables from the ORM models")

    sd = sub.add_parser("search-deals", help="search the web for local deals")
    sd.add_argument("--location", default="Thornton, CO")
    sd.add_argument("--query", default="deals")
    sd.add_argument("--max-results", type=int, default=10)
    sd.add_argument("--import", dest="do_import", action="store_true", help="insert every result as a deal")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        # stdout carries the summary / --report-json line
        stream=sys.stderr,
    )
    settings = Settings.from_env()
    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except IngestError as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

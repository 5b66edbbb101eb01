from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thornton_events.pipeline.errors import ExtractionError, FetchError
from thornton_events.pipeline.extract import AiHtmlExtractor, Candidate, HtmlExtractor
from thornton_events.pipeline.normalize import CanonicalEvent, SourceProfile, normalize_batch
from thornton_events.pipeline.persist import upsert_events
from thornton_events.pipeline.result import SourceReport, StepResult
from thornton_events.services.fetch import fetch_text
from thornton_events.services.images import ImageLookup, add_images_to_events
from thornton_events.utils.config import Settings

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestContext:
    """Handles a source run needs; built once by the CLI/orchestrator, faked in tests."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    http: httpx.AsyncClient
    image_lookup: Optional[ImageLookup] = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    now: Callable[[], datetime] = field(default=_utcnow)


class Source:
    """One external provider. Subclasses implement ``run``."""

    slug: str = ""
    name: str = ""
    # Settings attributes that must be non-empty for the source to run
    required: Sequence[str] = ()
    default_enabled: bool = True

    def disabled_reason(self, settings: Settings, *, force: bool = False) -> Optional[str]:
        """Why this source will not run, or None. ``force`` only overrides the default-off flag."""
        if not self.default_enabled and not force:
            return "disabled by default"
        if self.slug in settings.disabled_sources:
            return "disabled by DISABLED_SOURCES"
        missing = [r for r in self.required if not settings.has(r)]
        if missing:
            return "missing " + ", ".join(m.upper() for m in missing)
        return None

    def is_enabled(self, settings: Settings, *, force: bool = False) -> bool:
        return self.disabled_reason(settings, force=force) is None

    async def run(self, ctx: IngestContext) -> SourceReport:
        raise NotImplementedError


class EventSource(Source):
    """
    fetch -> extract -> normalize -> select -> [images] -> upsert.

    Fetch/extract problems come back as a failed StepResult and end the run
    with nothing written. Persistence errors propagate to the caller.
    """

    profile: SourceProfile
    enrich_images: bool = False

    def __init__(self) -> None:
        self.slug = self.profile.slug
        self.name = self.name or self.profile.source_name

    async def fetch(self, ctx: IngestContext) -> Any:
        raise NotImplementedError

    async def extract(self, ctx: IngestContext, raw: Any) -> List[Candidate]:
        raise NotImplementedError

    async def collect(self, ctx: IngestContext) -> StepResult[Candidate]:
        try:
            raw = await self.fetch(ctx)
        except FetchError as e:
            log.warning("[%s] fetch failed: %s", self.slug, e)
            return StepResult.failure(f"fetch: {e}")
        try:
            items = await self.extract(ctx, raw)
        except ExtractionError as e:
            log.warning("[%s] extraction failed: %s", self.slug, e)
            return StepResult.failure(f"extract: {e}")
        return StepResult.success(items)

    def select(self, ctx: IngestContext, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        return events

    async def enrich(self, ctx: IngestContext, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        if not self.enrich_images:
            return events
        opts = ctx.settings.images
        return await add_images_to_events(
            events,
            ctx.image_lookup,
            delay_seconds=opts.delay_seconds,
            max_events=opts.max_events,
            sleep=ctx.sleep,
        )

    async def persist(self, ctx: IngestContext, events: List[CanonicalEvent]) -> int:
        if not events:
            return 0
        async with ctx.session_factory() as session:
            return await upsert_events(session, events, chunk_size=ctx.settings.upsert_chunk_size)

    async def run(self, ctx: IngestContext) -> SourceReport:
        started = time.monotonic()
        report = SourceReport(source=self.slug)
        log.info("Starting %s ingestion", self.name)

        collected = await self.collect(ctx)
        if not collected.ok:
            report.fail(collected.error or "unknown error")
            report.duration = time.monotonic() - started
            return report

        report.extracted = len(collected.items)
        events, report.dropped = normalize_batch(collected.items, self.profile)
        events = self.select(ctx, events)
        if not events:
            log.info("[%s] no events to upsert", self.slug)
        else:
            events = await self.enrich(ctx, events)
            report.persisted = await self.persist(ctx, events)
            report.with_images = sum(1 for e in events if e.image_url)
        report.duration = time.monotonic() - started
        log.info(
            "[%s] done: %d extracted, %d dropped, %d upserted, %d with images (%.2fs)",
            self.slug, report.extracted, report.dropped, report.persisted, report.with_images, report.duration,
        )
        return report


class AiPageSource(EventSource):
    """A public HTML page read by the chat model (or any injected HtmlExtractor)."""

    page_url: str = ""
    max_chars: int = 50_000
    system_prompt: Optional[str] = None
    json_mode: bool = False
    list_key: Optional[str] = None
    required = ("openai_api_key",)
    enrich_images = True

    def __init__(self, extractor: Optional[HtmlExtractor] = None) -> None:
        super().__init__()
        self._extractor = extractor

    def build_prompt(self, html: str, now: datetime) -> str:
        raise NotImplementedError

    def extractor(self, ctx: IngestContext) -> HtmlExtractor:
        if self._extractor is not None:
            return self._extractor
        kwargs: Dict[str, Any] = {}
        if self.system_prompt:
            kwargs["system"] = self.system_prompt
        now = ctx.now()
        return AiHtmlExtractor(
            lambda html: self.build_prompt(html, now),
            api_key=ctx.settings.openai_api_key,
            model=ctx.settings.openai_model,
            max_chars=self.max_chars,
            json_mode=self.json_mode,
            list_key=self.list_key,
            **kwargs,
        )

    async def fetch(self, ctx: IngestContext) -> str:
        return await fetch_text(ctx.http, self.page_url)

    def prepare(self, candidate: Candidate) -> Candidate:
        return candidate

    async def extract(self, ctx: IngestContext, raw: str) -> List[Candidate]:
        out = []
        for c in await self.extractor(ctx).extract(raw):
            # identity is always derived locally, never taken from model output
            c.pop("id", None)
            c.pop("source_id", None)
            out.append(self.prepare(c))
        return out

"""
Run every source independently and aggregate the outcome.

Sources run as tasks in one event loop, at most ``max_concurrency`` at a
time. With ``isolated=True`` each source runs in its own child process
(``thornton-events ingest <slug> --report-json``) instead. Either way a
failing source is recorded and never stops its siblings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from thornton_events.pipeline.result import DISABLED, FAILED, SUCCEEDED, SourceReport
from thornton_events.sources.base import IngestContext, Source
from thornton_events.utils.config import Settings

log = logging.getLogger(__name__)


@dataclass
class RunSummary:
    reports: Dict[str, SourceReport] = field(default_factory=dict)
    duration: float = 0.0

    def _with(self, status: str) -> List[SourceReport]:
        return [r for r in self.reports.values() if r.status == status]

    @property
    def succeeded(self) -> List[SourceReport]:
        return self._with(SUCCEEDED)

    @property
    def failed(self) -> List[SourceReport]:
        return self._with(FAILED)

    @property
    def disabled(self) -> List[SourceReport]:
        return self._with(DISABLED)

    def as_dict(self) -> dict:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "disabled": len(self.disabled),
            "duration": round(self.duration, 2),
            "sources": [r.as_dict() for r in self.reports.values()],
        }


def disabled_report(source: Source, reason: str) -> SourceReport:
    return SourceReport(source=source.slug, status=DISABLED, errors=[reason])


async def run_source(source: Source, ctx: IngestContext, *, force: bool = False) -> SourceReport:
    """One source, never raising: disabled sources are reported, crashes become failures."""
    reason = source.disabled_reason(ctx.settings, force=force)
    if reason:
        log.info("[%s] skipped: %s", source.slug, reason)
        return disabled_report(source, reason)
    started = time.monotonic()
    try:
        return await source.run(ctx)
    except Exception as e:
        log.exception("[%s] ingestion failed", source.slug)
        report = SourceReport(source=source.slug).fail(f"{type(e).__name__}: {e}")
        report.duration = time.monotonic() - started
        return report


async def run_all(
    sources: Sequence[Source], ctx: IngestContext, *, max_concurrency: Optional[int] = None
) -> RunSummary:
    started = time.monotonic()
    sem = asyncio.Semaphore(max(1, max_concurrency or ctx.settings.max_concurrency))

    async def bounded(source: Source) -> SourceReport:
        async with sem:
            return await run_source(source, ctx)

    enabled = [s.slug for s in sources if s.is_enabled(ctx.settings)]
    log.info("Enabled sources: %s", ", ".join(enabled) or "none")
    reports = await asyncio.gather(*(bounded(s) for s in sources))
    summary = RunSummary({r.source: r for r in reports}, time.monotonic() - started)
    log.info(
        "Aggregation done: %d succeeded, %d failed, %d disabled in %.2fs",
        len(summary.succeeded), len(summary.failed), len(summary.disabled), summary.duration,
    )
    return summary


def child_command(slug: str) -> List[str]:
    return [sys.executable, "-m", "thornton_events.cli", "ingest", slug, "--report-json"]


def _parse_child_report(slug: str, stdout: bytes, code: int) -> SourceReport:
    report = SourceReport(source=slug)
    for line in reversed(stdout.decode(errors="replace").splitlines()):
        line = line.strip()
        if line.startswith("{"):
            try:
                data = json.loads(line)
            except ValueError:
                break
            report = SourceReport(
                source=slug,
                status=data.get("status", FAILED),
                extracted=data.get("extracted", 0),
                dropped=data.get("dropped", 0),
                persisted=data.get("persisted", 0),
                with_images=data.get("with_images", 0),
                errors=list(data.get("errors") or []),
                duration=data.get("duration", 0.0),
            )
            break
    report.exit_code = code
    if code != 0 and report.succeeded:
        report.fail(f"exited with code {code}")
    return report


async def run_isolated(
    sources: Sequence[Source],
    settings: Settings,
    *,
    max_concurrency: Optional[int] = None,
    command=child_command,
) -> RunSummary:
    """Same contract as ``run_all`` but every enabled source gets its own process."""
    started = time.monotonic()
    sem = asyncio.Semaphore(max(1, max_concurrency or settings.max_concurrency))

    async def spawn(source: Source) -> SourceReport:
        reason = source.disabled_reason(settings)
        if reason:
            return disabled_report(source, reason)
        async with sem:
            t0 = time.monotonic()
            log.info("Starting %s ingestion (child process)", source.slug)
            try:
                proc = await asyncio.create_subprocess_exec(*command(source.slug), stdout=asyncio.subprocess.PIPE)
            except OSError as e:
                return SourceReport(source=source.slug).fail(f"could not start: {e}")
            stdout, _ = await proc.communicate()
            report = _parse_child_report(source.slug, stdout, proc.returncode)
            report.duration = report.duration or time.monotonic() - t0
            if report.succeeded:
                log.info("%s completed in %.2fs", source.slug, report.duration)
            else:
                log.error("%s failed with code %s", source.slug, proc.returncode)
            return report

    reports = await asyncio.gather(*(spawn(s) for s in sources))
    return RunSummary({r.source: r for r in reports}, time.monotonic() - started)

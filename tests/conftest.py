from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from thornton_events.db import Base, make_session_factory
from thornton_events.models import article, deal, event  # noqa: F401
from thornton_events.models.event import Event
from thornton_events.pipeline.errors import ExtractionError
from thornton_events.sources.base import IngestContext
from thornton_events.utils.config import ImageOptions, Settings

FIXED_NOW = datetime(2026, 1, 20, 17, 0, tzinfo=timezone.utc)


class FakeExtractor:
    """Fixed-output HtmlExtractor; records the html it was given."""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None, error: Optional[str] = None):
        self.items = items or []
        self.error = error
        self.seen: List[str] = []

    async def extract(self, html: str) -> List[Dict[str, Any]]:
        self.seen.append(html)
        if self.error:
            raise ExtractionError(self.error)
        return [dict(i) for i in self.items]


async def no_sleep(_seconds: float) -> None:
    return None


def html_handler(pages: Dict[str, str]):
    """MockTransport handler serving ``pages`` by URL (query string ignored); 404 otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if url in pages:
            return httpx.Response(200, text=pages[url])
        return httpx.Response(404, text="not found")

    return handler


async def count_events(session_factory, **filters) -> int:
    async with session_factory() as s:
        stmt = select(func.count()).select_from(Event)
        for k, v in filters.items():
            stmt = stmt.where(getattr(Event, k) == v)
        return (await s.execute(stmt)).scalar_one()


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite://",
        openai_api_key="sk-test",
        tavily_api_key="tvly-test",
        ticketmaster_api_key="tm-test",
        images=ImageOptions(delay_seconds=0, max_events=40),
    )


@pytest.fixture
async def make_ctx(settings, session_factory):
    clients: List[httpx.AsyncClient] = []

    def build(handler=None, *, settings_override: Optional[Settings] = None, image_lookup=None) -> IngestContext:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler or html_handler({})))
        clients.append(client)
        return IngestContext(
            settings=settings_override or settings,
            session_factory=session_factory,
            http=client,
            image_lookup=image_lookup,
            sleep=no_sleep,
            now=lambda: FIXED_NOW,
        )

    yield build
    for c in clients:
        await c.aclose()

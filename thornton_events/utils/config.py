from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
TAVILY_API_KEY = os.getenv("TAVILY_API_KEY")
TICKETMASTER_API_KEY = os.getenv("TICKETMASTER_API_KEY", "")
EVENTBRITE_API_KEY = os.getenv("EVENTBRITE_API_KEY", "")
UNSPLASH_ACCESS_KEY = os.getenv("UNSPLASH_ACCESS_KEY", "")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]


def _split(raw: Optional[str]) -> FrozenSet[str]:
    return frozenset(s.strip().lower() for s in (raw or "").split(",") if s.strip())


@dataclass(frozen=True)
class ImageOptions:
    preferred_source: str = "unsplash"   # unsplash | dalle | auto
    delay_seconds: float = 1.2           # Unsplash free tier: 50 req/hour
    max_events: int = 40
    use_fallback: bool = False


@dataclass(frozen=True)
class Settings:
    """Everything an ingestion run needs, resolved once at startup."""

    database_url: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    tavily_api_key: str = ""
    ticketmaster_api_key: str = ""
    eventbrite_api_key: str = ""
    unsplash_access_key: str = ""
    timezone: str = "America/Denver"
    http_timeout: float = 20.0
    upsert_chunk_size: int = 500
    max_concurrency: int = 4
    disabled_sources: FrozenSet[str] = frozenset()
    images: ImageOptions = field(default_factory=ImageOptions)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=DATABASE_URL,
            openai_api_key=OPENAI_API_KEY,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            tavily_api_key=TAVILY_API_KEY or "",
            ticketmaster_api_key=TICKETMASTER_API_KEY,
            eventbrite_api_key=EVENTBRITE_API_KEY,
            unsplash_access_key=UNSPLASH_ACCESS_KEY,
            timezone=os.getenv("EVENTS_TIMEZONE", "America/Denver"),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "20")),
            upsert_chunk_size=int(os.getenv("UPSERT_CHUNK_SIZE", "500")),
            max_concurrency=int(os.getenv("INGEST_CONCURRENCY", "4")),
            disabled_sources=_split(os.getenv("DISABLED_SOURCES")),
            images=ImageOptions(
                preferred_source=os.getenv("IMAGE_SOURCE", "unsplash"),
                delay_seconds=float(os.getenv("IMAGE_DELAY_SECONDS", "1.2")),
                max_events=int(os.getenv("IMAGE_MAX_EVENTS", "40")),
                use_fallback=os.getenv("IMAGE_USE_FALLBACK", "").lower() in {"1", "true", "yes"},
            ),
        )

    def has(self, name: str) -> bool:
        return bool(getattr(self, name, ""))

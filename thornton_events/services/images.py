"""
Stock photos for events that arrive without one.

Search phrases come from the event title first (specific phrases before
single words) and fall back to the category. Lookups are best-effort: any
provider problem yields ``None`` and the event is stored without an image.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx

from thornton_events.services.llm import generate_image
from thornton_events.utils.config import ImageOptions, Settings
from thornton_events.utils.text import shorten

log = logging.getLogger(__name__)

UNSPLASH_RANDOM_URL = "https://api.unsplash.com/photos/random"

# (title substring, search phrase); first hit wins, so multi-word phrases go first
TITLE_KEYWORDS: Sequence[Tuple[str, str]] = (
    ("trunk or treat", "halloween trunk or treat kids"),
    ("fourth of july", "fireworks celebration july 4th"),
    ("july 4", "fireworks celebration patriotic"),
    ("story time", "children storytime reading books"),
    ("storytime", "children storytime reading books"),
    ("independence", "fireworks patriotic celebration"),
    ("halloween", "halloween pumpkins costumes"),
    ("harvest", "fall harvest festival pumpkins"),
    ("christmas", "christmas holiday lights"),
    ("festival", "festival celebration crowd"),
    ("concert", "outdoor concert performance"),
    ("craft", "kids crafts art activities"),
    ("lego", "lego building blocks kids"),
    ("science", "kids science experiment learning"),
    ("stem", "kids science technology learning"),
    ("music", "live music performance"),
    ("movie", "outdoor movie night"),
    ("film", "movie cinema popcorn"),
    ("book", "library books reading"),
    ("reading", "children reading books"),
    ("gaming", "video games controller"),
    ("game", "kids playing games"),
    ("yoga", "yoga meditation wellness"),
    ("dance", "kids dancing dance class"),
    ("paint", "painting art creative kids"),
    ("art", "kids art painting creative"),
    ("fair", "county fair carnival rides"),
    ("parade", "parade celebration street"),
    ("winter", "winter holiday snow celebration"),
    ("holiday", "holiday celebration lights"),
    ("summer", "summer outdoor fun"),
    ("spring", "spring flowers outdoor"),
    ("nature", "nature park outdoor hiking"),
    ("garden", "garden plants flowers"),
    ("animal", "animals pets kids"),
    ("pet", "pets animals family"),
    ("magic", "magic show performance"),
    ("puppet", "puppet show kids"),
    ("theater", "theater performance stage"),
    ("theatre", "theater performance stage"),
    ("baby", "baby toddler parent"),
    ("toddler", "toddler kids playing"),
    ("teen", "teenagers activities"),
    ("senior", "seniors community gathering"),
    ("food", "food festival eating"),
    ("cooking", "cooking class kitchen"),
    ("fitness", "fitness exercise workout"),
    ("health", "health wellness community"),
)

CATEGORY_KEYWORDS = {
    "Family Fun": "family outdoor fun children",
    "Library": "library books children reading",
    "Community": "community gathering people",
    "Education": "children learning education",
    "Arts & Crafts": "kids crafts art activities",
    "Music": "live music concert outdoor",
    "Sports": "kids sports activities",
    "Holiday": "holiday celebration family",
    "Festival": "festival celebration crowd",
    "Fair": "county fair carnival rides",
    "Storytime": "children storytime library books",
    "STEM": "kids science learning",
    "Nature": "nature park outdoor family",
    "Movies": "outdoor movie night",
    "Parade": "parade celebration street",
}
DEFAULT_SEARCH = "community event celebration"

LOCAL_IMAGES = {
    "Library": "/event-images/library-placeholder.jpg",
    "Family Fun": "/event-images/family-placeholder.jpg",
    "Festival": "/event-images/festival-placeholder.jpg",
    "Community": "/event-images/community-placeholder.jpg",
}
DEFAULT_LOCAL_IMAGE = "/event-images/event-placeholder.jpg"

ImageLookup = Callable[[str, Optional[str]], Awaitable[Optional[str]]]


def get_search_terms(title: str, category: Optional[str]) -> str:
    lower = (title or "").lower()
    for keyword, terms in TITLE_KEYWORDS:
        if keyword in lower:
            return terms
    if category and category in CATEGORY_KEYWORDS:
        return CATEGORY_KEYWORDS[category]
    return DEFAULT_SEARCH


def local_fallback_image(category: Optional[str]) -> str:
    return LOCAL_IMAGES.get(category or "", DEFAULT_LOCAL_IMAGE)


async def fetch_unsplash_image(client: httpx.AsyncClient, search_terms: str, access_key: str) -> Optional[str]:
    if not access_key:
        log.warning("No UNSPLASH_ACCESS_KEY, skipping Unsplash")
        return None
    try:
        res = await client.get(
            UNSPLASH_RANDOM_URL,
            params={"query": search_terms, "orientation": "landscape", "content_filter": "high"},
            headers={"Authorization": f"Client-ID {access_key}"},
        )
        if res.status_code // 100 != 2:
            log.warning("Unsplash API error: %s - %s", res.status_code, res.text[:200])
            return None
        data = res.json()
        regular = (data.get("urls") or {}).get("regular")
    except (httpx.HTTPError, ValueError) as e:
        log.warning("Unsplash fetch error: %s", e)
        return None
    if not regular:
        return None
    # attribution params required by the Unsplash API guidelines
    sep = "&" if "?" in regular else "?"
    return f"{regular}{sep}utm_source=thornton_events&utm_medium=referral"


def _dalle_prompt(title: str, category: Optional[str]) -> str:
    return (
        f'A vibrant, family-friendly illustration for a community event called "{title}".\n'
        f"Category: {category or 'Community Event'}.\n"
        "Style: Colorful, welcoming, modern, suitable for a local events website.\n"
        "No text or words in the image. Safe for all ages."
    )


async def get_event_image(
    title: str,
    category: Optional[str],
    options: ImageOptions,
    *,
    client: httpx.AsyncClient,
    unsplash_key: str = "",
    openai_key: str = "",
) -> Optional[str]:
    """Image URL for one event, or None when every configured provider came up empty."""
    found: Optional[str] = None
    if options.preferred_source in ("unsplash", "auto"):
        found = await fetch_unsplash_image(client, get_search_terms(title, category), unsplash_key)
        if found:
            return found

    if options.preferred_source == "dalle" or (options.preferred_source == "auto" and not found):
        if openai_key:
            found = await generate_image(_dalle_prompt(title, category), api_key=openai_key)
            if found:
                return found

    if options.use_fallback:
        return local_fallback_image(category)
    return None


def make_image_lookup(settings: Settings, client: httpx.AsyncClient) -> Optional[ImageLookup]:
    """None when no provider can possibly answer, so callers skip the loop (and its delays)."""
    opts = settings.images
    can_unsplash = opts.preferred_source in ("unsplash", "auto") and settings.unsplash_access_key
    can_dalle = opts.preferred_source in ("dalle", "auto") and settings.openai_api_key
    if not (can_unsplash or can_dalle or opts.use_fallback):
        return None

    async def lookup(title: str, category: Optional[str]) -> Optional[str]:
        return await get_event_image(
            title,
            category,
            opts,
            client=client,
            unsplash_key=settings.unsplash_access_key,
            openai_key=settings.openai_api_key,
        )

    return lookup


async def add_images_to_events(
    events: List,
    lookup: Optional[ImageLookup],
    *,
    delay_seconds: float = 1.2,
    max_events: int = 40,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List:
    """
    Fill ``image_url`` on events that lack one, one provider call at a time
    with ``delay_seconds`` between calls. Only the first ``max_events`` events
    missing an image are looked up; the rest keep ``image_url=None``.
    """
    if lookup is None or not events:
        return list(events)

    log.info("Adding images to %d events (cap %d)", len(events), max_events)
    out: List = []
    calls = 0
    for i, ev in enumerate(events):
        if ev.image_url:
            out.append(ev)
            continue
        if calls >= max_events:
            out.append(ev)
            continue
        if calls:
            await sleep(delay_seconds)
        calls += 1
        log.debug("  [%d/%d] %s", i + 1, len(events), shorten(ev.title))
        try:
            url = await lookup(ev.title, ev.category)
        except Exception as e:
            log.warning("image lookup failed for %r: %s", ev.title, e)
            url = None
        out.append(ev.model_copy(update={"image_url": url}) if url else ev)

    with_images = sum(1 for e in out if e.image_url)
    log.info("Added images to %d/%d events", with_images, len(out))
    return out

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from bs4 import BeautifulSoup

from thornton_events.pipeline.errors import FetchError

log = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/125 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

BOT_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; ThorntonEvents/1.0)"}


def make_client(timeout: float = 20.0, headers: Optional[Dict[str, str]] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=headers or BROWSER_HEADERS,
    )


async def fetch_text(client: httpx.AsyncClient, url: str, **kwargs: Any) -> str:
    """GET ``url`` and return the body; any transport or HTTP error becomes FetchError."""
    try:
        res = await client.get(url, **kwargs)
        res.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(f"HTTP {e.response.status_code} for {url}") from e
    except httpx.HTTPError as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e
    log.info("fetched %s (%.2f KB)", url, len(res.text) / 1024)
    return res.text


async def fetch_json(client: httpx.AsyncClient, url: str, **kwargs: Any) -> Any:
    try:
        res = await client.get(url, **kwargs)
        res.raise_for_status()
        return res.json()
    except httpx.HTTPStatusError as e:
        raise FetchError(f"HTTP {e.response.status_code} for {url}: {e.response.text[:200]}") from e
    except (httpx.HTTPError, ValueError) as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e


def find_og_image(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.find("meta", attrs={"property": "og:image"}) or soup.find("meta", attrs={"name": "og:image"})
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


async def fetch_og_image(client: httpx.AsyncClient, url: Optional[str]) -> Optional[str]:
    """og:image of a page, or None. Never raises."""
    if not url:
        return None
    try:
        res = await client.get(url, headers=BOT_HEADERS)
        if res.status_code != 200:
            return None
        return find_og_image(res.text)
    except httpx.HTTPError as e:
        log.debug("og:image lookup failed for %s: %s", url, e)
        return None

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from thornton_events.pipeline.errors import FetchError

log = logging.getLogger(__name__)


def _client(api_key: str):
    from tavily import TavilyClient
    return TavilyClient(api_key=api_key)


async def extract_page_content(url: str, *, api_key: str) -> str:
    """Readable text of ``url`` via Tavily extract. Raises FetchError when nothing comes back."""
    if not api_key:
        raise FetchError("TAVILY_API_KEY is not configured")
    try:
        raw = await asyncio.to_thread(lambda: _client(api_key).extract(urls=[url]))
    except Exception as e:
        raise FetchError(f"Tavily extract failed for {url}: {e}") from e

    results = (raw or {}).get("results") or []
    if not results:
        raise FetchError(f"No content extracted from {url}")
    first = results[0]
    content = first.get("raw_content") or first.get("rawContent") or first.get("text") or ""
    if not content:
        raise FetchError(f"Empty content extracted from {url}")
    log.info("extracted %d characters from %s", len(content), url)
    return content


async def search_web(query: str, *, api_key: str, max_results: int = 10) -> List[Dict[str, Any]]:
    """
    Tavily search results as [{title, url, content, score, published}].
    Returns [] if Tavily is not configured or any error occurs.
    """
    if not api_key:
        return []
    try:
        raw = await asyncio.to_thread(
            lambda: _client(api_key).search(
                query=query,
                search_depth="advanced",
                max_results=max_results,
                include_answer=False,
            )
        )
    except Exception as e:
        # fail-safe: no results rather than breaking the caller
        log.warning("Tavily search failed for %r: %s", query, e)
        return []

    items: List[Dict[str, Any]] = []
    for r in raw.get("results", []):
        url = r.get("url") or ""
        if not url:
            continue
        items.append(
            {
                "title": r.get("title") or url,
                "url": url,
                "content": r.get("content") or "",
                "score": float(r.get("score") or 0.0),
                "published": r.get("published_date"),
            }
        )
    items.sort(key=lambda x: x["score"], reverse=True)
    return items

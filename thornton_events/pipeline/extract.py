"""
HTML -> candidate dicts.

Sources depend only on ``HtmlExtractor``; the model-backed extractor and
the CSS-selector extractor are interchangeable, and tests plug in fakes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from thornton_events.pipeline.errors import ExtractionError
from thornton_events.services.llm import SCRAPER_SYSTEM, complete_json

log = logging.getLogger(__name__)

Candidate = Dict[str, Any]


class HtmlExtractor(Protocol):
    async def extract(self, html: str) -> List[Candidate]:
        """Candidates found in ``html``; raises ExtractionError when the page cannot be read."""
        ...


def _as_candidates(data: Any, list_key: Optional[str]) -> List[Candidate]:
    if isinstance(data, dict):
        if list_key and isinstance(data.get(list_key), list):
            data = data[list_key]
        else:
            # some models wrap the array in an arbitrary single key
            lists = [v for v in data.values() if isinstance(v, list)]
            if len(lists) != 1:
                raise ExtractionError("model returned an object without an event list")
            data = lists[0]
    if not isinstance(data, list):
        raise ExtractionError(f"model returned {type(data).__name__}, expected a list")
    return [c for c in data if isinstance(c, dict)]


class AiHtmlExtractor:
    """
    Chat-completion extraction. The page is cut to ``max_chars`` before it
    goes into the prompt; the output is parsed as JSON and nothing more.
    """

    def __init__(
        self,
        build_prompt: Callable[[str], str],
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_chars: int = 50_000,
        system: str = SCRAPER_SYSTEM,
        json_mode: bool = False,
        list_key: Optional[str] = None,
    ):
        self.build_prompt = build_prompt
        self.api_key = api_key
        self.model = model
        self.max_chars = max_chars
        self.system = system
        self.json_mode = json_mode
        self.list_key = list_key

    async def extract(self, html: str) -> List[Candidate]:
        prompt = self.build_prompt(html[: self.max_chars] if self.max_chars else html)
        data = await complete_json(
            prompt,
            api_key=self.api_key,
            model=self.model,
            system=self.system,
            json_mode=self.json_mode,
            max_tokens=None if self.json_mode else 4000,
        )
        items = _as_candidates(data, self.list_key)
        log.info("AI extracted %d candidates", len(items))
        return items


class SelectorHtmlExtractor:
    """
    Deterministic extraction with CSS selectors.

    Drop-in for AiHtmlExtractor on any AiPageSource
    (``ThorntonCitySource(extractor=SelectorHtmlExtractor(...))``) when a
    page's markup is stable enough to not need the model.

    ``fields`` maps a candidate key to ``"selector"`` (element text) or
    ``"selector@attr"`` (attribute value), evaluated inside each element
    matched by ``item_selector``. ``constants`` are copied onto every
    candidate. Relative ``href``/``src`` values are resolved against ``base_url``.
    """

    def __init__(
        self,
        item_selector: str,
        fields: Dict[str, str],
        *,
        base_url: Optional[str] = None,
        constants: Optional[Dict[str, Any]] = None,
    ):
        self.item_selector = item_selector
        self.fields = fields
        self.base_url = base_url
        self.constants = constants or {}

    def _value(self, node, spec: str) -> Optional[str]:
        selector, _, attr = spec.partition("@")
        target = node.select_one(selector) if selector else node
        if target is None:
            return None
        if attr:
            val = target.get(attr)
            if val and self.base_url and attr in ("href", "src"):
                val = urljoin(self.base_url, val)
            return val
        text = target.get_text(" ", strip=True)
        return text or None

    async def extract(self, html: str) -> List[Candidate]:
        soup = BeautifulSoup(html, "html.parser")
        out: List[Candidate] = []
        for node in soup.select(self.item_selector):
            c: Candidate = dict(self.constants)
            for key, spec in self.fields.items():
                c[key] = self._value(node, spec)
            if c.get("title"):
                out.append(c)
        return out

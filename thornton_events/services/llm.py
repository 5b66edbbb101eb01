from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

from thornton_events.pipeline.errors import ExtractionError

log = logging.getLogger(__name__)

# --- Clients are created lazily so missing keys don't crash import ---
_openai_clients: Dict[str, Any] = {}


def _get_openai(api_key: str):
    if not api_key:
        return None
    client = _openai_clients.get(api_key)
    if client is None:
        from openai import OpenAI
        client = OpenAI(api_key=api_key)
        _openai_clients[api_key] = client
    return client


SCRAPER_SYSTEM = (
    "You are a precise web scraping assistant. Extract event data and return valid JSON only. "
    "No explanations, no markdown code blocks."
)


def strip_code_fences(text: str) -> str:
    """Models like to wrap JSON in ```json fences even when told not to."""
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in text:
        parts = text.split("```")
        if len(parts) >= 3:
            return parts[1].strip()
    return text.strip()


def _coerce_json(s: str) -> Any:
    s = strip_code_fences(s or "")
    # try plain json first
    try:
        return json.loads(s)
    except ValueError:
        pass
    # then the first [...] or {...} block
    for pattern in (r"\[.*\]", r"\{.*\}"):
        m = re.search(pattern, s, flags=re.S)
        if m:
            try:
                return json.loads(m.group(0))
            except ValueError:
                continue
    raise ExtractionError("LLM did not return valid JSON")


def _complete(api_key: str, model: str, system: str, prompt: str, *, json_mode: bool, max_tokens: Optional[int]) -> str:
    client = _get_openai(api_key)
    if client is None:
        raise ExtractionError("OPENAI_API_KEY is not configured")
    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        "temperature": 0.1,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    msg = client.chat.completions.create(**kwargs)
    return msg.choices[0].message.content or ""


async def complete_json(
    prompt: str,
    *,
    api_key: str,
    model: str = "gpt-4o-mini",
    system: str = SCRAPER_SYSTEM,
    json_mode: bool = False,
    max_tokens: Optional[int] = 4000,
) -> Any:
    """
    Ask the chat model for JSON and parse it. No retries and no re-prompting;
    anything that is not parseable JSON raises ExtractionError.
    """
    try:
        out = await asyncio.to_thread(
            _complete, api_key, model, system, prompt, json_mode=json_mode, max_tokens=max_tokens
        )
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"chat completion failed: {e}") from e
    return _coerce_json(out)


async def generate_image(prompt: str, *, api_key: str) -> Optional[str]:
    """DALL-E 3 image URL for ``prompt`` or None. Costs money per call."""
    client = _get_openai(api_key)
    if client is None:
        return None

    def _run() -> Optional[str]:
        resp = client.images.generate(model="dall-e-3", prompt=prompt, n=1, size="1024x1024", quality="standard")
        return resp.data[0].url if resp.data else None

    try:
        return await asyncio.to_thread(_run)
    except Exception as e:
        log.warning("DALL-E generation error: %s", e)
        return None

"""
Remote word generator: asks an LLM (OpenRouter chat completions) for new
words when the cache and the word table come up short.

The model's answer is loosely specified. parse_word_list accepts a bare
JSON array of strings or an object wrapping one, and reports anything
else as a failed parse rather than raising.
"""

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from .categories import GENERATION_TEMPERATURE, difficulty_instructions
from .exceptions import ConfigurationError, GeneratorAuthError, TransientFetchError
from .quota import QuotaMonitor

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
MAX_PROMPT_EXCLUSIONS = 50

_FENCE_RE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


@dataclass
class ParseResult:
    ok: bool
    words: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def parse_word_list(raw: Any) -> ParseResult:
    """Extract a list of strings from a generator reply."""
    if not isinstance(raw, str) or not raw.strip():
        return ParseResult(ok=False, error="empty response")
    text = raw.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1).strip()
    try:
        data = json.loads(text)
    except ValueError as e:
        return ParseResult(ok=False, error=f"invalid JSON: {e}")

    if _is_string_list(data):
        return ParseResult(ok=True, words=list(data))
    if isinstance(data, dict):
        for value in data.values():
            if _is_string_list(value):
                return ParseResult(ok=True, words=list(value))
    return ParseResult(ok=False, error=f"no list of strings in {type(data).__name__} response")


def clean_words(words: Iterable[str], exclude: Iterable[str] = ()) -> List[str]:
    """Trim, unquote, drop empties, de-duplicate and drop excluded words (case-insensitive)."""
    seen = {w.strip().lower() for w in exclude if w}
    cleaned = []
    for word in words:
        item = word.strip().strip('"').strip()
        key = item.lower()
        if not item or key in seen:
            continue
        seen.add(key)
        cleaned.append(item)
    return cleaned


class OpenRouterWordGenerator:
    def __init__(self, api_key: Optional[str],
                 primary_model: str = "mistralai/mistral-small-24b-instruct-2501:free",
                 fallback_model: Optional[str] = "openai/gpt-4o-mini",
                 max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 10.0,
                 timeout: float = 30.0, cooldown_429: float = 8.0,
                 quota: Optional[QuotaMonitor] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.models = [primary_model]
        if fallback_model and fallback_model != primary_model:
            self.models.append(fallback_model)
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.cooldown_429 = cooldown_429
        self.quota = quota or QuotaMonitor()
        self.transport = transport

    @classmethod
    def from_settings(cls, settings) -> 'OpenRouterWordGenerator':
        return cls(
            api_key=settings.openrouter_api_key,
            primary_model=settings.primary_model,
            fallback_model=settings.fallback_model,
            max_retries=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            timeout=settings.request_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/wordsupply",
            "X-Title": "Word Supply Generator",
            "Accept": "application/json",
        }

    def build_messages(self, categories: Sequence[str], difficulty: str, count: int,
                       exclude: Sequence[str] = ()) -> List[Dict[str, str]]:
        categories_str = ", ".join(categories)
        exclusion = ""
        if 0 < len(exclude) < MAX_PROMPT_EXCLUSIONS:
            exclusion = f"Do not repeat any of these already selected items: {', '.join(exclude)}.\n"
        user = (
            f"Generate a list of {count} unique and varied items that belong *exclusively* to these "
            f"categories: {categories_str}.\n"
            f"Requested difficulty: {difficulty}.\n"
            f"Difficulty instructions: {difficulty_instructions(difficulty)}\n"
            f"{exclusion}"
            "Every item must be strictly relevant to these categories and suitable for a charades or "
            "guessing game.\n"
            'Return STRICT JSON only, as an object of the form {"words": ["Item1", "Item2"]}. '
            "No prose, no markdown."
        )
        return [
            {
                "role": "system",
                "content": "You generate words for guessing games. Always answer with valid JSON only.",
            },
            {"role": "user", "content": user},
        ]

    async def generate(self, categories: Sequence[str], difficulty: str, count: int,
                       exclude: Sequence[str] = ()) -> List[str]:
        """Ask the model for `count` new words, excluding `exclude`."""
        if not self.is_configured:
            raise ConfigurationError("Word generator API key is not configured.")
        if count <= 0:
            return []

        allowed, message = self.quota.check_rate_limits()
        if not allowed:
            raise TransientFetchError(message)
        warning = self.quota.get_quota_warning()
        if warning and warning["level"] == "error":
            raise TransientFetchError(warning["message"])

        payload = {
            "messages": self.build_messages(categories, difficulty, count, list(exclude)),
            "temperature": GENERATION_TEMPERATURE.get(difficulty, 0.75),
            "max_tokens": 2000,
            "response_format": {"type": "json_object"},
        }
        logger.info(f"Requesting {count} words from generator for [{', '.join(categories)}], {difficulty}")
        content = await self._request_with_retry(payload)
        result = parse_word_list(content)
        if not result.ok:
            logger.warning(f"Generator output unusable ({result.error}): {str(content)[:200]}")
            raise TransientFetchError(f"Unusable generator output: {result.error}")
        words = clean_words(result.words, exclude)
        logger.info(f"Generator produced {len(words)} new unique words")
        return words

    async def _request_with_retry(self, payload: Dict[str, Any]) -> str:
        """
        POST with retries, exponential backoff and jitter; primary model first,
        then the fallback model. Auth failures are raised immediately.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for model in self.models:
                body = dict(payload, model=model)
                for attempt in range(self.max_retries):
                    try:
                        response = await client.post(OPENROUTER_URL, headers=self.headers, json=body)
                        self.quota.update_quota(response.headers)
                        if response.status_code in (401, 403):
                            logger.error(f"Generator rejected credentials (HTTP {response.status_code})")
                            raise GeneratorAuthError()
                        if response.status_code == 429 and self.cooldown_429 > 0:
                            await asyncio.sleep(self.cooldown_429)
                        response.raise_for_status()
                        data = response.json()
                        return (data["choices"][0]["message"]["content"] or "").strip()
                    except GeneratorAuthError:
                        raise
                    except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
                        wait = min(self.max_delay, self.base_delay * (2 ** attempt))
                        wait += random.uniform(0, self.base_delay)
                        logger.warning(
                            f"Generator request failed ({model}, attempt {attempt + 1}/{self.max_retries}): "
                            f"{e}. Retrying in {wait:.1f}s..."
                        )
                        await asyncio.sleep(wait)
        raise TransientFetchError("Generator request failed after multiple retries")

"""Low-level Gemini API clients.

Thin wrappers around google-genai. Handle API calls only - no business logic.
Uses the native async API (client.aio). Request rate is capped with
pyrate_limiter; concurrency is governed by the caller's AdaptiveThrottler.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Literal

import httpx
import pyrate_limiter
import tenacity
from google import genai
from google.genai.types import EmbedContentConfig, GenerateContentConfig, HttpOptions

from code_search.clients import _retry
from code_search.clients._shared import BEST_QUESTION_PROMPT, SUMMARIZE_PROMPT, load_api_key
from code_search.schemas.embeddings import TaskIntent

__all__ = [
    'GeminiClient',
    'GeminiSummarizer',
]

type GeminiTaskType = Literal['RETRIEVAL_DOCUMENT', 'RETRIEVAL_QUERY']

# HTTP client configuration
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_CONNECTIONS = 64
DEFAULT_KEEPALIVE_EXPIRY = 30


def _create_genai_client(api_key: str | None, timeout_ms: int) -> genai.Client:
    limits = httpx.Limits(
        max_connections=DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=DEFAULT_MAX_CONNECTIONS,
        keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
    )
    http_options = HttpOptions(timeout=timeout_ms, async_client_args={'limits': limits})
    return genai.Client(api_key=api_key or load_api_key('gemini'), http_options=http_options)


class GeminiClient:
    """Gemini embedding client with request-rate limiting."""

    INTENT_TO_GEMINI_TASK: Mapping[TaskIntent, GeminiTaskType] = {
        'document': 'RETRIEVAL_DOCUMENT',
        'query': 'RETRIEVAL_QUERY',
    }

    def __init__(
        self,
        model: str,
        output_dimensionality: int,
        *,
        requests_per_minute: int,
        api_key: str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        """Initialize client.

        Args:
            model: Embedding model name (e.g., 'gemini-embedding-001').
            output_dimensionality: Output vector dimensions (e.g., 768).
            requests_per_minute: Text quota per minute enforced client-side.
            api_key: Gemini API key. If None, loads from env or secrets dir.
            timeout_ms: Request timeout in milliseconds.
        """
        self._model = model
        self._output_dimensionality = output_dimensionality
        self._client = _create_genai_client(api_key, timeout_ms)
        self._rpm_limiter = pyrate_limiter.Limiter(
            pyrate_limiter.Rate(requests_per_minute, pyrate_limiter.Duration.MINUTE),
        )

    @property
    def provider(self) -> str:
        return 'gemini'

    @_retry.gemini_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_gemini_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_gemini_retry,
        reraise=True,
    )
    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        """Embed texts using the Gemini API.

        Args:
            texts: Texts to embed (max 100 per API call).
            intent: 'document' for indexing, 'query' for search.

        Returns:
            List of embedding vectors.

        Raises:
            google.genai.errors.ClientError: On API errors, including 429.
        """
        await self._rpm_limiter.try_acquire_async('rpm', weight=len(texts))

        result = await self._client.aio.models.embed_content(
            model=self._model,
            contents=list(texts),
            config=EmbedContentConfig(
                task_type=self.INTENT_TO_GEMINI_TASK[intent],
                output_dimensionality=self._output_dimensionality,
            ),
        )
        return [list(e.values or ()) for e in result.embeddings or ()]

    async def close(self) -> None:
        """No-op: google-genai Client manages its own HTTP lifecycle."""


class GeminiSummarizer:
    """Gemini text generation client for block summaries."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self._model = model
        self._client = _create_genai_client(api_key, timeout_ms)

    @property
    def provider(self) -> str:
        return 'gemini'

    async def summarize(self, text: str, *, max_length: int) -> str:
        prompt = SUMMARIZE_PROMPT.format(max_length=max_length, text=text)
        summary = await self._generate(prompt)
        return summary[:max_length]

    async def best_question(self, code: str, summary: str) -> str:
        return await self._generate(BEST_QUESTION_PROMPT.format(code=code, summary=summary))

    @_retry.gemini_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_gemini_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_gemini_retry,
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=GenerateContentConfig(temperature=0.2),
        )
        return (response.text or '').strip()

    async def close(self) -> None:
        """No-op: google-genai Client manages its own HTTP lifecycle."""

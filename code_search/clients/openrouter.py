"""OpenRouter embedding and chat clients.

Thin wrappers around the OpenRouter HTTP API using native async httpx.

API Reference:
- Embeddings: https://openrouter.ai/docs/api/api-reference/embeddings/create-embeddings
- Chat completions: https://openrouter.ai/docs/api/api-reference/chat/send-chat-completion-request
"""

from __future__ import annotations

from collections.abc import Sequence

import httpx
import tenacity

from code_search.clients import _retry
from code_search.clients._shared import BEST_QUESTION_PROMPT, SUMMARIZE_PROMPT, load_api_key
from code_search.schemas.embeddings import TaskIntent

__all__ = [
    'OpenRouterClient',
    'OpenRouterSummarizer',
]

BASE_URL = 'https://openrouter.ai/api/v1'

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CONNECTIONS = 64


def _create_http_client(api_key: str | None, timeout: float) -> httpx.AsyncClient:
    key = api_key or load_api_key('openrouter')
    return httpx.AsyncClient(
        base_url=BASE_URL,
        headers={
            'Authorization': f'Bearer {key}',
            'Content-Type': 'application/json',
        },
        timeout=timeout,
        limits=httpx.Limits(max_connections=DEFAULT_MAX_CONNECTIONS, max_keepalive_connections=DEFAULT_MAX_CONNECTIONS),
    )


class OpenRouterClient:
    """OpenRouter embedding client."""

    # Qwen3-Embedding instruction prefix for query embeddings (asymmetric retrieval)
    QUERY_INSTRUCTION = 'Instruct: Given a code search query, retrieve relevant code snippets\nQuery:'

    def __init__(
        self,
        model: str,
        *,
        dimensions: int | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize client.

        Args:
            model: Model identifier (e.g., 'qwen/qwen3-embedding-8b').
            dimensions: Output vector dimensions. If None, uses the model's native size.
            api_key: OpenRouter API key. If None, loads from env or secrets dir.
            timeout: HTTP timeout in seconds.
        """
        self._model = model
        self._dimensions = dimensions
        self._client = _create_http_client(api_key, timeout)

    @property
    def provider(self) -> str:
        return 'openrouter'

    @_retry.openrouter_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_openrouter_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_openrouter_retry,
        reraise=True,
    )
    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        """Embed texts using the OpenRouter API.

        Raises:
            httpx.HTTPStatusError: On API errors, including 429.
        """
        if intent == 'query':
            texts = [f'{self.QUERY_INSTRUCTION}{t}' for t in texts]

        body: dict[str, object] = {
            'model': self._model,
            'input': list(texts),
            'encoding_format': 'float',
        }
        if self._dimensions is not None:
            body['dimensions'] = self._dimensions

        response = await self._client.post('/embeddings', json=body)
        response.raise_for_status()
        data = response.json()

        # Sort by index to ensure order matches input
        embeddings = sorted(data['data'], key=lambda x: x['index'])
        return [e['embedding'] for e in embeddings]

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        await self._client.aclose()


class OpenRouterSummarizer:
    """OpenRouter chat-completions client for block summaries."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._model = model
        self._client = _create_http_client(api_key, timeout)

    @property
    def provider(self) -> str:
        return 'openrouter'

    async def summarize(self, text: str, *, max_length: int) -> str:
        summary = await self._complete(SUMMARIZE_PROMPT.format(max_length=max_length, text=text))
        return summary[:max_length]

    async def best_question(self, code: str, summary: str) -> str:
        return await self._complete(BEST_QUESTION_PROMPT.format(code=code, summary=summary))

    @_retry.openrouter_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_openrouter_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_openrouter_retry,
        reraise=True,
    )
    async def _complete(self, prompt: str) -> str:
        response = await self._client.post(
            '/chat/completions',
            json={
                'model': self._model,
                'messages': [{'role': 'user', 'content': prompt}],
                'temperature': 0.2,
            },
        )
        response.raise_for_status()
        data = response.json()
        return str(data['choices'][0]['message']['content']).strip()

    async def close(self) -> None:
        await self._client.aclose()

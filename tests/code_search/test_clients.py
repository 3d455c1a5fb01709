"""Tests for the OpenRouter client, retry predicates and API key loading."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from code_search.clients._retry import is_retryable_openrouter_error
from code_search.clients._shared import load_api_key
from code_search.clients.openrouter import BASE_URL, OpenRouterClient, OpenRouterSummarizer
from code_search.exceptions import ConfigurationError


def _mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request('POST', f'{BASE_URL}/embeddings')
    return httpx.HTTPStatusError('error', request=request, response=httpx.Response(status_code, request=request))


class TestOpenRouterClient:
    async def test_embed_orders_by_index_and_prefixes_queries(self) -> None:
        sent: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={'data': [{'index': 1, 'embedding': [0.0, 1.0]}, {'index': 0, 'embedding': [1.0, 0.0]}]},
            )

        client = OpenRouterClient('qwen/qwen3-embedding-8b', dimensions=2, api_key='test-key')
        client._client = _mock_http(handler)

        vectors = await client.embed(['parse config', 'load user'], intent='query')
        await client.close()

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert sent[0]['dimensions'] == 2
        inputs = sent[0]['input']
        assert isinstance(inputs, list)
        assert inputs[0] == f'{OpenRouterClient.QUERY_INSTRUCTION}parse config'

    async def test_document_intent_is_sent_verbatim(self) -> None:
        sent: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={'data': [{'index': 0, 'embedding': [0.5]}]})

        client = OpenRouterClient('qwen/qwen3-embedding-8b', api_key='test-key')
        client._client = _mock_http(handler)
        await client.embed(['def main(): pass'], intent='document')
        await client.close()

        assert sent[0]['input'] == ['def main(): pass']
        assert 'dimensions' not in sent[0]

    async def test_rate_limit_is_not_retried_by_the_client(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429, json={'error': 'Too Many Requests'})

        client = OpenRouterClient('qwen/qwen3-embedding-8b', api_key='test-key')
        client._client = _mock_http(handler)
        with pytest.raises(httpx.HTTPStatusError, match='429'):
            await client.embed(['x'], intent='document')
        await client.close()
        assert calls == 1


class TestOpenRouterSummarizer:
    async def test_summary_is_truncated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={'choices': [{'message': {'content': '  Loads the user table.  '}}]})

        summarizer = OpenRouterSummarizer('openai/gpt-4o-mini', api_key='test-key')
        summarizer._client = _mock_http(handler)
        assert await summarizer.summarize('def load(): ...', max_length=9) == 'Loads the'
        await summarizer.close()


class TestRetryPredicates:
    @pytest.mark.parametrize(
        'exc, retryable',
        [
            (httpx.ConnectTimeout('timed out'), True),
            (httpx.ReadError('connection reset'), True),
            (_status_error(503), True),
            (_status_error(429), False),
            (_status_error(401), False),
            (ValueError('bad payload'), False),
        ],
        ids=['timeout', 'network', 'server-unavailable', 'rate-limited', 'unauthorized', 'our-bug'],
    )
    def test_openrouter(self, exc: BaseException, retryable: bool) -> None:
        assert is_retryable_openrouter_error(exc) is retryable


class TestLoadApiKey:
    def test_environment_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv('OPENROUTER_API_KEY', ' env-key \n')
        assert load_api_key('openrouter') == 'env-key'

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv('NOWHERE_API_KEY', raising=False)
        with pytest.raises(ConfigurationError, match='NOWHERE_API_KEY'):
            load_api_key('nowhere')

"""Code search configuration schema.

Provider settings are a discriminated union keyed on `provider`; each variant
carries only its own fields and is validated when the config file is loaded.
Pipeline, throttling, search and storage settings have defaults so a config
file only needs to name the provider.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated, Literal

import pydantic
from pydantic import Field, TypeAdapter

from code_search.exceptions import ConfigurationError
from code_search.paths import CONFIG_PATH
from code_search.schemas.base import StrictModel

__all__ = [
    'AppConfig',
    'EmbeddingProvider',
    'GeminiConfig',
    'IndexingConfig',
    'OpenRouterConfig',
    'ProviderConfig',
    'SearchConfig',
    'StorageConfig',
    'ThrottlingConfig',
    'default_config',
    'load_config',
    'parse_provider_config',
    'save_config',
]

logger = logging.getLogger(__name__)

type EmbeddingProvider = Literal['gemini', 'openrouter']

# Error text fragments that mean "slow down" across the supported vendors.
# '1214' and '并发数过高' are Zhipu's code and message for too many concurrent requests.
DEFAULT_THROTTLE_SIGNATURES = (
    '429',
    'rate limit',
    'too many requests',
    'resource_exhausted',
    '1214',
    '并发数过高',
)


class GeminiConfig(StrictModel):
    """Gemini embedding and summarization configuration."""

    provider: Literal['gemini'] = 'gemini'
    embedding_model: str
    embedding_dimensions: int
    batch_size: int
    requests_per_minute: int
    summary_model: str

    @classmethod
    def default(cls) -> GeminiConfig:
        """Create default Gemini config."""
        return cls(
            embedding_model='gemini-embedding-001',
            embedding_dimensions=768,
            batch_size=100,  # Max per Gemini API call
            requests_per_minute=3000,
            summary_model='gemini-2.5-flash-lite',
        )


class OpenRouterConfig(StrictModel):
    """OpenRouter embedding and summarization configuration.

    No client-side rate limiting; the adaptive throttler reacts to 429s.
    """

    provider: Literal['openrouter'] = 'openrouter'
    embedding_model: str
    embedding_dimensions: int
    batch_size: int
    summary_model: str

    @classmethod
    def default(cls) -> OpenRouterConfig:
        """Create default OpenRouter config."""
        return cls(
            embedding_model='qwen/qwen3-embedding-8b',
            embedding_dimensions=768,
            batch_size=256,
            summary_model='openai/gpt-4o-mini',
        )


type ProviderConfig = GeminiConfig | OpenRouterConfig

_provider_adapter: TypeAdapter[GeminiConfig | OpenRouterConfig] = TypeAdapter(
    Annotated[GeminiConfig | OpenRouterConfig, Field(discriminator='provider')]
)


class IndexingConfig(StrictModel):
    """Indexing pipeline settings."""

    max_workers: Annotated[int, Field(ge=1)] = 16  # File-level pool size K
    split_threshold: Annotated[int, Field(ge=1)] = 50  # Lines before a block is sub-chunked
    file_attempts: Annotated[int, Field(ge=1)] = 3  # Per-file attempts on transient errors
    file_retry_delay: float = 0.5  # Seconds before the first file re-attempt, doubled each time
    completed_history: Annotated[int, Field(ge=1)] = 20  # Recent outcomes kept in job status
    shutdown_timeout: float = 30.0  # Seconds to wait for in-flight files on shutdown
    summary_max_length: int = 200
    embed_content_chars: int = 500  # Block content included in the embedded text


class ThrottlingConfig(StrictModel):
    """Adaptive concurrency settings for rate-limited backends."""

    initial: Annotated[int, Field(ge=1)] = 4
    max_concurrency: Annotated[int, Field(ge=1)] = 16
    increase_threshold: Annotated[int, Field(ge=1)] = 10  # Consecutive successes before ceiling + 1
    max_retries: Annotated[int, Field(ge=0)] = 3
    base_delay: float = 1.0  # Seconds, doubled per retry
    signatures: Sequence[str] = DEFAULT_THROTTLE_SIGNATURES

    @pydantic.model_validator(mode='after')
    def _check_bounds(self) -> ThrottlingConfig:
        if self.initial > self.max_concurrency:
            raise ValueError(f'initial ({self.initial}) exceeds max_concurrency ({self.max_concurrency})')
        return self


class SearchConfig(StrictModel):
    """Hybrid search defaults.

    Merged score = vector_weight * vector + keyword_weight * keyword for blocks
    found by both searches. Keyword-only hits keep their keyword score.
    """

    default_limit: Annotated[int, Field(ge=1)] = 10
    default_min_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.4
    over_fetch_factor: Annotated[int, Field(ge=1)] = 2
    max_candidates: Annotated[int, Field(ge=1)] = 200
    vector_weight: Annotated[float, Field(ge=0.0)] = 1.0
    keyword_weight: Annotated[float, Field(ge=0.0)] = 0.0
    preview_token_budget: Annotated[int, Field(ge=1)] = 8000
    reranker_model: str = 'BAAI/bge-reranker-base'


class StorageConfig(StrictModel):
    """Storage backends. 'memory' keeps everything in-process (tests, one-off runs)."""

    backend: Literal['qdrant', 'memory'] = 'qdrant'
    qdrant_url: str = 'http://localhost:6333'
    redis_host: str = '127.0.0.1'
    redis_port: int = 6379
    qdrant_collection: str = 'code_search_blocks'
    redis_prefix: str = 'cs'


class AppConfig(StrictModel):
    """Top-level configuration file schema."""

    provider: Annotated[GeminiConfig | OpenRouterConfig, Field(discriminator='provider')]
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    throttling: ThrottlingConfig = Field(default_factory=ThrottlingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def parse_provider_config(data: object) -> ProviderConfig:
    """Validate a raw provider mapping against the tagged union.

    Raises:
        ConfigurationError: If the mapping names no known provider or is missing fields.
    """
    try:
        return _provider_adapter.validate_python(data)
    except pydantic.ValidationError as e:
        raise ConfigurationError(f'Invalid provider config: {e}') from e


def default_config(provider: EmbeddingProvider = 'gemini') -> AppConfig:
    """Create config with defaults for the specified provider."""
    if provider == 'openrouter':
        return AppConfig(provider=OpenRouterConfig.default())
    return AppConfig(provider=GeminiConfig.default())


def load_config(path: Path = CONFIG_PATH) -> AppConfig | None:
    """Load config from file if it exists.

    Returns:
        AppConfig if the file exists and is valid, None if there is no file.

    Raises:
        ConfigurationError: If the file exists but is invalid.
    """
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text())
        return AppConfig.model_validate(data)
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
        raise ConfigurationError(f'Invalid config file at {path}: {e}') from e


def save_config(config: AppConfig, path: Path = CONFIG_PATH) -> None:
    """Save config to file, creating parent directories if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(mode='json'), indent=2, ensure_ascii=False) + '\n')
    logger.info(
        f'Saved config: provider={config.provider.provider}, '
        f'model={config.provider.embedding_model}, dimensions={config.provider.embedding_dimensions}'
    )

"""API clients for external services."""

from __future__ import annotations

from code_search.clients.gemini import GeminiClient, GeminiSummarizer
from code_search.clients.openrouter import OpenRouterClient, OpenRouterSummarizer
from code_search.clients.protocols import EmbeddingClient, SummarizerClient
from code_search.clients.qdrant import QdrantClient
from code_search.clients.redis import RedisClient
from code_search.schemas.config import GeminiConfig, OpenRouterConfig, ProviderConfig

__all__ = [
    'EmbeddingClient',
    'GeminiClient',
    'GeminiSummarizer',
    'OpenRouterClient',
    'OpenRouterSummarizer',
    'QdrantClient',
    'RedisClient',
    'SummarizerClient',
    'create_embedding_client',
    'create_summarizer_client',
]


def create_embedding_client(config: ProviderConfig) -> EmbeddingClient:
    """Create embedding client based on the provider configuration."""
    match config:
        case GeminiConfig():
            return GeminiClient(
                model=config.embedding_model,
                output_dimensionality=config.embedding_dimensions,
                requests_per_minute=config.requests_per_minute,
            )
        case OpenRouterConfig():
            return OpenRouterClient(
                model=config.embedding_model,
                dimensions=config.embedding_dimensions,
            )

    raise TypeError(f'Unknown config type: {type(config).__name__}')


def create_summarizer_client(config: ProviderConfig) -> SummarizerClient:
    """Create summarization client based on the provider configuration."""
    match config:
        case GeminiConfig():
            return GeminiSummarizer(model=config.summary_model)
        case OpenRouterConfig():
            return OpenRouterSummarizer(model=config.summary_model)

    raise TypeError(f'Unknown config type: {type(config).__name__}')

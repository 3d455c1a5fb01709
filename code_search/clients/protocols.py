"""Protocol definitions for AI backend clients.

Embedding and summarization backends are independent roles; one provider
config produces one client per role.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from code_search.schemas.embeddings import TaskIntent

__all__ = [
    'EmbeddingClient',
    'SummarizerClient',
]


class EmbeddingClient(Protocol):
    """Protocol for embedding clients.

    Used by EmbeddingService for type-safe client injection.
    """

    @property
    def provider(self) -> str:
        """Provider name, used to pick the provider's throttler."""
        ...

    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        """Embed texts into vectors.

        Args:
            texts: Texts to embed.
            intent: 'document' for indexing, 'query' for search.
                Each provider translates to their specific format.

        Returns:
            One embedding vector per input text, in input order.
        """
        ...

    async def close(self) -> None:
        """Release resources. No-op for clients without external connections."""
        ...


class SummarizerClient(Protocol):
    """Protocol for text generation clients used for block summaries."""

    @property
    def provider(self) -> str: ...

    async def summarize(self, text: str, *, max_length: int) -> str:
        """Summarize code or documentation in at most max_length characters."""
        ...

    async def best_question(self, code: str, summary: str) -> str:
        """Suggest the single most useful question a developer could ask about the code."""
        ...

    async def close(self) -> None: ...

"""Enrichment stage - block summaries and the text sent to the embedder.

Parent blocks are summarized first. Sub-chunks carry their parent's summary
as context instead of a summary of their own fragment, so a retrieved
fragment still says what it is part of.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from code_search.clients.protocols import SummarizerClient
from code_search.exceptions import ThrottledError
from code_search.schemas.blocks import ExtractedBlock
from code_search.schemas.files import GitMetadata
from code_search.services.chunking import ChunkedFile
from code_search.services.throttler import AdaptiveThrottler

__all__ = [
    'BlockKey',
    'EnrichedBlock',
    'EnrichmentService',
    'block_key',
    'build_embed_text',
]

logger = logging.getLogger(__name__)

# Name, start line, end line: same-named blocks (overloads, redefinitions) stay apart
type BlockKey = tuple[str, int, int]

# Characters of block content sent to the summarizer
SUMMARY_INPUT_CHARS = 3000


@dataclass(frozen=True)
class EnrichedBlock:
    """A block ready for embedding."""

    block: ExtractedBlock
    summary: str | None
    embed_text: str


class EnrichmentService:
    """Summarizes blocks through the throttler and builds embedding text."""

    def __init__(
        self,
        summarizer: SummarizerClient | None,
        throttler: AdaptiveThrottler | None,
        *,
        summary_max_length: int = 200,
        embed_content_chars: int = 500,
    ) -> None:
        self._summarizer = summarizer
        self._throttler = throttler
        self._summary_max_length = summary_max_length
        self._embed_content_chars = embed_content_chars

    @property
    def can_summarize(self) -> bool:
        return self._summarizer is not None and self._throttler is not None

    async def enrich(
        self,
        chunked: ChunkedFile,
        *,
        project_name: str,
        file_label: str,
        git: GitMetadata | None,
        summarize: bool,
    ) -> Sequence[EnrichedBlock]:
        """Attach summaries and embedding text to every stored block of a file.

        Args:
            chunked: Chunker output for the file.
            project_name: Project shown in the embedding text.
            file_label: Path shown in the embedding text (relative to the project root).
            git: Last-commit metadata, if any.
            summarize: Whether to call the summarizer at all.

        Raises:
            ThrottledError: The summarizer stayed rate limited after all retries.
        """
        summaries: Mapping[BlockKey, str] = {}
        if summarize and self._summarizer is not None and self._throttler is not None:
            summaries = await self._summarize_parents(self._summarizer, self._throttler, chunked, file_label)

        enriched: list[EnrichedBlock] = []
        for block in chunked.blocks:
            summary = summaries.get(block_key(_context_block(block, chunked.parents)))
            enriched.append(
                EnrichedBlock(
                    block=block,
                    summary=summary,
                    embed_text=build_embed_text(
                        block,
                        project_name=project_name,
                        file_label=file_label,
                        summary=summary,
                        git=git,
                        content_chars=self._embed_content_chars,
                    ),
                )
            )
        return enriched

    async def best_question(self, code: str, summary: str) -> str:
        """Suggested chat starter for a block."""
        if self._summarizer is None or self._throttler is None:
            raise ValueError('No summarizer configured')
        summarizer = self._summarizer
        return await self._throttler.run(lambda: summarizer.best_question(code[:SUMMARY_INPUT_CHARS], summary))

    async def _summarize_parents(
        self,
        summarizer: SummarizerClient,
        throttler: AdaptiveThrottler,
        chunked: ChunkedFile,
        file_label: str,
    ) -> Mapping[BlockKey, str]:
        """Summaries of split parents and unsplit blocks, keyed by name and line range."""
        targets = [*chunked.parents, *(b for b in chunked.blocks if b.parent_name is None)]
        unique = list({block_key(block): block for block in targets}.values())
        results = await asyncio.gather(
            *(self._summarize(summarizer, throttler, block, file_label) for block in unique)
        )

        summaries = {block_key(block): summary for block, summary in zip(unique, results) if summary}
        logger.debug(f'[ENRICH] {file_label}: {len(summaries)}/{len(unique)} blocks summarized')
        return summaries

    async def _summarize(
        self,
        summarizer: SummarizerClient,
        throttler: AdaptiveThrottler,
        block: ExtractedBlock,
        file_label: str,
    ) -> str | None:
        text = block.content[:SUMMARY_INPUT_CHARS]
        try:
            summary = await throttler.run(
                lambda: summarizer.summarize(text, max_length=self._summary_max_length)
            )
        except ThrottledError:
            raise
        except Exception as e:
            # Block is indexed without a summary
            logger.warning(f'[ENRICH] Summarization failed for {file_label}:{block.name}: {type(e).__name__}: {e}')
            return None
        return summary.strip() or None


def block_key(block: ExtractedBlock) -> BlockKey:
    return block.name, block.start_line, block.end_line


def _context_block(block: ExtractedBlock, parents: Sequence[ExtractedBlock]) -> ExtractedBlock:
    """The block whose summary describes `block`: the split parent covering it, or itself."""
    if block.parent_name is None:
        return block
    return next(
        (p for p in parents if p.name == block.parent_name and p.start_line <= block.start_line <= p.end_line),
        block,
    )


def build_embed_text(
    block: ExtractedBlock,
    *,
    project_name: str,
    file_label: str,
    summary: str | None,
    git: GitMetadata | None,
    content_chars: int = 500,
) -> str:
    """Text embedded for a block: labeled metadata, optional context, truncated content."""
    git_context = ''
    if git is not None:
        git_context = f'Last Modified: {git.date:%Y-%m-%d} by {git.author}\nChurn: {git.churn_level}\n'
    context = f'Context: {summary}\n' if summary else ''
    return (
        f'Category: {block.category}\n'
        f'Project: {project_name}\n'
        f'File: {file_label}\n'
        f'Type: {block.kind}\n'
        f'Name: {block.name}\n'
        f'{git_context}'
        f'Code: {context}{block.content[:content_chars]}'
    )

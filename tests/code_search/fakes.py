"""In-process stand-ins for the embedding, summarization, reranking, git and storage backends.

Every fake is deterministic: the same input always produces the same output,
so search ordering and idempotence can be asserted exactly.
"""

from __future__ import annotations

import asyncio
import re
import zlib
from collections import Counter
from collections.abc import Callable, Iterator, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path

import numpy as np
from fastembed.sparse.sparse_embedding_base import SparseEmbedding

from code_search.repositories.keywords import expand_identifiers
from code_search.repositories.memory import InMemoryBlockStore
from code_search.schemas.blocks import Block
from code_search.schemas.embeddings import TaskIntent
from code_search.schemas.files import GitMetadata

DIMENSIONS = 16

# BM25 term-frequency saturation, as the Qdrant/bm25 model applies it
BM25_K1 = 1.2

_WORD = re.compile(r'[a-z0-9]+')


def _words(text: str) -> list[str]:
    return [w for w in _WORD.findall(text.lower()) if len(w) >= 2]


def _terms(text: str) -> list[str]:
    """Words of text plus the parts of its compound identifiers."""
    return _words(expand_identifiers(text))


def _term_id(term: str) -> int:
    return zlib.crc32(term.encode())


def bag_of_words_vector(text: str, dimensions: int = DIMENSIONS) -> list[float]:
    """Hashed term counts plus a constant component, so no vector is all zeros."""
    vector = [0.0] * dimensions
    vector[0] = 1.0
    for term in _terms(text):
        vector[1 + _term_id(term) % (dimensions - 1)] += 1.0
    return vector


class FakeEmbeddingClient:
    """Bag-of-words embeddings. Optionally blocks every call on a gate event."""

    def __init__(self, dimensions: int = DIMENSIONS, gate: asyncio.Event | None = None) -> None:
        self.dimensions = dimensions
        self.gate = gate
        self.calls = 0
        self.texts_embedded = 0
        self.closed = False

    @property
    def provider(self) -> str:
        return 'fake'

    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        self.texts_embedded += len(texts)
        return [bag_of_words_vector(text, self.dimensions) for text in texts]

    async def close(self) -> None:
        self.closed = True


class FakeSparseModel:
    """Stands in for fastembed's Qdrant/bm25 model: hashed terms, saturated term frequency."""

    def __init__(self) -> None:
        self.documents_embedded = 0
        self.queries: list[str] = []

    def embed(self, documents: Sequence[str]) -> Iterator[SparseEmbedding]:
        for document in documents:
            self.documents_embedded += 1
            counts = Counter(_term_id(term) for term in _words(document))
            indices = sorted(counts)
            values = [counts[i] * (BM25_K1 + 1) / (counts[i] + BM25_K1) for i in indices]
            yield SparseEmbedding(values=np.array(values, dtype=np.float32), indices=np.array(indices, dtype=np.int64))

    def query_embed(self, query: str) -> Iterator[SparseEmbedding]:
        self.queries.append(query)
        indices = sorted({_term_id(term) for term in _words(query)})
        yield SparseEmbedding(values=np.ones(len(indices), dtype=np.float32), indices=np.array(indices, dtype=np.int64))


class FakeSummarizer:
    """Summaries derived from the first non-blank line."""

    def __init__(self) -> None:
        self.summarized: list[str] = []

    @property
    def provider(self) -> str:
        return 'fake-llm'

    async def summarize(self, text: str, *, max_length: int) -> str:
        first_line = next((line.strip() for line in text.splitlines() if line.strip()), '')
        self.summarized.append(first_line)
        return f'Summary of {first_line}'[:max_length]

    async def best_question(self, code: str, summary: str) -> str:
        return f'How is "{summary}" used?'

    async def close(self) -> None:
        pass


class FakeReranker:
    """Scores a document by the share of query terms it contains."""

    def __init__(self) -> None:
        self.calls = 0

    async def score(self, query: str, documents: Sequence[str]) -> Sequence[float]:
        self.calls += 1
        query_terms = set(_terms(query))
        if not query_terms:
            return [0.0] * len(documents)
        return [len(query_terms & set(_terms(doc))) / len(query_terms) for doc in documents]


class ConstantReranker:
    """Gives every document the same score, leaving the order to the tie-breaks."""

    def __init__(self, score: float = 0.5) -> None:
        self.fixed_score = score

    async def score(self, query: str, documents: Sequence[str]) -> Sequence[float]:
        return [self.fixed_score] * len(documents)


class FakeGitCollector:
    """Git metadata from a fixed mapping of absolute path -> metadata."""

    def __init__(self, metadata: Mapping[str, GitMetadata] | None = None) -> None:
        self.metadata = dict(metadata or {})

    async def info_for(self, file_path: Path) -> GitMetadata | None:
        return self.metadata.get(str(file_path))


class FailingBlockStore(InMemoryBlockStore):
    """In-memory store whose upserts fail for chosen file names."""

    def __init__(self, failing_names: Sequence[str] = ()) -> None:
        super().__init__()
        self.failing_names = set(failing_names)
        self.failed_attempts: dict[str, int] = {}

    async def upsert_blocks(self, blocks: Sequence[Block]) -> int:
        for block in blocks:
            name = Path(block.file_path).name
            if name in self.failing_names:
                self.failed_attempts[name] = self.failed_attempts.get(name, 0) + 1
                raise RuntimeError(f'disk full while writing {name}')
        return await super().upsert_blocks(blocks)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll until predicate() is true. Fails the test on timeout."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


def write_tree(root: Path, files: Mapping[str, str]) -> None:
    """Create files (relative path -> text) under root."""
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')


SAMPLE_FILES: Mapping[str, str] = {
    'pkg/__init__.py': '"""Sample package."""\n',
    'pkg/models.py': '''"""Domain models."""

from dataclasses import dataclass


@dataclass
class User:
    """A registered account."""

    name: str
    email: str

    def display_name(self) -> str:
        return self.name.title()


def make_user(name: str, email: str) -> User:
    return User(name, email)
''',
    'pkg/service.py': '''import os

from .models import User, make_user


def register(name: str) -> User:
    """Create and persist an account."""
    home = os.environ.get('HOME', '')
    return make_user(name, f'{name}@{home}')
''',
    'web/client.js': '''// HTTP helpers
export async function fetchUser(id) {
  const response = await fetch(`/api/users/${id}`);
  return response.json();
}
''',
    'web/api.js': '''import { fetchUser } from './client';

export function showProfile(id) {
  return renderCard(id);
}
''',
    'README.md': '''# Sample Project

See [setup](docs/setup.md) for installation.

## Usage

Run the service.
''',
    'docs/setup.md': '''# Setup

Install dependencies with pip.
''',
    '.gitignore': 'build/\n',
    'build/generated.py': 'def generated():\n    pass\n',
    'node_modules/leftpad/index.js': 'export function leftpad(s) {\n  return s;\n}\n',
}

# Files the scan should pick up from SAMPLE_FILES
INDEXED_FILES = (
    'README.md',
    'docs/setup.md',
    'pkg/__init__.py',
    'pkg/models.py',
    'pkg/service.py',
    'web/api.js',
    'web/client.js',
)

MODELS_COMMIT = GitMetadata(
    author='Ada Lovelace',
    email='ada@example.com',
    date=datetime(2026, 3, 14, 9, 30, tzinfo=UTC),
    commit_hash='abc1234',
    message='Add user model',
    commit_count=12,
    churn_level='high',
)

"""Repositories for data persistence."""

from __future__ import annotations

from code_search.repositories.block_store import QdrantBlockStore
from code_search.repositories.index_store import RedisIndexStore
from code_search.repositories.memory import InMemoryBlockStore, InMemoryIndexStore
from code_search.repositories.protocols import BlockStore, IndexStore
from code_search.repositories.watch_list import WatchListManager

__all__ = [
    'BlockStore',
    'InMemoryBlockStore',
    'InMemoryIndexStore',
    'IndexStore',
    'QdrantBlockStore',
    'RedisIndexStore',
    'WatchListManager',
]

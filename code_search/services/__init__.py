"""Domain services for code search."""

from __future__ import annotations

from code_search.services.change_detector import ChangeDetector
from code_search.services.chunking import HierarchicalChunker
from code_search.services.dependencies import DependencyService
from code_search.services.embedding import EmbeddingService
from code_search.services.enrichment import EnrichmentService
from code_search.services.git_info import GitMetadataCollector, GitPythonCollector
from code_search.services.indexing import IndexingService, create_indexing_service
from code_search.services.job import JobStateMachine
from code_search.services.reranker import Reranker, RerankerService
from code_search.services.search import HybridSearchService
from code_search.services.throttler import AdaptiveThrottler
from code_search.services.watcher import WatcherService

__all__ = [
    'AdaptiveThrottler',
    'ChangeDetector',
    'DependencyService',
    'EmbeddingService',
    'EnrichmentService',
    'GitMetadataCollector',
    'GitPythonCollector',
    'HierarchicalChunker',
    'HybridSearchService',
    'IndexingService',
    'JobStateMachine',
    'Reranker',
    'RerankerService',
    'WatcherService',
    'create_indexing_service',
]

"""Pydantic schemas for code search."""

from __future__ import annotations

from code_search.schemas.base import JsonDatetime, StrictModel
from code_search.schemas.blocks import (
    Block,
    BlockCategory,
    BlockKey,
    BlockKind,
    ExtractedBlock,
    ExtractionMetadata,
    ExtractionResult,
    ImportRecord,
)
from code_search.schemas.config import (
    AppConfig,
    EmbeddingProvider,
    GeminiConfig,
    IndexingConfig,
    OpenRouterConfig,
    ProviderConfig,
    SearchConfig,
    StorageConfig,
    ThrottlingConfig,
)
from code_search.schemas.embeddings import TaskIntent
from code_search.schemas.files import (
    ChangeSet,
    ChurnLevel,
    DependencyEdge,
    DependencyGraph,
    FileDependencies,
    FileRecord,
    GitMetadata,
    GraphEdge,
    ProjectRecord,
    churn_level_for,
)
from code_search.schemas.jobs import (
    ErrorCategory,
    FileOutcome,
    IndexingJob,
    JobHandle,
    JobStatus,
    OutcomeStatus,
    errors_by_category,
)
from code_search.schemas.search import (
    BlockMatch,
    PreviewRecommendation,
    PreviewSummary,
    SearchFilters,
    SearchHit,
    SearchResult,
)
from code_search.schemas.watchers import Watcher, WatchList

__all__ = [
    'AppConfig',
    'Block',
    'BlockCategory',
    'BlockKey',
    'BlockKind',
    'BlockMatch',
    'ChangeSet',
    'ChurnLevel',
    'DependencyEdge',
    'DependencyGraph',
    'EmbeddingProvider',
    'ErrorCategory',
    'ExtractedBlock',
    'ExtractionMetadata',
    'ExtractionResult',
    'FileDependencies',
    'FileOutcome',
    'FileRecord',
    'GeminiConfig',
    'GitMetadata',
    'GraphEdge',
    'ImportRecord',
    'IndexingConfig',
    'IndexingJob',
    'JobHandle',
    'JobStatus',
    'JsonDatetime',
    'OpenRouterConfig',
    'OutcomeStatus',
    'PreviewRecommendation',
    'PreviewSummary',
    'ProjectRecord',
    'ProviderConfig',
    'SearchConfig',
    'SearchFilters',
    'SearchHit',
    'SearchResult',
    'StorageConfig',
    'StrictModel',
    'TaskIntent',
    'ThrottlingConfig',
    'WatchList',
    'Watcher',
    'churn_level_for',
    'errors_by_category',
]

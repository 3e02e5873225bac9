# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Context Engine: bounded, reproducible source context for language-model requests."""

from .cache import SummaryCache, generate_cache_key
from .cache_lifecycle import CacheCleanupTimer
from .collection_logger import (
    CollectionEvent,
    CollectionLogger,
    CollectionStatistics,
    read_collection_events,
)
from .collector import ContextCollector
from .config import ContextConfig
from .engine import ContextEngine
from .exceptions import (
    CacheCorruptionError,
    CacheDirectoryError,
    ConfigurationError,
    ContextEngineError,
    FileAccessError,
)
from .import_resolver import ImportResolver
from .mcp_server import ContextEngineMCPServer
from .models import (
    CachedSummary,
    CacheEntry,
    CacheMetrics,
    ContextCollection,
    ContextFile,
    FileFingerprint,
    ImportInfo,
)
from .relevance import RelevanceScorer
from .tokens import estimate_tokens

__version__ = "0.1.0"

__all__ = [
    "ContextEngine",
    "ContextEngineMCPServer",
    "ContextConfig",
    "ContextCollector",
    "ImportResolver",
    "RelevanceScorer",
    "SummaryCache",
    "CacheCleanupTimer",
    "generate_cache_key",
    "estimate_tokens",
    "CollectionEvent",
    "CollectionLogger",
    "CollectionStatistics",
    "read_collection_events",
    "ContextCollection",
    "ContextFile",
    "ImportInfo",
    "FileFingerprint",
    "CacheEntry",
    "CachedSummary",
    "CacheMetrics",
    "ContextEngineError",
    "FileAccessError",
    "ConfigurationError",
    "CacheCorruptionError",
    "CacheDirectoryError",
]

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""ContextEngine - the long-lived owner of engine state.

The engine owns one of each:
- ContextConfig snapshot (replaced wholesale on update_config)
- SummaryCache and its CacheCleanupTimer
- ContextCollector
- CollectionLogger (optional)
- FileWatcher (optional, started on request)

Every public operation is thread-safe. collect_context() captures the config
snapshot once at its start, so a concurrent update_config() only affects the
next call. cleanup() stops background work and releases the in-memory index;
it is idempotent and leaves a collection in flight to finish.
"""

import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from context_engine.cache import SummaryCache
from context_engine.cache_lifecycle import CacheCleanupTimer
from context_engine.collection_logger import (
    CollectionEvent,
    CollectionLogger,
    CollectionStatistics,
)
from context_engine.collector import ContextCollector
from context_engine.config import CONFIG_FILENAME, ContextConfig
from context_engine.file_watcher import FileWatcher
from context_engine.models import CachedSummary, CacheMetrics, ContextCollection

logger = logging.getLogger(__name__)


class ContextEngine:
    """Assembles bounded context collections and manages the summary cache.

    Usage:
        with ContextEngine(project_root="/path/to/project") as engine:
            collection = engine.collect_context("src/app.ts")
            metrics = engine.get_cache_metrics()
    """

    def __init__(
        self,
        project_root: Optional[str] = None,
        config: Optional[Union[ContextConfig, Dict[str, Any]]] = None,
        session_id: Optional[str] = None,
        data_root: Optional[Path] = None,
        enable_collection_logging: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine and start the cache sweep.

        Args:
            project_root: Workspace root (default: cwd).
            config: A ContextConfig, a partial dict of overrides applied to
                the defaults, or None to load <project_root>/.context_engine.yml.
            session_id: Session ID for the collection log filename (default: UUID).
            data_root: Root for log files (default: ~/.context_engine/).
            enable_collection_logging: Whether to write the JSONL collection log.
            clock: Time source for cache ages, injectable for tests.

        Raises:
            ConfigurationError: If a partial config dict is invalid.
        """
        self._project_root = Path(project_root).resolve() if project_root else Path.cwd()
        self._session_id = session_id or str(uuid.uuid4())
        self._lock = threading.RLock()
        self._closed = False

        if isinstance(config, ContextConfig):
            self._config = config
        elif config is not None:
            self._config = ContextConfig.from_dict(config)
        else:
            self._config = ContextConfig.from_file(self._project_root / CONFIG_FILENAME)

        self.cache = SummaryCache(
            cache_dir=self._resolve_cache_dir(self._config),
            max_age=self._config.cache_max_age,
            enabled=self._config.enable_caching,
            clock=clock,
        )
        self._cleanup_timer = CacheCleanupTimer(self.cache, self._config.cache_cleanup_interval)
        if self.cache.enabled:
            self._cleanup_timer.start()

        self._collector = ContextCollector(str(self._project_root), self.cache)

        self._collection_logger: Optional[CollectionLogger] = None
        if enable_collection_logging:
            self._collection_logger = CollectionLogger(
                session_id=self._session_id, data_root=data_root
            )

        self._file_watcher: Optional[FileWatcher] = None

        logger.info(
            f"ContextEngine initialized with project_root={self._project_root}, "
            f"caching={'on' if self.cache.enabled else 'off'}"
        )

    @property
    def project_root(self) -> Path:
        return self._project_root

    @property
    def session_id(self) -> str:
        return self._session_id

    def collect_context(
        self,
        current_file_path: str,
        selected_text: Optional[str] = None,
        cursor_line: Optional[int] = None,
    ) -> ContextCollection:
        """Collect a bounded set of files relevant to the current file.

        Args:
            current_file_path: Absolute or project-relative path of the current file.
            selected_text: Optional editor selection; boosts files that use it.
            cursor_line: Optional 1-based cursor line, recorded in the collection log.

        Returns:
            ContextCollection with the current file first.

        Raises:
            FileNotFoundError: If the current file does not exist.
            FileAccessError: If the current file cannot be read.
        """
        config = self.get_config()
        outcome = self._collector.collect(config, current_file_path, selected_text, cursor_line)

        with self._lock:
            if self._collection_logger is not None:
                event = CollectionEvent.create(
                    current_file_path, outcome, selected_text, cursor_line
                )
                try:
                    self._collection_logger.log_collection(event)
                except OSError as e:
                    logger.warning(f"Failed to write collection log: {e}")

        return outcome.collection

    def update_config(self, partial: Dict[str, Any]) -> ContextConfig:
        """Merge overrides into the configuration.

        Cache settings apply immediately; budgets apply from the next
        collect_context() call.

        Returns:
            The new configuration snapshot.

        Raises:
            ConfigurationError: If any key is unknown or any value invalid;
                the previous configuration is kept.
        """
        with self._lock:
            previous = self._config
            updated = previous.merge(partial)
            self._config = updated

            cache_changed = (
                updated.enable_caching != previous.enable_caching
                or updated.cache_directory != previous.cache_directory
                or updated.cache_max_age != previous.cache_max_age
            )
            if cache_changed:
                self.cache.reconfigure(
                    cache_dir=self._resolve_cache_dir(updated),
                    max_age=updated.cache_max_age,
                    enabled=updated.enable_caching,
                )

            if not self._closed:
                if not self.cache.enabled:
                    self._cleanup_timer.stop()
                elif (
                    not self._cleanup_timer.is_running()
                    or updated.cache_cleanup_interval != self._cleanup_timer.interval
                ):
                    self._cleanup_timer.restart(updated.cache_cleanup_interval)

        logger.info(f"Configuration updated: {sorted(partial)}")
        return updated

    def get_config(self) -> ContextConfig:
        """Get the current configuration snapshot."""
        with self._lock:
            return self._config

    def get_cache_metrics(self) -> CacheMetrics:
        """Get a copy of the cache metrics."""
        return self.cache.get_metrics()

    def clear_cache(self) -> None:
        """Remove every cache entry and record; cumulative counters are kept."""
        self.cache.clear()
        logger.info("Cache cleared")

    def invalidate_cache(self, file_path: str) -> bool:
        """Drop the cache entry for one file.

        Args:
            file_path: Absolute or project-relative path.

        Returns:
            True if an entry was removed.
        """
        return self.cache.invalidate(self._absolute(file_path))

    def get_cached_summary(self, file_path: str) -> Optional[CachedSummary]:
        return self.cache.get_cached_summary(self._absolute(file_path))

    def cache_summary(self, file_path: str, summary: str, estimated_tokens: int) -> None:
        self.cache.cache_summary(self._absolute(file_path), summary, estimated_tokens)

    def cleanup_stale_entries(self) -> int:
        """Run one stale-entry sweep now, outside the timer."""
        return self.cache.cleanup_stale_entries()

    def get_collection_statistics(self) -> Optional[CollectionStatistics]:
        """Session statistics, or None when collection logging is disabled."""
        with self._lock:
            if self._collection_logger is None:
                return None
            return self._collection_logger.get_statistics()

    def get_collection_log_path(self) -> Optional[Path]:
        with self._lock:
            if self._collection_logger is None:
                return None
            return self._collection_logger.get_log_path()

    def start_file_watcher(self) -> None:
        """Watch the project and invalidate cache entries of changed files."""
        with self._lock:
            if self._file_watcher is not None and self._file_watcher.is_running():
                return
            config = self._config
            self._file_watcher = FileWatcher(
                project_root=str(self._project_root),
                exclude_patterns=config.exclude_patterns,
                ignored_directories=[str(self._resolve_cache_dir(config))],
            )
            self._file_watcher.register_invalidation_callback(self.invalidate_cache)
            self._file_watcher.start()

    def stop_file_watcher(self) -> None:
        with self._lock:
            if self._file_watcher is not None:
                self._file_watcher.stop()
                self._file_watcher = None

    def is_file_watcher_running(self) -> bool:
        with self._lock:
            return self._file_watcher is not None and self._file_watcher.is_running()

    def get_cached_files(self) -> List[str]:
        return self.cache.get_cached_files()

    def cleanup(self) -> None:
        """Stop the sweep timer and watcher, close the log, release the index.

        Safe to call more than once.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

            logger.info("ContextEngine shutting down...")
            self._cleanup_timer.stop()
            self.stop_file_watcher()

            if self._collection_logger is not None:
                stats = self._collection_logger.get_statistics()
                logger.info(
                    f"Session {self._session_id}: {stats.total_collections} collections, "
                    f"{stats.truncated_collections} truncated"
                )
                self._collection_logger.close()
                self._collection_logger = None

            self.cache.release()
            logger.info("ContextEngine shutdown complete")

    def __enter__(self) -> "ContextEngine":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()

    def _resolve_cache_dir(self, config: ContextConfig) -> Path:
        cache_dir = Path(config.cache_directory).expanduser()
        if not cache_dir.is_absolute():
            cache_dir = self._project_root / cache_dir
        return cache_dir

    def _absolute(self, file_path: str) -> str:
        path = Path(file_path)
        if not path.is_absolute():
            path = self._project_root / path
        return str(path)

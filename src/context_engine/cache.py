# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Persistent summary cache with fingerprint and age based staleness.

This module implements the write-through cache of per-file summaries that
lets the collector skip regenerating a summary for a file it has already seen.

Key Features:
- One JSON record per cache key under the cache directory
- Fingerprint validation: an entry is valid only while the file's mtime and
  size still match the values recorded when it was cached
- Age validation: an entry older than max_age is stale even with a matching
  fingerprint
- Sweep of stale entries (driven by CacheCleanupTimer)
- Hit/miss/eviction metrics

Entry lifecycle:
    absent -> valid -> (stale-by-age | stale-by-fingerprint) -> evicted

Failure policy:
- A single entry read/write/delete failure is logged and treated as a miss
  or a no-op.
- If the cache directory cannot be created or written, caching is disabled
  for the session and every lookup returns None without touching metrics.

Thread Safety:
- A single re-entrant _lock protects _entries and _metrics.
- Writes for the same key are last-write-wins; records are written to a
  temporary file and moved into place so readers never see a partial record.
"""

import hashlib
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from context_engine.exceptions import CacheCorruptionError, CacheDirectoryError
from context_engine.models import CachedSummary, CacheEntry, CacheMetrics, FileFingerprint

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
CACHE_FORMAT_VERSION = 1

Clock = Callable[[], float]


def generate_cache_key(file_path: str) -> str:
    """Derive the cache key for a file.

    The key depends only on the normalized absolute path, so lookups and
    writes for the same file always agree.
    """
    normalized = os.path.normcase(os.path.abspath(file_path))
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class SummaryCache:
    """Write-through cache of file summaries backed by a directory of JSON records.

    Usage:
        cache = SummaryCache(cache_dir=Path(".context-cache"), max_age=86400)
        hit = cache.get_cached_summary("/path/to/file.ts")
        if hit is None:
            cache.cache_summary("/path/to/file.ts", summary, tokens)
        metrics = cache.get_metrics()
    """

    def __init__(
        self,
        cache_dir: Path,
        max_age: float,
        enabled: bool = True,
        clock: Clock = time.time,
    ) -> None:
        """Initialize the cache and load any persisted entries.

        Args:
            cache_dir: Directory holding one JSON record per entry.
            max_age: Seconds after which an entry is stale.
            enabled: Whether caching is active. A disabled cache never
                stores anything and never counts lookups.
            clock: Time source, injectable for tests.
        """
        self._cache_dir = Path(cache_dir)
        self._max_age = max_age
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._metrics = CacheMetrics()
        self._enabled = False

        if enabled:
            self.enable()

        logger.debug(
            f"SummaryCache initialized with cache_dir={self._cache_dir}, "
            f"max_age={max_age}s, enabled={self._enabled}"
        )

    @property
    def enabled(self) -> bool:
        """Whether caching is active for this session."""
        return self._enabled

    @property
    def cache_dir(self) -> Path:
        """Directory holding the persisted records."""
        return self._cache_dir

    @property
    def max_age(self) -> float:
        """Seconds after which an entry is stale."""
        return self._max_age

    def enable(self) -> bool:
        """Activate caching, creating the directory and loading persisted entries.

        Returns:
            True if caching is now active, False if the directory is unusable.
        """
        with self._lock:
            try:
                self._ensure_directory()
            except CacheDirectoryError as e:
                logger.warning(f"{e}. Caching disabled for this session")
                self._enabled = False
                return False

            self._enabled = True
            self.load_cache_from_disk()
            return True

    def disable(self) -> None:
        """Deactivate caching and drop the in-memory index (records stay on disk)."""
        with self._lock:
            self._enabled = False
            self._entries.clear()
            logger.debug("SummaryCache disabled")

    def reconfigure(self, cache_dir: Path, max_age: float, enabled: bool) -> None:
        """Apply new cache settings.

        A changed directory reloads the index from the new location.
        """
        with self._lock:
            self._max_age = max_age
            directory_changed = Path(cache_dir) != self._cache_dir
            self._cache_dir = Path(cache_dir)

            if not enabled:
                if self._enabled:
                    self.disable()
                return

            if not self._enabled or directory_changed:
                self._entries.clear()
                self.enable()

    def get_cached_summary(self, file_path: str) -> Optional[CachedSummary]:
        """Look up a valid summary for a file.

        A hit refreshes accessed_at and counts a hit. A missing, stale or
        fingerprint-mismatched entry counts a miss; stale and mismatched
        entries are dropped.

        Args:
            file_path: Absolute path to the file.

        Returns:
            CachedSummary on a valid hit, None otherwise (caller regenerates).
        """
        if not self._enabled:
            return None

        key = generate_cache_key(file_path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._metrics.misses += 1
                logger.debug(f"Cache miss: {file_path}")
                return None

            now = self._clock()
            if not self._is_cache_entry_valid(entry, now):
                self._remove_entry(key)
                self._metrics.misses += 1
                logger.debug(f"Cache entry invalid, dropped: {file_path}")
                return None

            entry.accessed_at = now
            self._metrics.hits += 1
            self._save_cache_entry_to_disk(entry)
            logger.debug(f"Cache hit: {file_path}")
            return CachedSummary(summary=entry.summary, estimated_tokens=entry.estimated_tokens)

    def cache_summary(
        self,
        file_path: str,
        summary: str,
        estimated_tokens: int,
        fingerprint: Optional[FileFingerprint] = None,
    ) -> None:
        """Store a summary for a file.

        Args:
            file_path: Absolute path to the file.
            summary: Summary text.
            estimated_tokens: Token estimate of the summary.
            fingerprint: On-disk state the summary was computed from, taken
                before the content was read. If None, the current state is used.
        """
        if not self._enabled:
            return

        if fingerprint is None:
            try:
                fingerprint = FileFingerprint.of(file_path)
            except OSError as e:
                logger.debug(f"Cannot cache {file_path}: {e}")
                return

        now = self._clock()
        entry = CacheEntry(
            key=generate_cache_key(file_path),
            file_path=os.path.abspath(file_path),
            last_modified=fingerprint.mtime,
            file_size=fingerprint.size,
            summary=summary,
            estimated_tokens=estimated_tokens,
            created_at=now,
            accessed_at=now,
        )

        with self._lock:
            self._entries[entry.key] = entry
            self._save_cache_entry_to_disk(entry)

        logger.debug(f"Cached summary for {os.path.basename(file_path)}")

    def is_cache_entry_valid(self, file_path: str) -> bool:
        """Check whether a valid entry exists without touching metrics."""
        key = generate_cache_key(file_path)
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._is_cache_entry_valid(entry, self._clock())

    def invalidate(self, file_path: str) -> bool:
        """Remove the entry for a file regardless of its age or fingerprint.

        Returns:
            True if an entry was removed.
        """
        key = generate_cache_key(file_path)
        with self._lock:
            if key not in self._entries:
                return False
            self._remove_entry(key)

        logger.debug(f"Invalidated cache for {os.path.basename(file_path)}")
        return True

    def cleanup_stale_entries(self) -> int:
        """Evict every entry older than max_age.

        Returns:
            Number of entries evicted.
        """
        with self._lock:
            now = self._clock()
            stale_keys = [
                key for key, entry in self._entries.items() if self._is_expired(entry, now)
            ]
            for key in stale_keys:
                self._remove_entry(key)
            self._metrics.evictions += len(stale_keys)

        if stale_keys:
            logger.info(f"Cleaned up {len(stale_keys)} stale cache entries")
        return len(stale_keys)

    def clear(self) -> None:
        """Remove all entries and their records.

        Cumulative hits/misses/evictions are kept.
        """
        with self._lock:
            self._entries.clear()
            for record in self._list_records():
                self._delete_record(record)

        logger.debug("Cache cleared")

    def release(self) -> None:
        """Drop the in-memory index without touching persisted records."""
        with self._lock:
            self._entries.clear()

    def get_metrics(self) -> CacheMetrics:
        """Get a snapshot of the cache metrics.

        Returns:
            CacheMetrics copy with current entry count and stored size.
        """
        with self._lock:
            return CacheMetrics(
                hits=self._metrics.hits,
                misses=self._metrics.misses,
                evictions=self._metrics.evictions,
                total_entries=len(self._entries),
                cache_size=sum(len(e.summary.encode("utf-8")) for e in self._entries.values()),
            )

    def get_cached_files(self) -> List[str]:
        """Get paths of all files currently in the index."""
        with self._lock:
            return sorted(entry.file_path for entry in self._entries.values())

    def load_cache_from_disk(self) -> int:
        """Populate the index from the cache directory.

        Corrupt records are logged and deleted; expired records are deleted.
        Neither aborts loading.

        Returns:
            Number of entries loaded.
        """
        loaded = 0
        with self._lock:
            now = self._clock()
            for record in self._list_records():
                try:
                    entry = self._read_record(record)
                except CacheCorruptionError as e:
                    logger.warning(f"Skipping corrupt cache entry {record.name}: {e}")
                    self._delete_record(record)
                    continue

                if self._is_expired(entry, now):
                    self._delete_record(record)
                    continue

                self._entries[entry.key] = entry
                loaded += 1

        logger.info(f"Loaded {loaded} cache entries from {self._cache_dir}")
        return loaded

    def _is_cache_entry_valid(self, entry: CacheEntry, now: float) -> bool:
        """Check an entry against its age and the live file's fingerprint."""
        if self._is_expired(entry, now):
            return False
        try:
            fingerprint = FileFingerprint.of(entry.file_path)
        except OSError:
            return False
        return entry.matches(fingerprint)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return entry.age(now) >= self._max_age

    def _remove_entry(self, key: str) -> None:
        """Remove an entry from the index and its record from disk."""
        self._entries.pop(key, None)
        self._remove_cache_entry_from_disk(key)

    def _ensure_directory(self) -> None:
        """Create the cache directory and check it is writable.

        Raises:
            CacheDirectoryError: If the directory cannot be created or written.
        """
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheDirectoryError(f"Cannot create cache directory {self._cache_dir}: {e}") from e

        if not self._cache_dir.is_dir() or not os.access(self._cache_dir, os.W_OK):
            raise CacheDirectoryError(f"Cache directory {self._cache_dir} is not writable")

    def _record_path(self, key: str) -> Path:
        return self._cache_dir / f"{key}{ENTRY_SUFFIX}"

    def _list_records(self) -> List[Path]:
        try:
            return sorted(self._cache_dir.glob(f"*{ENTRY_SUFFIX}"))
        except OSError as e:
            logger.warning(f"Cannot list cache directory {self._cache_dir}: {e}")
            return []

    def _read_record(self, record: Path) -> CacheEntry:
        """Decode one persisted record.

        Raises:
            CacheCorruptionError: If the record is unreadable or malformed.
        """
        try:
            with open(record, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorruptionError(str(e)) from e

        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            raise CacheCorruptionError("unsupported record format")

        try:
            entry = CacheEntry.from_dict(data)
        except (KeyError, TypeError) as e:
            raise CacheCorruptionError(f"missing field {e}") from e
        _check_field_types(entry)

        if not entry.key or not entry.file_path or record.stem != entry.key:
            raise CacheCorruptionError("record key does not match its filename")
        return entry

    def _save_cache_entry_to_disk(self, entry: CacheEntry) -> None:
        """Persist one entry; failures are logged and ignored."""
        record = self._record_path(entry.key)
        temp_record = record.with_name(f".{record.name}.{threading.get_ident()}.tmp")
        data = {"version": CACHE_FORMAT_VERSION, **entry.to_dict()}
        try:
            with open(temp_record, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_record, record)
        except OSError as e:
            logger.warning(f"Error saving cache entry {entry.key}: {e}")
            try:
                temp_record.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Could not remove temporary record {temp_record}")

    def _remove_cache_entry_from_disk(self, key: str) -> None:
        self._delete_record(self._record_path(key))

    def _delete_record(self, record: Path) -> None:
        try:
            record.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error removing cache record {record.name}: {e}")


_STR_FIELDS = ("key", "file_path", "summary")
_INT_FIELDS = ("file_size", "estimated_tokens")
_NUMBER_FIELDS = ("last_modified", "created_at", "accessed_at")


def _check_field_types(entry: CacheEntry) -> None:
    """Reject records whose fields decoded to the wrong JSON types.

    Raises:
        CacheCorruptionError: On the first mistyped field.
    """
    for name in _STR_FIELDS:
        if not isinstance(getattr(entry, name), str):
            raise CacheCorruptionError(f"field '{name}' must be a string")
    # bool is a subclass of int and is never a valid size or timestamp
    for name in _INT_FIELDS:
        value = getattr(entry, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise CacheCorruptionError(f"field '{name}' must be an integer")
    for name in _NUMBER_FIELDS:
        value = getattr(entry, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CacheCorruptionError(f"field '{name}' must be a number")

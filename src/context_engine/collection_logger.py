# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Collection event logging in JSONL format.

One record per collect_context() call:
- JSONL format (one JSON object per line)
- Flushed after every write so events survive an abrupt exit
- Date-based file rotation (one file per UTC date and session)
- Session statistics for the shutdown summary

Log Location: ~/.context_engine/collections/<DATE>-<SESSION-ID>.jsonl
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from context_engine.collector import CollectionOutcome
from context_engine.log_config import (
    build_log_filename,
    get_collections_dir,
    get_current_utc_date,
)

logger = logging.getLogger(__name__)

EVENT_TYPE = "context_collection"


@dataclass
class CollectionEvent:
    """A single logged collection.

    Attributes:
        timestamp: ISO 8601 timestamp.
        event_type: Always "context_collection" for filtering.
        current_file: Path of the current file as passed by the caller.
        cursor_line: Cursor line, if given.
        selection_length: Characters in the selection (0 if none).
        files: Selected project-relative paths in order.
        rejected: Candidates skipped because of a budget.
        total_lines: Lines in the collection.
        estimated_tokens: Token estimate of the collection.
        truncated: Whether anything was cut.
        cache_hits: Summary cache hits during the call.
        cache_misses: Summary cache misses during the call.
    """

    timestamp: str
    event_type: str
    current_file: str
    cursor_line: Optional[int]
    selection_length: int
    files: List[str]
    rejected: List[str]
    total_lines: int
    estimated_tokens: int
    truncated: bool
    cache_hits: int
    cache_misses: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary suitable for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "current_file": self.current_file,
            "cursor_line": self.cursor_line,
            "selection_length": self.selection_length,
            "files": self.files,
            "rejected": self.rejected,
            "total_lines": self.total_lines,
            "estimated_tokens": self.estimated_tokens,
            "truncated": self.truncated,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionEvent":
        """Create a CollectionEvent from a dictionary."""
        return cls(
            timestamp=data["timestamp"],
            event_type=data["event_type"],
            current_file=data["current_file"],
            cursor_line=data.get("cursor_line"),
            selection_length=data.get("selection_length", 0),
            files=data["files"],
            rejected=data.get("rejected", []),
            total_lines=data["total_lines"],
            estimated_tokens=data["estimated_tokens"],
            truncated=data["truncated"],
            cache_hits=data.get("cache_hits", 0),
            cache_misses=data.get("cache_misses", 0),
        )

    @classmethod
    def create(
        cls,
        current_file: str,
        outcome: CollectionOutcome,
        selected_text: Optional[str] = None,
        cursor_line: Optional[int] = None,
    ) -> "CollectionEvent":
        """Build an event for a finished collection, stamped with the current time."""
        collection = outcome.collection
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            event_type=EVENT_TYPE,
            current_file=current_file,
            cursor_line=cursor_line,
            selection_length=len(selected_text) if selected_text else 0,
            files=collection.paths,
            rejected=list(outcome.rejected_by_budget),
            total_lines=collection.total_lines,
            estimated_tokens=collection.estimated_tokens,
            truncated=collection.truncated,
            cache_hits=outcome.cache_hits,
            cache_misses=outcome.cache_misses,
        )


@dataclass
class CollectionStatistics:
    """Aggregated collection data for one session."""

    total_collections: int = 0
    truncated_collections: int = 0
    total_tokens: int = 0
    cache_hit_count: int = 0
    cache_miss_count: int = 0
    by_current_file: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary suitable for JSON serialization."""
        average_tokens = 0.0
        if self.total_collections > 0:
            average_tokens = self.total_tokens / self.total_collections

        return {
            "total_collections": self.total_collections,
            "truncated_collections": self.truncated_collections,
            "total_tokens": self.total_tokens,
            "average_tokens": round(average_tokens, 1),
            "cache_hit_count": self.cache_hit_count,
            "cache_miss_count": self.cache_miss_count,
            "by_current_file": self.by_current_file,
        }


class CollectionLogger:
    """Appends collection events to a per-session JSONL file.

    Usage:
        with CollectionLogger(session_id="abc-123") as collection_logger:
            collection_logger.log_collection(event)
            stats = collection_logger.get_statistics()
    """

    def __init__(
        self,
        session_id: str,
        data_root: Optional[Path] = None,
        max_unique_files_tracked: int = 10000,
    ) -> None:
        """Initialize the collection logger.

        Args:
            session_id: Session ID used in the log filename.
            data_root: Root directory for logs; events go to {data_root}/collections/.
            max_unique_files_tracked: Cap on distinct current files counted in
                statistics, bounding memory in long sessions.

        Raises:
            ValueError: If session_id is not a safe filename component.
        """
        self._log_dir = get_collections_dir(data_root)
        self._session_id = session_id
        self._log_file = build_log_filename(session_id)
        self._current_date = get_current_utc_date()
        self._max_unique_files_tracked = max_unique_files_tracked

        self._collection_count = 0
        self._truncated_count = 0
        self._total_tokens = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._by_current_file: Counter[str] = Counter()

        self._file_handle: Optional[TextIO] = None

    def _get_log_path(self) -> Path:
        return self._log_dir / self._log_file

    def _check_date_rotation(self) -> None:
        """Switch to a new file when the UTC date changes."""
        current_date = get_current_utc_date()
        if current_date != self._current_date:
            if self._file_handle is not None:
                self._file_handle.close()
                self._file_handle = None
                logger.debug(f"Rotated collection log: {self._current_date} -> {current_date}")
            self._current_date = current_date
            self._log_file = build_log_filename(self._session_id)

    def _open_file(self) -> TextIO:
        self._check_date_rotation()

        if self._file_handle is None:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            log_path = self._get_log_path()
            # Handle lifetime is managed by close()
            self._file_handle = open(log_path, "a", encoding="utf-8")  # noqa: SIM115
            logger.debug(f"Opened collection log file: {log_path}")
        return self._file_handle

    def log_collection(self, event: CollectionEvent) -> None:
        """Write one event and flush it to disk."""
        file_handle = self._open_file()
        file_handle.write(json.dumps(event.to_dict(), separators=(",", ":")) + "\n")
        file_handle.flush()

        self._collection_count += 1
        self._total_tokens += event.estimated_tokens
        self._cache_hits += event.cache_hits
        self._cache_misses += event.cache_misses
        if event.truncated:
            self._truncated_count += 1

        if (
            len(self._by_current_file) < self._max_unique_files_tracked
            or event.current_file in self._by_current_file
        ):
            self._by_current_file[event.current_file] += 1

    def get_statistics(self, top_files_count: int = 5) -> CollectionStatistics:
        """Get session statistics, with the most frequently collected files."""
        return CollectionStatistics(
            total_collections=self._collection_count,
            truncated_collections=self._truncated_count,
            total_tokens=self._total_tokens,
            cache_hit_count=self._cache_hits,
            cache_miss_count=self._cache_misses,
            by_current_file=dict(self._by_current_file.most_common(top_files_count)),
        )

    def get_log_path(self) -> Path:
        """Get the path to the current log file."""
        return self._get_log_path()

    def close(self) -> None:
        """Close the log file handle."""
        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None
            logger.debug(f"Closed collection log file: {self._get_log_path()}")

    def __enter__(self) -> "CollectionLogger":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def read_collection_events(
    log_path: Path,
    current_file: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[CollectionEvent]:
    """Read collection events back from a JSONL log.

    Malformed lines are skipped with a warning.

    Args:
        log_path: Path to a collections log file.
        current_file: If provided, only events for this current file.
        limit: If provided, only the most recent `limit` matching events.

    Returns:
        Events in chronological order (empty if the file does not exist).
    """
    if not log_path.exists():
        return []

    events: List[CollectionEvent] = []
    with open(log_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                event = CollectionEvent.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed log entry: {e}")
                continue
            if current_file is None or event.current_file == current_file:
                events.append(event)

    if limit is not None:
        events = events[-limit:] if limit > 0 else []
    return events

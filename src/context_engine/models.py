# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for context assembly.

This module defines the data structures passed between the engine components:
- ImportType: Classification of a discovered import
- ImportInfo: One import found in a file
- FileFingerprint: (path, mtime, size) used for cache validation
- ContextFile: One selected file's contribution to a collection
- ContextCollection: The bounded result handed to the AI request layer
- CacheEntry: Persisted per-file summary
- CacheMetrics: Counters for the summary cache

All models use JSON-compatible primitives for serialization.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ImportType:
    """Types of import specifiers.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    RELATIVE = "relative"  # ./foo, ../foo, from .foo import bar
    ABSOLUTE = "absolute"  # /src/foo, src/foo
    PACKAGE = "package"  # react, os, <stdio.h>


@dataclass
class ImportInfo:
    """An import statement discovered in a source file.

    Package imports never carry a resolved_path; relative and absolute imports
    carry one only when a workspace file was found for them.
    """

    file_path: str  # File containing the import statement
    imported_from: str  # Raw specifier as written
    import_type: str  # ImportType value
    line: int  # 1-based line number
    resolved_path: Optional[str] = None  # Absolute path of the imported file

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "file_path": self.file_path,
            "imported_from": self.imported_from,
            "import_type": self.import_type,
            "line": self.line,
            "resolved_path": self.resolved_path,
        }


@dataclass(frozen=True)
class FileFingerprint:
    """Identity of a file's on-disk state at one moment."""

    path: str
    mtime: float
    size: int

    @classmethod
    def of(cls, file_path: str) -> "FileFingerprint":
        """Stat a file and build its fingerprint.

        Raises:
            OSError: If the file cannot be stat'ed.
        """
        stat = os.stat(file_path)
        return cls(path=file_path, mtime=stat.st_mtime, size=stat.st_size)


@dataclass
class ContextFile:
    """A file selected into a context collection."""

    path: str  # Project-relative path with '/' separators
    name: str
    extension: str
    content: str  # Possibly truncated
    lines: int  # Lines actually included
    estimated_tokens: int
    relevance_score: float
    truncated: bool
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict, omitting an absent summary."""
        result: Dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "extension": self.extension,
            "content": self.content,
            "lines": self.lines,
            "estimated_tokens": self.estimated_tokens,
            "relevance_score": self.relevance_score,
            "truncated": self.truncated,
        }
        if self.summary is not None:
            result["summary"] = self.summary
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextFile":
        """Deserialize from JSON-compatible dict."""
        return cls(
            path=data["path"],
            name=data["name"],
            extension=data["extension"],
            content=data["content"],
            lines=data["lines"],
            estimated_tokens=data["estimated_tokens"],
            relevance_score=data["relevance_score"],
            truncated=data["truncated"],
            summary=data.get("summary"),
        )


@dataclass
class ContextCollection:
    """Ordered, budget-bounded set of context files.

    The current file is always files[0]; the rest follow in selection order.
    """

    files: List[ContextFile] = field(default_factory=list)
    total_lines: int = 0
    estimated_tokens: int = 0
    summary: str = ""
    truncated: bool = False

    @property
    def paths(self) -> List[str]:
        """Project-relative paths in selection order."""
        return [f.path for f in self.files]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "files": [f.to_dict() for f in self.files],
            "total_lines": self.total_lines,
            "estimated_tokens": self.estimated_tokens,
            "summary": self.summary,
            "truncated": self.truncated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextCollection":
        """Deserialize from JSON-compatible dict."""
        return cls(
            files=[ContextFile.from_dict(f) for f in data.get("files", [])],
            total_lines=data.get("total_lines", 0),
            estimated_tokens=data.get("estimated_tokens", 0),
            summary=data.get("summary", ""),
            truncated=data.get("truncated", False),
        )

    def to_prompt_text(self) -> str:
        """Render the collection as fenced file blocks for prompt construction."""
        parts = [self.summary]
        for context_file in self.files:
            language = context_file.extension.lstrip(".")
            parts.append(f"File: {context_file.path}\n```{language}\n{context_file.content}\n```")
        return "\n\n".join(parts)


@dataclass
class CacheEntry:
    """Persisted summary of one file.

    An entry is only valid while the live file still has last_modified and
    file_size, and while it is younger than the configured maximum age.
    """

    key: str
    file_path: str
    last_modified: float  # File mtime when cached
    file_size: int  # File size in bytes when cached
    summary: str
    estimated_tokens: int
    created_at: float  # Unix timestamp
    accessed_at: float  # Unix timestamp

    def matches(self, fingerprint: FileFingerprint) -> bool:
        """Check whether the entry was computed from this on-disk state."""
        return self.last_modified == fingerprint.mtime and self.file_size == fingerprint.size

    def age(self, now: float) -> float:
        """Seconds since the entry was created."""
        return now - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "key": self.key,
            "file_path": self.file_path,
            "last_modified": self.last_modified,
            "file_size": self.file_size,
            "summary": self.summary,
            "estimated_tokens": self.estimated_tokens,
            "created_at": self.created_at,
            "accessed_at": self.accessed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Deserialize from JSON-compatible dict.

        Raises:
            KeyError: If required fields are missing from data dict.
        """
        return cls(
            key=data["key"],
            file_path=data["file_path"],
            last_modified=data["last_modified"],
            file_size=data["file_size"],
            summary=data["summary"],
            estimated_tokens=data["estimated_tokens"],
            created_at=data["created_at"],
            accessed_at=data["accessed_at"],
        )


@dataclass
class CachedSummary:
    """Summary returned by a cache hit."""

    summary: str
    estimated_tokens: int


@dataclass
class CacheMetrics:
    """Counters for the summary cache.

    hits/misses/evictions are cumulative for the engine's lifetime;
    total_entries/cache_size describe the current index.
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_entries: int = 0
    cache_size: int = 0  # Bytes of stored summaries

    @property
    def hit_rate(self) -> float:
        """hits / (hits + misses), or 0.0 before any lookup."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "total_entries": self.total_entries,
            "cache_size": self.cache_size,
            "hit_rate": self.hit_rate,
        }

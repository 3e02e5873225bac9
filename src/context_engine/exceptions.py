# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Error kinds raised by the context engine.

Only FileAccessError and ConfigurationError reach callers. The cache errors are
raised inside the cache layer and absorbed there: a corrupt entry becomes a
miss and an inaccessible cache directory disables caching for the session.
"""


class ContextEngineError(Exception):
    """Base exception for all context engine errors."""


class FileAccessError(ContextEngineError):
    """Raised when a path exists but cannot be read (permissions, directory, encoding)."""

    def __init__(self, file_path: str, reason: str):
        super().__init__(f"Cannot read {file_path}: {reason}")
        self.file_path = file_path
        self.reason = reason


class ConfigurationError(ContextEngineError):
    """Raised when configuration validation fails critically."""


class CacheCorruptionError(ContextEngineError):
    """Raised when a persisted cache entry cannot be decoded."""


class CacheDirectoryError(ContextEngineError):
    """Raised when the cache directory cannot be created or accessed."""

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared log locations for the context engine.

- Configurable data root directory (default: ~/.context_engine/)
- Date-session filename pattern (YYYY-MM-DD-<SESSION-ID>.jsonl)
- Subdirectories: collections/ (collection events), logs/ (application logs)
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

DEFAULT_DATA_ROOT = Path.home() / ".context_engine"

COLLECTIONS_SUBDIR = "collections"
LOGS_SUBDIR = "logs"


def get_default_data_root() -> Path:
    """Get the default data root directory.

    Returns:
        Path to ~/.context_engine/
    """
    return DEFAULT_DATA_ROOT


def get_current_utc_date() -> str:
    """Get the current UTC date in YYYY-MM-DD format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def validate_filename_component(value: str, name: str = "value") -> None:
    """Validate a string for safe use in filenames.

    Raises:
        ValueError: If value contains path separators, parent references,
                   or null bytes.
    """
    if "\0" in value:
        raise ValueError(f"{name} contains null bytes: {value}")
    if "/" in value or "\\" in value or ":" in value:
        raise ValueError(f"{name} must not contain path separators: {value}")
    if ".." in value:
        raise ValueError(f"{name} must not contain parent references: {value}")


def build_log_filename(session_id: str, extension: str = "jsonl") -> str:
    """Build a log filename like "2025-12-11-abc123.jsonl".

    Raises:
        ValueError: If session_id is not a safe filename component.
    """
    validate_filename_component(session_id, "session_id")
    return f"{get_current_utc_date()}-{session_id}.{extension}"


def get_collections_dir(data_root: Optional[Path] = None) -> Path:
    """Get the collection event log directory ({data_root}/collections/)."""
    return (data_root or DEFAULT_DATA_ROOT) / COLLECTIONS_SUBDIR


def get_logs_dir(data_root: Optional[Path] = None) -> Path:
    """Get the application log directory ({data_root}/logs/)."""
    return (data_root or DEFAULT_DATA_ROOT) / LOGS_SUBDIR


def ensure_log_directories(data_root: Optional[Path] = None) -> None:
    """Create all log subdirectories if they don't exist."""
    root = data_root or DEFAULT_DATA_ROOT
    root.mkdir(parents=True, exist_ok=True)
    (root / COLLECTIONS_SUBDIR).mkdir(exist_ok=True)
    (root / LOGS_SUBDIR).mkdir(exist_ok=True)

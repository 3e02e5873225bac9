# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File system watcher that keeps the summary cache honest.

- Watchdog library for cross-platform file watching
- Modify, delete and move events on source files invoke invalidation
  callbacks (the engine registers its invalidate_cache)
- Hard-coded dependency/build directories and sensitive files are never
  reported; configured exclude patterns are honoured too

Callbacks run synchronously on the watchdog thread, so they must be
thread-safe and quick. A failing callback is logged and does not stop the
others from running.
"""

import fnmatch
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from context_engine.collector import SOURCE_EXTENSIONS
from context_engine.patterns import ExcludeMatcher

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Callback signature: (absolute_file_path) -> None
InvalidationCallback = Callable[[str], None]


class FileWatcher:
    """Watches a project tree and reports changed source files.

    Usage:
        watcher = FileWatcher(project_root="/path/to/project")
        watcher.register_invalidation_callback(engine.invalidate_cache)
        watcher.start()
        ...
        watcher.stop()
    """

    ALWAYS_IGNORED = {
        ".git",
        "node_modules",
        "dist",
        "build",
        "coverage",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".pytest_cache",
        ".mypy_cache",
        "*.egg-info",
    }

    SENSITIVE_PATTERNS = {
        ".env",
        ".env.*",
        "credentials.json",
        "*.key",
        "*.pem",
        "*.p12",
        "*.pfx",
        "id_rsa",
        "id_ed25519",
        "secrets.yaml",
        "secrets.yml",
        ".npmrc",
        ".pypirc",
    }

    def __init__(
        self,
        project_root: str,
        exclude_patterns: Iterable[str] = (),
        ignored_directories: Iterable[str] = (),
    ) -> None:
        """Initialize FileWatcher.

        Args:
            project_root: Root directory to watch recursively.
            exclude_patterns: Configured exclude patterns (glob or `re:` regex).
            ignored_directories: Extra absolute directories to skip, such as
                the cache directory itself.
        """
        self.project_root = Path(project_root).resolve()
        self._matcher = ExcludeMatcher(exclude_patterns)
        self._ignored_directories = [Path(d).resolve() for d in ignored_directories]
        self._invalidation_callbacks: List[InvalidationCallback] = []

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _FileEventHandler(self)

        logger.info(f"FileWatcher initialized for {self.project_root}")

    def should_ignore(self, file_path: str) -> bool:
        """Check whether events for a path are never reported."""
        path = Path(file_path)

        for directory in self._ignored_directories:
            if path == directory or directory in path.parents:
                return True

        try:
            relative = path.relative_to(self.project_root)
        except ValueError:
            relative = path

        # Only components below the root count; the root may itself live under "build/"
        for part in relative.parts:
            if any(fnmatch.fnmatch(part, pattern) for pattern in self.ALWAYS_IGNORED):
                return True

        if any(fnmatch.fnmatch(path.name, pattern) for pattern in self.SENSITIVE_PATTERNS):
            logger.debug(f"Ignoring sensitive file: {path.name}")
            return True

        return self._matcher.matches(relative.as_posix())

    def is_supported_file(self, file_path: str) -> bool:
        """Check whether a path has a source extension the collector reads."""
        return Path(file_path).suffix.lower() in SOURCE_EXTENSIONS

    def register_invalidation_callback(self, callback: InvalidationCallback) -> None:
        """Register a callback invoked with the path of each changed file."""
        if callback not in self._invalidation_callbacks:
            self._invalidation_callbacks.append(callback)
            logger.debug(f"Registered invalidation callback: {callback}")

    def unregister_invalidation_callback(self, callback: InvalidationCallback) -> None:
        if callback in self._invalidation_callbacks:
            self._invalidation_callbacks.remove(callback)
            logger.debug(f"Unregistered invalidation callback: {callback}")

    def notify(self, file_path: str) -> None:
        """Run every registered callback for a changed file."""
        for callback in self._invalidation_callbacks:
            try:
                callback(file_path)
            except Exception as e:
                # One failing callback must not starve the rest
                logger.error(f"Invalidation callback failed for {file_path}: {e}")

    def start(self) -> None:
        """Start watching the project root.

        Raises:
            RuntimeError: If the watcher is already running.
        """
        if self.is_running():
            raise RuntimeError("FileWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.project_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version
        logger.info(f"FileWatcher started, monitoring {self.project_root}")

    def stop(self) -> None:
        """Stop watching; blocks until the observer thread exits (with timeout)."""
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("FileWatcher stopped")
        self._observer = None

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class _FileEventHandler(FileSystemEventHandler):
    """Translates watchdog events into invalidation notifications."""

    def __init__(self, watcher: FileWatcher) -> None:
        super().__init__()
        self.watcher = watcher

    def _report(self, file_path: str, event_type: str) -> None:
        if self.watcher.should_ignore(file_path) or not self.watcher.is_supported_file(file_path):
            return
        logger.debug(f"Event: {event_type} - {file_path}")
        self.watcher.notify(file_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._report(str(event.src_path), event.event_type)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._report(str(event.src_path), event.event_type)

    def on_moved(self, event: FileSystemEvent) -> None:
        """A move invalidates both paths; editors often save by renaming over the target."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return
        self._report(str(event.src_path), "moved_from")
        self._report(str(event.dest_path), "moved_to")

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Exclude-pattern matching for candidate files.

Patterns use gitignore wildcard syntax (via pathspec) by default:
- `**` matches across directories, including none (`**/x.ts` matches `x.ts`)
- `*` matches within one path component
- `?` matches one character within a component

A pattern prefixed with `re:` is a raw regular expression, searched in the
project-relative path. A malformed pattern is logged and skipped; it never
makes matching fail.

A path matches a glob pattern when the pattern matches the whole
project-relative path or any trailing run of path components (so
`node_modules/**` also excludes `packages/app/node_modules/x.js`).
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Iterable, List, Pattern, Tuple

import pathspec

logger = logging.getLogger(__name__)

REGEX_PREFIX = "re:"


class ExcludeMatcher:
    """Compiled set of exclude patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._globs: List[Tuple[str, pathspec.PathSpec]] = []
        self._regexes: List[Tuple[str, Pattern[str]]] = []
        self.invalid_patterns: List[str] = []

        for pattern in patterns:
            try:
                if pattern.startswith(REGEX_PREFIX):
                    self._regexes.append((pattern, re.compile(pattern[len(REGEX_PREFIX) :])))
                else:
                    # One spec per pattern so a bad pattern only loses itself
                    self._globs.append(
                        (pattern, pathspec.PathSpec.from_lines("gitwildmatch", [pattern]))
                    )
            except (re.error, ValueError) as e:
                logger.warning(f"Ignoring malformed exclude pattern {pattern!r}: {e}")
                self.invalid_patterns.append(pattern)

    def matches(self, relative_path: str) -> bool:
        """Check whether a project-relative path is excluded.

        Args:
            relative_path: Path relative to the project root; backslashes are
                treated as separators.
        """
        normalized = relative_path.replace("\\", "/")
        parts = PurePosixPath(normalized).parts
        suffixes = ["/".join(parts[i:]) for i in range(len(parts))]

        for pattern, spec in self._globs:
            for suffix in suffixes:
                if spec.match_file(suffix):
                    logger.debug(f"Excluding {normalized} (matches {pattern!r})")
                    return True

        for pattern, compiled in self._regexes:
            if compiled.search(normalized):
                logger.debug(f"Excluding {normalized} (matches {pattern!r})")
                return True

        return False

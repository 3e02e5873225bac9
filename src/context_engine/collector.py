# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Context collection under file, line and token budgets.

Collection workflow for one current file:
1. Load the current file unconditionally (never excluded, never scored
   against others, always first), truncated to max_lines_per_file
2. Discover imports of the current file (if include_imports)
3. Build the candidate pool: resolved imports in line order, then source
   files in the same directory sorted by name; drop duplicates, the current
   file and excluded paths
4. Score candidates and stable-sort them by descending score, so ties keep
   discovery order
5. Accept greedily while file count, total lines and total tokens stay in
   budget; a candidate that does not fit is skipped and scanning continues
6. Attach a per-file summary to every accepted file, from the summary cache
   when valid, otherwise generated and written back
7. Build the collection digest and truncation flag

Every step reads one ContextConfig snapshot, so a concurrent update_config()
never changes a collection halfway through.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from context_engine.cache import SummaryCache
from context_engine.config import ContextConfig
from context_engine.exceptions import FileAccessError
from context_engine.import_resolver import (
    C_EXTENSIONS,
    JS_EXTENSIONS,
    PYTHON_EXTENSIONS,
    ImportResolver,
    resolved_import_map,
)
from context_engine.models import ContextCollection, ContextFile, FileFingerprint, ImportInfo
from context_engine.patterns import ExcludeMatcher
from context_engine.relevance import CODE_EXTENSIONS, CandidateFile, RelevanceScorer
from context_engine.tokens import estimate_tokens

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n... (file truncated)"

# Files in the current directory with these extensions are sibling candidates
SOURCE_EXTENSIONS = frozenset(CODE_EXTENSIONS | JS_EXTENSIONS | PYTHON_EXTENSIONS | C_EXTENSIONS)

MAX_SIBLING_CANDIDATES = 200
MAX_CANDIDATE_BYTES = 10 * 1024 * 1024  # 10 MB

SUMMARY_HEAD_LINES = 5
SUMMARY_TAIL_LINES = 3


@dataclass
class CollectionOutcome:
    """A collection plus the bookkeeping the engine logs about it."""

    collection: ContextCollection
    cache_hits: int = 0
    cache_misses: int = 0
    candidates_considered: int = 0
    rejected_by_budget: List[str] = field(default_factory=list)


@dataclass
class _LoadedCandidate:
    """A readable candidate with its scoring facts and prepared ContextFile."""

    candidate: CandidateFile
    context_file: ContextFile
    raw_content: str
    fingerprint: Optional[FileFingerprint]  # Taken before raw_content was read


class ContextCollector:
    """Selects and truncates the files that make up a context collection.

    Usage:
        collector = ContextCollector(project_root, cache)
        outcome = collector.collect(config, "/project/src/a.ts")
        collection = outcome.collection
    """

    def __init__(
        self,
        project_root: str,
        cache: SummaryCache,
        resolver: Optional[ImportResolver] = None,
        scorer: Optional[RelevanceScorer] = None,
    ) -> None:
        """Initialize collector.

        Args:
            project_root: Root used for relative display paths and import resolution.
            cache: Summary cache consulted for every accepted file.
            resolver: Import resolver (default: one rooted at project_root).
            scorer: Relevance scorer (default: standard weights).
        """
        self.project_root = Path(project_root).resolve()
        self._cache = cache
        self._resolver = resolver if resolver is not None else ImportResolver(str(self.project_root))
        self._scorer = scorer if scorer is not None else RelevanceScorer()

    def collect_context(
        self,
        config: ContextConfig,
        current_file_path: str,
        selected_text: Optional[str] = None,
        cursor_line: Optional[int] = None,
    ) -> ContextCollection:
        """Collect a bounded context collection for a file.

        Raises:
            FileNotFoundError: If the current file does not exist.
            FileAccessError: If the current file cannot be read.
        """
        return self.collect(config, current_file_path, selected_text, cursor_line).collection

    def collect(
        self,
        config: ContextConfig,
        current_file_path: str,
        selected_text: Optional[str] = None,
        cursor_line: Optional[int] = None,
    ) -> CollectionOutcome:
        """Run the collection workflow and report what happened.

        Args:
            config: Snapshot of budgets and settings for this call.
            current_file_path: Absolute or project-relative path of the current file.
            selected_text: Optional editor selection, used for content scoring.
            cursor_line: Optional 1-based cursor line (recorded only).

        Returns:
            CollectionOutcome with the collection and cache/budget statistics.

        Raises:
            FileNotFoundError: If the current file does not exist.
            FileAccessError: If the current file cannot be read.
        """
        current_path = self._absolute(current_file_path)
        logger.info(f"Collecting context for {current_path}")

        # Step 1: current file, mandatory
        current_fingerprint = self._fingerprint(current_path)
        raw_current = self._read_current_file(current_path)
        current_file = self.load_context_file(
            current_path,
            raw_current,
            config,
            relevance_score=self._scorer.calculate_relevance_score(
                current_path, raw_current, selected_text
            ),
        )
        current_file = self._fit_current_to_token_budget(current_file, config)

        # Step 2: imports
        imports: List[ImportInfo] = []
        if config.include_imports:
            imports = self._resolver.find_imports(raw_current, current_path)

        # Steps 3-4: candidate pool, scored and ranked
        matcher = ExcludeMatcher(config.exclude_patterns)
        loaded = self._load_candidates(current_path, imports, matcher, config, selected_text)
        ranked = sorted(loaded, key=lambda item: -item.context_file.relevance_score)

        # Step 5: greedy acceptance
        current_item = _LoadedCandidate(
            candidate=CandidateFile(
                path=current_path,
                size=len(raw_current.encode("utf-8")),
                line_count=len(raw_current.splitlines()),
                discovery_index=-1,
            ),
            context_file=current_file,
            raw_content=raw_current,
            fingerprint=current_fingerprint,
        )
        accepted: List[_LoadedCandidate] = [current_item]
        total_lines = current_file.lines
        total_tokens = current_file.estimated_tokens
        line_ceiling = config.max_files * config.max_lines_per_file
        truncated = current_file.truncated
        rejected: List[str] = []

        for item in ranked:
            context_file = item.context_file
            if len(accepted) >= config.max_files:
                rejected.append(context_file.path)
                continue
            if (
                total_lines + context_file.lines > line_ceiling
                or total_tokens + context_file.estimated_tokens > config.max_total_tokens
            ):
                rejected.append(context_file.path)
                logger.debug(f"Skipping {context_file.path}: exceeds line or token budget")
                continue

            accepted.append(item)
            total_lines += context_file.lines
            total_tokens += context_file.estimated_tokens
            truncated = truncated or context_file.truncated
            logger.debug(
                f"Added {context_file.name} ({context_file.lines} lines, "
                f"score={context_file.relevance_score})"
            )

        if rejected:
            truncated = True

        # Step 6: summaries
        outcome = CollectionOutcome(
            collection=ContextCollection(),
            candidates_considered=len(ranked),
            rejected_by_budget=rejected,
        )
        files: List[ContextFile] = []
        for item in accepted:
            context_file = item.context_file
            context_file.summary, cache_hit = self._summary_for(
                item.candidate.path, item.raw_content, item.fingerprint
            )
            if cache_hit:
                outcome.cache_hits += 1
            else:
                outcome.cache_misses += 1
            files.append(context_file)

        # Step 7: digest
        outcome.collection = ContextCollection(
            files=files,
            total_lines=total_lines,
            estimated_tokens=total_tokens,
            summary=self.generate_context_summary(files, truncated),
            truncated=truncated,
        )

        logger.info(
            f"Context collection complete - {len(files)} files, {total_lines} lines, "
            f"~{total_tokens} tokens"
            + (f", cursor line {cursor_line}" if cursor_line is not None else "")
        )
        return outcome

    def load_context_file(
        self,
        file_path: str,
        content: str,
        config: ContextConfig,
        relevance_score: float = 0.0,
    ) -> ContextFile:
        """Build a ContextFile, truncating content to max_lines_per_file.

        Truncation keeps the first max_lines_per_file lines and appends
        TRUNCATION_MARKER; the marker is not counted as a line.
        """
        lines = content.splitlines()
        truncated = len(lines) > config.max_lines_per_file
        if truncated:
            final_content = "\n".join(lines[: config.max_lines_per_file]) + TRUNCATION_MARKER
            line_count = config.max_lines_per_file
            logger.debug(
                f"Truncated {os.path.basename(file_path)} from {len(lines)} "
                f"to {config.max_lines_per_file} lines"
            )
        else:
            final_content = content
            line_count = len(lines)

        path = Path(file_path)
        return ContextFile(
            path=self._display_path(file_path),
            name=path.name,
            extension=path.suffix,
            content=final_content,
            lines=line_count,
            estimated_tokens=estimate_tokens(final_content),
            relevance_score=relevance_score,
            truncated=truncated,
        )

    def is_duplicate(self, file_path: str, seen: Dict[str, str]) -> bool:
        """Check whether a path (after normalization) was already taken."""
        return _normalized(file_path) in seen

    def generate_file_summary(self, content: str) -> str:
        """Summarize a file by its first and last lines."""
        lines = content.splitlines()
        if len(lines) <= SUMMARY_HEAD_LINES + SUMMARY_TAIL_LINES:
            return f"File summary ({len(lines)} lines):\n" + "\n".join(lines)

        head = "\n".join(lines[:SUMMARY_HEAD_LINES])
        tail = "\n".join(lines[-SUMMARY_TAIL_LINES:])
        return (
            f"File summary ({len(lines)} lines, first {SUMMARY_HEAD_LINES}):\n{head}"
            f"\n\n... (content truncated) ...\n\n(last {SUMMARY_TAIL_LINES} lines):\n{tail}"
        )

    def generate_context_summary(self, files: List[ContextFile], truncated: bool) -> str:
        """Build the human-readable digest of a collection."""
        file_list = ", ".join(f"{f.name} ({f.lines} lines)" for f in files)
        total_lines = sum(f.lines for f in files)
        total_tokens = sum(f.estimated_tokens for f in files)

        summary = f"Context includes {len(files)} files: {file_list}. "
        summary += f"Total: {total_lines} lines, ~{total_tokens} tokens."
        if truncated:
            summary += " Some files or content were truncated due to size limits."
        return summary

    def _load_candidates(
        self,
        current_path: str,
        imports: List[ImportInfo],
        matcher: ExcludeMatcher,
        config: ContextConfig,
        selected_text: Optional[str],
    ) -> List[_LoadedCandidate]:
        """Discover, read and score candidates in discovery order."""
        import_by_path = resolved_import_map(imports)
        discovered: List[str] = list(import_by_path)
        discovered.extend(self._sibling_files(current_path))

        seen: Dict[str, str] = {_normalized(current_path): current_path}
        loaded: List[_LoadedCandidate] = []

        for candidate_path in discovered:
            if self.is_duplicate(candidate_path, seen):
                continue
            seen[_normalized(candidate_path)] = candidate_path

            if matcher.matches(self._display_path(candidate_path)):
                continue

            fingerprint = self._fingerprint(candidate_path)
            raw_content = self._read_candidate(candidate_path)
            if raw_content is None:
                continue

            candidate = CandidateFile(
                path=candidate_path,
                size=len(raw_content.encode("utf-8")),
                line_count=len(raw_content.splitlines()),
                discovery_index=len(loaded),
                import_info=import_by_path.get(candidate_path),
                imports_current=self._imports_file(raw_content, candidate_path, current_path),
            )
            context_file = self.load_context_file(candidate_path, raw_content, config)
            context_file.relevance_score = self._scorer.calculate_file_relevance_score(
                candidate, current_path
            ) + self._scorer.calculate_relevance_score(
                candidate_path, context_file.content, selected_text
            )
            loaded.append(_LoadedCandidate(candidate, context_file, raw_content, fingerprint))

        logger.debug(f"Candidate pool for {os.path.basename(current_path)}: {len(loaded)} files")
        return loaded

    def _sibling_files(self, current_path: str) -> List[str]:
        """Source files next to the current file, sorted by name."""
        directory = os.path.dirname(current_path)
        try:
            with os.scandir(directory) as entries:
                names = sorted(
                    entry.name
                    for entry in entries
                    if not entry.name.startswith(".")
                    and os.path.splitext(entry.name)[1].lower() in SOURCE_EXTENSIONS
                    and entry.is_file()
                )
        except OSError as e:
            logger.warning(f"Cannot list directory {directory}: {e}")
            return []

        if len(names) > MAX_SIBLING_CANDIDATES:
            logger.debug(
                f"{directory} has {len(names)} source files, "
                f"considering the first {MAX_SIBLING_CANDIDATES}"
            )
            names = names[:MAX_SIBLING_CANDIDATES]
        return [os.path.join(directory, name) for name in names]

    def _imports_file(self, content: str, file_path: str, target_path: str) -> bool:
        """Check whether a candidate's imports resolve to the target file."""
        target = _normalized(target_path)
        return any(
            info.resolved_path is not None and _normalized(info.resolved_path) == target
            for info in self._resolver.find_imports(content, file_path)
        )

    def _summary_for(
        self, file_path: str, raw_content: str, fingerprint: Optional[FileFingerprint]
    ) -> Tuple[str, bool]:
        """Get a file summary from the cache, or generate and store one.

        The summary is stored under the fingerprint taken before raw_content
        was read, so an edit made since then leaves the entry invalid.

        Returns:
            (summary, cache_hit)
        """
        cached = self._cache.get_cached_summary(file_path)
        if cached is not None:
            return cached.summary, True

        summary = self.generate_file_summary(raw_content)
        if fingerprint is not None:
            self._cache.cache_summary(
                file_path, summary, estimate_tokens(summary), fingerprint=fingerprint
            )
        return summary, False

    def _fingerprint(self, file_path: str) -> Optional[FileFingerprint]:
        try:
            return FileFingerprint.of(file_path)
        except OSError as e:
            logger.debug(f"Cannot stat {file_path}: {e}")
            return None

    def _fit_current_to_token_budget(
        self, context_file: ContextFile, config: ContextConfig
    ) -> ContextFile:
        """Cut the current file further when it alone exceeds max_total_tokens."""
        if context_file.estimated_tokens <= config.max_total_tokens:
            return context_file

        char_budget = config.max_total_tokens * 4
        body = context_file.content
        if body.endswith(TRUNCATION_MARKER):
            body = body[: -len(TRUNCATION_MARKER)]
        keep = max(0, char_budget - len(TRUNCATION_MARKER))
        content = (body[:keep] + TRUNCATION_MARKER)[:char_budget]

        logger.debug(
            f"Cut {context_file.name} to {char_budget} characters to fit max_total_tokens"
        )
        context_file.content = content
        context_file.lines = min(len(body[:keep].splitlines()), context_file.lines)
        context_file.estimated_tokens = estimate_tokens(content)
        context_file.truncated = True
        return context_file

    def _read_current_file(self, file_path: str) -> str:
        """Read the mandatory current file.

        Raises:
            FileNotFoundError: If the file does not exist.
            FileAccessError: If it exists but cannot be read as UTF-8 text.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if not path.is_file():
            raise FileAccessError(file_path, "not a regular file")

        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FileAccessError(file_path, f"not valid UTF-8 text ({e.reason})") from e
        except OSError as e:
            raise FileAccessError(file_path, e.strerror or str(e)) from e

    def _read_candidate(self, file_path: str) -> Optional[str]:
        """Read a candidate file, returning None (logged) if it cannot be used."""
        try:
            if os.path.getsize(file_path) > MAX_CANDIDATE_BYTES:
                logger.debug(f"Skipping {file_path}: larger than {MAX_CANDIDATE_BYTES} bytes")
                return None
            return Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable candidate {file_path}: {e}")
            return None

    def _absolute(self, file_path: str) -> str:
        path = Path(file_path)
        if not path.is_absolute():
            path = self.project_root / path
        return os.path.abspath(path)

    def _display_path(self, file_path: str) -> str:
        """Project-relative path with '/' separators (absolute if outside the root)."""
        path = Path(file_path)
        try:
            relative = path.resolve().relative_to(self.project_root)
        except (ValueError, OSError):
            return path.as_posix()
        return relative.as_posix()


def _normalized(file_path: str) -> str:
    return os.path.normcase(os.path.realpath(file_path))

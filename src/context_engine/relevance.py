# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Heuristic relevance scoring of candidate files.

Scores are additive sums of named signals from SIGNAL_WEIGHTS and
CONTENT_WEIGHTS. Nothing here reads the clock, the cache or any other mutable
state, so identical inputs always give identical scores and the collector's
stable sort stays deterministic.
"""

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, Iterable, Optional

from context_engine.models import ImportInfo

# Relationship signals between a candidate and the current file
SIGNAL_WEIGHTS: Dict[str, float] = {
    "direct_import": 50.0,  # current file imports the candidate
    "reverse_import": 40.0,  # candidate imports the current file
    "same_directory": 20.0,
    "name_similarity": 15.0,  # one stem contains the other
    "shared_extension": 10.0,
    "test_pairing": 8.0,  # foo.ts <-> foo.test.ts, test_foo.py <-> foo.py
    "small_file": 5.0,  # < SMALL_FILE_BYTES
    "medium_file": 3.0,  # < MEDIUM_FILE_BYTES
    "large_file_penalty": -2.0,  # per started LARGE_FILE_STEP lines over LARGE_FILE_LINES
}

# Signals read from the candidate's own content
CONTENT_WEIGHTS: Dict[str, float] = {
    "code_extension": 10.0,
    "under_50_lines": 5.0,
    "under_100_lines": 3.0,
    "under_200_lines": 1.0,
    "declarations": 5.0,  # export/class/function/def present
    "selection_identifier": 1.0,  # per identifier of the selection found in content
}

SMALL_FILE_BYTES = 5000
MEDIUM_FILE_BYTES = 10000
LARGE_FILE_LINES = 500
LARGE_FILE_STEP = 1000
MAX_SELECTION_MATCHES = 10

CODE_EXTENSIONS = frozenset(
    [".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py", ".java", ".cpp", ".c", ".h", ".cs", ".go", ".rs"]
)

_TEST_MARKERS = re.compile(r"(^test_|_test$|\.test$|\.spec$|^test$|^spec$)")
_DECLARATION = re.compile(r"(^|\s)(export|class|function|def)\s", re.MULTILINE)
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]{2,}")


@dataclass
class CandidateFile:
    """A file under consideration for inclusion, with facts used for scoring."""

    path: str  # Absolute path
    size: int  # Bytes
    line_count: int
    discovery_index: int  # Position in discovery order (tie-break)
    import_info: Optional[ImportInfo] = None  # Set when the current file imports this one
    imports_current: bool = False  # True when this file imports the current file


def _stem(path: str) -> str:
    """File name without its final extension (foo.test.ts -> foo.test)."""
    return PurePath(path).stem


def _base_stem(path: str) -> str:
    """Stem with test/spec markers removed (foo.test.ts -> foo)."""
    stem = _stem(path)
    return _TEST_MARKERS.sub("", stem) or stem


def is_test_file(path: str) -> bool:
    """Check whether a path follows a test naming convention."""
    return bool(_TEST_MARKERS.search(_stem(path)))


class RelevanceScorer:
    """Combines weighted signals into a single float score.

    Usage:
        scorer = RelevanceScorer()
        score = scorer.calculate_file_relevance_score(candidate, current_path)
    """

    def __init__(
        self,
        signal_weights: Optional[Dict[str, float]] = None,
        content_weights: Optional[Dict[str, float]] = None,
    ) -> None:
        self.signal_weights = dict(SIGNAL_WEIGHTS)
        if signal_weights:
            self.signal_weights.update(signal_weights)
        self.content_weights = dict(CONTENT_WEIGHTS)
        if content_weights:
            self.content_weights.update(content_weights)

    def file_signals(
        self,
        candidate: CandidateFile,
        current_file: str,
        import_info: Optional[ImportInfo] = None,
    ) -> Dict[str, float]:
        """List the relationship signals that fire for a candidate.

        Returns:
            Mapping of signal name to its contribution (weight times count).
        """
        weights = self.signal_weights
        signals: Dict[str, float] = {}
        candidate_path = PurePath(candidate.path)
        current_path = PurePath(current_file)

        if import_info is not None or candidate.import_info is not None:
            signals["direct_import"] = weights["direct_import"]
        if candidate.imports_current:
            signals["reverse_import"] = weights["reverse_import"]
        if candidate_path.parent == current_path.parent:
            signals["same_directory"] = weights["same_directory"]

        candidate_stem = _stem(candidate.path)
        current_stem = _stem(current_file)
        if candidate_stem and current_stem and (
            candidate_stem in current_stem or current_stem in candidate_stem
        ):
            signals["name_similarity"] = weights["name_similarity"]

        if candidate_path.suffix and candidate_path.suffix.lower() == current_path.suffix.lower():
            signals["shared_extension"] = weights["shared_extension"]

        if (
            is_test_file(candidate.path) != is_test_file(current_file)
            and _base_stem(candidate.path) == _base_stem(current_file)
        ):
            signals["test_pairing"] = weights["test_pairing"]

        if candidate.size < SMALL_FILE_BYTES:
            signals["small_file"] = weights["small_file"]
        elif candidate.size < MEDIUM_FILE_BYTES:
            signals["medium_file"] = weights["medium_file"]

        if candidate.line_count > LARGE_FILE_LINES:
            steps = (candidate.line_count - LARGE_FILE_LINES - 1) // LARGE_FILE_STEP + 1
            signals["large_file_penalty"] = weights["large_file_penalty"] * steps

        return signals

    def calculate_file_relevance_score(
        self,
        candidate: CandidateFile,
        current_file: str,
        import_info: Optional[ImportInfo] = None,
    ) -> float:
        """Score a candidate by its relationship to the current file.

        Args:
            candidate: Candidate file facts.
            current_file: Absolute path of the current file.
            import_info: Import through which the current file reaches the
                candidate, if any (overrides candidate.import_info).

        Returns:
            Sum of the fired signal contributions.
        """
        return sum(self.file_signals(candidate, current_file, import_info).values())

    def calculate_relevance_score(
        self, file_path: str, content: str, selected_text: Optional[str] = None
    ) -> float:
        """Score a file by its own content.

        Args:
            file_path: Path of the file (only the extension is used).
            content: File content as it will be included.
            selected_text: Optional editor selection; identifiers from it
                that also appear in content raise the score.

        Returns:
            Sum of the content signal contributions.
        """
        weights = self.content_weights
        score = 0.0

        if PurePath(file_path).suffix.lower() in CODE_EXTENSIONS:
            score += weights["code_extension"]

        line_count = len(content.splitlines())
        if line_count < 50:
            score += weights["under_50_lines"]
        elif line_count < 100:
            score += weights["under_100_lines"]
        elif line_count < 200:
            score += weights["under_200_lines"]

        if _DECLARATION.search(content):
            score += weights["declarations"]

        if selected_text:
            matches = _count_shared_identifiers(_IDENTIFIER.findall(selected_text), content)
            score += weights["selection_identifier"] * min(matches, MAX_SELECTION_MATCHES)

        return score


def _count_shared_identifiers(identifiers: Iterable[str], content: str) -> int:
    count = 0
    for identifier in sorted(set(identifiers)):
        if re.search(rf"\b{re.escape(identifier)}\b", content):
            count += 1
    return count

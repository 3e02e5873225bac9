# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for heuristic relevance scoring."""

import pytest

from context_engine.models import ImportInfo, ImportType
from context_engine.relevance import (
    CONTENT_WEIGHTS,
    SIGNAL_WEIGHTS,
    CandidateFile,
    RelevanceScorer,
    is_test_file,
)

CURRENT = "/project/src/user.ts"


def candidate(path: str, size: int = 100_000, line_count: int = 300, **kwargs) -> CandidateFile:
    return CandidateFile(path=path, size=size, line_count=line_count, discovery_index=0, **kwargs)


def import_of(path: str) -> ImportInfo:
    return ImportInfo(
        file_path=CURRENT,
        imported_from="./x",
        import_type=ImportType.RELATIVE,
        line=1,
        resolved_path=path,
    )


class TestFileSignals:
    """Test relationship signals one at a time."""

    def test_direct_import(self) -> None:
        path = "/project/lib/db.py"
        signals = RelevanceScorer().file_signals(candidate(path, import_info=import_of(path)), CURRENT)
        assert signals == {"direct_import": SIGNAL_WEIGHTS["direct_import"]}

    def test_import_info_argument_counts_as_direct_import(self) -> None:
        path = "/project/lib/db.py"
        signals = RelevanceScorer().file_signals(candidate(path), CURRENT, import_of(path))
        assert "direct_import" in signals

    def test_reverse_import(self) -> None:
        signals = RelevanceScorer().file_signals(
            candidate("/project/lib/db.py", imports_current=True), CURRENT
        )
        assert signals == {"reverse_import": SIGNAL_WEIGHTS["reverse_import"]}

    def test_same_directory_and_shared_extension(self) -> None:
        signals = RelevanceScorer().file_signals(candidate("/project/src/order.ts"), CURRENT)
        assert signals == {
            "same_directory": SIGNAL_WEIGHTS["same_directory"],
            "shared_extension": SIGNAL_WEIGHTS["shared_extension"],
        }

    def test_name_similarity(self) -> None:
        signals = RelevanceScorer().file_signals(candidate("/project/lib/userService.py"), CURRENT)
        assert signals == {"name_similarity": SIGNAL_WEIGHTS["name_similarity"]}

    @pytest.mark.parametrize(
        "test_path, current",
        [
            ("/project/src/user.test.ts", "/project/src/user.ts"),
            ("/project/src/user.spec.ts", "/project/src/user.ts"),
            ("/project/pkg/test_user.py", "/project/pkg/user.py"),
        ],
    )
    def test_test_pairing(self, test_path: str, current: str) -> None:
        signals = RelevanceScorer().file_signals(candidate(test_path), current)
        assert signals["test_pairing"] == SIGNAL_WEIGHTS["test_pairing"]

    def test_no_pairing_between_two_tests(self) -> None:
        signals = RelevanceScorer().file_signals(
            candidate("/project/src/user.spec.ts"), "/project/src/user.test.ts"
        )
        assert "test_pairing" not in signals

    def test_size_tiers(self) -> None:
        scorer = RelevanceScorer()
        far = "/project/lib/zzz.md"
        assert scorer.file_signals(candidate(far, size=4999), CURRENT) == {
            "small_file": SIGNAL_WEIGHTS["small_file"]
        }
        assert scorer.file_signals(candidate(far, size=5000), CURRENT) == {
            "medium_file": SIGNAL_WEIGHTS["medium_file"]
        }
        assert scorer.file_signals(candidate(far, size=10000), CURRENT) == {}

    @pytest.mark.parametrize(
        "line_count, expected",
        [(500, None), (501, -2.0), (1500, -2.0), (1501, -4.0), (2600, -6.0)],
    )
    def test_large_file_penalty(self, line_count: int, expected) -> None:
        signals = RelevanceScorer().file_signals(
            candidate("/project/lib/zzz.md", line_count=line_count), CURRENT
        )
        assert signals.get("large_file_penalty") == expected

    def test_score_is_sum_of_signals(self) -> None:
        path = "/project/src/user.test.ts"
        cand = candidate(path, size=1000, line_count=20, import_info=import_of(path))
        score = RelevanceScorer().calculate_file_relevance_score(cand, CURRENT)
        assert score == 50 + 20 + 15 + 10 + 8 + 5

    def test_custom_weights(self) -> None:
        scorer = RelevanceScorer(signal_weights={"same_directory": 100.0})
        signals = scorer.file_signals(candidate("/project/src/order.ts"), CURRENT)
        assert signals["same_directory"] == 100.0
        # Module defaults untouched
        assert SIGNAL_WEIGHTS["same_directory"] == 20.0

    def test_deterministic(self) -> None:
        scorer = RelevanceScorer()
        cand = candidate("/project/src/order.ts", size=3000)
        scores = {scorer.calculate_file_relevance_score(cand, CURRENT) for _ in range(10)}
        assert len(scores) == 1


class TestContentScore:
    """Test content signals."""

    def test_code_extension_and_short_file(self) -> None:
        score = RelevanceScorer().calculate_relevance_score("a.ts", "const x = 1;\n")
        assert score == CONTENT_WEIGHTS["code_extension"] + CONTENT_WEIGHTS["under_50_lines"]

    def test_non_code_extension(self) -> None:
        score = RelevanceScorer().calculate_relevance_score("notes.md", "x\n" * 300)
        assert score == 0.0

    @pytest.mark.parametrize("lines, bonus", [(49, 5.0), (50, 3.0), (99, 3.0), (150, 1.0), (200, 0.0)])
    def test_size_tiers(self, lines: int, bonus: float) -> None:
        score = RelevanceScorer().calculate_relevance_score("notes.txt", "x\n" * lines)
        assert score == bonus

    def test_declarations(self) -> None:
        scorer = RelevanceScorer()
        for content in ("export const a = 1;", "class Foo {}", "function f() {}", "def f():"):
            assert scorer.calculate_relevance_score("notes.txt", content) == 5.0 + 5.0

    def test_selection_identifiers(self) -> None:
        scorer = RelevanceScorer()
        content = "function fetchUser(userId) { return database.get(userId); }\n"
        score = scorer.calculate_relevance_score(
            "notes.txt", content, selected_text="fetchUser(userId); unknownThing"
        )
        # under_50_lines + declarations + two shared identifiers
        assert score == 5.0 + 5.0 + 2.0

    def test_selection_bonus_capped(self) -> None:
        names = [f"name{i}" for i in range(20)]
        content = " ".join(names)
        score = RelevanceScorer().calculate_relevance_score(
            "notes.txt", content, selected_text=" ".join(names)
        )
        assert score == 5.0 + 10.0


@pytest.mark.parametrize(
    "path, expected",
    [
        ("src/user.test.ts", True),
        ("src/user.spec.js", True),
        ("pkg/test_user.py", True),
        ("pkg/user_test.go", True),
        ("src/user.ts", False),
        ("src/contest.ts", False),
    ],
)
def test_is_test_file(path: str, expected: bool) -> None:
    assert is_test_file(path) is expected

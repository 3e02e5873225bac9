# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for exclude-pattern matching."""

import pytest

from context_engine.config import DEFAULT_EXCLUDE_PATTERNS
from context_engine.patterns import ExcludeMatcher


@pytest.mark.parametrize("path", ["secret.ts", "src/secret.ts", "src/deep/secret.ts"])
def test_double_star_prefix_matches_at_any_depth(path):
    """Test that **/name also matches a file directly under the root."""
    assert ExcludeMatcher(["**/secret.ts"]).matches(path) is True


def test_double_star_prefix_keeps_other_names():
    assert ExcludeMatcher(["**/secret.ts"]).matches("src/secrets.ts") is False


@pytest.mark.parametrize(
    "path",
    [
        "node_modules/react/index.js",
        "packages/app/node_modules/lib/x.js",
        "dist/bundle.js",
        "public/vendor.min.js",
        "app.bundle.js",
        "src/app.js.map",
        "logs/debug.log",
        "package-lock.json",
        "frontend/yarn.lock",
        ".git/HEAD",
    ],
)
def test_default_patterns_exclude(path):
    """Test that the default patterns exclude generated and vendored files."""
    assert ExcludeMatcher(DEFAULT_EXCLUDE_PATTERNS).matches(path) is True


@pytest.mark.parametrize("path", ["src/app.ts", "src/distance.ts", "lib/build_utils.py", "README.md"])
def test_default_patterns_keep_sources(path):
    assert ExcludeMatcher(DEFAULT_EXCLUDE_PATTERNS).matches(path) is False


def test_star_does_not_cross_directories():
    matcher = ExcludeMatcher(["src/*.ts"])
    assert matcher.matches("src/app.ts") is True
    assert matcher.matches("src/deep/app.ts") is False


def test_base_name_match():
    """Test that a bare name pattern matches the file in any directory."""
    matcher = ExcludeMatcher(["generated.ts"])
    assert matcher.matches("src/api/generated.ts") is True
    assert matcher.matches("src/api/generated.tsx") is False


def test_regex_patterns():
    matcher = ExcludeMatcher([r"re:\.generated\.(ts|js)$"])
    assert matcher.matches("src/api.generated.ts") is True
    assert matcher.matches("src/api.ts") is False


def test_backslash_paths_normalized():
    assert ExcludeMatcher(["dist/**"]).matches("dist\\main.js") is True


def test_malformed_pattern_is_skipped(caplog):
    """Test that a broken regex is logged and the other patterns still apply."""
    matcher = ExcludeMatcher(["re:([unclosed", "*.log"])

    assert matcher.invalid_patterns == ["re:([unclosed"]
    assert matcher.matches("debug.log") is True
    assert matcher.matches("src/app.ts") is False
    assert "malformed exclude pattern" in caplog.text


def test_no_patterns_match_nothing():
    assert ExcludeMatcher([]).matches("anything/at/all.ts") is False

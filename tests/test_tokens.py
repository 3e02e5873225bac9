# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for token estimation."""

import pytest

from context_engine.tokens import estimate_tokens


@pytest.mark.parametrize(
    "text,expected",
    [("", 0), ("a", 1), ("abcd", 1), ("abcde", 2), ("x" * 4000, 1000), ("x" * 4001, 1001)],
)
def test_estimate_tokens_rounds_up(text, expected):
    assert estimate_tokens(text) == expected

# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Token estimation shared by the collector, the cache and the logs.

No tokenizer is consulted: one token is taken to be four characters, rounded
up, so budgets and tests can be checked exactly.
"""

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token count of text as ceil(len(text) / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)

"""Token estimation and greedy context-budget packing.

Both functions are pure and synchronous.
"""

from __future__ import annotations

import math
from typing import Protocol, Sequence, TypeVar

CHARS_PER_TOKEN = 4


class _HasContent(Protocol):
    content: str


S = TypeVar("S", bound=_HasContent)


def estimate_tokens(text: str | None) -> int:
    """Rough token count: one token per four characters, rounded up."""
    if not text or not isinstance(text, str):
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def filter_by_token_limit(sources: Sequence[S], max_tokens: int) -> list[S]:
    """Keep the longest prefix of ``sources`` whose summed token cost fits ``max_tokens``.

    Walks the ranked list in order and stops at the first source that would
    overflow the budget. Later, smaller sources are not considered.
    """
    kept: list[S] = []
    used = 0
    for source in sources:
        cost = estimate_tokens(source.content)
        if used + cost > max_tokens:
            break
        kept.append(source)
        used += cost
    return kept

"""
Capability matching.

Task types and capabilities are compared as token sets rather than raw
substrings, so "id" does not match "video" while "patterns" still matches
"pattern-recognition".
"""

import re
from typing import FrozenSet, Iterable

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

# Tokens shorter than this only match exactly.
MIN_PREFIX_LENGTH = 4


def tokenize(text: str) -> FrozenSet[str]:
    """Lowercase and split on anything that is not a letter or digit."""
    return frozenset(t for t in _TOKEN_SPLIT.split(text.lower()) if t)


def tokens_match(a: str, b: str) -> bool:
    if a == b:
        return True
    if min(len(a), len(b)) < MIN_PREFIX_LENGTH:
        return False
    return a.startswith(b) or b.startswith(a)


def capability_matches(capability: str, task_type: str) -> bool:
    """True when any capability token matches any task-type token."""
    cap_tokens = tokenize(capability)
    task_tokens = tokenize(task_type)
    return any(tokens_match(c, t) for c in cap_tokens for t in task_tokens)


def can_handle(capabilities: Iterable[str], task_type: str) -> bool:
    return any(capability_matches(cap, task_type) for cap in capabilities)

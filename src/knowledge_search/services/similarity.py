"""Near-duplicate detection for extracted memories.

Overlapping chunks routinely yield the same fact twice with cosmetic
differences ("Met Bob at 3pm" / "met bob at 3 pm"). Strings are normalised
and compared with Jaro-Winkler; containment counts as a full match.
"""

import re
from collections.abc import Iterable

from knowledge_search.core.constants import (
    DUPLICATE_SIMILARITY_THRESHOLD,
    WINKLER_PREFIX_LIMIT,
    WINKLER_SCALING,
)
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import Memory

logger = get_logger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def jaro(s1: str, s2: str) -> float:
    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0

    match_distance = max(max(len1, len2) // 2 - 1, 0)
    s2_matched = [False] * len2
    s1_matches: list[str] = []

    for i, char in enumerate(s1):
        start = max(0, i - match_distance)
        stop = min(i + match_distance + 1, len2)
        for j in range(start, stop):
            if not s2_matched[j] and s2[j] == char:
                s2_matched[j] = True
                s1_matches.append(char)
                break

    matches = len(s1_matches)
    if matches == 0:
        return 0.0

    s2_matches = [char for char, matched in zip(s2, s2_matched, strict=True) if matched]
    transpositions = sum(1 for a, b in zip(s1_matches, s2_matches, strict=True) if a != b)

    return (matches / len1 + matches / len2 + (matches - transpositions / 2) / matches) / 3


def jaro_winkler(s1: str, s2: str) -> float:
    if s1 == s2:
        return 1.0
    score = jaro(s1, s2)
    prefix = 0
    for a, b in zip(s1[:WINKLER_PREFIX_LIMIT], s2[:WINKLER_PREFIX_LIMIT], strict=False):
        if a != b:
            break
        prefix += 1
    return score + prefix * WINKLER_SCALING * (1 - score)


def similarity(a: str, b: str) -> float:
    """Similarity of two strings in [0, 1] after normalisation.

    Two empty strings are identical; an empty string against a non-empty one
    scores 0.0 rather than counting as contained.
    """
    norm_a, norm_b = normalize(a), normalize(b)
    if not norm_a and not norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0
    if norm_a in norm_b or norm_b in norm_a:
        return 1.0
    return min(1.0, jaro_winkler(norm_a, norm_b))


def is_duplicate(a: str, b: str, threshold: float = DUPLICATE_SIMILARITY_THRESHOLD) -> bool:
    return similarity(a, b) > threshold


def deduplicate_memories(
    memories: Iterable[Memory],
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
) -> list[Memory]:
    """Drop memories that duplicate an earlier kept one, preserving first-seen order."""
    kept: list[Memory] = []
    dropped = 0
    for memory in memories:
        if any(is_duplicate(memory.content, existing.content, threshold) for existing in kept):
            dropped += 1
            continue
        kept.append(memory)

    if dropped:
        logger.debug(f"Dropped {dropped} duplicate memories", extra={"kept": len(kept)})
    return kept

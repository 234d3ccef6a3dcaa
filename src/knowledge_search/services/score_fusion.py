"""Min-max normalisation and weighted fusion of two ranked lists."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from knowledge_search.domain.models import ScoredCandidate


@dataclass(frozen=True, slots=True)
class FusedCandidate:
    """A candidate's fused score plus the normalised per-side scores behind it.

    ``base`` is the side-A hit when one exists, otherwise the side-B hit.
    A side that did not return the candidate contributes 0.0.
    """

    key: str
    base: ScoredCandidate
    score_a: float
    score_b: float
    combined: float
    in_a: bool
    in_b: bool


def normalize(scores: Sequence[float]) -> list[float]:
    """Rescale to [0, 1]; a uniform set maps to all 1.0."""
    if not scores:
        return []
    low, high = min(scores), max(scores)
    if high == low:
        return [1.0] * len(scores)
    span = high - low
    return [(score - low) / span for score in scores]


def _normalized_by_key(
    items: Sequence[ScoredCandidate], key: Callable[[ScoredCandidate], str]
) -> dict[str, tuple[ScoredCandidate, float]]:
    result: dict[str, tuple[ScoredCandidate, float]] = {}
    for item, norm in zip(items, normalize([item.score for item in items]), strict=True):
        k = key(item)
        # Duplicate identities keep their best normalised score
        if k not in result or norm > result[k][1]:
            result[k] = (item, norm)
    return result


def combine(
    a: Sequence[ScoredCandidate],
    b: Sequence[ScoredCandidate],
    weight_a: float,
    weight_b: float,
    key: Callable[[ScoredCandidate], str] = lambda c: c.source_id,
) -> list[FusedCandidate]:
    """Fuse two result lists by identity.

    Each side is normalised independently, then
    ``combined = weight_a * norm_a + weight_b * norm_b``.

    Returns:
        Fused candidates ordered by combined score descending, ties broken by
        ascending identity
    """
    side_a = _normalized_by_key(a, key)
    side_b = _normalized_by_key(b, key)

    fused: list[FusedCandidate] = []
    for k in side_a.keys() | side_b.keys():
        hit_a = side_a.get(k)
        hit_b = side_b.get(k)
        score_a = hit_a[1] if hit_a else 0.0
        score_b = hit_b[1] if hit_b else 0.0
        base = hit_a[0] if hit_a else hit_b[0]  # type: ignore[index]
        fused.append(
            FusedCandidate(
                key=k,
                base=base,
                score_a=score_a,
                score_b=score_b,
                combined=weight_a * score_a + weight_b * score_b,
                in_a=hit_a is not None,
                in_b=hit_b is not None,
            )
        )

    fused.sort(key=lambda f: (-f.combined, f.key))
    return fused


def sort_candidates(candidates: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
    """Order by score descending with the same identity tie-break as ``combine``."""
    return sorted(candidates, key=lambda c: (-c.score, c.source_id, c.memory_id or ""))


def best_per_source(candidates: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
    """Keep only the highest-scoring candidate for each source id."""
    best: dict[str, ScoredCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.source_id)
        if current is None or candidate.score > current.score:
            best[candidate.source_id] = candidate
    return sort_candidates(list(best.values()))

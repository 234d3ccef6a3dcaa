"""Domain models for knowledge search."""

from .chunk import Chunk
from .memory import Entities, Memory, MemoryType, merge_entities
from .rate_limit import (
    DEFAULT_RATE_LIMITS,
    FALLBACK_RATE_LIMIT,
    RateLimitBucket,
    RateLimitDecision,
    RateLimitRule,
    WindowUnit,
)
from .search import (
    Confidence,
    EntryContext,
    MemoryFilters,
    QueryVariant,
    Representation,
    RerankHit,
    ScoredCandidate,
    SearchFilters,
    SearchLayer,
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchType,
    SourceChunk,
    VerificationReport,
)

__all__ = [
    "DEFAULT_RATE_LIMITS",
    "FALLBACK_RATE_LIMIT",
    "Chunk",
    "Confidence",
    "Entities",
    "EntryContext",
    "Memory",
    "MemoryFilters",
    "MemoryType",
    "QueryVariant",
    "RateLimitBucket",
    "RateLimitDecision",
    "RateLimitRule",
    "Representation",
    "RerankHit",
    "ScoredCandidate",
    "SearchFilters",
    "SearchLayer",
    "SearchMode",
    "SearchOptions",
    "SearchResponse",
    "SearchType",
    "SourceChunk",
    "VerificationReport",
    "WindowUnit",
    "merge_entities",
]

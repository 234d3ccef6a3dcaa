"""Search request, candidate and report models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .memory import MemoryType


class SearchLayer(str, Enum):
    """Index a candidate came from."""

    MEMORY = "memory"
    CHUNK = "chunk"


class SearchMode(str, Enum):
    """Two-layer retrieval modes."""

    ATOMIC = "atomic"
    CHUNK = "chunk"
    HYBRID = "hybrid"


class SearchType(str, Enum):
    """Entry points accepted by the search orchestrator."""

    HYBRID = "hybrid"
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    ATOMIC = "atomic"
    MEMORY_HYBRID = "memory_hybrid"
    ENHANCED = "enhanced"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT = "insufficient"
    SKIPPED = "skipped"


class Representation(BaseModel):
    """A stored rendering of an entry (markdown, plaintext, html)."""

    type: str
    content: str


class EntryContext(BaseModel):
    """Owning entry of a memory, loaded for source-context injection."""

    entry_id: str
    title: str | None = None
    entry_type: str | None = None
    representation: Representation | None = None


class SourceChunk(BaseModel):
    """Text shown alongside a memory so the reader sees where it came from."""

    text: str
    chunk_index: int | None = None
    from_memory: bool
    representation_type: str | None = None


class ScoredCandidate(BaseModel):
    """One ranked search hit.

    ``source_id`` is always the owning entry's id; memory hits also carry
    ``memory_id``. Optional fields are filled by whichever stage produced or
    refined the hit.
    """

    source_id: str
    title: str | None = None
    score: float
    semantic_score: float | None = None
    keyword_score: float | None = None
    search_layer: SearchLayer | None = None

    entry_type: str | None = None
    content: str | None = None
    chunk_text: str | None = None
    content_preview: str | None = None
    inserted_at: datetime | None = None

    memory_id: str | None = None
    memory_type: MemoryType | None = None
    confidence: float | None = None
    source_text: str | None = None
    chunk_index: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    entities: dict[str, list[str]] | None = None
    metadata: dict[str, Any] | None = None
    source_chunk: SourceChunk | None = None

    memory_score: float | None = None
    chunk_score: float | None = None
    original_score: float | None = None
    rerank_score: float | None = None
    relevance_score: float | None = None

    def document_text(self) -> str:
        """Best available body text for reranking and verification."""
        for candidate in (self.content, self.chunk_text, self.content_preview):
            if candidate:
                return candidate
        if self.source_chunk and self.source_chunk.text:
            return self.source_chunk.text
        return ""


class SearchFilters(BaseModel):
    """Entry-level filters shared by the semantic and keyword paths."""

    entry_types: list[str] | None = None
    tags: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    def is_empty(self) -> bool:
        return not (self.entry_types or self.tags or self.date_from or self.date_to)


class MemoryFilters(BaseModel):
    """Restrictions on the atomic-fact index."""

    current_only: bool = True
    memory_types: list[MemoryType] | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    entry_ids: list[str] | None = None


class QueryVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str


class RerankHit(BaseModel):
    """Provider relevance for the document at ``index`` of the request."""

    index: int
    relevance_score: float


class VerificationReport(BaseModel):
    results: list[ScoredCandidate]
    confidence: Confidence
    suggestion: str | None = None
    original_count: int = 0
    filtered_count: int = 0


class SearchResponse(BaseModel):
    results: list[ScoredCandidate]
    total: int
    query: str
    search_type: SearchType
    weights: dict[str, float] | None = None
    confidence: Confidence | None = None
    suggestion: str | None = None
    query_variants: list[str] | None = None
    duration_ms: float | None = None


class SearchOptions(BaseModel):
    """Per-request knobs; unset flags fall back to the pipeline configuration."""

    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    memory_filters: MemoryFilters = Field(default_factory=MemoryFilters)
    include_source_chunks: bool = True
    semantic_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    keyword_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    rerank: bool | None = None
    reformulate: bool | None = None
    verify: bool | None = None

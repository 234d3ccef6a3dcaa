"""Service layer interfaces.

Concrete pipeline stages live in the sibling modules; the protocols here
describe the external collaborators they are given.
"""

from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from knowledge_search.domain.models import (
    Chunk,
    EntryContext,
    Memory,
    MemoryFilters,
    RerankHit,
    ScoredCandidate,
    SearchFilters,
)


@runtime_checkable
class EmbeddingService(Protocol):
    """Protocol for embedding services."""

    model_name: str

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, in input order."""
        ...


@runtime_checkable
class RerankService(Protocol):
    """Protocol for cross-encoder rerank providers."""

    @property
    def is_configured(self) -> bool:
        """False when no credential is available; callers then skip reranking."""
        ...

    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int,
        model: str | None = None,
    ) -> list[RerankHit]:
        ...


@runtime_checkable
class MemoryExtractor(Protocol):
    """Produces raw atomic-fact candidates from a chunk of text."""

    async def extract(self, text: str, reference_date: date) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class KnowledgeStore(Protocol):
    """User-scoped access to entries, chunk vectors and atomic memories.

    Every read is restricted to ``user_id``; results never cross tenants.
    """

    async def nearest_chunks(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        """Best-matching entries by chunk cosine similarity, one hit per entry."""
        ...

    async def keyword_match(
        self,
        user_id: str,
        terms: list[str],
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        """Entries whose title contains every term, ranked by relevance."""
        ...

    async def nearest_memories(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        filters: MemoryFilters,
    ) -> list[ScoredCandidate]:
        ...

    async def load_entry_contexts(self, user_id: str, entry_ids: list[str]) -> dict[str, EntryContext]:
        ...

    async def entry_embeddings(self, user_id: str, entry_id: str, model_name: str) -> list[list[float]]:
        ...

    async def find_similar(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        exclude: list[str],
    ) -> list[ScoredCandidate]:
        ...

    async def replace_chunk_embeddings(
        self,
        user_id: str,
        entry_id: str,
        chunks: list[Chunk],
        vectors: list[list[float]],
        model_name: str,
        embedded_at: datetime | None = None,
    ) -> int:
        ...

    async def replace_memories(
        self,
        user_id: str,
        entry_id: str,
        memories: list[Memory],
        vectors: list[list[float]],
    ) -> int:
        """Delete every memory of the entry and insert ``memories`` in one transaction."""
        ...


__all__ = ["EmbeddingService", "KnowledgeStore", "MemoryExtractor", "RerankService"]

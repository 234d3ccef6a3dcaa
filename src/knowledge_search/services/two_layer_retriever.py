"""Two-layer retrieval over atomic memories and entry chunks.

``atomic`` searches the memory index and may return several facts from one
entry. ``chunk`` searches the chunk index. ``hybrid`` runs both, fuses them
by entry, and keeps one result per entry.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from knowledge_search.core.base import ErrorLevel
from knowledge_search.core.config import SearchConfig
from knowledge_search.core.constants import TWO_LAYER_CANDIDATE_MULTIPLIER
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import (
    MemoryFilters,
    ScoredCandidate,
    SearchFilters,
    SearchLayer,
    SearchMode,
    SourceChunk,
)
from knowledge_search.services.score_fusion import best_per_source, combine, sort_candidates

if TYPE_CHECKING:
    from knowledge_search.services import KnowledgeStore
    from knowledge_search.services.retrieval_gateway import RetrievalGateway

logger = get_logger(__name__)


class TwoLayerRetriever:
    def __init__(
        self,
        store: KnowledgeStore,
        gateway: RetrievalGateway,
        config: SearchConfig | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.config = config or SearchConfig()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def search(
        self,
        user_id: str,
        query: str,
        mode: SearchMode = SearchMode.HYBRID,
        limit: int = 20,
        memory_filters: MemoryFilters | None = None,
        search_filters: SearchFilters | None = None,
        include_source_chunks: bool = True,
        vector: list[float] | None = None,
    ) -> list[ScoredCandidate]:
        """Run one two-layer query.

        The query is embedded once and shared by both layers. An embedding
        failure propagates; there is no partial fallback.

        Args:
            user_id: Owner whose data is searched
            query: Query text
            mode: Which layer(s) to search
            limit: Maximum results
            memory_filters: Restrictions on the memory layer
            search_filters: Entry filters for the chunk layer
            include_source_chunks: Attach source excerpts to memory results
            vector: Precomputed query embedding

        Returns:
            Results ordered by score descending
        """
        memory_filters = memory_filters or MemoryFilters()
        if vector is None:
            vector = await self.gateway.embed_query(query)

        if mode == SearchMode.ATOMIC:
            return await self.atomic(user_id, vector, limit, memory_filters, include_source_chunks)
        if mode == SearchMode.CHUNK:
            return await self.chunks(user_id, vector, limit, search_filters)
        return await self.hybrid(user_id, vector, limit, memory_filters, search_filters, include_source_chunks)

    async def atomic(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        memory_filters: MemoryFilters,
        include_source_chunks: bool = True,
    ) -> list[ScoredCandidate]:
        results = await self.store.nearest_memories(user_id, vector, limit, memory_filters)
        if memory_filters.current_only:
            results = [r for r in results if r.valid_until is None]

        results = [r.model_copy(update={"search_layer": SearchLayer.MEMORY}) for r in results]
        if include_source_chunks and results:
            results = await self.inject_source_context(user_id, results)
        return sort_candidates(results)[:limit]

    async def chunks(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        search_filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        results = await self.gateway.semantic(user_id, vector, limit, search_filters)
        return [r.model_copy(update={"search_layer": SearchLayer.CHUNK}) for r in results]

    async def hybrid(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        memory_filters: MemoryFilters,
        search_filters: SearchFilters | None = None,
        include_source_chunks: bool = True,
    ) -> list[ScoredCandidate]:
        fetch = limit * TWO_LAYER_CANDIDATE_MULTIPLIER
        memory_results, chunk_results = await asyncio.gather(
            self.atomic(user_id, vector, fetch, memory_filters, include_source_chunks),
            self.chunks(user_id, vector, fetch, search_filters),
        )

        # Memory scores normalise over every fact; each entry then keeps its best one
        fused = combine(
            memory_results,
            chunk_results,
            self.config.memory_weight,
            self.config.chunk_weight,
        )

        results = [
            f.base.model_copy(
                update={
                    "score": f.combined,
                    "memory_score": f.score_a if f.in_a else None,
                    "chunk_score": f.score_b if f.in_b else None,
                }
            )
            for f in fused
        ]
        return best_per_source(results)[:limit]

    async def inject_source_context(
        self, user_id: str, results: list[ScoredCandidate]
    ) -> list[ScoredCandidate]:
        """Attach each memory's source excerpt, falling back to the entry's full text.

        Entries are loaded in one batch for all distinct sources.
        """
        entry_ids = list(dict.fromkeys(r.source_id for r in results))
        contexts = await self.store.load_entry_contexts(user_id, entry_ids)

        enriched: list[ScoredCandidate] = []
        for result in results:
            context = contexts.get(result.source_id)
            source_chunk: SourceChunk | None = None
            if result.source_text:
                source_chunk = SourceChunk(text=result.source_text, chunk_index=result.chunk_index, from_memory=True)
            elif context and context.representation:
                source_chunk = SourceChunk(
                    text=context.representation.content,
                    from_memory=False,
                    representation_type=context.representation.type,
                )

            update: dict[str, object] = {"source_chunk": source_chunk}
            if context:
                update["title"] = result.title or context.title
                update["entry_type"] = result.entry_type or context.entry_type
            enriched.append(result.model_copy(update=update))

        logger.debug(
            "Injected source context",
            extra={"results": len(results), "entries": len(entry_ids), "loaded": len(contexts)},
        )
        return enriched

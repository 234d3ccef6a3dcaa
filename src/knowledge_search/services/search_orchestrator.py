"""Search entry point.

Validates the request, enforces the caller's rate limit, and dispatches to
one of the retrieval pipelines. Every pipeline returns a SearchResponse.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import logfire

from knowledge_search.core.config import SearchConfig
from knowledge_search.core.constants import HYBRID_CANDIDATE_MULTIPLIER
from knowledge_search.core.errors import InvalidQueryError, NotEmbeddedError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import (
    Confidence,
    QueryVariant,
    ScoredCandidate,
    SearchMode,
    SearchOptions,
    SearchResponse,
    SearchType,
    VerificationReport,
)
from knowledge_search.services.query_reformulator import QueryReformulator, ReformulationOptions
from knowledge_search.services.rate_limiter import RateLimiter
from knowledge_search.services.reranker import Reranker
from knowledge_search.services.score_fusion import combine
from knowledge_search.services.verifier import Verifier

if TYPE_CHECKING:
    from knowledge_search.services import KnowledgeStore
    from knowledge_search.services.retrieval_gateway import RetrievalGateway
    from knowledge_search.services.two_layer_retriever import TwoLayerRetriever

logger = get_logger(__name__)

SEARCH_OPERATION = "search"
SIMILARITY_OPERATION = "similarity_check"


def parse_search_type(value: SearchType | str) -> SearchType:
    try:
        return SearchType(value)
    except ValueError as e:
        raise InvalidQueryError(
            f"Unknown search type: {value}",
            field="search_type",
            actual_value=str(value),
        ) from e


def paginate(results: list[ScoredCandidate], offset: int, limit: int) -> list[ScoredCandidate]:
    return results[offset : offset + limit]


class SearchOrchestrator:
    """Composes rate limiting, retrieval, fusion, reranking and verification."""

    def __init__(
        self,
        gateway: RetrievalGateway,
        two_layer: TwoLayerRetriever,
        store: KnowledgeStore,
        reranker: Reranker | None = None,
        reformulator: QueryReformulator | None = None,
        verifier: Verifier | None = None,
        rate_limiter: RateLimiter | None = None,
        config: SearchConfig | None = None,
    ):
        self.config = config or SearchConfig()
        self.gateway = gateway
        self.two_layer = two_layer
        self.store = store
        self.reranker = reranker or Reranker(None, self.config)
        self.reformulator = reformulator or QueryReformulator(ReformulationOptions.from_config(self.config))
        self.verifier = verifier or Verifier(self.config)
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(
            self.config.rate_limits, enabled=self.config.rate_limit_enabled
        )

    async def search(
        self,
        user_id: str,
        query: str,
        search_type: SearchType | str = SearchType.HYBRID,
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        """Run one search for ``user_id``.

        Args:
            user_id: Caller; all retrieval stays inside this user's data
            query: Query text, must not be blank
            search_type: Pipeline to run
            options: Pagination, filters and per-request overrides

        Returns:
            SearchResponse with the page of results and pipeline metadata

        Raises:
            InvalidQueryError: Blank query or unknown search type
            RateLimitError: Caller exhausted the search budget
        """
        if not query or not query.strip():
            raise InvalidQueryError("Query must not be blank", field="query", actual_value=query)
        search_type = parse_search_type(search_type)
        options = options or SearchOptions()

        started = time.perf_counter()
        with logfire.span("search {search_type}", search_type=search_type.value, user_id=user_id):
            self.rate_limiter.enforce(user_id, SEARCH_OPERATION)

            if search_type == SearchType.ENHANCED:
                response = await self.enhanced_search(user_id, query, options)
            elif search_type == SearchType.SEMANTIC:
                response = await self.semantic_search(user_id, query, options)
            elif search_type == SearchType.KEYWORD:
                response = await self.keyword_search(user_id, query, options)
            elif search_type == SearchType.ATOMIC:
                response = await self.memory_search(user_id, query, options)
            elif search_type == SearchType.MEMORY_HYBRID:
                response = await self.memory_hybrid_search(user_id, query, options)
            else:
                response = await self.hybrid_search(user_id, query, options)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Search completed: {search_type.value}",
            extra={
                "search_type": search_type.value,
                "duration_ms": round(duration_ms, 2),
                "result_count": len(response.results),
                "total": response.total,
                "model": self.gateway.model_name,
            },
        )
        return response.model_copy(update={"duration_ms": duration_ms})

    def _weights(self, options: SearchOptions) -> tuple[float, float]:
        semantic = self.config.semantic_weight if options.semantic_weight is None else options.semantic_weight
        keyword = self.config.keyword_weight if options.keyword_weight is None else options.keyword_weight
        return semantic, keyword

    async def fused_candidates(self, user_id: str, query: str, options: SearchOptions) -> list[ScoredCandidate]:
        """Semantic and keyword results fused by entry, best first, unpaginated."""
        fetch = max(options.limit * HYBRID_CANDIDATE_MULTIPLIER, options.offset + options.limit)
        vector = await self.gateway.embed_query(query)
        semantic, keyword = await asyncio.gather(
            self.gateway.semantic(user_id, vector, fetch, options.filters),
            self.gateway.keyword(user_id, query, fetch, options.filters),
        )

        semantic_weight, keyword_weight = self._weights(options)
        fused = combine(semantic, keyword, semantic_weight, keyword_weight)
        return [
            f.base.model_copy(
                update={
                    "score": f.combined,
                    "semantic_score": f.score_a,
                    "keyword_score": f.score_b,
                }
            )
            for f in fused
        ]

    async def _maybe_rerank(
        self, query: str, results: list[ScoredCandidate], enabled: bool | None, top_k: int
    ) -> list[ScoredCandidate]:
        if enabled is False or (enabled is None and not self.config.rerank_enabled):
            return results
        return await self.reranker.rerank(query, results, top_k=top_k)

    async def hybrid_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        combined = await self.fused_candidates(user_id, query, options)
        total = len(combined)
        ranked = await self._maybe_rerank(query, combined, options.rerank, options.offset + options.limit)

        semantic_weight, keyword_weight = self._weights(options)
        return SearchResponse(
            results=paginate(ranked, options.offset, options.limit),
            total=total,
            query=query,
            search_type=SearchType.HYBRID,
            weights={"semantic": semantic_weight, "keyword": keyword_weight},
        )

    async def semantic_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        results = await self.gateway.semantic_text(
            user_id, query, options.offset + options.limit, options.filters
        )
        return SearchResponse(
            results=paginate(results, options.offset, options.limit),
            total=len(results),
            query=query,
            search_type=SearchType.SEMANTIC,
        )

    async def keyword_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        results = await self.gateway.keyword(user_id, query, options.offset + options.limit, options.filters)
        return SearchResponse(
            results=paginate(results, options.offset, options.limit),
            total=len(results),
            query=query,
            search_type=SearchType.KEYWORD,
        )

    async def _two_layer(
        self, user_id: str, query: str, options: SearchOptions, mode: SearchMode
    ) -> list[ScoredCandidate]:
        results = await self.two_layer.search(
            user_id,
            query,
            mode=mode,
            limit=options.offset + options.limit,
            memory_filters=options.memory_filters,
            search_filters=options.filters,
            include_source_chunks=options.include_source_chunks,
        )
        # Memory results are only reranked on explicit request
        if options.rerank:
            results = await self.reranker.rerank(query, results, top_k=options.offset + options.limit)
        return results

    async def memory_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        """Atomic-fact search; several facts from one entry may be returned."""
        results = await self._two_layer(user_id, query, options, SearchMode.ATOMIC)
        return SearchResponse(
            results=paginate(results, options.offset, options.limit),
            total=len(results),
            query=query,
            search_type=SearchType.ATOMIC,
        )

    async def memory_hybrid_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        results = await self._two_layer(user_id, query, options, SearchMode.HYBRID)
        return SearchResponse(
            results=paginate(results, options.offset, options.limit),
            total=len(results),
            query=query,
            search_type=SearchType.MEMORY_HYBRID,
            weights={"memory": self.config.memory_weight, "chunk": self.config.chunk_weight},
        )

    async def enhanced_search(self, user_id: str, query: str, options: SearchOptions) -> SearchResponse:
        """Reformulate, search every variant, merge, rerank and verify."""
        reformulation = ReformulationOptions.from_config(self.config)
        if options.reformulate is not None:
            reformulation = reformulation.model_copy(update={"enabled": options.reformulate})
        variants = self.reformulator.reformulate(query, reformulation)

        result_sets = await self.search_variants(user_id, variants, options)
        merged = QueryReformulator.merge_results(result_sets)
        ranked = await self._maybe_rerank(query, merged, options.rerank, options.offset + options.limit)
        report = self._verify(query, ranked, options.verify)

        semantic_weight, keyword_weight = self._weights(options)
        return SearchResponse(
            results=paginate(report.results, options.offset, options.limit),
            total=len(report.results),
            query=query,
            search_type=SearchType.ENHANCED,
            weights={"semantic": semantic_weight, "keyword": keyword_weight},
            confidence=report.confidence,
            suggestion=report.suggestion,
            query_variants=[v.text for v in variants],
        )

    def _verify(self, query: str, ranked: list[ScoredCandidate], enabled: bool | None) -> VerificationReport:
        try:
            return self.verifier.verify(query, ranked, enabled=enabled)
        except Exception as e:
            logger.warning(
                f"Verification failed, returning unverified results: {e!s}",
                extra={"query": query, "error_type": type(e).__name__},
            )
            return VerificationReport(
                results=ranked,
                confidence=Confidence.SKIPPED,
                original_count=len(ranked),
                filtered_count=len(ranked),
            )

    async def search_variants(
        self, user_id: str, variants: list[QueryVariant], options: SearchOptions
    ) -> list[list[ScoredCandidate]]:
        """Hybrid search for each variant, bounded in concurrency and time.

        A variant that fails or times out contributes no results; the other
        variants are unaffected.
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrent_variants)
        timeout = self.config.variant_timeout_seconds

        async def run(variant: QueryVariant) -> list[ScoredCandidate]:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        self.fused_candidates(user_id, variant.text, options), timeout=timeout
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "Variant search timed out",
                        extra={"variant": variant.text, "timeout_seconds": timeout},
                    )
                except Exception as e:
                    logger.warning(
                        f"Variant search failed: {e!s}",
                        extra={"variant": variant.text, "error_type": type(e).__name__},
                    )
                return []

        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(run(variant)) for variant in variants]
        return [task.result() for task in tasks]

    async def similar_entries(
        self,
        user_id: str,
        entry_id: str,
        limit: int = 10,
        exclude: list[str] | None = None,
    ) -> list[ScoredCandidate]:
        """Entries closest to ``entry_id`` by its first stored chunk vector.

        Raises:
            NotEmbeddedError: The entry has no vectors for the active model
            RateLimitError: Caller exhausted the similarity budget
        """
        self.rate_limiter.enforce(user_id, SIMILARITY_OPERATION)
        model_name = self.gateway.model_name
        vectors = await self.store.entry_embeddings(user_id, entry_id, model_name)
        if not vectors:
            raise NotEmbeddedError(entry_id, model_name=model_name)

        excluded = list(dict.fromkeys([entry_id, *(exclude or [])]))
        results = await self.store.find_similar(user_id, vectors[0], model_name, limit, excluded)
        logger.debug(
            "Found similar entries",
            extra={"entry_id": entry_id, "results": len(results), "model": model_name},
        )
        return results


"""Semantic and keyword access paths over the chunk index.

Both paths apply the same entry filters, stay inside one user's data, and
return ScoredCandidates whose ``score`` is the raw store score.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

from knowledge_search.core.base import AIServiceErrorDetails, ErrorLevel
from knowledge_search.core.config import SearchConfig
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import TimeoutError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import ScoredCandidate, SearchFilters

if TYPE_CHECKING:
    from knowledge_search.services import EmbeddingService, KnowledgeStore

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[\W_]+")
MIN_TERM_LENGTH = 3


def keyword_terms(query: str) -> list[str]:
    """Search terms for the keyword path.

    Whitespace tokens longer than two characters, stripped to
    alphanumerics and lowercased. Every term must match.
    """
    terms = []
    for token in query.split():
        if len(token) < MIN_TERM_LENGTH:
            continue
        term = _NON_ALNUM.sub("", token).lower()
        if term:
            terms.append(term)
    return terms


class RetrievalGateway:
    def __init__(
        self,
        store: KnowledgeStore,
        embeddings: EmbeddingService,
        config: SearchConfig | None = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.config = config or SearchConfig()

    @property
    def model_name(self) -> str:
        return self.embeddings.model_name

    async def embed_query(self, query: str) -> list[float]:
        """Embed the query text, bounded by the configured embedding timeout.

        Raises:
            TimeoutError: If the provider does not answer in time
            ApplicationError: Whatever the embedding provider raised
        """
        try:
            return await asyncio.wait_for(
                self.embeddings.embed_text(query),
                timeout=self.config.embedding_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                message=f"Embedding request timed out after {self.config.embedding_timeout_seconds}s",
                details=AIServiceErrorDetails(
                    source="retrieval_gateway",
                    operation="embed_query",
                    service_name="embeddings",
                    model_name=self.model_name,
                ),
            ) from e

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def semantic(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        """Nearest entries by cosine similarity of their chunk vectors.

        Only vectors produced by the active embedding model are considered.
        """
        results = await self.store.nearest_chunks(user_id, vector, self.model_name, limit, filters)
        return [r.model_copy(update={"semantic_score": r.score}) for r in results]

    async def semantic_text(
        self,
        user_id: str,
        query: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        vector = await self.embed_query(query)
        return await self.semantic(user_id, vector, limit, filters)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def keyword(
        self,
        user_id: str,
        query: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        """Entries matching every keyword term; no terms means no results."""
        terms = keyword_terms(query)
        if not terms:
            logger.debug("Keyword query produced no terms", extra={"query_length": len(query)})
            return []
        results = await self.store.keyword_match(user_id, terms, limit, filters)
        return [r.model_copy(update={"keyword_score": r.score}) for r in results]

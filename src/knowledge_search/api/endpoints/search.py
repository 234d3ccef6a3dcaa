"""Search endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from knowledge_search.api.dependencies import get_search_orchestrator, get_user_id
from knowledge_search.core.logging import get_logger, update_log_context
from knowledge_search.domain.models import (
    MemoryFilters,
    MemoryType,
    ScoredCandidate,
    SearchFilters,
    SearchOptions,
    SearchResponse,
)
from knowledge_search.services.search_orchestrator import SearchOrchestrator

logger = get_logger(__name__)
router = APIRouter()


class SearchRequest(BaseModel):
    """Request body for POST /search."""

    query: str
    search_type: str = "hybrid"
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    entry_types: list[str] | None = None
    tags: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    current_only: bool = True
    memory_types: list[MemoryType] | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    entry_ids: list[str] | None = None
    include_source_chunks: bool = True

    semantic_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    keyword_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    rerank: bool | None = None
    reformulate: bool | None = None
    verify: bool | None = None

    def to_options(self) -> SearchOptions:
        return SearchOptions(
            limit=self.limit,
            offset=self.offset,
            filters=SearchFilters(
                entry_types=self.entry_types,
                tags=self.tags,
                date_from=self.date_from,
                date_to=self.date_to,
            ),
            memory_filters=MemoryFilters(
                current_only=self.current_only,
                memory_types=self.memory_types,
                min_confidence=self.min_confidence,
                entry_ids=self.entry_ids,
            ),
            include_source_chunks=self.include_source_chunks,
            semantic_weight=self.semantic_weight,
            keyword_weight=self.keyword_weight,
            rerank=self.rerank,
            reformulate=self.reformulate,
            verify=self.verify,
        )


class SimilarEntriesResponse(BaseModel):
    entry_id: str
    results: list[ScoredCandidate]
    total: int


@router.post("", response_model=SearchResponse, response_model_exclude_none=True)
async def search(
    request: SearchRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
) -> SearchResponse:
    """Search the caller's knowledge base."""
    update_log_context("search_type", request.search_type)
    logger.info(
        "Search request",
        extra={"search_type": request.search_type, "limit": request.limit, "offset": request.offset},
    )
    return await orchestrator.search(user_id, request.query, request.search_type, request.to_options())


@router.get("/similar/{entry_id}", response_model=SimilarEntriesResponse, response_model_exclude_none=True)
async def similar_entries(
    entry_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    exclude: list[str] | None = Query(default=None),
    user_id: str = Depends(get_user_id),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
) -> SimilarEntriesResponse:
    """Entries most similar to ``entry_id``."""
    results = await orchestrator.similar_entries(user_id, entry_id, limit=limit, exclude=exclude or [])
    return SimilarEntriesResponse(entry_id=entry_id, results=results, total=len(results))

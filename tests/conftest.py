"""Shared fakes for the pipeline's external collaborators."""

import asyncio
from datetime import date, datetime
from typing import Any

import pytest

from knowledge_search.core.config import SearchConfig
from knowledge_search.domain.models import (
    Chunk,
    EntryContext,
    Memory,
    MemoryFilters,
    RerankHit,
    ScoredCandidate,
    SearchFilters,
)


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEmbeddingService:
    """Deterministic two-dimensional vectors; can be told to fail or stall."""

    def __init__(self, model_name: str = "fake-embed", fail_on: set[str] | None = None, delay: float = 0.0):
        self.model_name = model_name
        self.fail_on = fail_on or set()
        self.delay = delay
        self.calls: list[str] = []
        self.batches: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        return [float(len(text)), 1.0]

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if text in self.fail_on or "*" in self.fail_on:
            raise RuntimeError(f"embedding failed for {text!r}")
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        if "*" in self.fail_on:
            raise RuntimeError("embedding failed")
        return [self._vector(text) for text in texts]


class FakeKnowledgeStore:
    """In-memory store returning canned hits and recording every call."""

    def __init__(
        self,
        chunk_hits: list[ScoredCandidate] | None = None,
        keyword_hits: list[ScoredCandidate] | None = None,
        memory_hits: list[ScoredCandidate] | None = None,
        contexts: dict[str, EntryContext] | None = None,
        embeddings: dict[str, list[list[float]]] | None = None,
        similar_hits: list[ScoredCandidate] | None = None,
    ):
        self.chunk_hits = chunk_hits or []
        self.keyword_hits = keyword_hits or []
        self.memory_hits = memory_hits or []
        self.contexts = contexts or {}
        self.embeddings = embeddings or {}
        self.similar_hits = similar_hits or []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.stored_chunks: dict[str, list[tuple[Chunk, list[float]]]] = {}
        self.stored_memories: dict[str, list[Memory]] = {}

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))

    def called(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def nearest_chunks(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        self._record("nearest_chunks", user_id=user_id, model_name=model_name, limit=limit, filters=filters)
        return sorted(self.chunk_hits, key=lambda c: -c.score)[:limit]

    async def keyword_match(
        self,
        user_id: str,
        terms: list[str],
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        self._record("keyword_match", user_id=user_id, terms=terms, limit=limit, filters=filters)
        return sorted(self.keyword_hits, key=lambda c: -c.score)[:limit]

    async def nearest_memories(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        filters: MemoryFilters,
    ) -> list[ScoredCandidate]:
        self._record("nearest_memories", user_id=user_id, limit=limit, filters=filters)
        return sorted(self.memory_hits, key=lambda c: -c.score)[:limit]

    async def load_entry_contexts(self, user_id: str, entry_ids: list[str]) -> dict[str, EntryContext]:
        self._record("load_entry_contexts", user_id=user_id, entry_ids=entry_ids)
        return {entry_id: self.contexts[entry_id] for entry_id in entry_ids if entry_id in self.contexts}

    async def entry_embeddings(self, user_id: str, entry_id: str, model_name: str) -> list[list[float]]:
        self._record("entry_embeddings", user_id=user_id, entry_id=entry_id, model_name=model_name)
        return self.embeddings.get(entry_id, [])

    async def find_similar(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        exclude: list[str],
    ) -> list[ScoredCandidate]:
        self._record("find_similar", user_id=user_id, vector=vector, limit=limit, exclude=exclude)
        return [hit for hit in self.similar_hits if hit.source_id not in exclude][:limit]

    async def replace_chunk_embeddings(
        self,
        user_id: str,
        entry_id: str,
        chunks: list[Chunk],
        vectors: list[list[float]],
        model_name: str,
        embedded_at: datetime | None = None,
    ) -> int:
        self._record("replace_chunk_embeddings", user_id=user_id, entry_id=entry_id, model_name=model_name)
        self.stored_chunks[entry_id] = list(zip(chunks, vectors, strict=True))
        return len(chunks)

    async def replace_memories(
        self,
        user_id: str,
        entry_id: str,
        memories: list[Memory],
        vectors: list[list[float]],
    ) -> int:
        self._record("replace_memories", user_id=user_id, entry_id=entry_id, count=len(memories))
        self.stored_memories[entry_id] = list(memories)
        return len(memories)


class FakeRerankService:
    """Scores documents by a lookup on their text; unknown documents score 0.1."""

    def __init__(
        self,
        scores: dict[str, float] | None = None,
        configured: bool = True,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.scores = scores or {}
        self.configured = configured
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int,
        model: str | None = None,
    ) -> list[RerankHit]:
        self.calls.append({"query": query, "documents": documents, "top_n": top_n, "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        hits = []
        for index, document in enumerate(documents):
            score = next((s for key, s in self.scores.items() if key in document), 0.1)
            hits.append(RerankHit(index=index, relevance_score=score))
        return sorted(hits, key=lambda h: -h.relevance_score)[:top_n]


class FakeExtractor:
    """Returns canned candidates per call; raises on the listed call numbers."""

    def __init__(self, candidates: list[list[dict[str, Any]]] | None = None, fail_on_calls: set[int] | None = None):
        self.candidates = candidates or []
        self.fail_on_calls = fail_on_calls or set()
        self.calls: list[tuple[str, date]] = []

    async def extract(self, text: str, reference_date: date) -> list[dict[str, Any]]:
        call = len(self.calls)
        self.calls.append((text, reference_date))
        if call in self.fail_on_calls:
            raise RuntimeError("extractor unavailable")
        if call < len(self.candidates):
            return self.candidates[call]
        return []


def hit(source_id: str, score: float, **fields: Any) -> ScoredCandidate:
    return ScoredCandidate(source_id=source_id, score=score, title=fields.pop("title", f"Entry {source_id}"), **fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> SearchConfig:
    return SearchConfig()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()

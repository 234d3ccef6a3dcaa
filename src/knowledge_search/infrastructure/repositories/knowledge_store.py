"""Neo4j implementation of the KnowledgeStore protocol.

Graph layout::

    (:Entry {id, user_id, title, entry_type, inserted_at})
        -[:HAS_TAG]->(:Tag {name})
        -[:HAS_REPRESENTATION]->(:Representation {type, content})
        -[:HAS_CHUNK]->(:Chunk {chunk_index, text, embedding, model_name, ...})
        -[:HAS_MEMORY]->(:AtomicMemory {id, content, embedding, ...})
"""

import json
from datetime import UTC, datetime
from typing import Any

from neo4j import AsyncDriver, AsyncManagedTransaction

from knowledge_search.core.base import ErrorLevel
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import ProcessingError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import (
    Chunk,
    EntryContext,
    Memory,
    MemoryFilters,
    Representation,
    ScoredCandidate,
    SearchFilters,
)
from knowledge_search.infrastructure.neo4j.driver import Neo4jQuery
from knowledge_search.infrastructure.neo4j.filter_compiler import merge_params
from knowledge_search.infrastructure.neo4j.queries import IndexWriteQueries, SearchQueries

logger = get_logger(__name__)

PREVIEW_CHARS = 200


def _native(value: Any) -> Any:
    """neo4j.time values to their datetime equivalents."""
    to_native = getattr(value, "to_native", None)
    return to_native() if callable(to_native) else value


def _entry_candidate(record: Any) -> ScoredCandidate:
    chunk_text = record.get("chunk_text")
    return ScoredCandidate(
        source_id=record["id"],
        title=record.get("title"),
        entry_type=record.get("entry_type"),
        inserted_at=_native(record.get("inserted_at")),
        chunk_text=chunk_text,
        chunk_index=record.get("chunk_index"),
        content_preview=chunk_text[:PREVIEW_CHARS] if chunk_text else None,
        score=float(record["score"]),
    )


def _memory_candidate(record: Any) -> ScoredCandidate:
    memory = record["memory"]
    metadata_json = memory.get("metadata_json")
    return ScoredCandidate(
        source_id=record["id"],
        title=record.get("title"),
        entry_type=record.get("entry_type"),
        inserted_at=_native(record.get("inserted_at")),
        score=float(record["score"]),
        memory_id=memory["id"],
        content=memory["content"],
        memory_type=memory.get("memory_type"),
        confidence=memory.get("confidence"),
        source_text=memory.get("source_text"),
        chunk_index=memory.get("chunk_index"),
        valid_from=_native(memory.get("valid_from")),
        valid_until=_native(memory.get("valid_until")),
        entities={
            "people": list(memory.get("people") or []),
            "places": list(memory.get("places") or []),
            "organizations": list(memory.get("organizations") or []),
        },
        metadata=json.loads(metadata_json) if metadata_json else None,
    )


def _chunk_properties(
    chunk: Chunk, index: int, vector: list[float], entry_id: str, user_id: str, model_name: str, embedded_at: datetime
) -> dict[str, Any]:
    return {
        "entry_id": entry_id,
        "user_id": user_id,
        "chunk_index": index,
        "text": chunk.text,
        "start_offset": chunk.start_offset,
        "end_offset": chunk.end_offset,
        "token_count": chunk.estimated_token_count,
        "embedding": vector,
        "model_name": model_name,
        "embedded_at": embedded_at,
    }


def _memory_properties(memory: Memory, vector: list[float], entry_id: str, user_id: str) -> dict[str, Any]:
    # Neo4j properties cannot hold maps; entities are split and metadata is serialised
    return {
        "id": memory.id,
        "entry_id": entry_id,
        "user_id": user_id,
        "content": memory.content,
        "memory_type": memory.memory_type.value,
        "confidence": memory.confidence,
        "people": sorted(memory.entities.people),
        "places": sorted(memory.entities.places),
        "organizations": sorted(memory.entities.organizations),
        "temporal_expression": memory.temporal_expression,
        "resolved_time": memory.resolved_time,
        "source_text": memory.source_text,
        "chunk_index": memory.chunk_index,
        "valid_from": memory.valid_from,
        "valid_until": memory.valid_until,
        "supersedes_id": memory.supersedes_id,
        "refines_id": memory.refines_id,
        "metadata_json": json.dumps(memory.metadata, default=str) if memory.metadata else None,
        "embedding": vector,
    }


def _check_lengths(operation: str, items: list[Any], vectors: list[list[float]]) -> None:
    if len(items) != len(vectors):
        raise ProcessingError(
            message=f"{operation}: {len(items)} items but {len(vectors)} vectors",
            details={"source": "knowledge_store", "operation": operation},
        )


class Neo4jKnowledgeStore:
    """User-scoped reads and full-replace writes over the search graph."""

    def __init__(self, driver: AsyncDriver, database: str | None = None):
        self.query: Neo4jQuery[ScoredCandidate] = Neo4jQuery(driver, database)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def nearest_chunks(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        query, params = SearchQueries.nearest_chunks(filters)
        return await self.query.execute_list(
            query,
            merge_params(params, {"user_id": user_id, "vector": vector, "model_name": model_name, "limit": limit}),
            _entry_candidate,
        )

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def keyword_match(
        self,
        user_id: str,
        terms: list[str],
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredCandidate]:
        if not terms:
            return []
        query, params = SearchQueries.keyword_match(filters)
        return await self.query.execute_list(
            query,
            merge_params(params, {"user_id": user_id, "search": " AND ".join(terms), "limit": limit}),
            _entry_candidate,
        )

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def nearest_memories(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        filters: MemoryFilters,
    ) -> list[ScoredCandidate]:
        query, params = SearchQueries.nearest_memories(filters)
        return await self.query.execute_list(
            query,
            merge_params(params, {"user_id": user_id, "vector": vector, "limit": limit}),
            _memory_candidate,
        )

    async def load_entry_contexts(self, user_id: str, entry_ids: list[str]) -> dict[str, EntryContext]:
        if not entry_ids:
            return {}
        query, params = SearchQueries.entry_contexts()
        records = await self.query.execute_list(
            query, merge_params(params, {"user_id": user_id, "entry_ids": entry_ids})
        )

        contexts: dict[str, EntryContext] = {}
        for record in records:
            representation = None
            if record["representation_type"] and record["representation_content"] is not None:
                representation = Representation(
                    type=record["representation_type"], content=record["representation_content"]
                )
            contexts[record["id"]] = EntryContext(
                entry_id=record["id"],
                title=record["title"],
                entry_type=record["entry_type"],
                representation=representation,
            )
        return contexts

    async def entry_embeddings(self, user_id: str, entry_id: str, model_name: str) -> list[list[float]]:
        query, _ = SearchQueries.entry_embeddings()
        records = await self.query.execute_list(
            query, {"user_id": user_id, "entry_id": entry_id, "model_name": model_name}
        )
        return [list(record["embedding"]) for record in records]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def find_similar(
        self,
        user_id: str,
        vector: list[float],
        model_name: str,
        limit: int,
        exclude: list[str],
    ) -> list[ScoredCandidate]:
        query, params = SearchQueries.nearest_chunks(exclude_entries=True)
        return await self.query.execute_list(
            query,
            merge_params(
                params,
                {
                    "user_id": user_id,
                    "vector": vector,
                    "model_name": model_name,
                    "limit": limit,
                    "exclude": exclude,
                },
            ),
            _entry_candidate,
        )

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def replace_chunk_embeddings(
        self,
        user_id: str,
        entry_id: str,
        chunks: list[Chunk],
        vectors: list[list[float]],
        model_name: str,
        embedded_at: datetime | None = None,
    ) -> int:
        """Swap the entry's vectors for ``model_name`` in one transaction."""
        _check_lengths("replace_chunk_embeddings", chunks, vectors)
        embedded_at = embedded_at or datetime.now(UTC)
        rows = [
            _chunk_properties(chunk, i, vector, entry_id, user_id, model_name, embedded_at)
            for i, (chunk, vector) in enumerate(zip(chunks, vectors, strict=True))
        ]
        keys = {"user_id": user_id, "entry_id": entry_id, "model_name": model_name}

        async def work(tx: AsyncManagedTransaction) -> int:
            delete, _ = IndexWriteQueries.delete_chunks()
            await (await tx.run(delete, keys)).consume()
            if not rows:
                return 0
            create, _ = IndexWriteQueries.create_chunks()
            record = await (await tx.run(create, {**keys, "chunks": rows})).single()
            return record["stored"] if record else 0

        stored = await self.query.execute_write(work)
        logger.debug(f"Stored {stored} chunk vectors for entry {entry_id}", extra={"model": model_name})
        return stored

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def replace_memories(
        self,
        user_id: str,
        entry_id: str,
        memories: list[Memory],
        vectors: list[list[float]],
    ) -> int:
        """Delete every memory of the entry and insert ``memories`` in one transaction."""
        _check_lengths("replace_memories", memories, vectors)
        rows = [
            _memory_properties(memory, vector, entry_id, user_id)
            for memory, vector in zip(memories, vectors, strict=True)
        ]
        keys = {"user_id": user_id, "entry_id": entry_id}

        async def work(tx: AsyncManagedTransaction) -> int:
            delete, _ = IndexWriteQueries.delete_memories()
            await (await tx.run(delete, keys)).consume()
            if not rows:
                return 0
            create, _ = IndexWriteQueries.create_memories()
            record = await (await tx.run(create, {**keys, "memories": rows})).single()
            return record["stored"] if record else 0

        stored = await self.query.execute_write(work)
        logger.debug(f"Replaced memories for entry {entry_id}", extra={"stored": stored})
        return stored

"""Centralized Cypher query definitions.

Every query the knowledge store runs is built here. Builders return
``(query, params)``; callers add the per-call values such as the query
vector and user id.

``vector.similarity.cosine`` returns ``(1 + cosine) / 2``; queries convert it
back so scores are plain cosine similarity.
"""

from typing import Any, LiteralString, cast

from knowledge_search.domain.models import MemoryFilters, SearchFilters
from knowledge_search.infrastructure.neo4j.filter_compiler import (
    compile_filters,
    memory_filter_spec,
    search_filter_spec,
)

FULLTEXT_INDEX = "entry_title_fulltext"
CHUNK_VECTOR_INDEX = "chunk_embeddings"
MEMORY_VECTOR_INDEX = "memory_embeddings"

REPRESENTATION_PREFERENCE = ["markdown", "plaintext", "html"]

_ENTRY_FIELDS = """
    e.id AS id,
    e.title AS title,
    e.entry_type AS entry_type,
    e.inserted_at AS inserted_at
"""

_MEMORY_FIELDS = """
    m {
        .id, .content, .memory_type, .confidence, .people, .places, .organizations,
        .temporal_expression, .resolved_time, .source_text, .chunk_index,
        .valid_from, .valid_until, .supersedes_id, .refines_id, .metadata_json
    } AS memory
"""


class SearchQueries:
    """Read queries behind the semantic, keyword and similarity paths."""

    @staticmethod
    def nearest_chunks(
        filters: SearchFilters | None = None,
        exclude_entries: bool = False,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Best chunk per entry by cosine similarity, restricted to one model's vectors."""
        where, params = compile_filters(search_filter_spec(filters), alias="e")
        exclude = "AND NOT e.id IN $exclude" if exclude_entries else ""
        query = f"""
        MATCH (e:Entry {{user_id: $user_id}})-[:HAS_CHUNK]->(c:Chunk)
        WHERE c.model_name = $model_name AND c.embedding IS NOT NULL {where} {exclude}
        WITH e, c, 2 * vector.similarity.cosine(c.embedding, $vector) - 1 AS similarity
        ORDER BY similarity DESC
        WITH e, collect({{text: c.text, chunk_index: c.chunk_index, score: similarity}})[0] AS best
        RETURN {_ENTRY_FIELDS},
            best.text AS chunk_text,
            best.chunk_index AS chunk_index,
            best.score AS score
        ORDER BY score DESC, id ASC
        LIMIT $limit
        """
        return cast(LiteralString, query), params

    @staticmethod
    def keyword_match(filters: SearchFilters | None = None) -> tuple[LiteralString, dict[str, Any]]:
        """Fulltext match over entry titles; every term must be present."""
        where, params = compile_filters(search_filter_spec(filters), alias="e")
        query = f"""
        CALL db.index.fulltext.queryNodes('{FULLTEXT_INDEX}', $search) YIELD node AS e, score
        WHERE e.user_id = $user_id {where}
        RETURN {_ENTRY_FIELDS}, score
        ORDER BY score DESC, id ASC
        LIMIT $limit
        """
        return cast(LiteralString, query), params

    @staticmethod
    def nearest_memories(filters: MemoryFilters | None = None) -> tuple[LiteralString, dict[str, Any]]:
        where, params = compile_filters(memory_filter_spec(filters), alias="m", param_base="mf")
        query = f"""
        MATCH (e:Entry {{user_id: $user_id}})-[:HAS_MEMORY]->(m:AtomicMemory)
        WHERE m.embedding IS NOT NULL {where}
        WITH e, m, 2 * vector.similarity.cosine(m.embedding, $vector) - 1 AS score
        RETURN {_ENTRY_FIELDS}, {_MEMORY_FIELDS}, score
        ORDER BY score DESC, id ASC, m.id ASC
        LIMIT $limit
        """
        return cast(LiteralString, query), params

    @staticmethod
    def entry_contexts() -> tuple[LiteralString, dict[str, Any]]:
        """Entries with their preferred representation (markdown, plaintext, html)."""
        query = """
        MATCH (e:Entry {user_id: $user_id})
        WHERE e.id IN $entry_ids
        OPTIONAL MATCH (e)-[:HAS_REPRESENTATION]->(r:Representation)
        WHERE r.type IN $preference
        WITH e, r
        ORDER BY CASE r.type WHEN 'markdown' THEN 0 WHEN 'plaintext' THEN 1 WHEN 'html' THEN 2 ELSE 3 END
        WITH e, collect(r)[0] AS rep
        RETURN e.id AS id, e.title AS title, e.entry_type AS entry_type,
            rep.type AS representation_type, rep.content AS representation_content
        """
        return query, {"preference": REPRESENTATION_PREFERENCE}

    @staticmethod
    def entry_embeddings() -> tuple[LiteralString, dict[str, Any]]:
        query = """
        MATCH (e:Entry {id: $entry_id, user_id: $user_id})-[:HAS_CHUNK]->(c:Chunk)
        WHERE c.model_name = $model_name AND c.embedding IS NOT NULL
        RETURN c.embedding AS embedding
        ORDER BY c.chunk_index ASC
        """
        return query, {}


class IndexWriteQueries:
    """Full-replace writes for an entry's chunk vectors and memories."""

    @staticmethod
    def delete_chunks() -> tuple[LiteralString, dict[str, Any]]:
        query = """
        MATCH (e:Entry {id: $entry_id, user_id: $user_id})-[:HAS_CHUNK]->(c:Chunk {model_name: $model_name})
        DETACH DELETE c
        """
        return query, {}

    @staticmethod
    def create_chunks() -> tuple[LiteralString, dict[str, Any]]:
        query = """
        MATCH (e:Entry {id: $entry_id, user_id: $user_id})
        UNWIND $chunks AS chunk
        CREATE (e)-[:HAS_CHUNK]->(c:Chunk)
        SET c = chunk
        RETURN count(c) AS stored
        """
        return query, {}

    @staticmethod
    def delete_memories() -> tuple[LiteralString, dict[str, Any]]:
        query = """
        MATCH (e:Entry {id: $entry_id, user_id: $user_id})-[:HAS_MEMORY]->(m:AtomicMemory)
        DETACH DELETE m
        """
        return query, {}

    @staticmethod
    def create_memories() -> tuple[LiteralString, dict[str, Any]]:
        query = """
        MATCH (e:Entry {id: $entry_id, user_id: $user_id})
        UNWIND $memories AS memory
        CREATE (e)-[:HAS_MEMORY]->(m:AtomicMemory)
        SET m = memory
        RETURN count(m) AS stored
        """
        return query, {}


class IndexQueries:
    """Schema statements; all idempotent."""

    @staticmethod
    def all(dimensions: int) -> list[tuple[LiteralString, dict[str, Any]]]:
        dimensions = int(dimensions)
        statements = [
            "CREATE CONSTRAINT entry_id IF NOT EXISTS FOR (e:Entry) REQUIRE e.id IS UNIQUE",
            "CREATE INDEX entry_user IF NOT EXISTS FOR (e:Entry) ON (e.user_id)",
            "CREATE INDEX memory_entry IF NOT EXISTS FOR (m:AtomicMemory) ON (m.entry_id)",
            f"CREATE FULLTEXT INDEX {FULLTEXT_INDEX} IF NOT EXISTS FOR (e:Entry) ON EACH [e.title]",
            f"""CREATE VECTOR INDEX {CHUNK_VECTOR_INDEX} IF NOT EXISTS
            FOR (c:Chunk) ON (c.embedding)
            OPTIONS {{indexConfig: {{`vector.dimensions`: {dimensions}, `vector.similarity_function`: 'cosine'}}}}""",
            f"""CREATE VECTOR INDEX {MEMORY_VECTOR_INDEX} IF NOT EXISTS
            FOR (m:AtomicMemory) ON (m.embedding)
            OPTIONS {{indexConfig: {{`vector.dimensions`: {dimensions}, `vector.similarity_function`: 'cosine'}}}}""",
        ]
        return [(cast(LiteralString, statement), {}) for statement in statements]

from datetime import UTC, datetime

import pytest
from conftest import FakeKnowledgeStore, hit

from knowledge_search.domain.models import (
    EntryContext,
    MemoryFilters,
    Representation,
    SearchLayer,
    SearchMode,
)
from knowledge_search.services.retrieval_gateway import RetrievalGateway
from knowledge_search.services.two_layer_retriever import TwoLayerRetriever


def retriever_for(store, embeddings):
    return TwoLayerRetriever(store, RetrievalGateway(store, embeddings))


@pytest.fixture
def store():
    return FakeKnowledgeStore(
        memory_hits=[
            hit("a", 0.95, memory_id="m-old", valid_until=datetime(2024, 1, 1, tzinfo=UTC)),
            hit("a", 0.9, memory_id="m1", source_text="Bob moved to Lisbon."),
            hit("a", 0.5, memory_id="m2"),
            hit("b", 0.4, memory_id="m3", title=None),
        ],
        chunk_hits=[hit("a", 0.8), hit("c", 0.6)],
        contexts={
            "a": EntryContext(entry_id="a", title="Travel notes"),
            "b": EntryContext(
                entry_id="b",
                title="Journal",
                entry_type="journal",
                representation=Representation(type="markdown", content="# Journal\nFull text"),
            ),
        },
    )


async def test_current_only_drops_superseded_facts(store, embeddings):
    results = await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.ATOMIC)

    assert "m-old" not in [r.memory_id for r in results]
    assert [r.memory_id for r in results] == ["m1", "m2", "m3"]
    assert all(r.search_layer == SearchLayer.MEMORY for r in results)


async def test_superseded_facts_kept_when_not_current_only(store, embeddings):
    results = await retriever_for(store, embeddings).search(
        "alice", "bob", mode=SearchMode.ATOMIC, memory_filters=MemoryFilters(current_only=False)
    )

    assert results[0].memory_id == "m-old"


async def test_source_context_prefers_memory_excerpt(store, embeddings):
    results = await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.ATOMIC)
    by_id = {r.memory_id: r for r in results}

    assert by_id["m1"].source_chunk.text == "Bob moved to Lisbon."
    assert by_id["m1"].source_chunk.from_memory is True
    assert by_id["m2"].source_chunk is None

    journal = by_id["m3"]
    assert journal.source_chunk.from_memory is False
    assert journal.source_chunk.representation_type == "markdown"
    assert journal.title == "Journal"
    assert journal.entry_type == "journal"

    assert len(store.called("load_entry_contexts")) == 1
    assert store.called("load_entry_contexts")[0]["entry_ids"] == ["a", "b"]


async def test_source_chunks_can_be_skipped(store, embeddings):
    results = await retriever_for(store, embeddings).search(
        "alice", "bob", mode=SearchMode.ATOMIC, include_source_chunks=False
    )

    assert all(r.source_chunk is None for r in results)
    assert store.called("load_entry_contexts") == []


async def test_chunk_mode_searches_chunk_layer_only(store, embeddings):
    results = await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.CHUNK)

    assert [r.source_id for r in results] == ["a", "c"]
    assert all(r.search_layer == SearchLayer.CHUNK for r in results)
    assert store.called("nearest_memories") == []


async def test_hybrid_returns_one_result_per_entry(store, embeddings):
    results = await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.HYBRID)

    ids = [r.source_id for r in results]
    assert len(ids) == len(set(ids))
    assert ids[0] == "a"
    assert set(ids) == {"a", "b", "c"}

    top = results[0]
    assert top.memory_score is not None
    assert top.chunk_score is not None
    only_chunk = next(r for r in results if r.source_id == "c")
    assert only_chunk.memory_score is None
    assert embeddings.calls == ["bob"]


async def test_precomputed_vector_skips_embedding(store, embeddings):
    await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.CHUNK, vector=[1.0, 0.0])
    assert embeddings.calls == []


async def test_hybrid_normalises_memory_scores_before_collapsing_entries(embeddings):
    store = FakeKnowledgeStore(
        memory_hits=[
            hit("a", 0.9, memory_id="m1"),
            hit("a", 0.1, memory_id="m2"),
            hit("b", 0.5, memory_id="m3"),
        ],
        chunk_hits=[hit("z", 0.7)],
    )

    results = await retriever_for(store, embeddings).search("alice", "bob", mode=SearchMode.HYBRID)

    memory_scores = {r.source_id: r.memory_score for r in results}
    assert memory_scores["a"] == pytest.approx(1.0)
    assert memory_scores["b"] == pytest.approx(0.5)
    assert memory_scores["z"] is None
    assert next(r for r in results if r.source_id == "a").memory_id == "m1"

import pytest
from conftest import FakeEmbeddingService, FakeKnowledgeStore, hit

from knowledge_search.core.config import SearchConfig
from knowledge_search.core.errors import TimeoutError
from knowledge_search.domain.models import SearchFilters
from knowledge_search.services.retrieval_gateway import RetrievalGateway, keyword_terms


def test_keyword_terms_strip_short_tokens_and_punctuation():
    assert keyword_terms("Go to the Garden-Party, now!") == ["the", "gardenparty", "now"]
    assert keyword_terms("a to of") == []
    assert keyword_terms("... !!!") == []


async def test_keyword_without_terms_skips_store(embeddings):
    store = FakeKnowledgeStore(keyword_hits=[hit("a", 2.0)])
    gateway = RetrievalGateway(store, embeddings)

    assert await gateway.keyword("alice", "a b", limit=5) == []
    assert store.called("keyword_match") == []


async def test_keyword_sets_keyword_score(embeddings):
    store = FakeKnowledgeStore(keyword_hits=[hit("a", 2.0), hit("b", 3.5)])
    gateway = RetrievalGateway(store, embeddings)
    filters = SearchFilters(tags=["garden"])

    results = await gateway.keyword("alice", "tomato seedlings", limit=5, filters=filters)

    assert [(r.source_id, r.keyword_score) for r in results] == [("b", 3.5), ("a", 2.0)]
    call = store.called("keyword_match")[0]
    assert call["terms"] == ["tomato", "seedlings"]
    assert call["filters"] is filters
    assert call["user_id"] == "alice"


async def test_semantic_uses_active_model(embeddings):
    store = FakeKnowledgeStore(chunk_hits=[hit("a", 0.8)])
    gateway = RetrievalGateway(store, embeddings)

    results = await gateway.semantic_text("alice", "tomatoes", limit=3)

    assert results[0].semantic_score == 0.8
    assert store.called("nearest_chunks")[0]["model_name"] == "fake-embed"
    assert embeddings.calls == ["tomatoes"]


async def test_embed_timeout_raises_timeout_error():
    gateway = RetrievalGateway(
        FakeKnowledgeStore(),
        FakeEmbeddingService(delay=0.5),
        SearchConfig(embedding_timeout_seconds=0.01),
    )

    with pytest.raises(TimeoutError):
        await gateway.embed_query("slow")


async def test_embedding_failure_propagates():
    gateway = RetrievalGateway(FakeKnowledgeStore(), FakeEmbeddingService(fail_on={"*"}))

    with pytest.raises(RuntimeError):
        await gateway.semantic_text("alice", "anything", limit=3)

import pytest
from conftest import FakeRerankService, hit

from knowledge_search.core.config import SearchConfig
from knowledge_search.core.errors import ProviderError
from knowledge_search.services.reranker import Reranker, calculate_improvement, document_for


@pytest.fixture
def results():
    return [
        hit("a", 0.9, content="weekly grocery list"),
        hit("b", 0.7, content="tomato seedlings under grow lights"),
        hit("c", 0.5, content="tomato soup recipe"),
    ]


SCORES = {"seedlings": 0.95, "soup": 0.6, "grocery": 0.2}


def ids(results):
    return [r.source_id for r in results]


async def test_reorders_by_rerank_score(results):
    reranker = Reranker(FakeRerankService(SCORES))

    reranked = await reranker.rerank("growing tomatoes", results)

    assert ids(reranked) == ["b", "c", "a"]
    assert reranked[0].original_score == 0.7
    assert reranked[0].rerank_score == 0.95
    assert reranked[0].score == 0.95


async def test_threshold_and_top_k(results):
    reranker = Reranker(FakeRerankService(SCORES))

    assert ids(await reranker.rerank("q", results, threshold=0.5)) == ["b", "c"]
    assert ids(await reranker.rerank("q", results, top_k=1)) == ["b"]


async def test_documents_are_title_and_body(results):
    service = FakeRerankService(SCORES)
    await Reranker(service).rerank("q", results)

    assert service.calls[0]["documents"][1] == "Entry b\n\ntomato seedlings under grow lights"
    assert service.calls[0]["top_n"] == 3


@pytest.mark.parametrize(
    "service,config",
    [
        (None, SearchConfig()),
        (FakeRerankService(SCORES, configured=False), SearchConfig()),
        (FakeRerankService(SCORES), SearchConfig(rerank_enabled=False)),
    ],
)
async def test_unavailable_reranking_returns_input(results, service, config):
    assert await Reranker(service, config).rerank("q", results) is results


async def test_provider_error_keeps_original_order(results):
    service = FakeRerankService(error=ProviderError("rerank failed", status=500))
    assert await Reranker(service).rerank("q", results) is results


async def test_timeout_keeps_original_order(results):
    reranker = Reranker(FakeRerankService(SCORES, delay=0.5), SearchConfig(rerank_timeout_seconds=0.01))
    assert await reranker.rerank("q", results) is results


async def test_single_result_is_not_sent():
    service = FakeRerankService(SCORES)
    single = [hit("a", 0.3)]

    assert await Reranker(service).rerank("q", single) is single
    assert service.calls == []


def test_large_sets_use_stronger_model():
    reranker = Reranker(FakeRerankService(), model="small", large_model="large")

    assert reranker.select_model(50) == "small"
    assert reranker.select_model(51) == "large"


def test_calculate_improvement():
    reranked = [
        hit("a", 0.9, original_score=0.5, rerank_score=0.9),
        hit("b", 0.4, original_score=0.6, rerank_score=0.4),
        hit("c", 0.2),
    ]
    assert calculate_improvement(reranked) == pytest.approx(0.1)
    assert calculate_improvement([]) == 0.0


def test_document_for_title_only():
    assert document_for(hit("a", 0.1, title="Just a title")) == "Just a title"

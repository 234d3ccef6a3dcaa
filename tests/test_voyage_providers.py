from types import SimpleNamespace

import pytest
import voyageai.error as voyage_error
from pydantic import SecretStr

from knowledge_search.core.errors import (
    AuthenticationError,
    ParseError,
    ProcessingError,
    ProviderError,
    RateLimitError,
    ServiceError,
    TimeoutError,
    TransportError,
)
from knowledge_search.infrastructure.embeddings import factory
from knowledge_search.infrastructure.embeddings.factory import EmbeddingServiceBuilder
from knowledge_search.infrastructure.embeddings.voyage import VoyageEmbeddingService
from knowledge_search.infrastructure.rerank.voyage_rerank import VoyageRerankService
from knowledge_search.infrastructure.voyage_client import map_voyage_error


class FakeVoyageClient:
    def __init__(self, error: Exception | None = None, drop_last: bool = False):
        self.error = error
        self.drop_last = drop_last
        self.embed_calls: list[dict] = []
        self.rerank_calls: list[dict] = []

    async def embed(self, texts, model):
        self.embed_calls.append({"texts": texts, "model": model})
        if self.error:
            raise self.error
        embeddings = [[float(len(text)), 0.5] for text in texts]
        if self.drop_last:
            embeddings = embeddings[:-1]
        return SimpleNamespace(embeddings=embeddings)

    async def rerank(self, query, documents, model, top_k):
        self.rerank_calls.append({"query": query, "documents": documents, "model": model, "top_k": top_k})
        if self.error:
            raise self.error
        ranked = sorted(range(len(documents)), key=lambda i: -len(documents[i]))[:top_k]
        return SimpleNamespace(
            results=[SimpleNamespace(index=i, relevance_score=1.0 / (rank + 1)) for rank, i in enumerate(ranked)]
        )


@pytest.mark.parametrize(
    "error,expected",
    [
        (voyage_error.AuthenticationError("bad key", http_status=401), AuthenticationError),
        (voyage_error.Timeout("slow"), TimeoutError),
        (voyage_error.APIConnectionError("refused"), TransportError),
        (voyage_error.ServiceUnavailableError("busy", http_status=503), TransportError),
        (voyage_error.InvalidRequestError("bad model", http_status=400), ProviderError),
        (KeyError("embeddings"), ParseError),
        (RuntimeError("socket closed"), TransportError),
    ],
)
def test_map_voyage_error(error, expected):
    mapped = map_voyage_error(error, "embed_batch", "/embeddings", "voyage-3", 4)

    assert type(mapped) is expected
    assert mapped.details.model_name == "voyage-3"
    assert mapped.details.batch_size == 4


def test_rate_limit_keeps_retry_after():
    error = voyage_error.RateLimitError("slow down", http_status=429, headers={"retry-after": "7"})

    mapped = map_voyage_error(error, "rerank", "/rerank")

    assert isinstance(mapped, RateLimitError)
    assert mapped.retry_after == 7


def test_provider_error_keeps_status():
    mapped = map_voyage_error(voyage_error.InvalidRequestError("bad", http_status=400), "rerank", "/rerank")
    assert mapped.status == 400


def test_embedding_service_requires_key_or_client():
    with pytest.raises(AuthenticationError):
        VoyageEmbeddingService(api_key="")


async def test_embed_batch_splits_into_provider_batches():
    client = FakeVoyageClient()
    service = VoyageEmbeddingService(model="voyage-3", batch_size=2, client=client)

    vectors = await service.embed_batch(["a", "bb", "ccc", "dddd", "eeeee"])

    assert vectors == [[1.0, 0.5], [2.0, 0.5], [3.0, 0.5], [4.0, 0.5], [5.0, 0.5]]
    assert [len(call["texts"]) for call in client.embed_calls] == [2, 2, 1]
    assert {call["model"] for call in client.embed_calls} == {"voyage-3"}


async def test_embed_text():
    service = VoyageEmbeddingService(model="voyage-3", client=FakeVoyageClient())
    assert await service.embed_text("hello") == [5.0, 0.5]


async def test_empty_texts_are_rejected():
    client = FakeVoyageClient()
    service = VoyageEmbeddingService(model="voyage-3", client=client)

    with pytest.raises(ProcessingError):
        await service.embed_text("   ")
    with pytest.raises(ProcessingError):
        await service.embed_batch(["fine", ""])
    assert client.embed_calls == []
    assert await service.embed_batch([]) == []


async def test_incomplete_payload_is_a_parse_error():
    client = FakeVoyageClient(drop_last=True)
    service = VoyageEmbeddingService(model="voyage-3", client=client)

    with pytest.raises(ParseError):
        await service.embed_batch(["one", "two"])
    assert len(client.embed_calls) == 1


async def test_provider_rejection_is_not_retried():
    client = FakeVoyageClient(error=voyage_error.InvalidRequestError("bad model", http_status=400))
    service = VoyageEmbeddingService(model="voyage-3", client=client)

    with pytest.raises(ProviderError):
        await service.embed_text("hello")
    assert len(client.embed_calls) == 1


async def test_compute_similarity_and_dimensions():
    service = VoyageEmbeddingService(model="voyage-3-lite", client=FakeVoyageClient())

    assert await service.compute_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert await service.compute_similarity([1.0, 0.0], [0.0, 0.0]) == 0.0
    assert service.get_model_dimensions() == 512
    assert service.get_circuit_state()["state"] == "closed"


async def test_rerank_service_unconfigured():
    service = VoyageRerankService(api_key="")

    assert not service.is_configured
    with pytest.raises(ServiceError):
        await service.rerank("q", ["doc"], top_n=1)


async def test_rerank_service_returns_hits():
    client = FakeVoyageClient()
    service = VoyageRerankService(model="rerank-2-lite", client=client)

    hits = await service.rerank("q", ["short", "the longest document", "medium doc"], top_n=2)

    assert [(h.index, h.relevance_score) for h in hits] == [(1, 1.0), (2, 0.5)]
    assert client.rerank_calls[0]["top_k"] == 2
    assert client.rerank_calls[0]["model"] == "rerank-2-lite"
    assert await service.rerank("q", [], top_n=2) == []


async def test_rerank_model_override():
    client = FakeVoyageClient()
    service = VoyageRerankService(model="rerank-2-lite", client=client)

    await service.rerank("q", ["a", "b"], top_n=2, model="rerank-2")

    assert client.rerank_calls[0]["model"] == "rerank-2"


def test_builder_applies_overrides():
    service = (
        EmbeddingServiceBuilder()
        .with_api_key("test-key")
        .with_model("voyage-3-lite")
        .with_batch_size(16)
        .with_timeout(5.0)
        .build()
    )

    assert service.model_name == "voyage-3-lite"
    assert service.batch_size == 16
    assert service.timeout == 5.0
    assert service.get_model_dimensions() == 512


def test_builder_requires_api_key(monkeypatch):
    builder = EmbeddingServiceBuilder()
    monkeypatch.setattr(factory, "settings", SimpleNamespace(voyage_api_key=SecretStr("")))

    with pytest.raises(ServiceError, match="VOYAGE_API_KEY"):
        builder.build()

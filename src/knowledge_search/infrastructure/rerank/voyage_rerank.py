"""Voyage AI rerank service."""

import asyncio
from typing import Any

from knowledge_search.core.base import AIServiceErrorDetails, ApplicationError, ErrorLevel
from knowledge_search.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from knowledge_search.core.config import settings
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import ParseError, RateLimitError, ServiceError, TimeoutError, TransportError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import RerankHit
from knowledge_search.infrastructure.voyage_client import create_voyage_client, map_voyage_error

logger = get_logger(__name__)

RERANK_ENDPOINT = "/rerank"
DEFAULT_TIMEOUT_SECONDS = 35.0


class VoyageRerankService:
    """Cross-encoder relevance scores from Voyage AI.

    Without an API key the service reports ``is_configured`` as False and
    never calls out; the reranker then leaves results in their original order.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Any = None,
    ) -> None:
        api_key = api_key if api_key is not None else settings.voyage_api_key.get_secret_value()
        self.model = model or settings.rerank_model
        self.timeout = timeout
        self.client: Any = client
        if self.client is None and api_key:
            self.client = create_voyage_client(api_key, timeout=timeout)

        self._circuit_breaker = CircuitBreaker(
            name="voyage_rerank",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
        )
        # One retry at most; reranking is optional and the caller is waiting
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=2,
            initial_delay=0.5,
            max_delay=2.0,
            retryable_exceptions=(TimeoutError, TransportError),
        )

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def _call_rerank(self, query: str, documents: list[str], top_n: int, model: str) -> list[RerankHit]:
        try:
            response = await asyncio.wait_for(
                self.client.rerank(query=query, documents=documents, model=model, top_k=top_n),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                message=f"Rerank request timed out after {self.timeout}s",
                details=AIServiceErrorDetails(
                    source="voyage_rerank",
                    operation="rerank",
                    service_name="Voyage AI",
                    endpoint=RERANK_ENDPOINT,
                    model_name=model,
                    batch_size=len(documents),
                ),
            ) from e
        except ApplicationError:
            raise
        except Exception as e:
            raise map_voyage_error(e, "rerank", RERANK_ENDPOINT, model, len(documents)) from e

        results = getattr(response, "results", None)
        if results is None:
            raise ParseError(
                message="Voyage rerank response has no results",
                details=AIServiceErrorDetails(
                    source="voyage_rerank",
                    operation="rerank",
                    service_name="Voyage AI",
                    endpoint=RERANK_ENDPOINT,
                    model_name=model,
                ),
            )
        return [RerankHit(index=r.index, relevance_score=r.relevance_score) for r in results]

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=True)
    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int,
        model: str | None = None,
    ) -> list[RerankHit]:
        """Relevance of each document to ``query``, best first.

        Raises:
            ServiceError: If the service is not configured or the provider fails
        """
        if not self.is_configured:
            raise ServiceError(
                message="Rerank service is not configured",
                details=AIServiceErrorDetails(
                    source="voyage_rerank", operation="rerank", service_name="Voyage AI"
                ),
            )
        if not documents:
            return []

        model = model or self.model
        hits = await self._retry_handler.call_async(self._call_rerank, query, documents, top_n, model)
        logger.debug(f"Reranked {len(documents)} documents", extra={"model": model, "hits": len(hits)})
        return hits

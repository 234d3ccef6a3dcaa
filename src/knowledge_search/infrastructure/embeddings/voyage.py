"""Voyage AI embedding service."""

import asyncio
from typing import Any, cast

import numpy as np

from knowledge_search.core.base import AIServiceErrorDetails, ApplicationError, ErrorLevel, ServiceErrorDetails
from knowledge_search.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from knowledge_search.core.config import settings
from knowledge_search.core.constants import EMBEDDING_BATCH_SIZE
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import (
    AuthenticationError,
    ParseError,
    ProcessingError,
    RateLimitError,
    ServiceError,
    TimeoutError,
    TransportError,
)
from knowledge_search.core.logging import get_logger
from knowledge_search.infrastructure.voyage_client import create_voyage_client, map_voyage_error

logger = get_logger(__name__)

EMBED_ENDPOINT = "/embeddings"
DEFAULT_TIMEOUT_SECONDS = 60.0

MODEL_DIMENSIONS = {
    "voyage-3": 1024,
    "voyage-3-large": 1024,
    "voyage-3-lite": 512,
    "voyage-code-3": 1024,
    "voyage-large-2": 1536,
}


class VoyageEmbeddingService:
    """Voyage AI embedding service implementation.

    Requests go through a circuit breaker with retries for rate limits,
    timeouts and transport failures. Larger inputs are split into batches
    the provider accepts.
    """

    @with_error_handling(error_level=ErrorLevel.ERROR)
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Any = None,
    ) -> None:
        """Initialize the Voyage embedding service.

        Args:
            api_key: Voyage API key (defaults to settings)
            model: Model override (defaults to settings.embedding_model)
            batch_size: Maximum texts per request
            timeout: Per-request timeout in seconds
            client: Preconstructed voyageai.AsyncClient

        Raises:
            AuthenticationError: If the API key is not configured
        """
        api_key = api_key if api_key is not None else settings.voyage_api_key.get_secret_value()
        if client is None and not api_key:
            raise AuthenticationError(
                message="Voyage API key not found in settings",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="initialization",
                    service_name="Voyage AI",
                ),
            )

        self.model_name = model or settings.embedding_model
        self.batch_size = batch_size
        self.timeout = timeout
        # voyageai client doesn't expose a public type, so we use Any here
        self.client: Any = client or create_voyage_client(api_key, timeout=timeout)

        self._circuit_breaker = CircuitBreaker(
            name="voyage_embeddings",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=3,
            initial_delay=1.0,
            backoff_factor=2.0,
            max_delay=30.0,
            retryable_exceptions=(RateLimitError, TimeoutError, TransportError),
        )

    def _details(self, operation: str, batch_size: int) -> AIServiceErrorDetails:
        return AIServiceErrorDetails(
            source="voyage_embedding",
            operation=operation,
            service_name="Voyage AI",
            endpoint=EMBED_ENDPOINT,
            model_name=self.model_name,
            batch_size=batch_size,
        )

    async def _call_voyage_api_internal(self, texts: list[str]) -> list[list[float]]:
        """One embed request; wrapped by the circuit breaker."""
        try:
            response = await asyncio.wait_for(
                self.client.embed(texts=texts, model=self.model_name),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                message=f"Embeddings API request timed out after {self.timeout}s",
                details=self._details("embed_batch", len(texts)),
            ) from e
        except ApplicationError:
            raise
        except Exception as e:
            raise map_voyage_error(e, "embed_batch", EMBED_ENDPOINT, self.model_name, len(texts)) from e

        embeddings = getattr(response, "embeddings", None)
        if not embeddings or len(embeddings) != len(texts):
            # The API answered but the payload is unusable; not retryable
            raise ParseError(
                message="Voyage API returned incomplete embeddings",
                details=self._details("embed_batch", len(texts)),
            )
        return [cast("list[float]", emb) for emb in embeddings]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_text(self, text: str) -> list[float]:
        """Generate an embedding vector for one text."""
        if not text.strip():
            raise ProcessingError(
                message="Cannot embed empty text",
                details={"source": "voyage_embedding", "operation": "embed_text", "text_length": len(text)},
            )
        vectors = await self._retry_handler.call_async(self._call_voyage_api_internal, [text])
        return vectors[0]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embedding vectors for a batch of texts with circuit breaker and retry logic.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors in input order

        Raises:
            ProcessingError: If any text is empty
            ServiceError: If the circuit is open or the provider fails
        """
        if not texts:
            return []
        if any(not text.strip() for text in texts):
            raise ProcessingError(
                message="Batch contains empty texts",
                details={
                    "source": "voyage_embedding",
                    "operation": "embed_batch",
                    "original_batch_size": len(texts),
                },
            )

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors.extend(await self._retry_handler.call_async(self._call_voyage_api_internal, batch))

        logger.debug(
            f"Embedded {len(texts)} texts",
            extra={"model": self.model_name, "batches": -(-len(texts) // self.batch_size)},
        )
        return vectors

    async def compute_similarity(
        self,
        vector_a: list[float],
        vector_b: list[float],
    ) -> float:
        """
        Compute the cosine similarity between two embedding vectors.

        Raises:
            ProcessingError: If either vector is empty
        """
        if not vector_a or not vector_b:
            raise ProcessingError(
                message="Cannot compute similarity for empty vectors",
                details={
                    "vector_a_length": len(vector_a),
                    "vector_b_length": len(vector_b),
                },
            )

        a = np.array(vector_a)
        b = np.array(vector_b)

        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)

        if norm_a == 0 or norm_b == 0:
            return 0.0

        return float(np.dot(a, b) / (norm_a * norm_b))

    def get_model_dimensions(self) -> int:
        return MODEL_DIMENSIONS.get(self.model_name, 1024)

    def get_circuit_state(self) -> dict[str, Any]:
        return self._circuit_breaker.get_state()

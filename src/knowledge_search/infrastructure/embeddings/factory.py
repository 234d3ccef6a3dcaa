"""Construction of configured embedding services.

Services are built once at startup and injected, not looked up as
singletons.
"""

from __future__ import annotations

from knowledge_search.core.base import ServiceErrorDetails
from knowledge_search.core.config import settings
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import ServiceError
from knowledge_search.core.logging import get_logger
from knowledge_search.infrastructure.embeddings.voyage import DEFAULT_TIMEOUT_SECONDS, VoyageEmbeddingService

logger = get_logger(__name__)


class EmbeddingServiceBuilder:
    """Builder for configured embedding service instances."""

    def __init__(self):
        self._api_key: str | None = None
        self._model: str | None = None
        self._batch_size: int = settings.embedding_batch_size
        self._timeout: float = settings.search.embedding_timeout_seconds or DEFAULT_TIMEOUT_SECONDS

    def with_api_key(self, api_key: str) -> EmbeddingServiceBuilder:
        self._api_key = api_key
        return self

    def with_model(self, model: str) -> EmbeddingServiceBuilder:
        self._model = model
        return self

    def with_batch_size(self, batch_size: int) -> EmbeddingServiceBuilder:
        self._batch_size = batch_size
        return self

    def with_timeout(self, timeout: float) -> EmbeddingServiceBuilder:
        self._timeout = timeout
        return self

    @with_error_handling(reraise=True)
    def build(self) -> VoyageEmbeddingService:
        """Build the configured embedding service.

        Raises:
            ServiceError: If the API key is missing or the model is unusable
        """
        api_key = self._api_key or settings.voyage_api_key.get_secret_value()
        if not api_key:
            raise ServiceError(
                message="VOYAGE_API_KEY not configured",
                details=ServiceErrorDetails(
                    source="embedding_builder",
                    operation="build",
                    service_name="voyage",
                    endpoint="/embeddings",
                ),
            )

        service = VoyageEmbeddingService(
            api_key=api_key,
            model=self._model,
            batch_size=self._batch_size,
            timeout=self._timeout,
        )
        validate_embedding_service(service)
        logger.info(f"Created VoyageEmbeddingService with model {service.model_name}")
        return service


def create_embedding_service(api_key: str | None = None, model: str | None = None) -> VoyageEmbeddingService:
    """Convenience wrapper around EmbeddingServiceBuilder."""
    builder = EmbeddingServiceBuilder()
    if api_key:
        builder.with_api_key(api_key)
    if model:
        builder.with_model(model)
    return builder.build()


def validate_embedding_service(service: VoyageEmbeddingService) -> None:
    dimensions = service.get_model_dimensions()
    if dimensions <= 0:
        raise ServiceError(
            message=f"Invalid embedding dimensions: {dimensions}",
            details=ServiceErrorDetails(
                source="embedding_validation",
                operation="validate",
                service_name=type(service).__name__,
                endpoint="get_model_dimensions",
            ),
        )
    logger.debug(f"Embedding service validation passed: {dimensions} dimensions")

"""Knowledge Search FastAPI application.

Wires the Neo4j store, Voyage providers, rate limiter and maintenance jobs
into one SearchOrchestrator for the lifetime of the process.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import logfire
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge_search import __version__
from knowledge_search.api import dependencies
from knowledge_search.api import router as api_router
from knowledge_search.core.config import SearchConfig, settings
from knowledge_search.core.handlers import register_exception_handlers
from knowledge_search.core.logging import get_logger, setup_logging
from knowledge_search.infrastructure.embeddings.factory import create_embedding_service
from knowledge_search.infrastructure.neo4j.driver import create_neo4j_driver, ensure_indexes
from knowledge_search.infrastructure.repositories.knowledge_store import Neo4jKnowledgeStore
from knowledge_search.infrastructure.rerank.voyage_rerank import VoyageRerankService
from knowledge_search.services import EmbeddingService, KnowledgeStore, RerankService
from knowledge_search.services.maintenance_jobs import MaintenanceJobs
from knowledge_search.services.query_reformulator import QueryReformulator, ReformulationOptions
from knowledge_search.services.rate_limiter import RateLimiter
from knowledge_search.services.reranker import Reranker
from knowledge_search.services.retrieval_gateway import RetrievalGateway
from knowledge_search.services.search_orchestrator import SearchOrchestrator
from knowledge_search.services.two_layer_retriever import TwoLayerRetriever
from knowledge_search.services.verifier import Verifier

logfire.configure(service_name="knowledge-search", token=settings.logfire_token)
setup_logging(level=settings.log_level)
logger = get_logger(__name__)


def build_search_orchestrator(
    store: KnowledgeStore,
    embeddings: EmbeddingService,
    rerank_service: RerankService | None = None,
    config: SearchConfig | None = None,
    rate_limiter: RateLimiter | None = None,
) -> SearchOrchestrator:
    """Assemble the pipeline around one shared SearchConfig."""
    config = config or settings.search_config()
    gateway = RetrievalGateway(store, embeddings, config)
    return SearchOrchestrator(
        gateway=gateway,
        two_layer=TwoLayerRetriever(store, gateway, config),
        store=store,
        reranker=Reranker(
            rerank_service,
            config,
            model=settings.rerank_model,
            large_model=settings.rerank_large_model,
        ),
        reformulator=QueryReformulator(ReformulationOptions.from_config(config)),
        verifier=Verifier(config),
        rate_limiter=(
            rate_limiter
            if rate_limiter is not None
            else RateLimiter(config.rate_limits, enabled=config.rate_limit_enabled)
        ),
        config=config,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Application lifecycle: connect, build the pipeline, start background jobs."""
    config = settings.search_config()
    maintenance: MaintenanceJobs | None = None

    logger.info("Starting Knowledge Search application")
    async with create_neo4j_driver() as driver:
        try:
            embeddings = create_embedding_service()
            await ensure_indexes(driver, dimensions=embeddings.get_model_dimensions(), database=settings.neo4j_database)

            rerank_service = VoyageRerankService(timeout=config.rerank_timeout_seconds)
            if not rerank_service.is_configured:
                logger.warning("Rerank service not configured, results keep their retrieval order")

            rate_limiter = RateLimiter(config.rate_limits, enabled=config.rate_limit_enabled)
            dependencies.search_orchestrator = build_search_orchestrator(
                Neo4jKnowledgeStore(driver, settings.neo4j_database),
                embeddings,
                rerank_service,
                config,
                rate_limiter,
            )

            if not settings.disable_maintenance_jobs:
                maintenance = MaintenanceJobs(rate_limiter, settings.rate_limit_sweep_minutes)
                await maintenance.start()
                dependencies.maintenance_jobs = maintenance
            else:
                logger.info("Maintenance jobs disabled by configuration")

            logger.info(
                "Knowledge Search application started",
                extra={"embedding_model": embeddings.model_name, "rerank_model": settings.rerank_model},
            )
            yield

        except Exception as e:
            logger.error(f"Failed to start Knowledge Search: {e}", exc_info=True)
            raise

        finally:
            logger.info("Shutting down Knowledge Search")
            if maintenance:
                await maintenance.shutdown()
            dependencies.search_orchestrator = None
            dependencies.maintenance_jobs = None


app = FastAPI(
    title="Knowledge Search API",
    description="Hybrid semantic and keyword retrieval over a personal knowledge base",
    version=__version__,
    lifespan=lifespan,
)

logfire.instrument_fastapi(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router)


if __name__ == "__main__":
    uvicorn.run("knowledge_search.main:app", host="0.0.0.0", port=8000, reload=settings.debug, log_level="info")

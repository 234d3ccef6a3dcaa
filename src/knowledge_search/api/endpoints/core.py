"""Core API endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from knowledge_search import __version__
from knowledge_search.api import dependencies

router = APIRouter()


@router.get("/health", operation_id="health")
async def health_check():
    """Health check endpoint."""
    response: dict = {
        "status": "healthy" if dependencies.search_orchestrator is not None else "starting",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if dependencies.maintenance_jobs is not None:
        response["jobs"] = dependencies.maintenance_jobs.get_job_status()
    return response

"""API dependencies."""

from fastapi import Header, HTTPException

from knowledge_search.core.logging import set_log_context
from knowledge_search.services.maintenance_jobs import MaintenanceJobs
from knowledge_search.services.search_orchestrator import SearchOrchestrator

# These will be set by the main.py lifespan
search_orchestrator: SearchOrchestrator | None = None
maintenance_jobs: MaintenanceJobs | None = None


async def get_search_orchestrator() -> SearchOrchestrator:
    if search_orchestrator is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return search_orchestrator


async def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    """Caller identity, set by the authenticating proxy in front of the API.

    Also starts the request's log context, so every pipeline event logged
    while serving the request carries the user id.
    """
    set_log_context({"user_id": x_user_id})
    return x_user_id

"""API module."""

from fastapi import APIRouter

from .endpoints import core, search

router = APIRouter()

# Include endpoint routers
router.include_router(search.router, prefix="/api/v1/search", tags=["search"])
router.include_router(core.router, tags=["core"])

"""API routes for the prayer engine."""

from fastapi import APIRouter

from .admin import router as admin_router
from .jobs import router as jobs_router
from .prayers import router as prayers_router

# Main API router
api_router = APIRouter()

# Public submission and read endpoints
api_router.include_router(prayers_router)

# Moderation queue and direct edits
api_router.include_router(admin_router)

# Scheduler triggers
api_router.include_router(jobs_router)

__all__ = ["api_router"]

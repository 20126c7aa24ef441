"""API routes module.

Exports all route handlers for the FastAPI application.
"""

from splitlab.api.routes.health import router as health_router
from splitlab.api.routes.experiments import router as experiments_router
from splitlab.api.routes.subjects import router as subjects_router
from splitlab.api.routes.events import router as events_router

__all__ = [
    "health_router",
    "experiments_router",
    "subjects_router",
    "events_router",
]

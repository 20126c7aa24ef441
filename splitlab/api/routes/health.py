"""Health check endpoint."""

from fastapi import APIRouter

from splitlab.api.config import get_api_settings
from splitlab.api.services.experiment_service import experiment_service

router = APIRouter(tags=["health"])
api_settings = get_api_settings()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns service status and basic information.
    """
    return {
        "status": "healthy",
        "version": api_settings.api_version,
        "experiments": len(experiment_service.config_manager.list_experiments()),
    }

"""Service health endpoint."""

from fastapi import APIRouter

from comments_api.core.config import settings

router = APIRouter()


@router.get("/healthcheck")
def healthcheck() -> dict:
    """Health check endpoint for monitoring.

    Returns:
        {"status": "available", "system_info": {...}} if service is running.
    """
    return {
        "status": "available",
        "system_info": {
            "environment": settings.environment,
            "version": settings.app_version,
        },
    }

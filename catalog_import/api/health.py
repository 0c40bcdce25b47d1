"""Health check endpoints for monitoring service and dependency status."""
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from catalog_import.core.db import engine
from catalog_import.core.redis_manager import get_redis_client
from catalog_import.tasks.celery_app import celery_app

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint.

    Returns:
        Simple status response for load balancers
    """
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """Detailed health check for all service dependencies.

    Checks:
    - Database connectivity
    - Redis connectivity (cancellation flags)
    - Celery worker availability

    Returns:
        Detailed health status for each component
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "components": {},
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
        }
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
        }

    try:
        redis_client = get_redis_client()
        redis_client.ping()
        health_status["components"]["redis"] = {
            "status": "healthy",
            "message": "Redis connection successful",
        }
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["components"]["redis"] = {
            "status": "unhealthy",
            "message": f"Redis connection failed: {str(e)}",
        }

    try:
        inspect = celery_app.control.inspect(timeout=2.0)
        active_workers = inspect.active()

        if active_workers:
            health_status["components"]["celery"] = {
                "status": "healthy",
                "message": f"{len(active_workers)} worker(s) available",
                "workers": list(active_workers.keys()),
            }
        else:
            if health_status["status"] == "healthy":
                health_status["status"] = "degraded"
            health_status["components"]["celery"] = {
                "status": "degraded",
                "message": "No active Celery workers found",
            }
    except Exception as e:
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"
        health_status["components"]["celery"] = {
            "status": "degraded",
            "message": f"Failed to inspect Celery workers: {str(e)}",
        }

    return health_status

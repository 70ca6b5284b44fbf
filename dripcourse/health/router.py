"""Health check endpoints."""

from fastapi import APIRouter, Request

from dripcourse.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - the enrollment store is wired and the worker state."""
    settings = get_settings()
    state = request.app.state
    worker = getattr(state, "unlock_worker", None)
    store_ready = getattr(state, "scheduler", None) is not None
    return {
        "status": "ready" if store_ready else "degraded",
        "environment": settings.environment,
        "store_backend": settings.enrollment_store_backend,
        "store": store_ready,
        "unlock_worker": bool(worker and worker.is_running),
        "email": getattr(state, "email_service", None) is not None,
        "payments": getattr(state, "payment_gateway", None) is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

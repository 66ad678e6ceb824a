"""Service health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format, and dependency states
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        from src.database import health_check as db_health_check
        db_healthy = await db_health_check()
        health_status["database"] = "healthy" if db_healthy else "unhealthy"
    except Exception:
        health_status["database"] = "unavailable"

    try:
        from src.services.redis_service import get_redis
        redis_client = await get_redis()
        health_status["redis"] = "healthy" if redis_client else "unavailable"
    except Exception:
        health_status["redis"] = "unavailable"

    email_queue = getattr(request.app.state, "email_queue", None)
    if email_queue is not None:
        health_status["email_queue"] = {
            "running": email_queue.running,
            "pending": email_queue.pending,
        }

    return health_status

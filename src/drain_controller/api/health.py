"""Health check endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health_check() -> str:
    """Liveness of the web process."""
    return "ok"


@router.get("/ready")
async def readiness_check(request: Request) -> dict:
    """Kubernetes readiness probe, reports the reconciliation loop state."""
    loop = getattr(request.app.state, "reconciliation_loop", None)
    last_tick = loop.last_tick.isoformat() if loop and loop.last_tick else None
    return {
        "ready": True,
        "loop_running": bool(loop and loop.running),
        "last_tick": last_tick,
    }


@router.get("/live")
async def liveness_check() -> dict:
    """Kubernetes liveness probe."""
    return {"live": True}

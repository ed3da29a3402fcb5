from fastapi import APIRouter, Request

from simlab.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/api/health")
def health_check(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "scheduler": {
            "running": bool(scheduler and scheduler.running),
            "active_runs": scheduler.active_count() if scheduler else 0,
        },
    }

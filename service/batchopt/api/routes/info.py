from fastapi import APIRouter

from ...config import get_settings
from ...core.session import get_optimization_session

router = APIRouter(tags=["info"])
settings = get_settings()


@router.get("/info")
async def service_info():
    session = get_optimization_session()
    defaults = session.defaults
    return {
        "name": settings.project_name,
        "version": "0.1.0",
        "environment": settings.environment,
        "engine": {
            "mode": "mock" if settings.engine_use_mock else "external",
            "connected": session.connected,
        },
        "optimization_defaults": defaults.model_dump(mode="json"),
        "watchdog": {
            "enabled": settings.watchdog_enabled,
            "poll_interval": settings.watchdog_poll_interval,
            "title_patterns": settings.watchdog_title_patterns,
        },
    }

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse, PlainTextResponse

from events_dashboard.api import deps
from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.settings import Settings
from events_dashboard.database import get_store
from events_dashboard.middleware.monitoring import get_prometheus_metrics

router = APIRouter()


def _is_authorized(authorization: Optional[str], secret: Optional[str]) -> bool:
    if not secret or not authorization:
        return False
    return secrets.compare_digest(authorization, f"Bearer {secret}")


@router.get("/", tags=["Root"], summary="API Welcome Message")  # type: ignore[misc]
async def root(settings: Settings = Depends(deps.get_app_settings)) -> Dict[str, Any]:
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "version": settings.VERSION,
        "docs": f"{settings.API_PREFIX}/docs",
        "events": f"{settings.API_PREFIX}/events",
    }


@router.get("/health", tags=["Health"], summary="Store Reachability Probe")  # type: ignore[misc]
async def health_check(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(deps.get_app_settings),
    store: StoreHandle = Depends(get_store),
) -> Any:
    """
    Health probe for the scheduled cron caller.

    Requires `Authorization: Bearer <CRON_SECRET>`. Responds 200 when the
    database answers `SELECT 1`, 503 otherwise.
    """
    if not _is_authorized(authorization, settings.CRON_SECRET):
        return PlainTextResponse("Unauthorized", status_code=status.HTTP_401_UNAUTHORIZED)

    start_time = time.time()
    db_health = await store.health_check()
    health: Dict[str, Any] = {
        "server": "up",
        "database": db_health["status"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "responseTime": int((time.time() - start_time) * 1000),
    }
    if db_health["status"] != "up":
        health["error"] = db_health.get("error")
        return JSONResponse(health, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return health


@router.get("/metrics", tags=["Monitoring"], summary="Prometheus Metrics")  # type: ignore[misc]
async def metrics(settings: Settings = Depends(deps.get_app_settings)) -> PlainTextResponse:
    if not settings.monitoring.ENABLE_PROMETHEUS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Metrics endpoint is disabled"
        )
    return PlainTextResponse(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

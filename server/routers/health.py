"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app accept players?)
- /metrics - Room and connection metrics for monitoring
"""

import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check(request: Request, response: Response):
    """
    Readiness check - can the app accept players?

    Needs a room manager, and a writable snapshot directory when snapshots
    are enabled. Returns 503 otherwise.
    """
    checks = {}

    room_manager = getattr(request.app.state, "room_manager", None)
    checks["rooms"] = {"status": "ok" if room_manager is not None else "not_ready"}

    store = room_manager.snapshot_store if room_manager is not None else None
    if store is None:
        checks["snapshots"] = {"status": "not_configured"}
    elif os.access(store.directory, os.W_OK):
        checks["snapshots"] = {"status": "ok"}
    else:
        logger.warning(f"Snapshot directory not writable: {store.directory}")
        checks["snapshots"] = {"status": "error", "message": "directory not writable"}

    ready = all(check["status"] in ("ok", "not_configured") for check in checks.values())
    if not ready:
        response.status_code = 503

    return {
        "status": "ok" if ready else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
async def metrics(request: Request):
    """
    Expose application metrics for monitoring.

    Returns operational metrics useful for dashboards and alerting.
    """
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    room_manager = getattr(request.app.state, "room_manager", None)
    if room_manager is not None:
        rooms = room_manager.rooms.values()
        metrics_data.update({
            "active_rooms": len(room_manager.rooms),
            "total_players": sum(len(r.players) for r in rooms),
            "total_spectators": sum(len(r.spectators) for r in rooms),
            "games_in_progress": sum(1 for r in rooms if r.is_game_in_progress()),
            "pending_reservations": sum(len(p) for p in room_manager.pending.values()),
        })

    hub = getattr(request.app.state, "hub", None)
    if hub is not None:
        metrics_data["connected_websockets"] = len(hub)

    return metrics_data

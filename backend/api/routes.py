"""REST API routes for LAN service discovery."""

import logging

from fastapi import APIRouter, HTTPException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_discoverer = None
_announcer = None


def init_routes(discoverer, announcer) -> None:
    """Inject service dependencies into the routes module."""
    global _discoverer, _announcer
    _discoverer = discoverer
    _announcer = announcer


# --- Discovery ---

@router.get("/services")
async def list_services():
    """Return the currently known providers of the watched service."""
    if _discoverer is None:
        raise HTTPException(status_code=404, detail="Discovery is not enabled")
    if _discoverer.error is not None:
        raise HTTPException(status_code=503, detail=str(_discoverer.error))
    return {
        "service": _discoverer.listen_for_service,
        "services": [s.model_dump() for s in _discoverer.services],
    }


# --- Status ---

@router.get("/status")
async def get_status():
    status = {"discoverer": None, "announcer": None}
    if _discoverer is not None:
        status["discoverer"] = {
            "running": _discoverer.running,
            "service_count": len(_discoverer.services),
            "error": str(_discoverer.error) if _discoverer.error else None,
            **_discoverer.settings.model_dump(),
        }
    if _announcer is not None:
        status["announcer"] = {
            "running": _announcer.running,
            "announcements_sent": _announcer.announcements_sent,
            **_announcer.settings.model_dump(),
        }
    return status

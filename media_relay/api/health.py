from fastapi import APIRouter, Depends, Request

from media_relay.api.deps import get_settings
from media_relay.config.settings import Settings
from media_relay.core.logging import log_error
from media_relay.models.response import ServiceIndex
from media_relay.services.health import HealthService

router = APIRouter()

ENDPOINTS = ["/api/health", "/api/media-info", "/api/download"]


@router.get("/", response_model=ServiceIndex)
async def root(settings: Settings = Depends(get_settings)):
    """Root endpoint"""
    return ServiceIndex(message=settings.api.title, endpoints=ENDPOINTS)


@router.get("/api/health")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    """Report whether yt-dlp and ffmpeg can be run on this host"""
    try:
        report = await HealthService.check(settings)
    except Exception as e:
        log_error(request, f"Health check failed: {e}")
        return {"status": "error", "message": str(e)}
    return report.model_dump(by_alias=True)

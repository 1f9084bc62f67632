from fastapi import APIRouter, Depends, Request

from media_relay.api.deps import get_extractor, get_settings
from media_relay.config.settings import Settings
from media_relay.core.logging import log_info
from media_relay.models.request import InfoRequest
from media_relay.models.response import MediaInfoResponse
from media_relay.services.extractors import Extractor
from media_relay.services.info import MediaInfoService

router = APIRouter()


@router.post("/api/media-info", response_model=MediaInfoResponse)
async def get_media_info(
    request: Request,
    info_request: InfoRequest,
    extractor: Extractor = Depends(get_extractor),
    settings: Settings = Depends(get_settings),
):
    """List the downloadable formats of a media page"""
    media_info = await MediaInfoService.fetch(info_request, extractor, settings, request)
    log_info(request, f"Info retrieved: {media_info.title} ({len(media_info.formats)} formats)")
    return MediaInfoResponse(data=media_info)

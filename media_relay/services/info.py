from fastapi import Request

from media_relay.config.settings import Settings
from media_relay.core.security import ensure_reachable
from media_relay.models.request import InfoRequest
from media_relay.models.response import MediaInfo
from media_relay.services.extractors import Extractor


class MediaInfoService:
    """Resolve a URL to a normalized MediaInfo through the configured extractor"""

    @staticmethod
    async def fetch(
        info_request: InfoRequest,
        extractor: Extractor,
        settings: Settings,
        request: Request,
    ) -> MediaInfo:
        url = info_request.validated_url()
        await ensure_reachable(url, settings)
        return await extractor.resolve(url, request)

from fastapi import Request

from media_relay.config.settings import Settings
from media_relay.core.security import ensure_reachable
from media_relay.models.internal import DownloadHandle, DownloadIntent
from media_relay.services.extractors import CobaltExtractor, YtDlpExtractor


class DownloadService:
    """Pick the download path for an intent and prepare the byte stream"""

    @staticmethod
    async def prepare(
        intent: DownloadIntent,
        filename: str,
        settings: Settings,
        ytdlp: YtDlpExtractor,
        cobalt: CobaltExtractor,
        request: Request,
    ) -> DownloadHandle:
        """
        Everything that can fail with a proper error status happens here,
        before the response starts. Direct links are fetched as-is, every
        redirect hop checked; anything else goes through a local yt-dlp run.
        """
        await ensure_reachable(intent.url, settings)

        if intent.uses_direct_link:
            return await cobalt.open_download(intent, filename, request)

        return await ytdlp.open_download(intent, filename, request)

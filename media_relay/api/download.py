from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from media_relay.api.deps import get_cobalt, get_settings, get_ytdlp
from media_relay.config.settings import Settings
from media_relay.core.logging import log_info
from media_relay.models.request import DownloadRequest
from media_relay.services.download import DownloadService
from media_relay.services.extractors import CobaltExtractor, YtDlpExtractor
from media_relay.utils.filename import unique_filename
from media_relay.utils.urls import safe_url_for_log

router = APIRouter()

VIDEO_MEDIA_TYPE = "video/mp4"


@router.post("/api/download")
async def download_media(
    request: Request,
    download_request: DownloadRequest,
    settings: Settings = Depends(get_settings),
    ytdlp: YtDlpExtractor = Depends(get_ytdlp),
    cobalt: CobaltExtractor = Depends(get_cobalt),
):
    """Stream the requested media back as an mp4 attachment"""
    intent = download_request.to_intent()
    filename = unique_filename(intent.title)
    log_info(
        request,
        f"Download request: {safe_url_for_log(intent.url)} "
        f"{'direct link' if intent.uses_direct_link else intent.format_selector} -> {filename}",
    )

    handle = await DownloadService.prepare(intent, filename, settings, ytdlp, cobalt, request)

    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-cache",
        "X-Content-Type-Options": "nosniff",
    }
    if handle.content_length is not None:
        headers["Content-Length"] = str(handle.content_length)

    return StreamingResponse(
        handle.body,
        media_type=VIDEO_MEDIA_TYPE,
        headers=headers,
        background=BackgroundTask(handle.close) if handle.close else None,
    )

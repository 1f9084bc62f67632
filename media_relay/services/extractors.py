"""Extraction strategies.

The relay talks to exactly one collaborator per request: either the
local yt-dlp binary or a Cobalt instance. Both sit behind the same
:class:`Extractor` interface so the routes never branch on the
collaborator themselves.
"""

import json
import os
from abc import ABC, abstractmethod
from contextlib import suppress
from typing import Any, AsyncIterator, Dict, Optional

import aiofiles
import httpx
from fastapi import Request

from media_relay.config.settings import Settings
from media_relay.core.errors import ClientDisconnected, CollaboratorError, DownloadFailed, StreamError
from media_relay.core.logging import log_error, log_info, log_warning
from media_relay.core.security import ensure_reachable
from media_relay.models.internal import DownloadHandle, DownloadIntent
from media_relay.models.response import FormatOption, MediaInfo
from media_relay.services.format import (
    format_duration,
    normalize_formats,
    pick_audio_format,
    pick_thumbnail,
)
from media_relay.services.platform import detect_platform
from media_relay.services.ytdlp import (
    CommandBuilder,
    OutputLimitExceeded,
    SubprocessExecutor,
    SubprocessTimeout,
)
from media_relay.utils.filename import sanitize_filename
from media_relay.utils.urls import is_valid_url, last_path_segment, safe_url_for_log

INFO_FAILED = "Failed to fetch media info. The platform may be blocking server requests."

MAX_REDIRECTS = 5
BEST_AVAILABLE_ID = "best"


class Extractor(ABC):
    """One way of turning a media URL into metadata and bytes"""

    name: str

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    async def resolve(self, url: str, request: Request) -> MediaInfo:
        """Fetch and normalize metadata for url"""

    @abstractmethod
    async def open_download(self, intent: DownloadIntent, filename: str, request: Request) -> DownloadHandle:
        """
        Prepare the download. Any failure raised here happens before a
        single response byte is sent.
        """


class YtDlpExtractor(Extractor):
    """Local yt-dlp invocations; downloads land in the scratch directory first"""

    name = "ytdlp"

    async def resolve(self, url: str, request: Request) -> MediaInfo:
        platform = detect_platform(url)
        cmd = CommandBuilder.build_info_command(url, platform, self.settings)
        log_info(request, f"Fetching info for {safe_url_for_log(url)} ({platform.value})")

        try:
            result = await SubprocessExecutor.run(
                cmd,
                timeout=self.settings.extractor.info_timeout,
                max_output=self.settings.extractor.info_max_output,
            )
        except SubprocessTimeout as e:
            raise CollaboratorError(INFO_FAILED, f"yt-dlp {e}")
        except OutputLimitExceeded as e:
            raise CollaboratorError(INFO_FAILED, f"yt-dlp {e}")
        except OSError as e:
            raise CollaboratorError(INFO_FAILED, f"could not start yt-dlp: {e}")

        if result.returncode != 0:
            raise CollaboratorError(INFO_FAILED, result.diagnostic())

        try:
            info = json.loads(result.stdout.decode(errors="ignore"))
        except json.JSONDecodeError as e:
            raise CollaboratorError(INFO_FAILED, f"unparsable yt-dlp output: {e}")
        if not isinstance(info, dict):
            raise CollaboratorError(INFO_FAILED, "unexpected yt-dlp output")

        raw_formats = info.get("formats") or []
        return MediaInfo(
            title=sanitize_filename(info.get("title") or "video"),
            thumbnail=pick_thumbnail(info),
            duration=format_duration(info.get("duration")),
            uploader=info.get("uploader") or "Unknown",
            platform=platform.value,
            formats=normalize_formats(raw_formats),
            audio_format_id=pick_audio_format(raw_formats),
        )

    async def open_download(self, intent: DownloadIntent, filename: str, request: Request) -> DownloadHandle:
        scratch_dir = self.settings.download.scratch_dir
        output_path = os.path.join(scratch_dir, filename)
        platform = detect_platform(intent.url)
        cmd = CommandBuilder.build_download_command(
            intent.url,
            intent.format_selector,
            output_path,
            platform,
            self.settings,
        )
        log_info(request, f"Downloading {safe_url_for_log(intent.url)} as {intent.format_selector} to {output_path}")

        try:
            result = await SubprocessExecutor.run(
                cmd,
                timeout=self.settings.extractor.download_timeout,
                max_output=self.settings.extractor.download_max_output,
                cancel_check=request.is_disconnected,
                poll_interval=self.settings.download.disconnect_poll_interval,
            )
        except ClientDisconnected:
            log_warning(request, "Client disconnected during download, extractor stopped")
            remove_partial_files(scratch_dir, filename, request)
            raise
        except (SubprocessTimeout, OutputLimitExceeded) as e:
            remove_partial_files(scratch_dir, filename, request)
            raise DownloadFailed(f"yt-dlp {e}")
        except OSError as e:
            raise DownloadFailed(f"could not start yt-dlp: {e}")
        except BaseException:
            remove_partial_files(scratch_dir, filename, request)
            raise

        if result.returncode != 0:
            remove_partial_files(scratch_dir, filename, request)
            raise DownloadFailed(result.diagnostic())

        if not os.path.isfile(output_path):
            log_error(request, f"File not found after download: {output_path}")
            raise DownloadFailed("Download completed but file not found")

        file_size = os.path.getsize(output_path)
        log_info(request, f"Download finished, streaming {file_size / 1024 / 1024:.1f} MB")

        async def discard() -> None:
            # Runs after the response; only matters if streaming never started
            if os.path.exists(output_path):
                try:
                    os.remove(output_path)
                    log_info(request, f"Cleaned up unsent file {output_path}")
                except OSError as e:
                    log_error(request, f"Cleanup error for {output_path}: {e}")

        return DownloadHandle(
            body=stream_file(output_path, self.settings.download.chunk_size, request),
            content_length=file_size,
            close=discard,
        )


class CobaltExtractor(Extractor):
    """Remote Cobalt API; the returned link is relayed as-is"""

    name = "cobalt"

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        super().__init__(settings)
        self.client = client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.settings.cobalt.api_key:
            headers["Authorization"] = f"Api-Key {self.settings.cobalt.api_key}"
        return headers

    def _payload(self, url: str) -> Dict[str, Any]:
        cobalt = self.settings.cobalt
        return {
            "url": url,
            "vCodec": cobalt.video_codec,
            "vQuality": cobalt.video_quality,
            "aFormat": cobalt.audio_format,
            "filenamePattern": cobalt.filename_pattern,
            "isAudioOnly": False,
        }

    async def _open_checked(self, url: str, request: Request) -> httpx.Response:
        """
        GET url as a stream, following redirects by hand so every hop
        passes the SSRF guard before it is contacted.
        """
        for _ in range(MAX_REDIRECTS + 1):
            await ensure_reachable(url, self.settings, what="Download URL")
            try:
                req = self.client.build_request("GET", url)
                resp = await self.client.send(req, stream=True, follow_redirects=False)
            except httpx.HTTPError as e:
                raise StreamError(f"could not reach download link: {e}")

            if not resp.has_redirect_location:
                return resp

            next_url = str(resp.url.join(resp.headers["location"]))
            await resp.aclose()
            if not is_valid_url(next_url):
                raise StreamError("download link redirected to an unsupported URL")
            log_info(request, f"Download link redirected to {safe_url_for_log(next_url)}")
            url = next_url

        raise StreamError(f"download link exceeded {MAX_REDIRECTS} redirects")

    async def resolve(self, url: str, request: Request) -> MediaInfo:
        platform = detect_platform(url)
        log_info(request, f"Asking Cobalt for {safe_url_for_log(url)} ({platform.value})")

        try:
            resp = await self.client.post(
                self.settings.cobalt.api_url,
                json=self._payload(url),
                headers=self._headers(),
                timeout=self.settings.cobalt.timeout,
            )
        except httpx.HTTPError as e:
            raise CollaboratorError(INFO_FAILED, f"Cobalt request failed: {e}")

        try:
            data = resp.json()
        except ValueError:
            raise CollaboratorError(INFO_FAILED, f"Cobalt returned non-JSON response (HTTP {resp.status_code})")
        if not isinstance(data, dict):
            raise CollaboratorError(INFO_FAILED, "Cobalt returned an unexpected response")

        if data.get("status") == "error" or resp.status_code >= 400:
            raise CollaboratorError(INFO_FAILED, _cobalt_error_text(data, resp.status_code))

        link = _cobalt_link(data)
        if not link:
            raise CollaboratorError(INFO_FAILED, f"Cobalt returned no download link (status {data.get('status')!r})")

        title = last_path_segment(url)
        return MediaInfo(
            title=sanitize_filename(title) if title else "video",
            thumbnail=data.get("thumb"),
            platform=platform.value,
            formats=[
                FormatOption(
                    format_id=BEST_AVAILABLE_ID,
                    quality="Best Available",
                    resolution="Unknown",
                    format="mp4",
                    has_audio=True,
                )
            ],
            use_cobalt=True,
            download_url=link,
        )

    async def open_download(self, intent: DownloadIntent, filename: str, request: Request) -> DownloadHandle:
        log_info(request, f"Relaying direct link {safe_url_for_log(intent.direct_link)}")
        resp = await self._open_checked(intent.direct_link, request)

        if resp.status_code >= 400:
            await resp.aclose()
            raise StreamError(f"download link answered HTTP {resp.status_code}")

        # Raw bytes so the body matches the upstream Content-Length
        chunks = resp.aiter_raw()
        try:
            first = await _first_chunk(chunks)
        except httpx.HTTPError as e:
            await resp.aclose()
            raise StreamError(f"download link stream broke: {e}")

        content_length = resp.headers.get("content-length")
        return DownloadHandle(
            body=_relay(first, chunks, resp, request),
            content_length=int(content_length) if content_length and content_length.isdigit() else None,
            close=resp.aclose,
        )


def _cobalt_link(data: Dict[str, Any]) -> Optional[str]:
    if data.get("url"):
        return data["url"]
    if data.get("status") == "picker":
        for item in data.get("picker") or []:
            if isinstance(item, dict) and item.get("url"):
                return item["url"]
    return None


def _cobalt_error_text(data: Dict[str, Any], status_code: int) -> str:
    text = data.get("text")
    if not text and isinstance(data.get("error"), dict):
        text = data["error"].get("code")
    return str(text) if text else f"Cobalt reported an error (HTTP {status_code})"


async def _first_chunk(chunks: AsyncIterator[bytes]) -> bytes:
    while True:
        try:
            chunk = await anext(chunks)
        except StopAsyncIteration:
            return b""
        if chunk:
            return chunk


async def _relay(
    first: bytes,
    chunks: AsyncIterator[bytes],
    resp: httpx.Response,
    request: Request,
) -> AsyncIterator[bytes]:
    try:
        if first:
            yield first
        async for chunk in chunks:
            yield chunk
    except httpx.HTTPError as e:
        # Headers are already out; the response just ends here
        log_error(request, f"Direct link stream broke mid-transfer: {e}")
    finally:
        await resp.aclose()


async def stream_file(path: str, chunk_size: int, request: Request) -> AsyncIterator[bytes]:
    """Yield a scratch file's contents, deleting it afterward no matter what"""
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk
    except OSError as e:
        log_error(request, f"Streaming error: {e}")
    finally:
        try:
            os.remove(path)
            log_info(request, f"Cleaned up {path}")
        except OSError as e:
            log_error(request, f"Cleanup error for {path}: {e}")


def remove_partial_files(scratch_dir: str, filename: str, request: Request) -> None:
    """Remove whatever yt-dlp left behind for this filename (.part, .ytdl, fragments)"""
    stem = os.path.splitext(filename)[0]
    with suppress(OSError):
        for entry in os.listdir(scratch_dir):
            if entry.startswith(stem):
                path = os.path.join(scratch_dir, entry)
                try:
                    os.remove(path)
                    log_info(request, f"Removed partial file {path}")
                except OSError as e:
                    log_warning(request, f"Could not remove partial file {path}: {e}")

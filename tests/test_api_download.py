import asyncio
import os
import re

import httpx
import pytest
from starlette.requests import Request

from conftest import output_path_of, write_output
from media_relay.core.errors import ClientDisconnected
from media_relay.models.internal import DownloadIntent
from media_relay.services.extractors import MAX_REDIRECTS, YtDlpExtractor
from media_relay.services.ytdlp import CompletedProcess, OutputLimitExceeded, SubprocessTimeout

YOUTUBE_URL = "https://youtube.com/watch?v=x"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + os.urandom(5000)


def _attachment_name(response: httpx.Response) -> str:
    match = re.fullmatch(r'attachment; filename="([^"]+)"', response.headers["content-disposition"])
    assert match, response.headers["content-disposition"]
    return match.group(1)


@pytest.mark.parametrize("body,message", [
    ({"formatId": "22"}, "URL is required"),
    ({"url": "notaurl", "formatId": "22"}, "Valid URL is required"),
    ({"url": YOUTUBE_URL}, "Format ID is required"),
    ({"url": YOUTUBE_URL, "useCobalt": True}, "Download URL is required when useCobalt is set"),
])
async def test_missing_fields_are_400(client, fake_executor, upstream_handler, body, message):
    response = await client.post("/api/download", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": message}
    assert fake_executor.calls == []
    assert upstream_handler.requests == []


async def test_local_download_end_to_end(client, fake_executor, settings):
    fake_executor.on_call = write_output(VIDEO_BYTES)

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "formatId": "137", "audioFormatId": "140", "title": "Test"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["content-length"] == str(len(VIDEO_BYTES))
    name = _attachment_name(response)
    assert name.startswith("Test_") and name.endswith(".mp4")
    assert response.content == VIDEO_BYTES

    [cmd] = fake_executor.calls
    assert cmd[cmd.index("-f") + 1] == "137+140"
    assert cmd[cmd.index("--merge-output-format") + 1] == "mp4"
    assert "youtube:player_client=android" in cmd
    assert cmd[-1] == YOUTUBE_URL

    output = output_path_of(cmd)
    assert os.path.dirname(output) == settings.download.scratch_dir
    assert os.path.basename(output) == name
    assert not os.path.exists(output)
    assert os.listdir(settings.download.scratch_dir) == []


async def test_title_is_sanitized_in_filename(client, fake_executor):
    fake_executor.on_call = write_output(b"data")

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "formatId": "22", "title": "My Video! 2024"},
    )

    assert _attachment_name(response).startswith("My_Video_2024_")
    [cmd] = fake_executor.calls
    assert cmd[cmd.index("-f") + 1] == "22"


async def test_ffmpeg_location_is_passed(settings, client, fake_executor):
    settings.extractor.ffmpeg_location = "C:\\ffmpeg\\bin"
    fake_executor.on_call = write_output(b"data")

    await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    [cmd] = fake_executor.calls
    assert cmd[cmd.index("--ffmpeg-location") + 1] == "C:\\ffmpeg\\bin"


async def test_extractor_failure_is_500(client, fake_executor):
    fake_executor.result = CompletedProcess(1, b"", b"ERROR: Requested format is not available")

    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "999"})

    assert response.status_code == 500
    assert response.json() == {"error": "Download failed: ERROR: Requested format is not available"}


@pytest.mark.parametrize("exc", [SubprocessTimeout("timed out after 300s"), OutputLimitExceeded("output exceeded")])
async def test_timeout_and_overrun_are_500(client, fake_executor, settings, exc):
    def leave_partial(cmd):
        with open(output_path_of(cmd) + ".part", "wb") as f:
            f.write(b"half")
    fake_executor.on_call = leave_partial
    fake_executor.exc = exc

    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    assert response.status_code == 500
    assert response.json()["error"].startswith("Download failed: yt-dlp")
    assert os.listdir(settings.download.scratch_dir) == []


async def test_missing_output_file_is_500(client, fake_executor):
    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    assert response.status_code == 500
    assert response.json() == {"error": "Download failed: Download completed but file not found"}


async def test_direct_link_is_relayed_byte_for_byte(client, fake_executor, upstream_handler):
    upstream_handler.handler = lambda req: httpx.Response(
        200,
        stream=httpx.ByteStream(VIDEO_BYTES),
        headers={"content-type": "application/octet-stream", "content-length": str(len(VIDEO_BYTES))},
    )

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "https://cdn.example/file.mp4", "title": "Clip"},
    )

    assert response.status_code == 200
    assert response.content == VIDEO_BYTES
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["content-length"] == str(len(VIDEO_BYTES))
    assert _attachment_name(response).startswith("Clip_")
    assert fake_executor.calls == []
    [fetched] = upstream_handler.requests
    assert str(fetched.url) == "https://cdn.example/file.mp4"


async def test_direct_link_error_status_is_500(client, fake_executor, upstream_handler):
    upstream_handler.handler = lambda req: httpx.Response(404, text="gone")

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "https://cdn.example/file.mp4"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Download failed: download link answered HTTP 404"}
    assert fake_executor.calls == []


async def test_direct_link_unreachable_is_500(client, upstream_handler):
    def refuse(req):
        raise httpx.ConnectError("no route to host", request=req)
    upstream_handler.handler = refuse

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "https://cdn.example/file.mp4"},
    )

    assert response.status_code == 500
    assert "no route to host" in response.json()["error"]


class _BreaksAfterFirstChunk(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"first-chunk"
        await asyncio.sleep(0)
        raise httpx.ReadError("upstream reset")

    async def aclose(self):
        pass


async def test_direct_link_mid_stream_failure_just_ends(client, upstream_handler):
    upstream_handler.handler = lambda req: httpx.Response(200, stream=_BreaksAfterFirstChunk())

    response = await client.post(
        "/api/download",
        json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "https://cdn.example/file.mp4"},
    )

    assert response.status_code == 200
    assert response.content == b"first-chunk"


async def test_numeric_format_ids_are_accepted(client, fake_executor):
    fake_executor.on_call = write_output(b"data")

    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": 137, "audioFormatId": 140})

    assert response.status_code == 200
    [cmd] = fake_executor.calls
    assert cmd[cmd.index("-f") + 1] == "137+140"


async def test_client_disconnect_removes_partial_files(client, fake_executor, settings):
    def leave_partial(cmd):
        with open(output_path_of(cmd) + ".part", "wb") as f:
            f.write(b"half")
    fake_executor.on_call = leave_partial
    fake_executor.exc = ClientDisconnected()

    response = await client.post("/api/download", json={"url": YOUTUBE_URL, "formatId": "22"})

    assert response.status_code == 499
    assert response.content == b""
    assert os.listdir(settings.download.scratch_dir) == []


async def test_unsent_file_is_discarded_on_close(settings, fake_executor):
    fake_executor.on_call = write_output(VIDEO_BYTES)
    request = Request({"type": "http", "method": "POST", "path": "/api/download", "headers": [], "state": {}})
    extractor = YtDlpExtractor(settings)

    handle = await extractor.open_download(
        DownloadIntent(url=YOUTUBE_URL, format_id="22"), "clip.mp4", request
    )
    output = os.path.join(settings.download.scratch_dir, "clip.mp4")
    assert os.path.isfile(output)
    assert handle.content_length == len(VIDEO_BYTES)

    # Body never iterated, as when the response is dropped before streaming
    await handle.body.aclose()
    await handle.close()

    assert not os.path.exists(output)


class TestDirectLinkRedirects:
    RESOLVED = {"cdn.example": "93.184.216.34", "mirror.example": "93.184.216.35", "127.0.0.1": "127.0.0.1"}

    @pytest.fixture(autouse=True)
    def guard_on(self, settings, monkeypatch):
        settings.security.enable_ssrf_protection = True
        monkeypatch.setattr(
            "media_relay.core.security.socket.getaddrinfo",
            lambda host, port: [(2, 1, 6, "", (self.RESOLVED.get(host, "93.184.216.34"), 0))],
        )

    async def _download(self, client):
        return await client.post(
            "/api/download",
            json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "https://cdn.example/file.mp4"},
        )

    async def test_redirect_to_loopback_is_403(self, client, fake_executor, upstream_handler):
        upstream_handler.handler = lambda req: httpx.Response(302, headers={"location": "http://127.0.0.1:8080/secret"})

        response = await self._download(client)

        assert response.status_code == 403
        assert response.json() == {"error": "Download URL points to a private or local address"}
        [fetched] = upstream_handler.requests
        assert fetched.url.host == "cdn.example"
        assert fake_executor.calls == []

    async def test_direct_link_to_loopback_is_403(self, client, upstream_handler):
        response = await client.post(
            "/api/download",
            json={"url": YOUTUBE_URL, "useCobalt": True, "downloadUrl": "http://127.0.0.1/file.mp4"},
        )

        assert response.status_code == 403
        assert upstream_handler.requests == []

    async def test_redirect_to_public_host_is_followed(self, client, upstream_handler):
        def answer(req):
            if req.url.host == "cdn.example":
                return httpx.Response(302, headers={"location": "https://mirror.example/file.mp4"})
            return httpx.Response(200, stream=httpx.ByteStream(VIDEO_BYTES))
        upstream_handler.handler = answer

        response = await self._download(client)

        assert response.status_code == 200
        assert response.content == VIDEO_BYTES
        assert [str(r.url) for r in upstream_handler.requests] == [
            "https://cdn.example/file.mp4",
            "https://mirror.example/file.mp4",
        ]

    async def test_redirect_loop_is_cut_off(self, client, upstream_handler):
        upstream_handler.handler = lambda req: httpx.Response(302, headers={"location": "/again"})

        response = await self._download(client)

        assert response.status_code == 500
        assert response.json() == {"error": f"Download failed: download link exceeded {MAX_REDIRECTS} redirects"}
        assert len(upstream_handler.requests) == MAX_REDIRECTS + 1

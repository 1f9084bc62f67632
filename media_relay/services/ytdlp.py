from typing import Awaitable, Callable, List, NamedTuple, Optional
import asyncio
from contextlib import suppress

from media_relay.config.settings import Settings
from media_relay.core.errors import ClientDisconnected
from media_relay.services.platform import Platform, bypass_args

READ_CHUNK = 64 * 1024


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes

    def diagnostic(self, limit: int = 500) -> str:
        text = self.stderr.decode(errors="ignore").strip() or self.stdout.decode(errors="ignore").strip()
        return text[-limit:] if text else f"exit code {self.returncode}"


class SubprocessTimeout(Exception):
    """Process did not finish in time and was killed"""


class OutputLimitExceeded(Exception):
    """Process wrote more than allowed and was killed"""


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        max_output: Optional[int] = None,
        cancel_check: Optional[Callable[[], Awaitable[bool]]] = None,
        poll_interval: float = 1.0,
    ) -> CompletedProcess:
        """
        Run subprocess with timeout, output cap and proper cleanup.
        stdout and stderr together may not exceed max_output bytes.
        cancel_check is polled while the process runs; a True result
        kills the process and raises ClientDisconnected.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL
        )

        total = 0
        stdout_buf = bytearray()
        stderr_buf = bytearray()

        async def drain(stream: asyncio.StreamReader, buf: bytearray) -> None:
            nonlocal total
            while True:
                chunk = await stream.read(READ_CHUNK)
                if not chunk:
                    return
                total += len(chunk)
                if max_output is not None and total > max_output:
                    raise OutputLimitExceeded(f"output exceeded {max_output} bytes")
                buf.extend(chunk)

        async def communicate() -> None:
            await asyncio.gather(
                drain(process.stdout, stdout_buf),
                drain(process.stderr, stderr_buf),
            )
            await process.wait()

        async def watch() -> None:
            while True:
                await asyncio.sleep(poll_interval)
                if await cancel_check():
                    raise ClientDisconnected()

        work = asyncio.ensure_future(communicate())
        watcher = asyncio.ensure_future(watch()) if cancel_check else None

        try:
            waiting = {work} if watcher is None else {work, watcher}
            done, _ = await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            if not done:
                raise SubprocessTimeout(f"timed out after {timeout:g}s")
            if watcher is not None and watcher in done:
                watcher.result()
            work.result()

            return CompletedProcess(
                returncode=process.returncode,
                stdout=bytes(stdout_buf),
                stderr=bytes(stderr_buf)
            )
        finally:
            for task in (work, watcher):
                if task is not None and not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError, Exception):
                        await task
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()


class CommandBuilder:
    """Build yt-dlp and ffmpeg commands"""

    @staticmethod
    def build_version_command(settings: Settings) -> List[str]:
        return [*settings.extractor.ytdlp_command, "--version"]

    @staticmethod
    def build_transcoder_version_command(settings: Settings, binary: Optional[str] = None) -> List[str]:
        base = [binary] if binary else list(settings.extractor.ffmpeg_command)
        return [*base, "-version"]

    @staticmethod
    def build_info_command(url: str, platform: Platform, settings: Settings) -> List[str]:
        """Build command for fetching the metadata document"""
        cmd = [
            *settings.extractor.ytdlp_command,
            "-J",
            "--no-warnings",
            "--skip-download",
            "--no-playlist",
            *bypass_args(platform, settings),
        ]
        cmd.append(url)
        return cmd

    @staticmethod
    def build_download_command(
        url: str,
        format_selector: str,
        output_path: str,
        platform: Platform,
        settings: Settings,
    ) -> List[str]:
        """Build command for downloading into the scratch directory"""
        cmd = [*settings.extractor.ytdlp_command, "-f", format_selector]

        if settings.extractor.ffmpeg_location:
            cmd.extend(["--ffmpeg-location", settings.extractor.ffmpeg_location])

        cmd.extend(["--merge-output-format", "mp4", "--no-playlist", "--no-progress"])
        cmd.extend(bypass_args(platform, settings))
        cmd.extend(["-o", output_path, url])
        return cmd

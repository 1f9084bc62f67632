import sys
from typing import List, Optional, Tuple

from media_relay.config.settings import Settings
from media_relay.core.logging import logger
from media_relay.models.response import HealthReport
from media_relay.services.ytdlp import CommandBuilder, SubprocessExecutor


def host_platform() -> str:
    return sys.platform


class HealthService:
    """Check the local tools the relay shells out to"""

    @staticmethod
    async def check_tool(cmd: List[str], timeout: float) -> Tuple[bool, Optional[str]]:
        """Run a version command; (available, first output line)"""
        try:
            result = await SubprocessExecutor.run(cmd, timeout=timeout, max_output=1024 * 1024)
        except Exception as e:
            logger.warning(f"{cmd[0]} not available: {e}")
            return False, None

        if result.returncode != 0:
            logger.warning(f"{cmd[0]} exited with {result.returncode}: {result.diagnostic(200)}")
            return False, None

        lines = result.stdout.decode(errors="ignore").strip().splitlines()
        return True, (lines[0].strip() if lines else None)

    @staticmethod
    async def check(settings: Settings) -> HealthReport:
        timeout = settings.extractor.version_check_timeout

        extractor_ok, extractor_version = await HealthService.check_tool(
            CommandBuilder.build_version_command(settings), timeout
        )

        transcoder_ok, transcoder_version = await HealthService.check_tool(
            CommandBuilder.build_transcoder_version_command(settings), timeout
        )
        host = host_platform()
        if not transcoder_ok and host == "win32":
            transcoder_ok, transcoder_version = await HealthService.check_tool(
                CommandBuilder.build_transcoder_version_command(
                    settings, settings.extractor.ffmpeg_fallback_path
                ),
                timeout,
            )

        return HealthReport(
            extractor_available=extractor_ok,
            transcoder_available=transcoder_ok,
            host_platform=host,
            extractor_version=extractor_version,
            transcoder_version=transcoder_version,
            strategy=settings.extractor.strategy,
        )

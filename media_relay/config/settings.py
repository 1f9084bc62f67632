import tempfile
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def _default_platform_args() -> Dict[str, List[str]]:
    relaxed = ["--user-agent", DESKTOP_UA, "--geo-bypass", "--no-check-certificates"]
    return {
        "YouTube": [
            "--extractor-args", "youtube:player_client=android",
            "--user-agent", DESKTOP_UA,
        ],
        "Instagram": list(relaxed),
        "TikTok": list(relaxed),
        "Twitter": list(relaxed),
        "Facebook": list(relaxed),
        "Unknown": ["--user-agent", DESKTOP_UA],
    }


class ApiConfig(BaseModel):
    title: str = Field(default="Media Downloader API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class ExtractorConfig(BaseModel):
    strategy: Literal["ytdlp", "cobalt"] = Field(default="ytdlp", description="Extraction strategy")
    ytdlp_command: List[str] = Field(default=["yt-dlp"], description="yt-dlp invocation")
    ffmpeg_command: List[str] = Field(default=["ffmpeg"], description="ffmpeg invocation")
    ffmpeg_fallback_path: str = Field(
        default="C:\\ffmpeg\\bin\\ffmpeg.exe",
        description="ffmpeg binary tried on Windows when ffmpeg is not on PATH",
    )
    ffmpeg_location: Optional[str] = Field(default=None, description="Passed to yt-dlp as --ffmpeg-location")
    info_timeout: float = Field(default=30.0, gt=0, description="Metadata extraction timeout in seconds")
    info_max_output: int = Field(default=10 * 1024 * 1024, ge=1024, description="Metadata output cap in bytes")
    download_timeout: float = Field(default=300.0, gt=0, description="Download timeout in seconds")
    download_max_output: int = Field(default=100 * 1024 * 1024, ge=1024, description="Download output cap in bytes")
    version_check_timeout: float = Field(default=10.0, gt=0, description="Version check timeout in seconds")


class CobaltConfig(BaseModel):
    api_url: str = Field(default="https://api.cobalt.tools/api/json", description="Cobalt API endpoint")
    api_key: Optional[str] = Field(default=None, description="Cobalt API key")
    timeout: float = Field(default=30.0, gt=0, description="Cobalt request timeout in seconds")
    video_codec: str = Field(default="h264")
    video_quality: str = Field(default="1080")
    audio_format: str = Field(default="mp3")
    filename_pattern: str = Field(default="classic")


class DownloadConfig(BaseModel):
    scratch_dir: str = Field(default_factory=tempfile.gettempdir, description="Temporary file directory")
    chunk_size: int = Field(default=1024 * 1024, ge=1024, description="Streaming chunk size in bytes")
    disconnect_poll_interval: float = Field(
        default=1.0, gt=0, description="Seconds between client disconnect checks during extraction"
    )


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Enable SSRF protection")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class Settings(BaseSettings):
    """Process configuration, read from the environment once at startup"""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=3001, ge=1, le=65535, description="Listen port")
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    cobalt: CobaltConfig = Field(default_factory=CobaltConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    platform_args: Dict[str, List[str]] = Field(default_factory=_default_platform_args)


def load_settings() -> Settings:
    return Settings()

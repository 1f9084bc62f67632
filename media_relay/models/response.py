from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FormatOption(CamelModel):
    """One selectable video quality"""
    format_id: str
    quality: str
    resolution: str
    fps: float = 30
    size: str = "Unknown"
    format: str = "mp4"
    has_audio: bool = False


class MediaInfo(CamelModel):
    """Normalized media summary"""
    title: str
    thumbnail: Optional[str] = None
    duration: str = "Unknown"
    uploader: str = "Unknown"
    platform: str = "Unknown"
    formats: List[FormatOption] = []
    audio_format_id: Optional[str] = None
    use_cobalt: bool = False
    download_url: Optional[str] = None


class MediaInfoResponse(CamelModel):
    success: bool = True
    data: MediaInfo


class HealthReport(CamelModel):
    status: str = "ok"
    extractor_available: bool
    transcoder_available: bool
    host_platform: str
    extractor_version: Optional[str] = None
    transcoder_version: Optional[str] = None
    strategy: str


class ServiceIndex(BaseModel):
    status: str = "ok"
    message: str
    endpoints: List[str]

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from media_relay.core.errors import InvalidInput
from media_relay.models.internal import DownloadIntent
from media_relay.utils.urls import is_valid_url


class CamelModel(BaseModel):
    # Format ids like 137 often arrive as JSON numbers
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class InfoRequest(CamelModel):
    # Validated by hand so a bad URL is a 400 with our own message
    url: Optional[str] = Field(None, description="Media page URL")

    def validated_url(self) -> str:
        if not is_valid_url(self.url):
            raise InvalidInput("Valid URL is required")
        return self.url.strip()


class DownloadRequest(InfoRequest):
    format_id: Optional[str] = Field(None, description="Video format id from /api/media-info")
    audio_format_id: Optional[str] = Field(None, description="Audio format id merged into the video")
    title: Optional[str] = Field(None, description="Title used for the attachment filename")
    download_url: Optional[str] = Field(None, description="Pre-resolved direct link")
    use_cobalt: Optional[bool] = Field(False, description="Fetch download_url instead of running the extractor")

    def to_intent(self) -> DownloadIntent:
        """Check required fields and convert to a download intent"""
        if not self.url:
            raise InvalidInput("URL is required")
        url = self.validated_url()

        if self.use_cobalt:
            if not self.download_url:
                raise InvalidInput("Download URL is required when useCobalt is set")
            if not is_valid_url(self.download_url):
                raise InvalidInput("Valid download URL is required")
            return DownloadIntent(
                url=url,
                title=self.title or "video",
                direct_link=self.download_url.strip(),
            )

        if not self.format_id:
            raise InvalidInput("Format ID is required")

        return DownloadIntent(
            url=url,
            title=self.title or "video",
            format_id=self.format_id,
            audio_format_id=self.audio_format_id or None,
        )

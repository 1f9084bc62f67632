from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel


class DownloadIntent(BaseModel):
    """Internal download intent (separated from HTTP concerns)"""
    url: str
    title: str = "video"
    format_id: Optional[str] = None
    audio_format_id: Optional[str] = None
    direct_link: Optional[str] = None

    @property
    def uses_direct_link(self) -> bool:
        return self.direct_link is not None

    @property
    def format_selector(self) -> Optional[str]:
        if not self.format_id:
            return None
        if self.audio_format_id:
            return f"{self.format_id}+{self.audio_format_id}"
        return self.format_id


@dataclass
class DownloadHandle:
    """A download ready to be relayed: body iterator plus what is known about it"""
    body: AsyncIterator[bytes]
    content_length: Optional[int] = None
    close: Optional[Callable[[], Awaitable[None]]] = None
    headers: Dict[str, str] = field(default_factory=dict)

from enum import Enum
from typing import List, Tuple

from media_relay.config.settings import Settings


class Platform(str, Enum):
    YOUTUBE = "YouTube"
    INSTAGRAM = "Instagram"
    TIKTOK = "TikTok"
    TWITTER = "Twitter"
    FACEBOOK = "Facebook"
    UNKNOWN = "Unknown"


# Checked in order; first match wins
PLATFORM_MARKERS: Tuple[Tuple[Platform, Tuple[str, ...]], ...] = (
    (Platform.YOUTUBE, ("youtube.com", "youtu.be")),
    (Platform.INSTAGRAM, ("instagram.com",)),
    (Platform.TIKTOK, ("tiktok.com",)),
    (Platform.TWITTER, ("twitter.com", "x.com")),
    (Platform.FACEBOOK, ("facebook.com", "fb.watch")),
)


def detect_platform(url: str) -> Platform:
    """Classify a URL by substring; anything unrecognized is UNKNOWN"""
    if not url:
        return Platform.UNKNOWN
    for platform, markers in PLATFORM_MARKERS:
        if any(marker in url for marker in markers):
            return platform
    return Platform.UNKNOWN


def bypass_args(platform: Platform, settings: Settings) -> List[str]:
    """Extra yt-dlp arguments configured for a platform"""
    table = settings.platform_args
    args = table.get(platform.value)
    if args is None:
        args = table.get(Platform.UNKNOWN.value, [])
    return list(args)

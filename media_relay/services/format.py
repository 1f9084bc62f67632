import math
from typing import Any, Dict, Iterable, List, Optional

from media_relay.models.response import FormatOption

MAX_FORMATS = 5
DEFAULT_FPS = 30
SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: Optional[float]) -> str:
    """Human-readable size, 1024-based, at most two decimals"""
    if not num_bytes or num_bytes <= 0:
        return "Unknown"
    i = 0
    scaled = float(num_bytes)
    while scaled >= 1024 and i < len(SIZE_UNITS) - 1:
        scaled /= 1024
        i += 1
    value = math.floor(scaled * 100 + 0.5) / 100
    return f"{value:g} {SIZE_UNITS[i]}"


def format_duration(seconds: Optional[float]) -> str:
    """m:ss or h:mm:ss"""
    if not seconds:
        return "Unknown"
    seconds = int(seconds)
    hrs, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def _has_video(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") != "none" and bool(f.get("height"))


def _is_audio_only(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") == "none" and f.get("acodec") != "none"


def _to_option(f: Dict[str, Any]) -> FormatOption:
    height = int(f["height"])
    width = f.get("width")
    return FormatOption(
        format_id=str(f.get("format_id", "")),
        quality=f"{height}p",
        resolution=f"{width}x{height}" if width else "Unknown",
        fps=f.get("fps") or DEFAULT_FPS,
        size=format_bytes(f.get("filesize") or f.get("filesize_approx") or 0),
        format=f.get("ext") or "mp4",
        has_audio=f.get("acodec") != "none",
    )


def _quality_rank(option: FormatOption) -> int:
    return int(option.quality.rstrip("p"))


def normalize_formats(raw_formats: Optional[Iterable[Dict[str, Any]]], limit: int = MAX_FORMATS) -> List[FormatOption]:
    """
    Collapse a yt-dlp format list to one option per quality.
    On a quality clash the variant carrying audio wins; result is
    ordered by height, highest first, and capped at limit entries.
    """
    if not raw_formats:
        return []

    by_quality: Dict[str, FormatOption] = {}
    for f in raw_formats:
        if not _has_video(f):
            continue
        option = _to_option(f)
        if option.quality not in by_quality or option.has_audio:
            by_quality[option.quality] = option

    ordered = sorted(by_quality.values(), key=_quality_rank, reverse=True)
    return ordered[:limit]


def pick_audio_format(raw_formats: Optional[Iterable[Dict[str, Any]]]) -> Optional[str]:
    """format_id of the highest-bitrate audio-only stream"""
    audio = [f for f in (raw_formats or []) if _is_audio_only(f)]
    if not audio:
        return None
    best = max(audio, key=lambda f: (f.get("abr") or 0, f.get("tbr") or 0))
    format_id = best.get("format_id")
    return str(format_id) if format_id is not None else None


def pick_thumbnail(info: Dict[str, Any]) -> Optional[str]:
    if info.get("thumbnail"):
        return info["thumbnail"]
    thumbnails = info.get("thumbnails") or []
    if thumbnails and isinstance(thumbnails[0], dict):
        return thumbnails[0].get("url")
    return None

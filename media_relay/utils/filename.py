import re
import time
import uuid

MAX_FILENAME_LENGTH = 100


def sanitize_filename(name: str, max_length: int = MAX_FILENAME_LENGTH) -> str:
    """Reduce a title to ASCII letters, digits and single underscores"""
    name = re.sub(r"[^A-Za-z0-9]", "_", name)
    name = re.sub(r"_+", "_", name)
    return name[:max_length]


def unique_filename(title: str, ext: str = "mp4") -> str:
    """Attachment name for one download: sanitized title plus a time-unique token"""
    stem = sanitize_filename(title or "video")
    return f"{stem}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.{ext}"

from typing import Optional
from urllib.parse import urlparse


def is_valid_url(url: Optional[str]) -> bool:
    """Absolute http(s) URL with a host"""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and bool(parsed.hostname)


def safe_url_for_log(url: str) -> str:
    """Safe URL for logging"""
    try:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    except ValueError:
        return "invalid_url"


def last_path_segment(url: str) -> Optional[str]:
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None

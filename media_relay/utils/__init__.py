from .filename import sanitize_filename, unique_filename
from .urls import is_valid_url, last_path_segment, safe_url_for_log

__all__ = ["is_valid_url", "last_path_segment", "safe_url_for_log", "sanitize_filename", "unique_filename"]

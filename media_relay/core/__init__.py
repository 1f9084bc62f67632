from .errors import (
    BlockedUrl,
    ClientDisconnected,
    CollaboratorError,
    DownloadFailed,
    InvalidInput,
    RelayError,
    StreamError,
)

__all__ = [
    "BlockedUrl",
    "ClientDisconnected",
    "CollaboratorError",
    "DownloadFailed",
    "InvalidInput",
    "RelayError",
    "StreamError",
]

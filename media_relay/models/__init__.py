from .internal import DownloadHandle, DownloadIntent
from .request import DownloadRequest, InfoRequest
from .response import FormatOption, HealthReport, MediaInfo, MediaInfoResponse, ServiceIndex

__all__ = [
    "DownloadHandle",
    "DownloadIntent",
    "DownloadRequest",
    "FormatOption",
    "HealthReport",
    "InfoRequest",
    "MediaInfo",
    "MediaInfoResponse",
    "ServiceIndex",
]

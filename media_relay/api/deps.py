from fastapi import Request

from media_relay.config.settings import Settings
from media_relay.services.extractors import CobaltExtractor, Extractor, YtDlpExtractor


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_extractor(request: Request) -> Extractor:
    """Strategy used to resolve media info"""
    return request.app.state.extractor


def get_ytdlp(request: Request) -> YtDlpExtractor:
    return request.app.state.ytdlp


def get_cobalt(request: Request) -> CobaltExtractor:
    return request.app.state.cobalt

import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from media_relay.api import download, health, info
from media_relay.config.settings import Settings, load_settings
from media_relay.core.errors import register_exception_handlers
from media_relay.core.logging import RequestIdMiddleware, logger, setup_logging
from media_relay.services.extractors import CobaltExtractor, YtDlpExtractor


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """Build the relay around an explicit settings object"""
    settings = settings or load_settings()
    setup_logging(settings)

    os.makedirs(settings.download.scratch_dir, exist_ok=True)

    client = http_client or httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.cobalt.timeout, read=None),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Relay ready (strategy={settings.extractor.strategy}, scratch={settings.download.scratch_dir})"
        )
        yield
        await client.aclose()

    app = FastAPI(
        title=settings.api.title,
        version=settings.api.version,
        docs_url="/docs" if settings.api.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.http_client = client
    app.state.ytdlp = YtDlpExtractor(settings)
    app.state.cobalt = CobaltExtractor(settings, client)
    app.state.extractor = app.state.cobalt if settings.extractor.strategy == "cobalt" else app.state.ytdlp

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    # Routes
    app.include_router(health.router, tags=["Health"])
    app.include_router(info.router, tags=["Info"])
    app.include_router(download.router, tags=["Download"])

    return app


def run() -> None:
    settings = load_settings()
    app = create_app(settings)
    logger.info(f"Server running on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.logging.level.lower())

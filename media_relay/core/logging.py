from fastapi import Request
import logging
import uuid
from typing import Any

from rich.logging import RichHandler
from starlette.datastructures import Headers, MutableHeaders

from media_relay.config.settings import Settings

logger = logging.getLogger("media_relay")

REQUEST_ID_HEADER = "X-Request-ID"


def setup_logging(settings: Settings) -> None:
    """Configure the package logger once per process"""
    if getattr(logger, "_media_relay_configured", False):
        logger.setLevel(settings.logging.level)
        return

    if settings.logging.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("[%(request_id)s] %(message)s", defaults={"request_id": "-"}))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(request_id)s] %(message)s",
            defaults={"request_id": "-"},
        ))

    logger.addHandler(handler)
    logger.setLevel(settings.logging.level)
    logger.propagate = False
    logger._media_relay_configured = True


class RequestIdMiddleware:
    """Tag every request with an id for log correlation and echo it back"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message):
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, send_with_id)


def log_with_context(
    request: Request,
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    extra = {
        "request_id": getattr(request.state, "request_id", "unknown"),
        **kwargs
    }
    logger.log(level, message, extra=extra)

def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)

def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)

def log_warning(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)

def log_debug(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.DEBUG, message, **kwargs)

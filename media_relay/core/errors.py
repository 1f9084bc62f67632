"""Error taxonomy for the relay and its FastAPI translation.

Every failure that reaches a route ends up as a :class:`RelayError`
subclass. Raw subprocess and httpx exceptions are caught in the
services layer and re-raised as one of these.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from media_relay.core.logging import log_error, log_info, log_warning


class RelayError(Exception):
    """Base class for errors rendered as a JSON response"""

    status_code = 500

    def __init__(self, error: str, details: Optional[str] = None):
        super().__init__(error if details is None else f"{error}: {details}")
        self.error = error
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInput(RelayError):
    """Malformed or missing request field"""

    status_code = 400


class BlockedUrl(RelayError):
    """URL resolves to an address the relay refuses to contact"""

    status_code = 403


class CollaboratorError(RelayError):
    """Extraction tool or remote API failed, timed out or returned garbage"""


class DownloadFailed(RelayError):
    """The download could not be produced"""

    def __init__(self, reason: str):
        super().__init__(f"Download failed: {reason}")
        self.reason = reason


class StreamError(DownloadFailed):
    """Outbound proxy stream broke before the first byte"""


class ClientDisconnected(Exception):
    """Caller went away while the extraction subprocess was running"""


# nginx convention for "client closed request"; nobody is left to read it
CLIENT_CLOSED_STATUS = 499


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        if exc.status_code >= 500:
            log_error(request, str(exc))
        else:
            log_warning(request, str(exc))
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        log_warning(request, f"Rejected request body: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(ClientDisconnected)
    async def disconnect_handler(request: Request, exc: ClientDisconnected):
        log_info(request, "Client disconnected, request abandoned")
        return Response(status_code=CLIENT_CLOSED_STATUS)

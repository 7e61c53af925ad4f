"""Error taxonomy for the API and the handlers that render it as JSON."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from extraction.errors import ExtractionError
from notifications.email_provider import EmailProviderError
from storage.errors import GrantError, StoreError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequest(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamFailure(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return body


def _json_error(status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    return JSONResponse(error_body(message, details), status_code=status_code)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
        return _json_error(exc.status_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request_invalid", extra={"path": request.url.path, "errors": len(exc.errors())})
        return _json_error(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("store_failed", extra={"path": request.url.path, "error": exc.message})
        return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message, exc.details)

    @app.exception_handler(EmailProviderError)
    async def _email_error(request: Request, exc: EmailProviderError) -> JSONResponse:
        logger.error("email_provider_failed", extra={"path": request.url.path, "error": str(exc)})
        return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(ExtractionError)
    async def _extraction_error(request: Request, exc: ExtractionError) -> JSONResponse:
        logger.error("extraction_failed", extra={"path": request.url.path, "error": str(exc)})
        return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(GrantError)
    async def _grant_error(request: Request, exc: GrantError) -> JSONResponse:
        logger.error("write_grant_rejected", extra={"path": request.url.path, "error": str(exc)})
        return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", extra={"path": request.url.path})
        return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Server error: {exc}")

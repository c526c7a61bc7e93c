"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from teentalk.moderation.domain.errors import (
    InternalError,
    InvalidArgument,
    ModerationError,
    NotFound,
    PermissionDenied,
)
from teentalk.obs.middleware import get_request_id

_STATUS_BY_ERROR = {
    InvalidArgument: 400,
    PermissionDenied: 403,
    NotFound: 404,
    InternalError: 500,
}


def status_for(exc: ModerationError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": get_request_id(request)}
        return JSONResponse(status_code=422, content=jsonable_encoder(payload))

    @app.exception_handler(ModerationError)
    async def moderation_exc_handler(request: Request, exc: ModerationError):  # type: ignore[override]
        payload = {"detail": exc.code, "message": exc.message, "request_id": get_request_id(request)}
        if exc.details:
            payload["details"] = exc.details
        return JSONResponse(status_code=status_for(exc), content=jsonable_encoder(payload))

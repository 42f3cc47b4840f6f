"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tunematch.domain.matching.exceptions import (
    Conflict,
    Forbidden,
    InvalidSwipe,
    MatchingError,
    NotFound,
    Unavailable,
)

_STATUS_BY_ERROR: tuple[tuple[type[MatchingError], int], ...] = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidSwipe, status.HTTP_400_BAD_REQUEST),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (Unavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (Conflict, status.HTTP_409_CONFLICT),
)


def status_for(exc: MatchingError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MatchingError)
    async def matching_exc_handler(request: Request, exc: MatchingError):  # type: ignore[override]
        payload = {"detail": exc.reason, "request_id": get_request_id(request)}
        headers = {"Retry-After": "1"} if isinstance(exc, Unavailable) else None
        return JSONResponse(status_code=status_for(exc), content=payload, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": get_request_id(request)}
        return JSONResponse(status_code=422, content=payload)

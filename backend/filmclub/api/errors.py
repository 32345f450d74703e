"""Translate domain errors and render every error body with the request id."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from filmclub.domain.exceptions import FilmclubError
from filmclub.obs.logging import current_request_id


def to_http_error(exc: FilmclubError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=getattr(exc, "headers", None))


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or current_request_id()


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": _request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": _request_id(request)}
        return JSONResponse(status_code=422, content=jsonable_encoder(payload))

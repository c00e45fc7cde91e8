"""Translate service errors into JSON HTTP responses."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.screening.errors import PipelineError, status_for_code

logger = logging.getLogger(__name__)


def http_error(exc: PipelineError, *, event: str, **context: Any) -> HTTPException:
    """Log ``exc`` under ``event`` and wrap it for the client."""
    status_code = status_for_code(exc.code)
    log = logger.error if status_code >= 500 else logger.warning
    log(event, extra={**{key: str(value) for key, value in context.items()}, "code": exc.code})
    return HTTPException(status_code=status_code, detail={"error": str(exc), "code": exc.code})


def _describe_validation_errors(errors: list[dict[str, Any]]) -> str:
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _describe_validation_errors(list(exc.errors()))
    logger.info("api.validation_error", extra={"path": request.url.path, "error": message})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def pipeline_exception_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = status_for_code(exc.code)
    logger.error("api.unhandled_pipeline_error", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=status_code, content={"error": str(exc), "code": exc.code})


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PipelineError, pipeline_exception_handler)

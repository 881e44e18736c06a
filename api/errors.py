"""
Exception handlers — every error leaves the API as
``{"success": false, "error": "..."}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from connectors.errors import IntegrationError, RequestValidationFailed

logger = logging.getLogger(__name__)


def error_body(exc: IntegrationError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": exc.message}
    if exc.requires_reauth:
        body["requiresReauth"] = True
    return body


def error_response(exc: IntegrationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


def _validation_message(exc: RequestValidationError) -> str:
    problems = []
    in_body = False
    for err in exc.errors():
        loc = tuple(err.get("loc", ()))
        in_body = in_body or (loc[:1] == ("body",))
        field = ".".join(str(p) for p in loc[1:]) or str(loc[0] if loc else "body")
        if err.get("type") == "missing":
            problems.append(f"{field} is required")
        else:
            problems.append(f"{field}: {err.get('msg', 'invalid')}")
    prefix = "Invalid request body" if in_body else "Invalid request"
    return f"{prefix}: " + "; ".join(problems)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(IntegrationError)
    async def integration_error(request: Request, exc: IntegrationError):
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            level, "%s %s → %d %s (%s)",
            request.method, request.url.path, exc.status_code, type(exc).__name__, exc.detail or exc.message,
        )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return error_response(RequestValidationFailed(_validation_message(exc)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

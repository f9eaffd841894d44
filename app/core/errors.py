"""
app/core/errors.py

Purpose: HTTP error mapping

- MemberPassError subclasses carry their own status code and error code
- Framework errors (404/405, request validation) use the same body shape
- Anything else is logged and returned as INTERNAL_ERROR
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import MemberPassError
from app.schemas.response import ErrorResponse
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def error_response(status_code: int, error: str, code: str, details: Any = None) -> JSONResponse:
    body = ErrorResponse(error=error, code=code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def jsonable_errors(exc: RequestValidationError) -> list:
    """Pydantic error list without the non-serializable `ctx`/`input` payloads."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


def add_exception_handlers(app: FastAPI):
    """
    Registers exception handlers with the FastAPI app.
    """
    @app.exception_handler(MemberPassError)
    async def memberpass_exception_handler(request: Request, exc: MemberPassError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}", extra={"url": str(request.url)})
        return error_response(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(422, "Input validation failed", "VALIDATION_ERROR", jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else "unknown"
            },
            exc_info=True
        )
        message = "An internal error occurred. Please try again later." if settings.is_production else str(exc)
        return error_response(500, message, "INTERNAL_ERROR")

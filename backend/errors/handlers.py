"""
Error handling hooks for Polychat.

Registers FastAPI exception handlers that translate the exception
hierarchy into the standard error response body, and provides a
consistent error logger.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import PolychatError
from .response import error_response, status_for

logger = logging.getLogger(__name__)


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="chat")
        # Logs: "[chat] PERSISTENCE_FAILED: Failed to insert user message"
    """
    if isinstance(error, PolychatError):
        message = f"{error.code.value}: {error.message}"
        if error.context:
            message += f" {error.context}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)


def _flatten_validation_errors(exc: RequestValidationError) -> dict:
    """Group pydantic errors per field, similar to a flattened schema error."""
    field_errors: dict = {}
    form_errors: list = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        if loc:
            field_errors.setdefault(".".join(loc), []).append(err.get("msg", "invalid"))
        else:
            form_errors.append(err.get("msg", "invalid"))
    return {"formErrors": form_errors, "fieldErrors": field_errors}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the Polychat error handlers to an application."""

    @app.exception_handler(PolychatError)
    async def _polychat_error(request: Request, exc: PolychatError):
        # Expected client errors are logged quietly; server-side ones loudly
        if exc.status_code >= 500:
            log_error(logger, exc, context=request.url.path, include_traceback=False)
        else:
            logger.info(f"[{request.url.path}] {exc.code.value}: {exc.message}")
        return JSONResponse(status_code=status_for(exc), content=error_response(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        logger.info(f"[{request.url.path}] invalid payload: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={
                "error": True,
                "message": "Invalid payload",
                "details": _flatten_validation_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        log_error(logger, exc, context=request.url.path)
        return JSONResponse(status_code=500, content=error_response(exc))

"""
Exception handlers mapping service errors onto HTTP responses.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from livepoll.core.exceptions import ApiError

logger = logging.getLogger(__name__)


async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(
        {
            "error": "VALIDATION_ERROR",
            "message": "Please check your input and try again",
            "details": "; ".join(problems),
        },
        status_code=400,
    )


async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(
        f"Database error on {request.method} {request.url.path}: {exc.__class__.__name__}: {exc}\n"
        f"Traceback:\n{traceback.format_exc()}"
    )
    return JSONResponse(
        {"error": "DATABASE_ERROR", "message": "Database operation failed. Please try again."},
        status_code=500,
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    # Log the full traceback, never expose it
    logger.error(
        f"Unhandled exception: {exc.__class__.__name__}: {str(exc)}\n"
        f"Traceback:\n{traceback.format_exc()}"
    )
    return JSONResponse(
        {"error": "INTERNAL_ERROR", "message": "An internal error occurred. Please try again later."},
        status_code=500,
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

"""
stone/middleware/exception_handlers.py

Global exception handler middleware
"""

import logging
import traceback
import uuid

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from stone.middleware.csrf import CSRFExtractionError, CSRFTokenMismatch
from stone.schemas.errors import APIError, ErrorCode
from stone.schemas.response import error_response

logger = logging.getLogger(__name__)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


def error_code_for(exc: HTTPException) -> ErrorCode:
    if isinstance(exc, CSRFTokenMismatch):
        return ErrorCode.CSRF_TOKEN_INVALID
    if isinstance(exc, CSRFExtractionError):
        return ErrorCode.CSRF_TOKEN_MISSING
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return ErrorCode.NOT_FOUND
    if exc.status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return ErrorCode.BAD_REQUEST


def _json_error(
    status_code: int,
    code: ErrorCode,
    message: str,
    request_id: str,
    details=None,
    headers: dict = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code=code, message=message, details=details, request_id=request_id
        ),
        headers={**(headers or {}), "X-Request-ID": request_id},
    )


def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    request_id = get_request_id(request)
    logger.info(
        f"Request rejected: {exc.message}",
        extra={"request_id": request_id, "extra": {"code": exc.code.value}},
    )
    return _json_error(exc.status_code, exc.code, exc.message, request_id)


def http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    request_id = get_request_id(request)
    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={"request_id": request_id, "extra": {"status": exc.status_code}},
    )
    return _json_error(
        exc.status_code,
        error_code_for(exc),
        str(exc.detail),
        request_id,
        headers=getattr(exc, "headers", None),
    )


def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    request_id = get_request_id(request)
    logger.warning(
        f"Validation error: {exc.errors()}",
        extra={"request_id": request_id},
    )
    return _json_error(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_ERROR,
        "Validation error",
        request_id,
        details=jsonable_encoder(exc.errors()),
    )


def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    request_id = get_request_id(request)
    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra": {"traceback": traceback.format_exc()},
        },
    )
    return _json_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.DATABASE_ERROR,
        "Database error occurred",
        request_id,
    )


def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = get_request_id(request)
    logger.error(
        f"Unexpected error: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra": {"traceback": traceback.format_exc()},
        },
    )
    return _json_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred",
        request_id,
    )


def render_exception(request: Request, exc: Exception) -> JSONResponse:
    """Pick the handler for an exception that escaped the route layer"""
    if isinstance(exc, APIError):
        return api_error_handler(request, exc)
    if isinstance(exc, HTTPException):
        return http_exception_handler(request, exc)
    if isinstance(exc, RequestValidationError):
        return validation_exception_handler(request, exc)
    if isinstance(exc, SQLAlchemyError):
        return database_error_handler(request, exc)
    return unexpected_error_handler(request, exc)


async def exception_handler_middleware(request: Request, call_next):
    """Render errors raised by inner middleware (CSRF) and routes"""

    request_id = get_request_id(request)

    try:
        response = await call_next(request)
    except Exception as exc:
        response = render_exception(request, exc)

    response.headers["X-Request-ID"] = request_id
    return response


def register_exception_handlers(app) -> None:
    """Same envelope for errors raised inside route handlers"""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(
        RequestValidationError, validation_exception_handler
    )
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

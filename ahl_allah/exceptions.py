import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class APIException(HTTPException):
    status_code_default = 500
    message_default = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None, data: Optional[Any] = None):
        super().__init__(status_code=self.status_code_default, detail=detail or self.message_default)
        self.data = data if data is not None else {}


class ValidationError(APIException):
    status_code_default = 400
    message_default = "Validation Error"


class Unauthorized(APIException):
    status_code_default = 401
    message_default = "You are not authorized"


class Forbidden(APIException):
    status_code_default = 403
    message_default = "Access denied. Insufficient permissions."


class NotFound(APIException):
    status_code_default = 404
    message_default = "Not found"


class Conflict(APIException):
    status_code_default = 409
    message_default = "Conflict"


class TooManyRequests(APIException):
    status_code_default = 429
    message_default = "Too many requests"


class InternalError(APIException):
    status_code_default = 500
    message_default = "Internal Server Error"


def create_response(status: int, message: str, data: Any = None) -> dict:
    """Create the standard {status, message, data} envelope"""
    return {
        "status": status,
        "message": message,
        "data": data if data is not None else {}
    }


def create_success_response(message: str = "Success", data: Any = None) -> dict:
    return create_response(200, message, data)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render any HTTPException with the standard envelope"""
    # HTTPBearer reports a missing header as 403; treat it as unauthenticated
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(status_code=401, content=create_response(401, Unauthorized.message_default))

    data = getattr(exc, "data", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=create_response(exc.status_code, str(exc.detail), data),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=create_response(400, "Validation Error", errors))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content=create_response(409, "Duplicate Entry", {"message": "This value already exists"}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)

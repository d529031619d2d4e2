"""
Error taxonomy and the JSON error envelope.

Every error leaves the API as ``{"error": "<message>"}`` (or
``{"errors": [...]}`` for field-level validation failures).
"""
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog


log = structlog.get_logger(__name__)


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Access token required"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Insufficient permissions"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Conflict"


class InvalidStateTransition(Conflict):
    default_detail = "Invalid state transition"


class DependencyConflict(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Cannot delete record due to existing dependencies"


def _http_error_handler(request: Request, exc: StarletteHTTPException):
    headers = getattr(exc, "headers", None)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=headers)


def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", []) if p not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg")})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": errors})


def _integrity_error_handler(request: Request, exc: IntegrityError):
    log.warning("integrity_error", path=request.url.path, error=str(getattr(exc, "orig", exc)))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": DependencyConflict.default_detail},
    )


def _unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled_error", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

"""
Service exceptions and the FastAPI handlers that render them
"""
import logging
from typing import Any, Dict, Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from banana_friends.api.schemas import ErrorResponse

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_DETAILS = "Serverless function error"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Origin, X-Requested-With, Content-Type, Accept, Authorization",
}


class ServiceError(Exception):
    """Base error carrying the HTTP status and the response envelope fields"""
    status_code = 500

    def __init__(self, error: str, status_code: Optional[int] = None, details: Any = None, **extra: Any):
        super().__init__(error)
        self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.extra = extra

    def to_content(self) -> Dict[str, Any]:
        content = ErrorResponse(error=self.error, details=self.details).model_dump(exclude_none=True)
        content.update(self.extra)
        return content


class InvalidRequestError(ServiceError):
    """Client input was missing or malformed"""
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class AuthenticationError(ServiceError):
    """The caller is not a known, active user able to generate"""
    status_code = 401


class ConfigurationError(ServiceError):
    """A required credential is absent; debug holds booleans only"""

    def __init__(self, error: str, debug: Optional[Dict[str, bool]] = None, details: Any = "Missing environment variable"):
        extra = {"debug": debug} if debug is not None else {}
        super().__init__(error, status_code=500, details=details, **extra)


class UpstreamError(ServiceError):
    """A third-party API answered with a non-2xx status"""

    def __init__(self, error: str, status_code: int, details: Any = None, **extra: Any):
        super().__init__(error, status_code=status_code, details=details, **extra)


class PassthroughUpstreamError(UpstreamError):
    """Upstream failure whose body is returned to the client unchanged"""

    def __init__(self, status_code: int, body: Any):
        super().__init__("Upstream request failed", status_code=status_code, details=body)
        self.body = body

    def to_content(self) -> Any:
        return self.body


def missing_fields_message(fields) -> str:
    return f"Missing required fields: {', '.join(fields)}"


# Routes whose clients expect the full field list whichever fields are absent
REQUIRED_FIELDS_MESSAGES = {
    "/api/transfer-to-ftp": missing_fields_message(["supabasePath", "username", "filename"]),
    "/api/transfer-to-boertlay": missing_fields_message(["supabasePath", "username", "filename"]),
    "/api/direct-ftp-upload": missing_fields_message(["base64Image", "username", "filename"]),
    "/api/upload-image": "Missing required fields: file, path, or filename",
    "/api/generations/start": "Missing required fields: user_id and prompt",
}


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.error}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(tuple(err.get("loc", ())) == ("body",) for err in errors):
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="Missing request body").model_dump(exclude_none=True),
        )
    missing = [
        str(err["loc"][-1]) for err in errors
        if err.get("type") in ("missing", "string_too_short") and err.get("loc")
    ]
    if missing:
        message = REQUIRED_FIELDS_MESSAGES.get(request.url.path) or missing_fields_message(missing)
    else:
        message = "Invalid request"
    details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=message, details=details).model_dump(exclude_none=True),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors

    Runs in ServerErrorMiddleware, outside the CORS middleware, so it sets the headers itself
    """
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=str(exc), details=UNEXPECTED_ERROR_DETAILS).model_dump(exclude_none=True),
        headers=CORS_HEADERS,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

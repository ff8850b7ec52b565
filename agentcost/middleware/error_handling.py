"""
Global Error Handling Middleware
Formats every error as {"error": ..., "details": ...} JSON and logs it
without request or response content
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..utils.logger import get_logger

logger = get_logger(__name__)

class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Catches anything the route handlers did not handle and returns a 500
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = datetime.utcnow()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
            # Method and first path segment only; paths and queries can carry user data
            logger.error(
                f"Unhandled Exception: {type(exc).__name__} on {request.method} "
                f"{_route_prefix(request.url.path)} after {duration_ms:.1f}ms"
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error", "request_id": request_id},
                headers={"X-Request-ID": request_id}
            )

def _route_prefix(path: str) -> str:
    segment = path.strip("/").split("/", 1)[0]
    return f"/{segment}"

def error_body(error: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return body

async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTPException -> {"error": ...}; a dict detail is passed through as the body"""
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        content = error_body("Not found")
    elif isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = error_body(str(exc.detail))

    logger.warning(f"HTTP Exception: {exc.status_code} on {request.method} {_route_prefix(request.url.path)}")
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters or bodies are client errors"""
    details = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg")}
        for error in exc.errors()
    ]
    logger.warning(f"Validation Error on {request.method} {_route_prefix(request.url.path)}: {len(details)} issue(s)")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request", details)
    )

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

"""
ExamKit - Error Handler Middleware
Consistent error response format
"""

import traceback
from typing import Any, Callable, Dict, List, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.middleware.base import BaseHTTPMiddleware

from examkit.domain.exceptions import DuplicateDomainError, ExamValidationError

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handler middleware.

    Services raise domain errors derived from builtin categories; this maps
    them to status codes so no service knows about HTTP.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            request_id = getattr(request.state, "request_id", None)
            error_code, status_code, detail = self._classify_error(exc)

            if status_code >= 500:
                logger.error(
                    "Unhandled exception",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    path=request.url.path,
                    method=request.method,
                    request_id=request_id,
                    traceback=traceback.format_exc(),
                )
            else:
                logger.info(
                    "Request rejected",
                    error_code=error_code,
                    detail=detail,
                    path=request.url.path,
                    method=request.method,
                    request_id=request_id,
                )

            content: Dict[str, Any] = {
                "error": error_code,
                "detail": detail,
                "request_id": request_id,
            }
            errors = self._error_list(exc)
            if errors:
                content["errors"] = errors

            return JSONResponse(status_code=status_code, content=content)

    @staticmethod
    def _error_list(exc: Exception) -> Optional[List[str]]:
        if isinstance(exc, ExamValidationError) and exc.errors != [str(exc)]:
            return exc.errors
        return None

    def _classify_error(self, exc: Exception) -> tuple[str, int, str]:
        """
        Classify exception and return error details.

        Returns:
            Tuple of (error_code, status_code, detail)
        """
        # Database errors
        if isinstance(exc, IntegrityError):
            return "DATABASE_INTEGRITY_ERROR", 409, "Database constraint violation"

        if isinstance(exc, OperationalError):
            return "DATABASE_ERROR", 503, "Database operation failed"

        # Redis errors
        if isinstance(exc, RedisConnectionError):
            return "CACHE_ERROR", 503, "Cache service unavailable"

        if isinstance(exc, DuplicateDomainError):
            return "CONFLICT", 409, str(exc)

        # Validation errors
        if isinstance(exc, ValueError):
            return "VALIDATION_ERROR", 400, str(exc)

        # Permission errors
        if isinstance(exc, PermissionError):
            return "PERMISSION_DENIED", 403, str(exc)

        # Not found errors
        if isinstance(exc, LookupError):
            return "NOT_FOUND", 404, str(exc)

        # Default: internal server error
        return "INTERNAL_ERROR", 500, "An unexpected error occurred"

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback

from cache_api.core.config import settings
from cache_api.core.exceptions.errors import CacheAPIError
from cache_api.core.responses import send_error
from cache_api.utils.logging import get_logger


def register_exception_handlers(app):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger = get_logger()
        logger.error(
            f"Unhandled exception for {request.method} {request.url}: {exc}\n"
            f"Traceback: {traceback.format_exc()}\n"
            f"User-Agent: {request.headers.get('user-agent')}"
        )
        return send_error(
            error="Internal server error",
            message=str(exc) if settings.DEBUG else "Something went wrong",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(CacheAPIError)
    async def cache_api_exception_handler(request: Request, exc: CacheAPIError):
        logger = get_logger()
        bound = logger.bind(
            path_params=dict(request.path_params), query=dict(request.query_params)
        )
        log = bound.warning if exc.status_code < 500 else bound.error
        log(f"{type(exc).__name__} for {request.method} {request.url}: {exc.message}")
        return send_error(
            error=exc.error, message=exc.message, status_code=exc.status_code
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger = get_logger()
        raw_errors = exc.errors()
        logger.warning(
            f"Validation error for {request.method} {request.url}: {raw_errors}"
        )

        friendly_errors = {}
        for error in raw_errors:
            field = ".".join(map(str, error["loc"]))
            friendly_errors[field] = error["msg"]

        return send_error(
            error="Validation failed",
            message="Request parameters failed validation",
            errors=friendly_errors,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = get_logger()
        logger.warning(
            f"HTTP {exc.status_code} for {request.method} {request.url}: {exc.detail}"
        )
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return send_error(
                error="Not found",
                message=f"Path {request.url.path} not found",
                status_code=exc.status_code,
            )
        return send_error(
            error=str(exc.detail), message=str(exc.detail), status_code=exc.status_code
        )

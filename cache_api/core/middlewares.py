import time

from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
from cache_api.utils.logging import get_logger


class LogRequestsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = get_logger()
        logger.info(f"Request: {request.method} {request.url}")
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.bind(status=response.status_code, elapsed_ms=round(elapsed_ms, 1)).info(
            f"Response: {request.method} {request.url.path}"
        )
        return response

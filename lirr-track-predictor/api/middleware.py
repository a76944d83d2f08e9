import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .core import logger


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Debug-log each request with its caller, status and latency"""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        caller = request.headers.get("x-forwarded-for") or (
            request.client.host if request.client else "unknown"
        )
        query = f"?{request.url.query}" if request.url.query else ""
        logger.debug(
            f"{request.method} {request.url.path}{query} from {caller} -> "
            f"{response.status_code} in {elapsed_ms:.1f}ms"
        )
        return response

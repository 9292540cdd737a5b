"""
Middleware for the development backend: request logging.
"""
import time
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.logging_setup import hash_identifier

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    """Extract the bearer credential from the Authorization header"""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with latency; credentials are hashed"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        token = bearer_token(request)
        hashed_token = hash_identifier(token) if token else None

        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "hashed_token": hashed_token,
                "remote_addr": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Error: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "hashed_token": hashed_token
                },
                exc_info=True
            )
            raise

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Response: {request.method} {request.url.path} {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2),
                "hashed_token": hashed_token
            }
        )
        response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
        return response

"""
Custom middleware for the application.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from planguard.config import settings
from planguard.core.context import clear_request_context, set_request_context
from planguard.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

logger = structlog.get_logger(__name__)


def _endpoint_label(request: Request) -> str:
    # Route templates keep label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add request context.

    Sets:
    - Request ID (for log correlation)
    - Trace ID (for distributed tracing)
    - Request timing and Prometheus HTTP metrics
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = str(uuid.uuid4())
        trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))

        request.state.request_id = request_id
        request.state.trace_id = trace_id

        set_request_context(
            request_id=request_id,
            trace_id=trace_id,
        )

        start_time = time.perf_counter()
        if settings.metrics_enabled:
            http_requests_in_progress.labels(method=request.method).inc()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time
            duration_ms = round(duration * 1000, 2)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Process-Time"] = str(duration_ms)

            if settings.metrics_enabled:
                endpoint = _endpoint_label(request)
                http_requests_total.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=str(response.status_code),
                ).inc()
                http_request_duration_seconds.labels(
                    method=request.method,
                    endpoint=endpoint,
                ).observe(duration)

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

            return response

        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
                error=str(e),
                exc_info=True,
            )
            raise

        finally:
            if settings.metrics_enabled:
                http_requests_in_progress.labels(method=request.method).dec()
            clear_request_context()

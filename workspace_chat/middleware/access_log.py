"""
Structured access log middleware.

Replaces Uvicorn's access log with one structured `http_request` line per
request, carrying the correlation id, timing and the caller's identity.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from workspace_chat.core.security import decode_token_string


logger = structlog.get_logger(__name__)

SLOW_REQUEST_MS = 1000
VERY_SLOW_REQUEST_MS = 5000


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Access logging with correlation ids.

    The correlation id is taken from X-Correlation-ID / X-Request-ID or
    generated, bound to the structlog context for every log line of the
    request, and echoed in the response headers.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid.uuid4())

        bind_contextvars(
            correlation_id=correlation_id,
            request_id=correlation_id,
        )
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()

        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else None
        user_id = getattr(request.state, "user_id", None)

        logger.debug(
            "request_started",
            method=method,
            path=path,
            client_ip=client_host,
            user_id=user_id,
        )

        response = None
        error = None
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code

        except Exception as e:
            error = e
            logger.error(
                "request_error_unhandled",
                method=method,
                path=path,
                error_type=type(e).__name__,
                error=str(e),
                client_ip=client_host,
                user_id=user_id,
                exc_info=True,
            )
            raise

        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

            if status_code >= 500:
                log_method = logger.error
            elif status_code >= 400:
                log_method = logger.warning
            else:
                log_method = logger.info

            log_method(
                "http_request",
                method=method,
                path=path,
                query_params=str(request.url.query) if request.url.query else None,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_ip=client_host,
                user_agent=request.headers.get("user-agent"),
                user_id=user_id,
                company_id=getattr(request.state, "company_id", None),
                error_type=type(error).__name__ if error else None,
                slow_request=duration_ms > SLOW_REQUEST_MS,
            )

            if duration_ms > VERY_SLOW_REQUEST_MS:
                logger.warning(
                    "performance_degradation",
                    method=method,
                    path=path,
                    duration_ms=round(duration_ms, 2),
                    user_id=user_id,
                )

            clear_contextvars()

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Request-ID"] = correlation_id
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Best-effort identification of the caller before routing.

    Runs before AccessLogMiddleware so the access log and the rate limiter
    key know the user. Rejection of bad tokens is left to the route
    dependencies.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            try:
                principal = decode_token_string(auth_header[len("Bearer "):])
            except Exception:
                # Invalid tokens are rejected by get_current_principal
                principal = None

            if principal is not None:
                request.state.user_id = principal.user_id
                request.state.company_id = principal.company_id

        return await call_next(request)

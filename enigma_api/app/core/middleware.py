"""
HTTP middleware registered by ``create_app``.

Request flow, outermost first:

    CORS -> access log -> security headers -> bootstrap gate -> rate limit -> routes

The bootstrap and rate-limit steps read their state from
``request.app.state`` (``bootstrap`` and ``admission``), so each app
instance, and therefore each test, has its own.
"""

import logging
import time

from fastapi import Request, status
from fastapi.responses import JSONResponse

from .exceptions import DependencyError, RateLimitExceeded
from .logging_config import ACCESS_LOGGER_NAME

access_logger = logging.getLogger(ACCESS_LOGGER_NAME)


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def bootstrap_middleware(request: Request, call_next):
    """Hold every request until the datastore is ready.

    A failed bootstrap yields 503 for this request only; internals of the
    failure are logged, not returned.
    """
    try:
        await request.app.state.bootstrap.ensure_ready()
    except DependencyError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "message": "Service temporarily unavailable"},
            headers={"Retry-After": "5"},
        )
    return await call_next(request)


async def rate_limit_middleware(request: Request, call_next):
    """Reject callers that exceeded the budget of their tier with 429."""
    admission = request.app.state.admission
    try:
        decision = admission.admit(client_address(request), request.url.path)
    except RateLimitExceeded as exc:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "success": False,
                "message": "Too many requests, please try again later.",
            },
            headers={
                "Retry-After": str(exc.retry_after),
                "RateLimit-Limit": str(exc.limit),
                "RateLimit-Remaining": "0",
                "RateLimit-Reset": str(exc.retry_after),
            },
        )
    response = await call_next(request)
    response.headers.update(decision.headers())
    return response


async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    # Lets browsers on the frontend origin load uploaded media.
    response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    return response


async def access_log_middleware(request: Request, call_next):
    """Log one line per request: address, method, path, status, duration."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    access_logger.info(
        '%s "%s %s" %s %.1fms',
        client_address(request),
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

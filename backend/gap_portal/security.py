"""
HTTP hardening for the GAP portal API.

- IP-based rate limiting (slowapi), stricter on submission and upload routes
- Security headers and a request id on every response
- Request body size cap (multipart submissions carry several PDFs)
- Exception handlers that keep CORS headers and hide internals in production

Configuration via environment variables:
- RATE_LIMIT_PER_MINUTE: Requests per minute per IP (default: 100)
- MAX_REQUEST_SIZE_MB: Maximum request body size in MB (default: 50)
- TRUSTED_PROXY_COUNT: Proxies in front of the API (default: 1)
- ENVIRONMENT: 'production' or 'development'
"""

import ipaddress
import logging
import os
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "100"))
DEFAULT_RATE_LIMIT = f"{RATE_LIMIT_PER_MINUTE}/minute"

# Submission + upload routes hit Zoho and SMTP; keep them tighter.
SUBMISSION_RATE_LIMIT = "10/minute"
UPLOAD_RATE_LIMIT = "30/minute"

MAX_REQUEST_SIZE_MB = int(os.getenv("MAX_REQUEST_SIZE_MB", "50"))
MAX_REQUEST_SIZE_BYTES = MAX_REQUEST_SIZE_MB * 1024 * 1024

TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT.lower() == "production"

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-]{8,64}$")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), geolocation=(), microphone=(), payment=(), usb=()",
}
PRODUCTION_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


# =============================================================================
# Client identification
# =============================================================================


def _is_valid_ip(value: str) -> bool:
    if not value or len(value) > 45:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_client_ip(request: Request) -> str:
    """
    Best-effort client IP for rate limiting and audit logs.

    For ``X-Forwarded-For`` the address just left of the trusted proxy chain
    is used; anything further left is client-supplied and may be spoofed.

    Returns:
        The client IP address, or "unknown"
    """
    direct_ip = request.client.host if request.client else None

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        hops = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if hops:
            if len(hops) > TRUSTED_PROXY_COUNT:
                candidate = hops[-(TRUSTED_PROXY_COUNT + 1)]
            else:
                candidate = hops[0]
            if _is_valid_ip(candidate):
                return candidate
            logger.warning(
                "Invalid IP in X-Forwarded-For header: %r (direct_ip=%s)",
                candidate[:50],
                direct_ip,
            )

    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        if _is_valid_ip(real_ip):
            return real_ip
        logger.warning("Invalid X-Real-IP header: %r", real_ip[:50])

    return direct_ip if direct_ip and _is_valid_ip(direct_ip) else "unknown"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri="memory://",
    strategy="fixed-window",
)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _cors_headers(request: Request, allowed_origins: list[str]) -> dict:
    headers = {"X-Request-ID": get_request_id(request)}
    origin = request.headers.get("origin", "")
    if origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


# =============================================================================
# Middleware
# =============================================================================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers and a request id, and logs each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Reuse a well-formed id from the caller so logs can be correlated.
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.time()

        response = await call_next(request)

        response.headers.update(SECURITY_HEADERS)
        if IS_PRODUCTION:
            response.headers.update(PRODUCTION_HEADERS)
        response.headers["X-Request-ID"] = request_id
        response.headers.setdefault("Cache-Control", "no-store")

        logger.info(
            "%s %s status=%d duration=%.3fs request_id=%s client_ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            time.time() - started,
            request_id,
            get_client_ip(request),
        )
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects bodies whose declared Content-Length exceeds the cap."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={
                        "detail": "Invalid Content-Length header",
                        "code": "INVALID_CONTENT_LENGTH",
                    },
                )
            if size > MAX_REQUEST_SIZE_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={
                        "detail": (
                            f"Request body too large. Maximum size is "
                            f"{MAX_REQUEST_SIZE_MB}MB."
                        ),
                        "code": "REQUEST_TOO_LARGE",
                    },
                )
        return await call_next(request)


# =============================================================================
# Exception handlers
# =============================================================================


def create_secure_exception_handler(allowed_origins: list[str]) -> Callable:
    """Unhandled exceptions: full detail in logs, generic body in production."""

    async def secure_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        headers = _cors_headers(request, allowed_origins)
        request_id = headers["X-Request-ID"]
        logger.error(
            "Unhandled exception %s: %s request_id=%s path=%s method=%s",
            type(exc).__name__,
            exc,
            request_id,
            request.url.path,
            request.method,
            exc_info=True,
        )
        if IS_PRODUCTION:
            content = {
                "detail": "An internal server error occurred. Please try again later.",
                "code": "INTERNAL_ERROR",
                "request_id": request_id,
            }
        else:
            content = {
                "detail": str(exc),
                "error_type": type(exc).__name__,
                "request_id": request_id,
            }
        return JSONResponse(status_code=500, content=content, headers=headers)

    return secure_exception_handler


def create_rate_limit_exceeded_handler(allowed_origins: list[str]) -> Callable:
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        headers = _cors_headers(request, allowed_origins)
        headers["Retry-After"] = "60"
        log_security_event("rate_limit", request, {"limit": str(exc.detail)})
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Rate limit exceeded. Please slow down your requests.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after_seconds": 60,
                "request_id": headers["X-Request-ID"],
            },
            headers=headers,
        )

    return rate_limit_handler


def create_http_exception_handler(allowed_origins: list[str]) -> Callable:
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        headers = _cors_headers(request, allowed_origins)
        if exc.status_code == 413:
            log_security_event("oversized_upload", request)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "request_id": headers["X-Request-ID"]},
            headers=headers,
        )

    return http_exception_handler


# =============================================================================
# Setup
# =============================================================================


def setup_security(app: FastAPI, allowed_origins: list[str]) -> None:
    """
    Install rate limiting, security headers, size limits and handlers.

    Args:
        app: The FastAPI application instance
        allowed_origins: CORS origins echoed on error responses
    """
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.add_exception_handler(
        RateLimitExceeded, create_rate_limit_exceeded_handler(allowed_origins)
    )
    app.add_exception_handler(
        Exception, create_secure_exception_handler(allowed_origins)
    )
    app.add_exception_handler(
        HTTPException, create_http_exception_handler(allowed_origins)
    )

    logger.info(
        "Security middleware configured: rate_limit=%d/min, "
        "max_request_size=%dMB, environment=%s",
        RATE_LIMIT_PER_MINUTE,
        MAX_REQUEST_SIZE_MB,
        ENVIRONMENT,
    )


def log_security_event(
    event_type: str, request: Request, details: Optional[dict] = None
) -> None:
    """Log a security-relevant event (rate limit hit, rejected upload, ...)."""
    log_data = {
        "event_type": event_type,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "client_ip": get_client_ip(request),
        "path": request.url.path,
        "method": request.method,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        log_data.update(details)
    logger.warning("SECURITY_EVENT: %s", log_data)

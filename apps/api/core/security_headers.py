"""
Security Headers Middleware

Adds standard security headers to every API response (MIME sniffing,
clickjacking, referrer leakage, HTTPS enforcement outside DEBUG).
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from core.config import settings

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # Token-bearing responses must not be cached.
    "Cache-Control": "no-store",
}

PRODUCTION_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    # JSON API: nothing should ever be loaded from a response
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for name, value in BASE_HEADERS.items():
            response.headers.setdefault(name, value)

        if not settings.DEBUG:
            for name, value in PRODUCTION_HEADERS.items():
                response.headers.setdefault(name, value)

        return response

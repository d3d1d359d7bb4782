"""
Early authentication check.
Logs requests to protected paths that carry no bearer token; actual validation
is done by the FastAPI dependencies so errors keep their proper status codes.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List

from core.logger import logger

# Public routes that don't require authentication
PUBLIC_ROUTES: List[str] = [
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/uploads/",
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/refresh",
    "/api/auth/forgot-password",
    "/api/auth/reset-password",
    "/api/colleges/public/",
]


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """Log unauthenticated requests to non-public routes."""

    def __init__(self, app, public_routes: List[str] = None):
        """
        Args:
            app: FastAPI application
            public_routes: Path prefixes that don't require auth
        """
        super().__init__(app)
        self.public_routes = public_routes or PUBLIC_ROUTES

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        is_public = path == "/" or any(path.startswith(route) for route in self.public_routes)
        if is_public or request.method == "OPTIONS":
            return await call_next(request)

        if not request.headers.get("authorization"):
            logger.warning(
                f"Request without authentication headers: {request.method} {path} "
                f"from {request.client.host if request.client else 'unknown'}"
            )

        return await call_next(request)

"""
Rate limiting, security headers, CORS and trusted hosts.
"""
from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from core.logger import logger
import config


class RateLimitRule:
    """
    A sliding window applied to requests whose path starts with path_prefix.

    With failures_only set, only responses with status >= 400 count against the
    window, so a user who logs in successfully is never locked out.
    """

    def __init__(self, name: str, limit: int, window_seconds: int, path_prefix: str = "/",
                 methods: Optional[Iterable[str]] = None, failures_only: bool = False,
                 message: str = "Too many requests from this IP, please try again later."):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self.methods = frozenset(m.upper() for m in methods) if methods else None
        self.failures_only = failures_only
        self.message = message

    def matches(self, request: Request) -> bool:
        if self.methods is not None and request.method not in self.methods:
            return False
        return request.url.path.startswith(self.path_prefix)


def default_rate_limit_rules() -> List[RateLimitRule]:
    """General API window plus the stricter login, registration and upload windows."""
    return [
        RateLimitRule("api", config.RATE_LIMIT_API_REQUESTS, config.RATE_LIMIT_API_WINDOW, "/api/"),
        RateLimitRule(
            "login", config.RATE_LIMIT_LOGIN_ATTEMPTS, 15 * 60, "/api/auth/login", methods=["POST"],
            failures_only=True,
            message="Too many authentication attempts, please try again after 15 minutes.",
        ),
        RateLimitRule(
            "registration", config.RATE_LIMIT_REGISTRATIONS, 60 * 60, "/api/auth/register", methods=["POST"],
            message="Too many accounts created from this IP, please try again after an hour.",
        ),
        RateLimitRule(
            "uploads", config.RATE_LIMIT_UPLOADS, 60 * 60, "/api/uploads", methods=["POST"],
            message="Upload limit exceeded. Please try again later.",
        ),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding-window limits, one window per matching rule."""

    cleanup_interval = 300

    def __init__(self, app, rules: Optional[List[RateLimitRule]] = None, clock=time.time):
        super().__init__(app)
        self.rules = rules if rules is not None else default_rate_limit_rules()
        self.clock = clock
        self.hits: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)
        self.last_cleanup = clock()

    async def dispatch(self, request: Request, call_next):
        rules = [rule for rule in self.rules if rule.matches(request)]
        if not rules:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self.clock()
        if now - self.last_cleanup > self.cleanup_interval:
            self._cleanup(now)

        for rule in rules:
            retry_after = self._retry_after(rule, client_ip, now)
            if retry_after is not None:
                logger.warning(f"Rate limit '{rule.name}' exceeded for IP: {client_ip} ({request.url.path})")
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={"detail": rule.message},
                    headers={"Retry-After": str(retry_after)},
                )

        for rule in rules:
            if not rule.failures_only:
                self.hits[(rule.name, client_ip)].append(now)

        response = await call_next(request)

        if response.status_code >= 400:
            for rule in rules:
                if rule.failures_only:
                    self.hits[(rule.name, client_ip)].append(now)
        return response

    def _retry_after(self, rule: RateLimitRule, client_ip: str, now: float) -> Optional[int]:
        """Seconds until the window frees a slot, or None when the request is allowed."""
        window = self.hits[(rule.name, client_ip)]
        while window and now - window[0] >= rule.window_seconds:
            window.popleft()
        if len(window) < rule.limit:
            return None
        return max(1, int(rule.window_seconds - (now - window[0])))

    def _cleanup(self, now: float):
        windows = {rule.name: rule.window_seconds for rule in self.rules}
        for key in list(self.hits.keys()):
            hits = self.hits[key]
            while hits and now - hits[0] >= windows.get(key[0], 0):
                hits.popleft()
            if not hits:
                del self.hits[key]
        self.last_cleanup = now


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if config.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def setup_cors(app, allowed_origins: List[str]):
    """CORS for the web frontends; exposes the headers downloads and throttled clients read."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Content-Disposition", "Retry-After"],
    )


def setup_trusted_hosts(app, allowed_hosts: List[str]):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

"""Rate limiting, body size and security headers for every response."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from fastapi.responses import ORJSONResponse

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/healthz"})

# scripts and styles from our own origin only; the admin panel loads its
# script from /static for that reason
SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self'; "
        "img-src 'self' data:; object-src 'none'; base-uri 'self'; "
        "frame-ancestors 'self'; form-action 'self'"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def payload_too_large() -> ORJSONResponse:
    return ORJSONResponse(
        status_code=413, content={"ok": False, "error": "payload_too_large"}
    )


@dataclass
class Window:
    started: float = 0.0
    count: int = 0


@dataclass
class FixedWindowRateLimiter:
    """Per-key request counter over fixed windows.

    Process-local: with several uvicorn workers every worker counts on its
    own.
    """
    limit: int
    window_seconds: float
    _windows: dict[str, Window] = field(
        default_factory=lambda: defaultdict(Window)
    )

    def allow(self, key: str, now: float | None = None) -> tuple[bool, int]:
        """Return (allowed, seconds until the window resets)."""
        now = time.monotonic() if now is None else now
        w = self._windows[key]
        if now - w.started >= self.window_seconds:
            w.started, w.count = now, 0
        retry_after = max(1, int(w.started + self.window_seconds - now))
        if w.count >= self.limit:
            return False, retry_after
        w.count += 1
        return True, retry_after

    def prune(self, now: float | None = None) -> None:
        now = time.monotonic() if now is None else now
        stale = [
            k for k, w in self._windows.items()
            if now - w.started >= self.window_seconds
        ]
        for k in stale:
            del self._windows[k]


def get_client_ip(request: Request) -> str:
    if request.client:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Callable, limit: int, window_seconds: float):
        super().__init__(app)
        self.limiter = FixedWindowRateLimiter(limit, window_seconds)
        self._last_prune = time.monotonic()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        now = time.monotonic()
        if now - self._last_prune > self.limiter.window_seconds:
            self.limiter.prune(now)
            self._last_prune = now

        ip = get_client_ip(request)
        allowed, retry_after = self.limiter.allow(ip, now)
        if not allowed:
            logger.warning("rate limit exceeded for %s", ip)
            return ORJSONResponse(
                status_code=429,
                content={"ok": False, "error": "rate_limited"},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies announced larger than ``max_bytes``.

    Only looks at Content-Length; endpoints that read the body check its
    real size too.
    """

    def __init__(self, app: Callable, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                logger.warning("invalid Content-Length %r", content_length)
                size = 0
            if size > self.max_bytes:
                logger.warning("body too large: %d > %d", size, self.max_bytes)
                return payload_too_large()
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for k, v in SECURITY_HEADERS.items():
            response.headers.setdefault(k, v)
        return response

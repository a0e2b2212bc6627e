# doggygallery/core/security.py
# HTTP Basic auth (with a failed-attempt limiter), security headers and compression wiring.

from __future__ import annotations
import logging
import secrets
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.types import ASGIApp, Receive, Scope, Send

LOGGER = logging.getLogger("doggygallery.auth")
HTTP_LOGGER = logging.getLogger("doggygallery.http")

REALM_HEADER = {"WWW-Authenticate": 'Basic realm="DoggyGallery", charset="UTF-8"'}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; media-src 'self'; font-src 'self'; connect-src 'self'; "
        "frame-ancestors 'none'; base-uri 'self'; form-action 'self'"
    ),
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": (
        "geolocation=(), microphone=(), camera=(), payment=(), usb=(), magnetometer=(), gyroscope=()"
    ),
}


class AuthRateLimiter:
    """
    Sliding-window count of failed logins per client IP.
    Route dependencies run in the threadpool, so state is guarded by a lock.
    """
    def __init__(self, max_attempts: int, window: float,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self._clock = clock
        self._attempts: Dict[str, List[float]] = defaultdict(list)
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _prune(self, ip: str, now: float) -> List[float]:
        cutoff = now - self.window
        recent = [t for t in self._attempts.get(ip, []) if t > cutoff]
        if recent:
            self._attempts[ip] = recent
        else:
            self._attempts.pop(ip, None)
        return recent

    def is_rate_limited(self, ip: str) -> bool:
        with self._lock:
            return len(self._prune(ip, self._clock())) >= self.max_attempts

    def retry_after(self, ip: str) -> int:
        with self._lock:
            recent = self._prune(ip, self._clock())
            if not recent:
                return 0
            return max(1, int(recent[0] + self.window - self._clock()) + 1)

    def record_failure(self, ip: str) -> int:
        with self._lock:
            self._attempts[ip].append(self._clock())
            count = len(self._attempts[ip])
        LOGGER.debug("Recorded failed auth attempt from %s (%d)", ip, count)
        return count

    def clear(self, ip: str) -> None:
        with self._lock:
            if self._attempts.pop(ip, None) is not None:
                LOGGER.debug("Cleared rate limit history for %s after successful auth", ip)

    def cleanup(self) -> int:
        """Drop IPs with no recent attempts; returns how many are still tracked."""
        with self._lock:
            now = self._clock()
            for ip in list(self._attempts):
                self._prune(ip, now)
            self._last_cleanup = now
            return len(self._attempts)

    def maybe_cleanup(self, every: float = 300.0) -> None:
        if self._clock() - self._last_cleanup >= every:
            tracked = self.cleanup()
            LOGGER.debug("Cleaned up rate limiter (%d IPs tracked)", tracked)


security = HTTPBasic(auto_error=False)


def build_auth_dependency(username: str, password: str, limiter: AuthRateLimiter):
    """Dependency for every router: 429 when limited, 401 on bad/missing credentials."""
    expected_user = username.encode("utf-8")
    expected_pass = password.encode("utf-8")

    def require_auth(request: Request,
                     credentials: Optional[HTTPBasicCredentials] = Depends(security)) -> str:
        ip = request.client.host if request.client else "unknown"
        limiter.maybe_cleanup()

        if limiter.is_rate_limited(ip):
            LOGGER.warning("Rate limited auth attempt from %s", ip)
            raise HTTPException(status_code=429, detail="Too many failed login attempts",
                                headers={"Retry-After": str(limiter.retry_after(ip))})

        if credentials is not None:
            # compare both fields every time; constant time per field
            user_ok = secrets.compare_digest(credentials.username.encode("utf-8"), expected_user)
            pass_ok = secrets.compare_digest(credentials.password.encode("utf-8"), expected_pass)
            if user_ok and pass_ok:
                limiter.clear(ip)
                return credentials.username

        # A browser's first request carries no credentials; only count real attempts.
        if credentials is not None:
            attempts = limiter.record_failure(ip)
            LOGGER.warning("Failed login from %s (attempt %d)", ip, attempts)
        raise HTTPException(status_code=401, detail="Authentication required", headers=REALM_HEADER)

    return require_auth


async def security_headers_middleware(request: Request, call_next):
    """Adds the security headers (keeping any a handler set itself) and logs the request line."""
    started = time.perf_counter()
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    HTTP_LOGGER.debug("%s %s -> %d (%.1f ms)", request.method, request.url.path,
                      response.status_code, (time.perf_counter() - started) * 1000)
    return response


class MediaAwareGZipMiddleware:
    """GZip for pages and JSON; media bytes pass through untouched so Range/Content-Length hold."""

    def __init__(self, app: ASGIApp, minimum_size: int = 1024,
                 skip_prefixes: tuple = ("/media/", "/archive/", "/thumb/", "/api/album-art/")) -> None:
        self.app = app
        self.gzip = GZipMiddleware(app, minimum_size=minimum_size)
        self.skip_prefixes = skip_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("path", "").startswith(self.skip_prefixes):
            await self.app(scope, receive, send)
        else:
            await self.gzip(scope, receive, send)

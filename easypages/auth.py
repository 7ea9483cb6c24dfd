"""Login gate, CSRF tokens and rate limiting.

Security Model:
    1. Operator submits AUTH_USER / AUTH_PASS on the login form
    2. Credentials are compared in constant time
    3. On success the signed session cookie is marked authenticated
    4. Every /api route requires that session
    5. Unsafe methods must echo the session's CSRF token, either in a
       CSRF-Token / X-CSRF-Token header or a ``_csrf`` form field

Sessions are signed cookies (Starlette SessionMiddleware). The CSRF token
lives inside the session, so it is bound to one browser.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time

from fastapi import HTTPException, Request

from easypages import config

_LOG = logging.getLogger(__name__)

CSRF_SESSION_KEY: str = "csrf_token"
"""Session key holding the CSRF token."""

CSRF_HEADERS: tuple[str, ...] = ("csrf-token", "x-csrf-token")
"""Request headers accepted as carrying the CSRF token."""

CSRF_FORM_FIELD: str = "_csrf"
"""Form field accepted as carrying the CSRF token."""

SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS"})
"""Methods exempt from the CSRF check."""


# =============================================================================
# Rate Limiting
# =============================================================================


class RateLimiter:
    """Sliding-window request counter kept in memory, keyed per client.

    Attributes:
        limit: Maximum requests per key within the window.
        window: Window length in seconds.
    """

    def __init__(self, limit: int, window: float) -> None:
        self.limit = limit
        self.window = window
        self._hits: dict[str, list[float]] = {}

    def hit(self, key: str) -> bool:
        """Record a request for ``key``. Returns True if it is allowed."""
        now = time.time()
        cutoff = now - self.window

        recent = [ts for ts in self._hits.get(key, []) if ts > cutoff]
        if len(recent) >= self.limit:
            self._hits[key] = recent
            return False

        recent.append(now)
        self._hits[key] = recent
        return True

    def reset(self) -> None:
        self._hits.clear()


def client_key(request: Request) -> str:
    """Rate limit key for a request: the client address."""
    return request.client.host if request.client else "unknown"


# =============================================================================
# Credentials and Sessions
# =============================================================================


def verify_credentials(username: str, password: str) -> bool:
    """Check a username/password pair against AUTH_USER / AUTH_PASS.

    Both comparisons always run, in constant time.
    """
    if not config.is_auth_configured():
        return False
    user_ok = hmac.compare_digest(username.encode(), config.AUTH_USER.encode())
    pass_ok = hmac.compare_digest(password.encode(), config.AUTH_PASS.encode())
    return user_ok and pass_ok


def is_authenticated(request: Request) -> bool:
    return bool(request.session.get("authenticated"))


def login(request: Request, username: str) -> None:
    request.session["authenticated"] = True
    request.session["user"] = username


def logout(request: Request) -> None:
    request.session.clear()


async def require_session(request: Request) -> None:
    """Dependency for /api routes: an authenticated session is required.

    Raises:
        HTTPException 500: Login gate not configured.
        HTTPException 401: No authenticated session.
    """
    if not config.is_auth_configured():
        raise HTTPException(status_code=500, detail="Server-side configuration error")
    if not is_authenticated(request):
        raise HTTPException(status_code=401, detail="Session expired")


# =============================================================================
# CSRF
# =============================================================================


def get_csrf_token(request: Request) -> str:
    """Return the session's CSRF token, creating it on first use."""
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = token
    return token


async def _submitted_csrf_token(request: Request) -> str:
    for header in CSRF_HEADERS:
        value = request.headers.get(header)
        if value:
            return value

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        if isinstance(value, str):
            return value
    return ""


async def verify_csrf(request: Request) -> None:
    """Dependency: unsafe methods must carry the session's CSRF token.

    Raises:
        HTTPException 403: Token missing or wrong.
    """
    if request.method in SAFE_METHODS:
        return

    expected = request.session.get(CSRF_SESSION_KEY)
    submitted = await _submitted_csrf_token(request)
    if not expected or not submitted or not hmac.compare_digest(submitted, expected):
        _LOG.warning("Rejected %s %s: invalid CSRF token", request.method, request.url.path)
        raise HTTPException(status_code=403, detail="Invalid CSRF token")

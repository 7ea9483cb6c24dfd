"""Process-wide configuration for EasyPages.

Everything is read from the environment once, at import time. The only value
with a side effect is the session secret: when SESSION_SECRET is not set it is
read from (or generated into) SESSION_SECRET_FILE by load_session_secret(),
which the web app calls before constructing its session middleware.

Environment Variables:
    CF_API_TOKEN: Cloudflare API token with Pages read/write permissions
    CF_ACCOUNT_ID: Cloudflare account ID
    CF_API_URL: API base URL (default: https://api.cloudflare.com/client/v4)
    AUTH_USER: Username for the login gate
    AUTH_PASS: Password for the login gate
    SESSION_SECRET: Secret for signing session cookies (optional)
    SESSION_SECRET_FILE: Where a generated secret is persisted
    UPLOADS_DIR: Directory for transient uploaded archives (default: ./uploads)
    STATIC_DIR: Built frontend bundle (default: ./dist)
    HOST / PORT: Listen address (default: 0.0.0.0:8002)
"""

from __future__ import annotations

import logging
import os
import re
import secrets
from pathlib import Path

_LOG = logging.getLogger(__name__)

# =============================================================================
# Cloudflare
# =============================================================================

CF_API_URL: str = os.environ.get("CF_API_URL", "https://api.cloudflare.com/client/v4")
"""Base URL of the Cloudflare v4 API."""

CF_API_TOKEN: str = os.environ.get("CF_API_TOKEN", "")
"""Primary account token, sent on every call except the asset upload."""

CF_ACCOUNT_ID: str = os.environ.get("CF_ACCOUNT_ID", "")
"""Account owning the Pages projects."""

HTTP_TIMEOUT: float = float(os.environ.get("HTTP_TIMEOUT", "60"))
"""Timeout in seconds for outbound API calls."""

# =============================================================================
# Login gate and sessions
# =============================================================================

AUTH_USER: str = os.environ.get("AUTH_USER", "")
"""Pre-shared username for the login form."""

AUTH_PASS: str = os.environ.get("AUTH_PASS", "")
"""Pre-shared password for the login form."""

SESSION_SECRET: str = os.environ.get("SESSION_SECRET", "")
"""Explicit session signing secret. Takes precedence over the secret file."""

SESSION_SECRET_FILE: Path = Path(
    os.environ.get("SESSION_SECRET_FILE", str(Path(__file__).parent / ".session_secret"))
)
"""File holding a generated session secret across restarts."""

SESSION_COOKIE: str = "easypages_sid"
"""Name of the session cookie."""

SESSION_MAX_AGE: int = 24 * 60 * 60
"""Session lifetime in seconds (24 hours)."""

# =============================================================================
# Uploads and static files
# =============================================================================

UPLOADS_DIR: Path = Path(os.environ.get("UPLOADS_DIR", str(Path.cwd() / "uploads"))).resolve()
"""Directory for transient archive files. Nothing outside it is ever deleted."""

STATIC_DIR: Path = Path(os.environ.get("STATIC_DIR", str(Path.cwd() / "dist")))
"""Built single-page frontend (index.html plus assets/)."""

MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
"""Maximum upload size in bytes (50 MB). Keeps one asset upload request within platform limits."""

# =============================================================================
# Deployment history
# =============================================================================

DEPLOYMENTS_PAGE_SIZE: int = 25
"""Page size used when scanning deployment history."""

MAX_HISTORY_PAGES: int = 50
"""Hard ceiling on pages fetched by one history scan."""

DELETE_PAUSE: float = 0.25
"""Seconds to wait between two delete calls, to stay under the API rate limit."""

# =============================================================================
# Validation
# =============================================================================

PROJECT_NAME_PATTERN: re.Pattern = re.compile(r"^[a-z0-9-]+$")
"""Valid Pages project names: lowercase alphanumerics and hyphens."""

DOMAIN_NAME_PATTERN: re.Pattern = re.compile(r"^[a-zA-Z0-9.-]+$")
"""Characters allowed in a custom domain name."""

# =============================================================================
# Server
# =============================================================================

HOST: str = os.environ.get("HOST", "0.0.0.0")
PORT: int = int(os.environ.get("PORT", "8002"))


def load_session_secret(path: Path | None = None) -> str:
    """Resolve the session signing secret.

    Order: SESSION_SECRET env var, then the secret file, then a freshly
    generated value which is written back to the file so sessions survive a
    restart. Failure to persist is logged, not raised.

    Args:
        path: Secret file location (defaults to SESSION_SECRET_FILE).

    Returns:
        The secret string.
    """
    if SESSION_SECRET:
        return SESSION_SECRET

    path = path or SESSION_SECRET_FILE
    if path.exists():
        try:
            stored = path.read_text().strip()
            if stored:
                return stored
        except OSError as e:
            _LOG.warning("Could not read session secret file %s: %s", path, e)

    secret = secrets.token_hex(32)
    try:
        path.write_text(secret)
        path.chmod(0o600)
    except OSError as e:
        _LOG.warning("Could not persist session secret to %s: %s", path, e)
    return secret


def is_cloudflare_configured() -> bool:
    """Check that both Cloudflare credentials are present."""
    return bool(CF_API_TOKEN and CF_ACCOUNT_ID)


def is_auth_configured() -> bool:
    """Check that the login gate has a username and password."""
    return bool(AUTH_USER and AUTH_PASS)

"""Exception hierarchy for EasyPages.

Core modules raise these; the web layer maps them to HTTP responses in
``easypages.main``.
"""

from __future__ import annotations

from typing import Any


class EasyPagesError(Exception):
    """Base class for all EasyPages errors.

    Attributes:
        message: Human-readable error description.
        details: Optional diagnostic payload relayed to the caller.
        status_code: HTTP status the web layer should answer with.
    """

    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(EasyPagesError):
    """Bad user input: project/domain name, missing or empty file."""

    status_code = 400


class ArchiveFormatError(EasyPagesError):
    """Uploaded file is not a readable archive."""

    status_code = 400


class PathTraversalError(EasyPagesError):
    """Archive entry name would escape the deployment root."""

    status_code = 400


class EmptyArchiveError(EasyPagesError):
    """Archive yielded no file that can be deployed."""

    status_code = 500


class UpstreamError(EasyPagesError):
    """Any failure talking to the Cloudflare API."""

    status_code = 500

    def __init__(self, message: str, details: Any = None, upstream_status: int | None = None) -> None:
        super().__init__(message, details)
        self.upstream_status = upstream_status


class CredentialError(UpstreamError):
    """Upload token could not be obtained for the project."""

"""Transient storage for uploaded archives.

Each upload is written to UPLOADS_DIR under a random name and removed again
when the request is done, whatever the outcome. Deletion refuses any path
that does not resolve to a file strictly inside UPLOADS_DIR.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from easypages import config

_LOG = logging.getLogger(__name__)


def is_inside_uploads(path: Path) -> bool:
    """Check that ``path`` resolves strictly inside UPLOADS_DIR."""
    root = config.UPLOADS_DIR.resolve()
    resolved = Path(path).resolve()
    return resolved != root and resolved.is_relative_to(root)


def safe_unlink(path: Path | None) -> bool:
    """Delete a transient upload file.

    Args:
        path: File to remove.

    Returns:
        False if the path was refused or could not be removed.
    """
    if path is None:
        return False

    if not is_inside_uploads(path):
        _LOG.error("Refusing to delete file outside uploads directory: %s", path)
        return False

    try:
        Path(path).resolve().unlink(missing_ok=True)
        return True
    except OSError as e:
        _LOG.error("Failed to delete temporary upload %s: %s", path, e)
        return False


@contextmanager
def transient_upload(content: bytes) -> Iterator[Path]:
    """Write ``content`` to a fresh file in UPLOADS_DIR, removed on exit."""
    config.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    path = config.UPLOADS_DIR / f"upload_{uuid.uuid4().hex}"
    try:
        path.write_bytes(content)
        yield path
    finally:
        safe_unlink(path)

"""Path sanitizing and content-addressed manifest construction.

Turns archive entries into the two payloads a Pages direct upload needs:

    ArchiveEntry -> sanitize_path() -> hash + base64 -> UploadBatchItem
                                                     -> DeploymentManifest[path] = hash

Security:
    Entry names are untrusted. Each one is resolved against a virtual root
    (plain string normalisation, the real filesystem is never touched) and
    must land strictly inside it. Independently, any ".." segment left in the
    separator-normalised name is rejected. Rejected entries are logged and
    dropped without aborting the rest of the archive.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import posixpath
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from easypages.archive import ArchiveEntry
from easypages.errors import EmptyArchiveError, PathTraversalError

_LOG = logging.getLogger(__name__)

VIRTUAL_ROOT: str = "/safe/root"
"""Fixed root that entry names are resolved against."""

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"
"""Content type for extensions missing from CONTENT_TYPES."""

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".wasm": "application/wasm",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
}
"""Static extension -> MIME type table."""


# =============================================================================
# Data Types
# =============================================================================


@dataclass(slots=True)
class UploadBatchItem:
    """One content-addressed asset to upload.

    Attributes:
        key: Content hash of the file.
        value: Base64-encoded file bytes.
        content_type: MIME type derived from the file extension.
    """

    key: str
    value: str
    content_type: str

    def to_payload(self) -> dict:
        """Render in the shape the assets upload endpoint expects."""
        return {
            "key": self.key,
            "value": self.value,
            "metadata": {"contentType": self.content_type},
            "base64": True,
        }


class DeploymentManifest:
    """Ordered mapping of deployment path -> content hash.

    Paths are unique; adding an existing path replaces its hash (last write
    wins) but keeps its original position.
    """

    def __init__(self) -> None:
        self._files: dict[str, str] = {}

    def add(self, path: str, content_hash: str) -> None:
        if path in self._files:
            _LOG.info("Duplicate archive path %s, keeping the later entry", path)
        self._files[path] = content_hash

    def __getitem__(self, path: str) -> str:
        return self._files[path]

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def as_dict(self) -> dict[str, str]:
        return dict(self._files)

    def to_json(self) -> str:
        return json.dumps(self._files)


@dataclass(slots=True)
class Rejected:
    """An archive entry dropped by the sanitizer."""

    name: str
    reason: str


@dataclass(slots=True)
class ManifestBuild:
    """Result of build_manifest().

    Attributes:
        upload_batch: One item per accepted file entry, in archive order.
        manifest: Deployment path -> content hash.
        rejected: Entries dropped as unsafe.
    """

    upload_batch: list[UploadBatchItem] = field(default_factory=list)
    manifest: DeploymentManifest = field(default_factory=DeploymentManifest)
    rejected: list[Rejected] = field(default_factory=list)

    def batch_payload(self) -> list[dict]:
        return [item.to_payload() for item in self.upload_batch]


# =============================================================================
# Sanitizing
# =============================================================================


def sanitize_path(name: str) -> str:
    """Validate an archive entry name and return its deployment path.

    Args:
        name: Raw entry name from the archive.

    Returns:
        Canonical path with a single leading "/", e.g. "/assets/app.js".

    Raises:
        PathTraversalError: Name escapes the root, points at the root itself,
            or still contains a ".." segment.
    """
    if "\x00" in name:
        raise PathTraversalError(f"Entry name contains NUL byte: {name!r}")

    normalized = name.replace("\\", "/")

    resolved = posixpath.normpath(posixpath.join(VIRTUAL_ROOT, normalized))
    if not resolved.startswith(VIRTUAL_ROOT + "/"):
        raise PathTraversalError(f"Entry escapes deployment root: {name!r}")

    # Second pass on the text itself, independent of how normpath resolved it
    textual = "/" + normalized.lstrip("/")
    if ".." in textual.split("/"):
        raise PathTraversalError(f"Entry contains parent reference: {name!r}")

    return resolved[len(VIRTUAL_ROOT):]


def content_type_for(path: str) -> str:
    """Look up the MIME type for a path by its (lowercased) extension."""
    ext = posixpath.splitext(path)[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def content_hash(data: bytes) -> str:
    """Hex MD5 digest of file bytes, the key the assets API deduplicates on."""
    return hashlib.md5(data).hexdigest()


# =============================================================================
# Building
# =============================================================================


def build_manifest(entries: Iterable[ArchiveEntry]) -> ManifestBuild:
    """Build the upload batch and manifest for a set of archive entries.

    Directory entries are skipped. Unsafe names are recorded in
    ``rejected`` and logged; they never abort the build.

    Args:
        entries: Archive entries, typically from open_archive().

    Returns:
        ManifestBuild with batch, manifest and rejected entries.

    Raises:
        EmptyArchiveError: No deployable file survived.
    """
    build = ManifestBuild()

    for entry in entries:
        if entry.is_directory:
            continue

        try:
            path = sanitize_path(entry.name)
        except PathTraversalError as e:
            _LOG.warning("Ignoring unsafe archive entry (zip slip): %s", e.message)
            build.rejected.append(Rejected(name=entry.name, reason=e.message))
            continue

        digest = content_hash(entry.data)
        build.upload_batch.append(UploadBatchItem(
            key=digest,
            value=base64.b64encode(entry.data).decode("ascii"),
            content_type=content_type_for(path),
        ))
        build.manifest.add(path, digest)

    if not build.upload_batch:
        raise EmptyArchiveError("Archive contains no valid/safe files")

    _LOG.info(
        "Built manifest: %d files, %d rejected",
        len(build.manifest),
        len(build.rejected),
    )
    return build

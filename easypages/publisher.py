"""Two-phase direct upload: assets first, then the manifest.

Protocol (strict order, any failure aborts):
    1. GET upload-token -> short-lived JWT scoped to the project
    2. POST /pages/assets/upload with the whole batch, authenticated by the JWT
    3. POST deployments with the manifest as a multipart field, account token

A manifest is never submitted unless its assets were accepted. Assets that
were uploaded before a later step failed are left alone: storage is
content-addressed, so orphans are harmless and a retry reuses them.
"""

from __future__ import annotations

import logging

from easypages.cloudflare import CloudflareClient
from easypages.errors import CredentialError, UpstreamError
from easypages.manifest import ManifestBuild

_LOG = logging.getLogger(__name__)


async def publish(client: CloudflareClient, project: str, build: ManifestBuild) -> dict:
    """Upload a built archive and create a deployment from it.

    Args:
        client: Cloudflare API client.
        project: Target Pages project name (already validated).
        build: Upload batch and manifest from build_manifest().

    Returns:
        The deployment record returned by the platform.

    Raises:
        CredentialError: Upload token refused (unknown project, no permission).
        UpstreamError: Asset upload or manifest submission failed.
    """
    _LOG.info("Starting deployment for %s (%d files)", project, len(build.manifest))

    try:
        jwt = await client.get_upload_token(project)
    except UpstreamError as e:
        raise CredentialError(
            f"Could not obtain upload token for project '{project}'",
            details=e.details,
            upstream_status=e.upstream_status,
        ) from e

    await client.upload_assets(jwt, build.batch_payload())
    _LOG.info("Uploaded %d assets for %s", len(build.upload_batch), project)

    deployment = await client.create_deployment(project, build.manifest.to_json())
    _LOG.info("Created deployment %s for %s", (deployment or {}).get("id"), project)
    return deployment or {}

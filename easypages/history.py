"""Deployment history scanning and production identification.

The production deployment is whatever the project record names as its
``canonical_deployment``. Client-side guesses (aliases, "active" status) are
never used to decide what is protected.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from easypages import config
from easypages.cloudflare import CloudflareClient
from easypages.errors import UpstreamError

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class DeploymentHistory:
    """Result of a full history scan.

    Attributes:
        ids: Deployment ids in the order the API returned them (newest first).
        production_id: Id of the live deployment, or None if there is none.
        complete: False if the scan stopped early (page error or page ceiling).
    """

    ids: list[str] = field(default_factory=list)
    production_id: str | None = None
    complete: bool = True


async def get_production_id(client: CloudflareClient, project: str) -> str | None:
    """Fetch the project record and return its canonical deployment id.

    Raises:
        UpstreamError: Project could not be fetched. Callers must not delete
            anything without this value.
    """
    record = await client.get_project(project)
    canonical = record.get("canonical_deployment") or {}
    return canonical.get("id")


async def iter_deployment_pages(
    client: CloudflareClient,
    project: str,
    page_size: int | None = None,
    max_pages: int | None = None,
) -> AsyncIterator[list[dict]]:
    """Yield non-empty pages of deployment history in order.

    Stops at the first empty page or after ``max_pages`` pages. Upstream
    errors propagate to the consumer.
    """
    page_size = page_size or config.DEPLOYMENTS_PAGE_SIZE
    max_pages = max_pages or config.MAX_HISTORY_PAGES

    for page in range(1, max_pages + 1):
        items = await client.list_deployments(project, page=page, per_page=page_size)
        if not items:
            return
        yield items


async def list_all(
    client: CloudflareClient,
    project: str,
    page_size: int | None = None,
    max_pages: int | None = None,
) -> DeploymentHistory:
    """Collect every deployment id of a project plus its production id.

    Best effort: a page that fails stops the scan and what was collected so
    far is returned with ``complete=False``. Hitting the page ceiling does the
    same.

    Args:
        client: Cloudflare API client.
        project: Pages project name.
        page_size: Items per page (default DEPLOYMENTS_PAGE_SIZE).
        max_pages: Page ceiling (default MAX_HISTORY_PAGES).

    Returns:
        DeploymentHistory.

    Raises:
        UpstreamError: The project record itself could not be fetched.
    """
    max_pages = max_pages or config.MAX_HISTORY_PAGES
    history = DeploymentHistory(production_id=await get_production_id(client, project))

    pages_seen = 0
    exhausted = False
    try:
        async for items in iter_deployment_pages(client, project, page_size, max_pages):
            pages_seen += 1
            history.ids.extend(d["id"] for d in items if d.get("id"))
        exhausted = pages_seen < max_pages
    except UpstreamError as e:
        _LOG.warning(
            "History scan for %s stopped at page %d: %s",
            project,
            pages_seen + 1,
            e.message,
        )

    if not exhausted:
        history.complete = False
        _LOG.warning("History scan for %s is partial (%d ids)", project, len(history.ids))

    return history

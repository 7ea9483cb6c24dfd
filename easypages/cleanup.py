"""Bulk deletion of deployment history.

Deletions are a best-effort sweep, not a transaction:
    - ids are processed one at a time with DELETE_PAUSE between calls
    - the protected (production) id is skipped without any API call
    - a failed delete is counted and the sweep moves on

Progress for long sweeps comes from calling delete_many() on successive
chunks; iter_chunked_deletion() does that and keeps the running totals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field, replace

from easypages import config
from easypages.cloudflare import CloudflareClient
from easypages.errors import UpstreamError
from easypages.history import DeploymentHistory, list_all

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class DeletionResult:
    """Outcome counts of one delete_many() call.

    Attributes:
        deleted: Deployments removed.
        skipped: Candidates equal to the protected id.
        failed: Deletes the API refused or that could not be sent.
        failed_ids: Ids behind ``failed``, for a caller-driven retry.
    """

    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DeletionProgress:
    """Running totals across chunked deletion calls."""

    completed: int = 0
    total: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, processed: int, result: DeletionResult) -> None:
        self.completed += processed
        self.deleted += result.deleted
        self.skipped += result.skipped
        self.failed += result.failed


async def delete_many(
    client: CloudflareClient,
    project: str,
    candidate_ids: Iterable[str],
    protected_id: str | None,
    pause: float | None = None,
) -> DeletionResult:
    """Delete deployments sequentially, never touching ``protected_id``.

    Args:
        client: Cloudflare API client.
        project: Pages project name.
        candidate_ids: Ids to delete. Duplicates are collapsed, order kept.
        protected_id: Production deployment id (skipped if present).
        pause: Seconds between delete calls (default DELETE_PAUSE).

    Returns:
        DeletionResult with deleted/skipped/failed counts.
    """
    pause = config.DELETE_PAUSE if pause is None else pause
    result = DeletionResult()
    first_call = True

    for deployment_id in dict.fromkeys(candidate_ids):
        if protected_id is not None and deployment_id == protected_id:
            _LOG.info("Skipping production deployment %s of %s", deployment_id, project)
            result.skipped += 1
            continue

        if not first_call and pause > 0:
            await asyncio.sleep(pause)
        first_call = False

        try:
            await client.delete_deployment(project, deployment_id)
        except UpstreamError as e:
            _LOG.warning("Failed to delete deployment %s of %s: %s", deployment_id, project, e.message)
            result.failed += 1
            result.failed_ids.append(deployment_id)
            continue

        result.deleted += 1

    _LOG.info(
        "Bulk delete on %s: %d deleted, %d skipped, %d failed",
        project,
        result.deleted,
        result.skipped,
        result.failed,
    )
    return result


def deletable_ids(history: DeploymentHistory) -> list[str]:
    """All scanned ids except the production one."""
    return [i for i in history.ids if i != history.production_id]


async def delete_all(
    client: CloudflareClient,
    project: str,
    pause: float | None = None,
) -> DeletionResult:
    """Delete every deployment of a project except production.

    Raises:
        UpstreamError: The project record could not be fetched, so the
            production id is unknown and nothing is deleted.
    """
    history = await list_all(client, project)
    candidates = deletable_ids(history)
    _LOG.info(
        "Deleting %d deployments of %s, keeping %s",
        len(candidates),
        project,
        history.production_id,
    )
    return await delete_many(client, project, candidates, history.production_id, pause=pause)


async def iter_chunked_deletion(
    client: CloudflareClient,
    project: str,
    candidate_ids: list[str],
    protected_id: str | None,
    chunk_size: int = 10,
    pause: float | None = None,
) -> AsyncIterator[DeletionProgress]:
    """Delete in chunks, yielding cumulative progress after each chunk.

    Duplicates are collapsed before slicing. The pause also separates the
    last delete of one chunk from the first of the next. Stopping iteration
    early stops further chunks; the chunk already in flight always completes.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")

    pause = config.DELETE_PAUSE if pause is None else pause
    candidate_ids = list(dict.fromkeys(candidate_ids))
    progress = DeletionProgress(total=len(candidate_ids))
    for start in range(0, len(candidate_ids), chunk_size):
        if start and pause > 0:
            await asyncio.sleep(pause)
        chunk = candidate_ids[start:start + chunk_size]
        result = await delete_many(client, project, chunk, protected_id, pause=pause)
        progress.add(len(chunk), result)
        yield replace(progress)

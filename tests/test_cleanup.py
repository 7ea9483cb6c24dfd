"""Unit tests for easypages/cleanup.py - the bulk deletion engine."""

from unittest.mock import AsyncMock, patch

import pytest

from easypages.cleanup import DeletionProgress, delete_all, delete_many, iter_chunked_deletion
from easypages.errors import UpstreamError


class TestDeleteMany:
    """Tests for delete_many."""

    @pytest.mark.asyncio
    async def test_protected_id_never_deleted(self, cf_client, fake_cf):
        """Should skip the protected id without calling the API."""
        fake_cf.seed(4, production_id="dep-000")

        result = await delete_many(cf_client, "site", ["dep-000", "dep-001", "dep-002"], "dep-000", pause=0)

        assert "dep-000" not in fake_cf.deleted_ids()
        assert result.deleted == 2
        assert result.skipped == 1
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_failure_counts(self, cf_client, fake_cf):
        """Should report deleted == N - |F| - protected and failed == |F|."""
        fake_cf.seed(8, production_id="dep-000")
        fake_cf.fail_deletes = {"dep-003", "dep-005"}
        candidates = [f"dep-{i:03d}" for i in range(8)]

        result = await delete_many(cf_client, "site", candidates, "dep-000", pause=0)

        assert result.deleted == 8 - 2 - 1
        assert result.failed == 2
        assert result.skipped == 1
        assert result.failed_ids == ["dep-003", "dep-005"]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_sweep(self, cf_client, fake_cf):
        """Should keep deleting after an individual failure."""
        fake_cf.seed(3)
        fake_cf.fail_deletes = {"dep-000"}

        await delete_many(cf_client, "site", ["dep-000", "dep-001", "dep-002"], None, pause=0)

        assert fake_cf.deleted_ids() == ["dep-000", "dep-001", "dep-002"]
        assert [d["id"] for d in fake_cf.deployments] == ["dep-000"]

    @pytest.mark.asyncio
    async def test_sequential_in_given_order(self, cf_client, fake_cf):
        """Should issue deletes one by one in candidate order, collapsing duplicates."""
        fake_cf.seed(5)

        result = await delete_many(cf_client, "site", ["dep-004", "dep-001", "dep-004", "dep-002"], None, pause=0)

        assert fake_cf.deleted_ids() == ["dep-004", "dep-001", "dep-002"]
        assert result.deleted == 3

    @pytest.mark.asyncio
    async def test_pause_between_deletes(self, cf_client, fake_cf):
        """Should sleep between delete calls but not before the first."""
        fake_cf.seed(4, production_id="dep-000")

        with patch("easypages.cleanup.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await delete_many(cf_client, "site", ["dep-000", "dep-001", "dep-002", "dep-003"], "dep-000")

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_empty_candidates(self, cf_client, fake_cf):
        """Should do nothing for an empty candidate set."""
        result = await delete_many(cf_client, "site", [], "dep-000", pause=0)
        assert (result.deleted, result.skipped, result.failed) == (0, 0, 0)
        assert fake_cf.requests == []


class TestDeleteAll:
    """Tests for delete_all."""

    @pytest.mark.asyncio
    async def test_keeps_only_production(self, cf_client, fake_cf):
        """Should delete everything except the canonical deployment."""
        fake_cf.seed(30, production_id="dep-004")

        result = await delete_all(cf_client, "site", pause=0)

        assert result.deleted == 29
        assert result.skipped == 0
        assert [d["id"] for d in fake_cf.deployments] == ["dep-004"]
        assert "dep-004" not in fake_cf.deleted_ids()

    @pytest.mark.asyncio
    async def test_project_lookup_failure_deletes_nothing(self, cf_client, fake_cf):
        """Should raise and delete nothing when production cannot be identified."""
        fake_cf.seed(5, production_id="dep-000")
        fake_cf.fail_project = True

        with pytest.raises(UpstreamError):
            await delete_all(cf_client, "site", pause=0)

        assert fake_cf.deleted_ids() == []


class TestChunkedDeletion:
    """Tests for iter_chunked_deletion."""

    @pytest.mark.asyncio
    async def test_progress_accumulates(self, cf_client, fake_cf):
        """Should yield cumulative progress after each chunk."""
        fake_cf.seed(7, production_id="dep-000")
        fake_cf.fail_deletes = {"dep-005"}
        candidates = [f"dep-{i:03d}" for i in range(7)]

        progress = [p async for p in iter_chunked_deletion(
            cf_client, "site", candidates, "dep-000", chunk_size=3, pause=0
        )]

        assert progress == [
            DeletionProgress(completed=3, total=7, deleted=2, skipped=1, failed=0),
            DeletionProgress(completed=6, total=7, deleted=4, skipped=1, failed=1),
            DeletionProgress(completed=7, total=7, deleted=5, skipped=1, failed=1),
        ]

    @pytest.mark.asyncio
    async def test_pause_between_chunks(self, cf_client, fake_cf):
        """Should sleep between every pair of deletes, including across chunk boundaries."""
        fake_cf.seed(6)
        candidates = [f"dep-{i:03d}" for i in range(6)]

        with patch("easypages.cleanup.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async for _ in iter_chunked_deletion(cf_client, "site", candidates, None, chunk_size=2):
                pass

        assert len(fake_cf.deleted_ids()) == 6
        assert mock_sleep.await_count == 5
        mock_sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_duplicates_collapsed_across_chunks(self, cf_client, fake_cf):
        """Should delete an id once even when it repeats in different chunks."""
        fake_cf.seed(3)
        candidates = ["dep-000", "dep-001", "dep-002", "dep-000"]

        progress = [p async for p in iter_chunked_deletion(
            cf_client, "site", candidates, None, chunk_size=2, pause=0
        )]

        assert fake_cf.deleted_ids() == ["dep-000", "dep-001", "dep-002"]
        assert progress[-1] == DeletionProgress(completed=3, total=3, deleted=3, skipped=0, failed=0)

    @pytest.mark.asyncio
    async def test_stopping_early_stops_further_chunks(self, cf_client, fake_cf):
        """Should not start another chunk once the caller stops iterating."""
        fake_cf.seed(10)
        candidates = [f"dep-{i:03d}" for i in range(10)]

        async for progress in iter_chunked_deletion(cf_client, "site", candidates, None, chunk_size=4, pause=0):
            break

        assert progress.completed == 4
        assert len(fake_cf.deleted_ids()) == 4

    @pytest.mark.asyncio
    async def test_invalid_chunk_size(self, cf_client):
        """Should reject a chunk size below 1."""
        with pytest.raises(ValueError):
            async for _ in iter_chunked_deletion(cf_client, "site", ["a"], None, chunk_size=0):
                pass

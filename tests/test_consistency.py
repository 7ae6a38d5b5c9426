"""Tests for vector consistency audits, scans, health and orphan cleanup."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select, text, update

from studybuddy.core.errors import NotFoundError, UpstreamFailure, ValidationError
from studybuddy.models.content import Content
from studybuddy.schemas.consistency import Recommendation
from studybuddy.services.consistency import ConsistencyService, classify


@pytest.fixture
def consistency(store):
    return ConsistencyService(store=store)


class TestClassify:
    def test_missing_vectors_are_critical(self):
        report = classify(uuid4(), expected=10, actual=7)
        assert report.recommendation == Recommendation.CRITICAL
        assert report.missing == 3
        assert report.orphaned == 0

    def test_extra_vectors_are_warning(self):
        report = classify(uuid4(), expected=5, actual=8)
        assert report.recommendation == Recommendation.WARNING
        assert report.missing == 0
        assert report.orphaned == 3

    def test_matching_counts_are_ok(self):
        report = classify(uuid4(), expected=4, actual=4)
        assert report.recommendation == Recommendation.OK
        assert report.missing == report.orphaned == 0


class TestCheckContent:
    @pytest.mark.asyncio
    async def test_counts_vectors_in_store(self, db, user, make_content, add_vectors, consistency):
        content = await make_content(user, chunk_count=10)
        await add_vectors(content.id, 7)

        report = await consistency.check_content_consistency(db, content.id)

        assert report.content_id == content.id
        assert report.expected_vector_count == 10
        assert report.actual_vector_count == 7
        assert report.recommendation == Recommendation.CRITICAL

    @pytest.mark.asyncio
    async def test_unprocessed_content_expects_nothing(self, db, user, make_content, consistency):
        content = await make_content(user, chunk_count=None)

        report = await consistency.check_content_consistency(db, content.id)

        assert report.expected_vector_count == 0
        assert report.recommendation == Recommendation.OK

    @pytest.mark.asyncio
    async def test_unknown_content_raises(self, db, consistency):
        with pytest.raises(NotFoundError):
            await consistency.check_content_consistency(db, uuid4())

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, db, user, make_content, consistency, store):
        content = await make_content(user, chunk_count=2)
        failure = UpstreamFailure("Vector store count timed out", error_code="timeout")

        with patch.object(store, "count_by_content", AsyncMock(side_effect=failure)):
            with pytest.raises(UpstreamFailure):
                await consistency.check_content_consistency(db, content.id)

    @pytest.mark.asyncio
    async def test_database_timeout_maps_to_upstream_failure(self, db, consistency):
        with patch.object(db, "execute", AsyncMock(side_effect=asyncio.TimeoutError())):
            with pytest.raises(UpstreamFailure) as exc_info:
                await consistency.check_content_consistency(db, uuid4())

        assert exc_info.value.error_code == "timeout"

    @pytest.mark.asyncio
    async def test_timeout_forwarded_to_store(self, db, user, make_content, consistency, store):
        content = await make_content(user, chunk_count=0)

        with patch.object(store, "count_by_content", AsyncMock(return_value=0)) as count:
            await consistency.check_content_consistency(db, content.id, timeout=0.5)

        count.assert_awaited_once_with(content.id, timeout=0.5)


class TestScan:
    @pytest.mark.asyncio
    async def test_zero_limit_scans_nothing(self, db, user, make_content, consistency):
        await make_content(user, chunk_count=3)

        assert await consistency.scan_for_inconsistencies(db, user.id, limit=0) == []

    @pytest.mark.asyncio
    async def test_only_inconsistent_reports_returned(
        self, db, user, make_content, add_vectors, consistency, now
    ):
        ok = await make_content(user, chunk_count=2, created_at=now)
        missing = await make_content(user, chunk_count=4, created_at=now - timedelta(hours=1))
        orphaned = await make_content(user, chunk_count=1, created_at=now - timedelta(hours=2))
        await add_vectors(ok.id, 2)
        await add_vectors(missing.id, 1)
        await add_vectors(orphaned.id, 3)

        reports = await consistency.scan_for_inconsistencies(db, user.id)

        assert [r.content_id for r in reports] == [missing.id, orphaned.id]
        assert reports[0].recommendation == Recommendation.CRITICAL
        assert reports[1].recommendation == Recommendation.WARNING

    @pytest.mark.asyncio
    async def test_limit_takes_newest_first(self, db, user, make_content, consistency, now):
        old = await make_content(user, chunk_count=1, created_at=now - timedelta(days=2))
        new = await make_content(user, chunk_count=1, created_at=now)

        reports = await consistency.scan_for_inconsistencies(db, user.id, limit=1)

        assert [r.content_id for r in reports] == [new.id]
        assert old.id not in {r.content_id for r in reports}

    @pytest.mark.asyncio
    async def test_scan_is_scoped_to_user(self, db, user, make_user, make_content, consistency):
        other = await make_user()
        await make_content(other, chunk_count=5)

        assert await consistency.scan_for_inconsistencies(db, user.id) == []

    @pytest.mark.asyncio
    async def test_failed_item_does_not_abort_batch(
        self, db, user, make_content, consistency, store, now
    ):
        broken = await make_content(user, chunk_count=2, created_at=now)
        healthy = await make_content(user, chunk_count=3, created_at=now - timedelta(hours=1))

        async def count(content_id, timeout=None):
            if content_id == broken.id:
                raise UpstreamFailure("Vector store count timed out", error_code="timeout")
            return 1

        with patch.object(store, "count_by_content", AsyncMock(side_effect=count)):
            reports = await consistency.scan_for_inconsistencies(db, user.id)

        assert len(reports) == 2
        failed = reports[0]
        assert failed.content_id == broken.id
        assert failed.recommendation == Recommendation.WARNING
        assert failed.error.startswith("Error during check:")
        assert reports[1].content_id == healthy.id
        assert reports[1].missing == 2

    @pytest.mark.asyncio
    async def test_failed_statement_rolled_back_to_savepoint(
        self, db, user, make_content, consistency, store, now
    ):
        broken = await make_content(user, chunk_count=2, created_at=now)
        healthy = await make_content(user, chunk_count=3, created_at=now - timedelta(hours=1))
        audited = []

        async def count(content_id, timeout=None):
            audited.append(content_id)
            if content_id == broken.id:
                await db.execute(
                    update(Content)
                    .where(Content.id == broken.id)
                    .values(title="half-written")
                    .execution_options(synchronize_session=False)
                )
                await db.execute(text("SELECT * FROM missing_table"))
            return 3

        with patch.object(store, "count_by_content", AsyncMock(side_effect=count)):
            reports = await consistency.scan_for_inconsistencies(db, user.id)

        assert audited == [broken.id, healthy.id]
        assert [r.content_id for r in reports] == [broken.id]
        assert reports[0].error.startswith("Error during check:")

        title = await db.scalar(select(Content.title).where(Content.id == broken.id))
        assert title == "Lecture"


class TestHealth:
    @pytest.mark.asyncio
    async def test_rate_over_sample(self, db, user, make_content, add_vectors, consistency, now):
        contents = [
            await make_content(user, chunk_count=1, created_at=now - timedelta(minutes=i))
            for i in range(50)
        ]
        for content in contents[3:]:
            await add_vectors(content.id, 1)

        health = await consistency.get_consistency_health(db, user.id)

        assert health.healthy is False
        assert health.sample_size == 50
        assert health.inconsistencies_found == 3
        assert health.consistency_rate == "94.00%"
        assert health.critical_issues == 3
        assert health.warnings == 0
        assert len(health.details) == 3

    @pytest.mark.asyncio
    async def test_no_content_is_healthy(self, db, user, consistency):
        health = await consistency.get_consistency_health(db, user.id)

        assert health.healthy is True
        assert health.sample_size == 0
        assert health.consistency_rate == "100.00%"

    @pytest.mark.asyncio
    async def test_details_capped_at_ten(self, db, user, make_content, consistency, now):
        for i in range(12):
            await make_content(user, chunk_count=2, created_at=now - timedelta(minutes=i))

        health = await consistency.get_consistency_health(db, user.id)

        assert health.inconsistencies_found == 12
        assert health.consistency_rate == "0.00%"
        assert len(health.details) == 10


class TestCleanup:
    @pytest.mark.asyncio
    async def test_empty_list_rejected(self, db, consistency):
        with pytest.raises(ValidationError):
            await consistency.cleanup_orphaned_vectors(db, [])

    @pytest.mark.asyncio
    async def test_too_many_ids_rejected(self, db, consistency, add_vectors):
        orphan = uuid4()
        await add_vectors(orphan, 1)

        with pytest.raises(ValidationError):
            await consistency.cleanup_orphaned_vectors(db, [orphan] + [uuid4() for _ in range(50)])

        # Rejected before any deletion
        assert await consistency.vector_store.count_by_content(orphan) == 1

    @pytest.mark.asyncio
    async def test_invalid_id_rejected(self, db, consistency):
        with pytest.raises(ValidationError) as exc_info:
            await consistency.cleanup_orphaned_vectors(db, ["not-a-uuid"])

        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, db, consistency, add_vectors):
        orphans = [uuid4(), uuid4()]
        for orphan in orphans:
            await add_vectors(orphan, 3)

        first = await consistency.cleanup_orphaned_vectors(db, orphans)
        second = await consistency.cleanup_orphaned_vectors(db, orphans)

        assert first.success is True
        assert first.cleaned_count == 2
        assert second.success is True
        assert second.cleaned_count == 0
        for orphan in orphans:
            assert await consistency.vector_store.count_by_content(orphan) == 0

    @pytest.mark.asyncio
    async def test_duplicate_ids_cleaned_once(self, db, consistency, add_vectors):
        orphan = uuid4()
        await add_vectors(orphan, 2)

        result = await consistency.cleanup_orphaned_vectors(db, [orphan, str(orphan)])

        assert result.cleaned_count == 1

    @pytest.mark.asyncio
    async def test_existing_content_skipped(self, db, user, make_content, add_vectors, consistency):
        content = await make_content(user, chunk_count=2)
        await add_vectors(content.id, 2)

        result = await consistency.cleanup_orphaned_vectors(db, [content.id])

        assert result.success is True
        assert result.cleaned_count == 0
        assert await consistency.vector_store.count_by_content(content.id) == 2

    @pytest.mark.asyncio
    async def test_failures_collected(self, db, consistency, store, add_vectors):
        good, bad = uuid4(), uuid4()
        await add_vectors(good, 1)
        await add_vectors(bad, 1)
        real_delete = store.delete_by_content

        async def delete(content_id, timeout=None):
            if content_id == bad:
                raise UpstreamFailure("Vector store delete timed out", error_code="timeout")
            await real_delete(content_id, timeout)

        with patch.object(store, "delete_by_content", AsyncMock(side_effect=delete)):
            result = await consistency.cleanup_orphaned_vectors(db, [bad, good])

        assert result.success is False
        assert result.cleaned_count == 1
        assert len(result.errors) == 1
        assert str(bad) in result.errors[0]

    @pytest.mark.asyncio
    async def test_failed_statement_does_not_abort_cleanup(
        self, db, consistency, store, add_vectors
    ):
        bad, good = uuid4(), uuid4()
        await add_vectors(bad, 1)
        await add_vectors(good, 2)
        real_count = store.count_by_content

        async def count(content_id, timeout=None):
            if content_id == bad:
                await db.execute(text("SELECT * FROM missing_table"))
            return await real_count(content_id, timeout)

        with patch.object(store, "count_by_content", AsyncMock(side_effect=count)):
            result = await consistency.cleanup_orphaned_vectors(db, [bad, good])

        assert result.success is False
        assert result.cleaned_count == 1
        assert str(bad) in result.errors[0]
        assert await real_count(good) == 0
        assert await real_count(bad) == 1

    @pytest.mark.asyncio
    async def test_timeout_forwarded_to_delete(self, db, consistency, store, add_vectors):
        orphan = uuid4()
        await add_vectors(orphan, 1)

        with patch.object(store, "delete_by_content", AsyncMock()) as delete:
            await consistency.cleanup_orphaned_vectors(db, [orphan], timeout=0.5)

        delete.assert_awaited_once_with(orphan, timeout=0.5)

"""
Integration tests for the SQLite stores, including a full worker run.
"""

from datetime import datetime, timedelta

import pytest

from embedprep.core.config_manager import PreprocessingConfigManager
from embedprep.ingestion.dispatcher import QueueDispatcher
from embedprep.ingestion.queue_worker import PreprocessUseCase, PreprocessUseCaseInput
from embedprep.models.embedding_models import EmbeddingRecord, QueuePriority, QueueStatus
from embedprep.models.errors import ProcessingOutcome
from embedprep.models.preprocessing_models import EnrichmentContext, QualityStatus, TargetType
from embedprep.storage.sqlite_store import (
    SQLiteContentSource, SQLiteDatabase, SQLiteEmbeddingStore, SQLiteQueueStore
)
from embedprep.vector.embedding_batch import EmbeddingBatchGenerator

from tests.helpers import FakeEmbeddingClient, make_post

pytestmark = pytest.mark.integration

POST = TargetType.POST


class SteppingClock:
    """Strictly increasing timestamps so ordering by time is deterministic."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def database(tmp_path, clock):
    return SQLiteDatabase(str(tmp_path / "store.db"), clock=clock)


def _record(index, text="chunk"):
    return EmbeddingRecord(
        target_type=POST, target_id="1", chunk_index=index, chunk_total=3,
        content_hash=f"hash-{index}", chunk_content=f"{text} {index}", embedding=[0.5, 0.25],
        quality_score=0.8, quality_status=QualityStatus.PASSED, model="m",
        preprocessing_metadata={"quality": {"total": 3}},
    )


class TestSQLiteContentSource:

    async def test_round_trip_with_context(self, database):
        source = SQLiteContentSource(database)
        context = EnrichmentContext(
            target_type=POST, target_id="1", parent_title="Title", category="news", tags=("a", "b")
        )

        await source.add_content(POST, "1", "body text", context)
        content = await source.get_target_content(POST, "1")

        assert content.raw_content == "body text"
        assert content.context == context
        assert await source.count_content(POST) == 1
        assert await source.count_content(TargetType.COMMENT) == 0

    async def test_missing_content(self, database):
        assert await SQLiteContentSource(database).get_target_content(POST, "nope") is None


class TestSQLiteEmbeddingStore:

    async def test_upsert_and_existing_chunks(self, database):
        store = SQLiteEmbeddingStore(database)
        for index in (2, 0, 1):
            await store.upsert_embedding(_record(index))

        existing = await store.get_existing_chunks(POST, "1")

        assert [c.chunk_index for c in existing] == [0, 1, 2]
        assert existing[0].content_hash == "hash-0"
        assert existing[0].quality_status == QualityStatus.PASSED

    async def test_upsert_replaces_same_index(self, database):
        store = SQLiteEmbeddingStore(database)
        await store.upsert_embedding(_record(0, "old"))
        await store.upsert_embedding(_record(0, "new"))

        [record] = await store.list_records()

        assert record.chunk_content == "new 0"
        assert record.embedding == [0.5, 0.25]

    async def test_delete_stale(self, database):
        store = SQLiteEmbeddingStore(database)
        for index in range(3):
            await store.upsert_embedding(_record(index))

        assert await store.delete_stale_chunks(POST, "1", 1) == 2
        assert [c.chunk_index for c in await store.get_existing_chunks(POST, "1")] == [0]

    async def test_update_quality_merges_metadata(self, database):
        store = SQLiteEmbeddingStore(database)
        await store.upsert_embedding(_record(0))

        updated = await store.update_quality(
            POST, "1", 0, 0.4, QualityStatus.FAILED, {"judge_model": "j"}
        )
        missing = await store.update_quality(POST, "1", 9, 0.4, QualityStatus.FAILED)

        [record] = await store.list_records()
        assert updated and not missing
        assert record.quality_status == QualityStatus.FAILED
        assert record.quality_score == 0.4
        assert record.preprocessing_metadata == {"quality": {"total": 3}, "judge_model": "j"}


class TestSQLiteQueueStore:

    async def test_enqueue_and_claim_by_priority(self, database):
        queue = SQLiteQueueStore(database)
        await queue.enqueue(POST, "low", QueuePriority.LOW)
        await queue.enqueue(POST, "first")
        await queue.enqueue(POST, "high", QueuePriority.HIGH)
        await queue.enqueue(POST, "second")

        claimed = await queue.claim_items(limit=3, lease_seconds=60)

        assert [c.target_id for c in claimed] == ["high", "first", "second"]
        assert len({c.processing_token for c in claimed}) == 3
        processing = await queue.list_items(QueueStatus.PROCESSING)
        assert all(item.attempts == 1 for item in processing)

    async def test_claimed_items_are_not_reclaimed_until_lease_expires(self, database, clock):
        queue = SQLiteQueueStore(database)
        await queue.enqueue(POST, "1")

        [first] = await queue.claim_items(1, lease_seconds=60)
        assert await queue.claim_items(1, lease_seconds=60) == []

        clock.now += timedelta(seconds=61)
        [second] = await queue.claim_items(1, lease_seconds=60)

        assert second.processing_token != first.processing_token
        assert not await queue.update_with_token(POST, "1", first.processing_token, QueueStatus.COMPLETED)
        assert await queue.update_with_token(POST, "1", second.processing_token, QueueStatus.COMPLETED)

    async def test_completion_clears_lease(self, database):
        queue = SQLiteQueueStore(database)
        await queue.enqueue(POST, "1")
        [claimed] = await queue.claim_items(1, 60)

        await queue.update_with_token(
            POST, "1", claimed.processing_token, QueueStatus.COMPLETED,
            processing_metadata={"skipped_reason": "idempotent"},
        )

        [item] = await queue.list_items()
        assert item.status == QueueStatus.COMPLETED
        assert item.processing_token is None
        assert item.lease_expires_at is None
        assert item.processed_at is not None
        assert item.processing_metadata == {"skipped_reason": "idempotent"}

    async def test_legacy_status_updates(self, database):
        queue = SQLiteQueueStore(database)
        await queue.enqueue(POST, "1")

        await queue.update_status(POST, "1", QueueStatus.PROCESSING)
        [item] = await queue.list_items()
        assert item.status == QueueStatus.PROCESSING
        assert item.processed_at is None

        await queue.update_status(POST, "1", QueueStatus.FAILED, "boom")
        [item] = await queue.list_items()
        assert item.status == QueueStatus.FAILED
        assert item.error_message == "boom"

    async def test_reset_and_purge_failed(self, database):
        queue = SQLiteQueueStore(database)
        for target_id in ("a", "b"):
            await queue.enqueue(POST, target_id)
            [claimed] = await queue.claim_items(1, 60)
            await queue.update_with_token(POST, target_id, claimed.processing_token, QueueStatus.FAILED, "x")

        assert await queue.reset_failed(max_attempts=1) == 0
        assert await queue.reset_failed(max_attempts=3) == 2
        [first, _] = await queue.list_items(QueueStatus.PENDING)
        assert first.error_message is None

        await queue.update_status(POST, "a", QueueStatus.FAILED, "again")
        assert await queue.purge_failed() == 1
        assert [item.target_id for item in await queue.list_items()] == ["b"]

    async def test_enqueue_resets_existing_row(self, database):
        queue = SQLiteQueueStore(database)
        await queue.enqueue(POST, "1")
        await queue.claim_items(1, 60)

        await queue.enqueue(POST, "1", QueuePriority.HIGH)

        [item] = await queue.list_items()
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.priority == QueuePriority.HIGH


class TestSQLiteWorkerRun:

    async def test_dispatch_over_sqlite(self, database):
        content = SQLiteContentSource(database)
        embeddings = SQLiteEmbeddingStore(database)
        queue = SQLiteQueueStore(database)
        use_case = PreprocessUseCase(
            config_manager=PreprocessingConfigManager(),
            content_source=content,
            embedding_store=embeddings,
            queue_store=queue,
            batch_generator=EmbeddingBatchGenerator(FakeEmbeddingClient(), embeddings),
        )
        await content.add_content(POST, "1", make_post("alpha", "beta"))
        await queue.enqueue(POST, "1")

        first = await QueueDispatcher(queue, use_case).dispatch(run_id="sqlite-1")
        await queue.enqueue(POST, "1")
        second = await QueueDispatcher(queue, use_case).dispatch(run_id="sqlite-2")

        assert first.results[0].outcome == ProcessingOutcome.COMPLETED
        assert second.results[0].outcome == ProcessingOutcome.IDEMPOTENT_SKIP
        [item] = await queue.list_items()
        assert item.status == QueueStatus.COMPLETED
        assert item.processing_metadata == {"skipped_reason": "idempotent"}
        assert len(await embeddings.list_records()) == 1

        await content.add_content(POST, "1", make_post("alpha", "beta", "gamma"))
        third = await use_case.run(PreprocessUseCaseInput(POST, "1", run_id="sqlite-3"))

        assert third.outcome == ProcessingOutcome.COMPLETED
        [item] = await queue.list_items()
        assert item.processing_metadata == {}

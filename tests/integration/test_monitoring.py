"""
Integration tests for QueueMonitor.
"""

from datetime import datetime, timedelta

import pytest

from embedprep.ingestion.monitoring import QueueMonitor
from embedprep.models.embedding_models import EmbeddingRecord, QueueStatus
from embedprep.models.preprocessing_models import QualityStatus, TargetType
from embedprep.storage.memory_store import InMemoryEmbeddingStore, InMemoryQueueStore

pytestmark = pytest.mark.integration

POST = TargetType.POST
NOW = datetime(2024, 5, 1, 12, 0, 0)


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return MutableClock(NOW - timedelta(hours=30))


@pytest.fixture
def queue_store(clock):
    return InMemoryQueueStore(clock=clock)


async def _process(queue_store, clock, target_id, status, processed_at, error=None, duration_s=10):
    clock.now = processed_at - timedelta(seconds=duration_s)
    await queue_store.enqueue(POST, target_id)
    [claimed] = await queue_store.claim_items(1, 60)
    clock.now = processed_at
    await queue_store.update_with_token(POST, target_id, claimed.processing_token, status, error)


def _record(target_id, index, status, score, updated_at):
    return EmbeddingRecord(
        target_type=POST, target_id=target_id, chunk_index=index, chunk_total=1,
        content_hash="h", chunk_content=f"chunk {target_id}/{index}", embedding=[0.0],
        quality_score=score, quality_status=status, updated_at=updated_at,
    )


class TestQueueMonitor:

    async def test_queue_stats(self, queue_store, clock):
        await _process(queue_store, clock, "done", QueueStatus.COMPLETED, NOW)
        await _process(queue_store, clock, "bad", QueueStatus.FAILED, NOW, error="boom")
        await queue_store.enqueue(POST, "waiting")
        await queue_store.enqueue(POST, "busy")
        await queue_store.claim_items(1, 60)

        stats = await QueueMonitor(queue_store).get_queue_stats()

        assert stats.to_dict() == {
            'pending': 1, 'processing': 1, 'completed': 1, 'failed': 1, 'total': 4,
        }

    async def test_throughput_windows(self, queue_store, clock):
        await _process(queue_store, clock, "recent", QueueStatus.COMPLETED, NOW - timedelta(minutes=10), duration_s=2)
        await _process(queue_store, clock, "today", QueueStatus.COMPLETED, NOW - timedelta(hours=5), duration_s=4)
        await _process(queue_store, clock, "old", QueueStatus.COMPLETED, NOW - timedelta(hours=26), duration_s=6)
        clock.now = NOW

        throughput = await QueueMonitor(queue_store, clock=clock).get_throughput()

        assert throughput.last_1h == 1
        assert throughput.last_24h == 2
        assert throughput.avg_processing_time_ms == 4000

    async def test_throughput_without_completions(self, queue_store):
        throughput = await QueueMonitor(queue_store).get_throughput()

        assert throughput.to_dict() == {'last_1h': 0, 'last_24h': 0, 'avg_processing_time_ms': None}

    async def test_error_logs_newest_first_with_limit(self, queue_store, clock):
        for hours in range(5):
            await _process(queue_store, clock, f"bad-{hours}", QueueStatus.FAILED,
                           NOW - timedelta(hours=hours), error=f"error {hours}")

        logs = await QueueMonitor(queue_store).get_error_logs(limit=3)

        assert [log.target_id for log in logs] == ["bad-0", "bad-1", "bad-2"]
        assert logs[0].attempts == 1
        assert logs[0].to_dict()['error_message'] == "error 0"

    async def test_snapshot(self, queue_store, clock):
        for index in range(12):
            await _process(queue_store, clock, f"bad-{index}", QueueStatus.FAILED,
                           NOW - timedelta(minutes=index), error="boom")

        snapshot = await QueueMonitor(queue_store, clock=clock).get_monitoring_snapshot()

        assert snapshot.queue.failed == 12
        assert len(snapshot.error_logs) == 10
        assert set(snapshot.to_dict()) == {'queue', 'throughput', 'error_logs'}

    async def test_retry_respects_attempt_ceiling(self, queue_store, clock):
        await _process(queue_store, clock, "retryable", QueueStatus.FAILED, NOW, error="boom")
        await _process(queue_store, clock, "exhausted", QueueStatus.FAILED, NOW, error="boom")
        for _ in range(2):
            await queue_store.update_status(POST, "exhausted", QueueStatus.PENDING)
            [claimed] = await queue_store.claim_items(1, 60)
            await queue_store.update_with_token(POST, "exhausted", claimed.processing_token,
                                                QueueStatus.FAILED, "boom")

        retried = await QueueMonitor(queue_store).retry_failed()

        assert retried == 1
        [pending] = await queue_store.list_items(QueueStatus.PENDING)
        assert pending.target_id == "retryable"
        assert pending.error_message is None
        [failed] = await queue_store.list_items(QueueStatus.FAILED)
        assert failed.attempts == 3

    async def test_purge_failed(self, queue_store, clock):
        await _process(queue_store, clock, "bad", QueueStatus.FAILED, NOW, error="boom")
        await _process(queue_store, clock, "done", QueueStatus.COMPLETED, NOW)

        purged = await QueueMonitor(queue_store).purge_failed()

        assert purged == 1
        assert [item.target_id for item in await queue_store.list_items()] == ["done"]


class TestQualityMonitoring:

    async def test_quality_metrics(self, queue_store):
        store = InMemoryEmbeddingStore()
        store._records = {
            (POST, str(i), 0): _record(str(i), 0, status, score, NOW)
            for i, (status, score) in enumerate([
                (QualityStatus.PASSED, 0.9), (QualityStatus.PASSED, 0.7),
                (QualityStatus.INCOMPLETE, 0.55), (QualityStatus.FAILED, 0.15),
            ])
        }

        metrics = await QueueMonitor(queue_store, store).get_quality_metrics()

        assert metrics.total_embeddings == 4
        assert metrics.with_quality_score == 4
        assert (metrics.passed_count, metrics.incomplete_count, metrics.failed_count) == (2, 1, 1)
        assert metrics.average_score == pytest.approx(0.575)
        assert metrics.pass_rate == 0.5

    async def test_quality_metrics_without_store(self, queue_store):
        metrics = await QueueMonitor(queue_store).get_quality_metrics()

        assert metrics.total_embeddings == 0
        assert metrics.average_score is None
        assert metrics.pass_rate == 0.0

    async def test_failed_samples_newest_first(self, queue_store):
        store = InMemoryEmbeddingStore()
        store._records = {
            (POST, str(i), 0): _record(
                str(i), 0, QualityStatus.FAILED if i % 2 else QualityStatus.PASSED, 0.2,
                NOW - timedelta(minutes=i),
            )
            for i in range(6)
        }

        samples = await QueueMonitor(queue_store, store).get_failed_samples(limit=2)

        assert [sample.target_id for sample in samples] == ["1", "3"]
        assert samples[0].to_dict()['chunk_content'] == "chunk 1/0"

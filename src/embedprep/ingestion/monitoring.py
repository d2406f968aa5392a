"""
Queue Monitoring - queue health, throughput and embedding quality.

Read-side aggregation over the queue and embedding stores, plus the
operator actions for failed items (retry, purge).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..models.embedding_models import IEmbeddingStore, IQueueStore, QueueStatus
from ..models.preprocessing_models import QualityStatus, TargetType

logger = logging.getLogger(__name__)


MAX_RETRY_ATTEMPTS = 3
THROUGHPUT_SAMPLE_SIZE = 100


@dataclass
class QueueStats:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed

    def to_dict(self) -> Dict[str, int]:
        return {
            'pending': self.pending,
            'processing': self.processing,
            'completed': self.completed,
            'failed': self.failed,
            'total': self.total,
        }


@dataclass
class Throughput:
    """Completed items per window and mean created-to-processed time."""
    last_1h: int = 0
    last_24h: int = 0
    avg_processing_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'last_1h': self.last_1h,
            'last_24h': self.last_24h,
            'avg_processing_time_ms': self.avg_processing_time_ms,
        }


@dataclass
class ErrorLog:
    target_type: TargetType
    target_id: str
    error_message: str
    attempts: int
    created_at: datetime
    processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_type': self.target_type.value,
            'target_id': self.target_id,
            'error_message': self.error_message,
            'attempts': self.attempts,
            'created_at': self.created_at.isoformat(),
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }


@dataclass
class QualityMetrics:
    total_embeddings: int = 0
    with_quality_score: int = 0
    passed_count: int = 0
    incomplete_count: int = 0
    failed_count: int = 0
    average_score: Optional[float] = None
    pass_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_embeddings': self.total_embeddings,
            'with_quality_score': self.with_quality_score,
            'passed_count': self.passed_count,
            'incomplete_count': self.incomplete_count,
            'failed_count': self.failed_count,
            'average_score': self.average_score,
            'pass_rate': self.pass_rate,
        }


@dataclass
class FailedSample:
    """Stored chunk whose quality status is failed (usually judge-downgraded)."""
    target_type: TargetType
    target_id: str
    chunk_index: int
    chunk_content: str
    quality_score: float
    preprocessing_metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_type': self.target_type.value,
            'target_id': self.target_id,
            'chunk_index': self.chunk_index,
            'chunk_content': self.chunk_content,
            'quality_score': self.quality_score,
            'preprocessing_metadata': self.preprocessing_metadata,
        }


@dataclass
class MonitoringSnapshot:
    queue: QueueStats
    throughput: Throughput
    error_logs: List[ErrorLog]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'queue': self.queue.to_dict(),
            'throughput': self.throughput.to_dict(),
            'error_logs': [log.to_dict() for log in self.error_logs],
        }


class QueueMonitor:
    """Monitoring queries and failed-item management."""

    def __init__(
        self,
        queue_store: IQueueStore,
        embedding_store: Optional[IEmbeddingStore] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.queue_store = queue_store
        self.embedding_store = embedding_store
        self._clock = clock

    async def get_queue_stats(self) -> QueueStats:
        stats = QueueStats()
        for item in await self.queue_store.list_items():
            setattr(stats, item.status.value, getattr(stats, item.status.value) + 1)
        return stats

    async def get_throughput(self) -> Throughput:
        now = self._clock()
        completed = [
            item for item in await self.queue_store.list_items(QueueStatus.COMPLETED)
            if item.processed_at is not None
        ]

        throughput = Throughput(
            last_1h=sum(1 for item in completed if item.processed_at >= now - timedelta(hours=1)),
            last_24h=sum(1 for item in completed if item.processed_at >= now - timedelta(hours=24)),
        )

        recent = sorted(completed, key=lambda item: item.processed_at, reverse=True)[:THROUGHPUT_SAMPLE_SIZE]
        if recent:
            total_ms = sum(
                (item.processed_at - item.created_at).total_seconds() * 1000 for item in recent
            )
            throughput.avg_processing_time_ms = round(total_ms / len(recent))

        return throughput

    async def get_error_logs(self, limit: int = 20) -> List[ErrorLog]:
        """Most recently processed failed items that carry an error message."""
        failed = [
            item for item in await self.queue_store.list_items(QueueStatus.FAILED)
            if item.error_message
        ]
        # Newest first, never-processed rows last
        failed.sort(key=lambda item: (item.processed_at is not None, item.processed_at or datetime.min), reverse=True)

        return [
            ErrorLog(
                target_type=item.target_type,
                target_id=item.target_id,
                error_message=item.error_message,
                attempts=item.attempts,
                created_at=item.created_at,
                processed_at=item.processed_at,
            )
            for item in failed[:limit]
        ]

    async def get_monitoring_snapshot(self, error_log_limit: int = 10) -> MonitoringSnapshot:
        queue, throughput, error_logs = await asyncio.gather(
            self.get_queue_stats(),
            self.get_throughput(),
            self.get_error_logs(error_log_limit),
        )
        return MonitoringSnapshot(queue=queue, throughput=throughput, error_logs=error_logs)

    async def retry_failed(self, max_attempts: int = MAX_RETRY_ATTEMPTS) -> int:
        """Reset failed items below the attempt ceiling to pending."""
        retried = await self.queue_store.reset_failed(max_attempts)
        logger.info(f"Reset {retried} failed queue items to pending")
        return retried

    async def purge_failed(self) -> int:
        purged = await self.queue_store.purge_failed()
        logger.info(f"Purged {purged} failed queue items")
        return purged

    async def get_quality_metrics(self) -> QualityMetrics:
        records = await self._records()
        metrics = QualityMetrics(total_embeddings=len(records))
        if not records:
            return metrics

        scores = [r.quality_score for r in records if r.quality_score is not None]
        metrics.with_quality_score = len(scores)
        metrics.passed_count = sum(1 for r in records if r.quality_status == QualityStatus.PASSED)
        metrics.incomplete_count = sum(1 for r in records if r.quality_status == QualityStatus.INCOMPLETE)
        metrics.failed_count = sum(1 for r in records if r.quality_status == QualityStatus.FAILED)
        metrics.average_score = sum(scores) / len(scores) if scores else None
        metrics.pass_rate = metrics.passed_count / metrics.total_embeddings
        return metrics

    async def get_failed_samples(self, limit: int = 10) -> List[FailedSample]:
        failed = [r for r in await self._records() if r.quality_status == QualityStatus.FAILED]
        failed.sort(key=lambda r: r.updated_at, reverse=True)

        return [
            FailedSample(
                target_type=r.target_type,
                target_id=r.target_id,
                chunk_index=r.chunk_index,
                chunk_content=r.chunk_content,
                quality_score=r.quality_score,
                preprocessing_metadata=dict(r.preprocessing_metadata),
            )
            for r in failed[:limit]
        ]

    async def _records(self):
        if self.embedding_store is None:
            return []
        return await self.embedding_store.list_records()

"""
In-process implementations of the content, embedding and queue stores.

Used by tests and by the CLI when no database path is configured.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.embedding_models import (
    ClaimedQueueItem, EmbeddingRecord, ExistingChunkInfo, IContentSource,
    IEmbeddingStore, IQueueStore, QueueItem, QueuePriority, QueueStatus,
    TargetContent
)
from ..models.preprocessing_models import EnrichmentContext, QualityStatus, TargetType

logger = logging.getLogger(__name__)


PRIORITY_ORDER = {
    QueuePriority.HIGH: 0,
    QueuePriority.NORMAL: 1,
    QueuePriority.LOW: 2,
}

TargetKey = Tuple[TargetType, str]


class InMemoryContentSource(IContentSource):
    """Dictionary-backed content store."""

    def __init__(self):
        self._content: Dict[TargetKey, TargetContent] = {}

    def add(
        self,
        target_type: TargetType,
        target_id: str,
        raw_content: str,
        context: Optional[EnrichmentContext] = None
    ) -> None:
        self._content[(target_type, target_id)] = TargetContent(
            raw_content=raw_content,
            context=context or EnrichmentContext(target_type=target_type, target_id=target_id),
        )

    async def get_target_content(
        self, target_type: TargetType, target_id: str
    ) -> Optional[TargetContent]:
        return self._content.get((target_type, target_id))

    async def count_content(self, target_type: TargetType) -> int:
        return sum(1 for key in self._content if key[0] == target_type)


class InMemoryEmbeddingStore(IEmbeddingStore):
    """Embedding rows keyed by (target_type, target_id, chunk_index)."""

    def __init__(self):
        self._records: Dict[Tuple[TargetType, str, int], EmbeddingRecord] = {}
        self._lock = asyncio.Lock()

    async def get_existing_chunks(
        self, target_type: TargetType, target_id: str
    ) -> List[ExistingChunkInfo]:
        async with self._lock:
            rows = [
                record for key, record in self._records.items()
                if key[0] == target_type and key[1] == target_id
            ]
        rows.sort(key=lambda r: r.chunk_index)
        return [
            ExistingChunkInfo(
                chunk_index=r.chunk_index,
                content_hash=r.content_hash,
                quality_status=r.quality_status,
            )
            for r in rows
        ]

    async def upsert_embedding(self, record: EmbeddingRecord) -> None:
        async with self._lock:
            record.updated_at = datetime.now()
            self._records[(record.target_type, record.target_id, record.chunk_index)] = record

    async def delete_stale_chunks(
        self, target_type: TargetType, target_id: str, valid_chunk_count: int
    ) -> int:
        async with self._lock:
            stale = [
                key for key in self._records
                if key[0] == target_type and key[1] == target_id and key[2] >= valid_chunk_count
            ]
            for key in stale:
                del self._records[key]

        if stale:
            logger.debug(f"Deleted {len(stale)} stale chunks for {target_type.value}:{target_id}")
        return len(stale)

    async def update_quality(
        self,
        target_type: TargetType,
        target_id: str,
        chunk_index: int,
        quality_score: float,
        quality_status: QualityStatus,
        preprocessing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            record = self._records.get((target_type, target_id, chunk_index))
            if record is None:
                return False

            record.quality_score = quality_score
            record.quality_status = quality_status
            if preprocessing_metadata:
                record.preprocessing_metadata = {**record.preprocessing_metadata, **preprocessing_metadata}
            record.updated_at = datetime.now()
            return True

    async def list_records(self) -> List[EmbeddingRecord]:
        async with self._lock:
            return list(self._records.values())


class InMemoryQueueStore(IQueueStore):
    """
    Queue table with lease-based claiming.

    Claiming picks pending items and processing items whose lease has
    expired, highest priority first, then oldest first.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._items: Dict[TargetKey, QueueItem] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def enqueue(
        self,
        target_type: TargetType,
        target_id: str,
        priority: QueuePriority = QueuePriority.NORMAL,
    ) -> QueueItem:
        async with self._lock:
            item = QueueItem(
                target_type=target_type,
                target_id=target_id,
                priority=priority,
                created_at=self._clock(),
            )
            self._items[(target_type, target_id)] = item
            return item

    def _is_claimable(self, item: QueueItem, now: datetime) -> bool:
        if item.status == QueueStatus.PENDING:
            return True
        return (
            item.status == QueueStatus.PROCESSING
            and item.lease_expires_at is not None
            and item.lease_expires_at <= now
        )

    async def claim_items(self, limit: int, lease_seconds: int) -> List[ClaimedQueueItem]:
        async with self._lock:
            now = self._clock()
            candidates = sorted(
                (item for item in self._items.values() if self._is_claimable(item, now)),
                key=lambda item: (PRIORITY_ORDER[item.priority], item.created_at),
            )

            claimed = []
            for item in candidates[:limit]:
                item.status = QueueStatus.PROCESSING
                item.processing_token = str(uuid.uuid4())
                item.lease_expires_at = now + timedelta(seconds=lease_seconds)
                item.attempts += 1
                claimed.append(ClaimedQueueItem(
                    target_type=item.target_type,
                    target_id=item.target_id,
                    processing_token=item.processing_token,
                    lease_expires_at=item.lease_expires_at,
                ))

        return claimed

    def _finish(
        self,
        item: QueueItem,
        status: QueueStatus,
        error_message: Optional[str],
        processing_metadata: Optional[Dict[str, Any]]
    ) -> None:
        item.status = status
        item.error_message = error_message
        if processing_metadata is not None:
            item.processing_metadata = dict(processing_metadata)
        if status in (QueueStatus.COMPLETED, QueueStatus.FAILED):
            item.processed_at = self._clock()
            item.processing_token = None
            item.lease_expires_at = None

    async def update_status(
        self,
        target_type: TargetType,
        target_id: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self._lock:
            item = self._items.get((target_type, target_id))
            if item is None:
                logger.debug(f"No queue row for {target_type.value}:{target_id}")
                return
            self._finish(item, status, error_message, processing_metadata)

    async def update_with_token(
        self,
        target_type: TargetType,
        target_id: str,
        processing_token: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            item = self._items.get((target_type, target_id))
            if (
                item is None
                or item.status != QueueStatus.PROCESSING
                or item.processing_token != processing_token
            ):
                return False

            self._finish(item, status, error_message, processing_metadata)
            return True

    async def list_items(self, status: Optional[QueueStatus] = None) -> List[QueueItem]:
        async with self._lock:
            items = list(self._items.values())
        if status is not None:
            items = [item for item in items if item.status == status]
        return items

    async def reset_failed(self, max_attempts: int) -> int:
        async with self._lock:
            count = 0
            for item in self._items.values():
                if item.status == QueueStatus.FAILED and item.attempts < max_attempts:
                    item.status = QueueStatus.PENDING
                    item.error_message = None
                    item.processed_at = None
                    count += 1
        return count

    async def purge_failed(self) -> int:
        async with self._lock:
            failed = [key for key, item in self._items.items() if item.status == QueueStatus.FAILED]
            for key in failed:
                del self._items[key]
        return len(failed)

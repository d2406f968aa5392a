"""
Embedding, judge and queue models plus the collaborator interfaces.

The relational content store, the embedding vector store and the queue
table are external; the worker only talks to them through the abstract
interfaces defined here.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .preprocessing_models import EnrichmentContext, QualityStatus, TargetType


def hash_content(text: str) -> str:
    """Deterministic SHA-256 hex digest of chunk text."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


class QueueStatus(Enum):
    """Embedding queue item states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueuePriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class QueueItem:
    """Queue row as stored by the external queue table."""
    target_type: TargetType
    target_id: str
    status: QueueStatus = QueueStatus.PENDING
    priority: QueuePriority = QueuePriority.NORMAL
    attempts: int = 0
    error_message: Optional[str] = None
    processing_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    processing_metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_type': self.target_type.value,
            'target_id': self.target_id,
            'status': self.status.value,
            'priority': self.priority.value,
            'attempts': self.attempts,
            'error_message': self.error_message,
            'processing_metadata': self.processing_metadata,
            'created_at': self.created_at.isoformat(),
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }


@dataclass(frozen=True)
class ClaimedQueueItem:
    """Item leased to a worker by the claim step."""
    target_type: TargetType
    target_id: str
    processing_token: str
    lease_expires_at: datetime


@dataclass(frozen=True)
class ExistingChunkInfo:
    """Previously persisted chunk record used by the idempotency check."""
    chunk_index: int
    content_hash: str
    quality_status: QualityStatus


@dataclass(frozen=True)
class ChunkHashPair:
    text: str
    hash: str


@dataclass
class EmbeddingRecord:
    """Embedding row written to the external vector store."""
    target_type: TargetType
    target_id: str
    chunk_index: int
    chunk_total: int
    content_hash: str
    chunk_content: str
    embedding: List[float]
    quality_score: float
    quality_status: QualityStatus
    model: Optional[str] = None
    preprocessing_metadata: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class TargetContent:
    """Raw content plus enrichment context returned by a content source."""
    raw_content: str
    context: EnrichmentContext


@dataclass
class JudgeRequest:
    chunk_content: str
    title: Optional[str] = None
    category: Optional[str] = None
    target_type: Optional[TargetType] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire format for the judge endpoint."""
        payload: Dict[str, Any] = {'chunkContent': self.chunk_content}
        if self.title is not None:
            payload['title'] = self.title
        if self.category is not None:
            payload['category'] = self.category
        if self.target_type is not None:
            payload['targetType'] = self.target_type.value
        return payload


@dataclass
class JudgeResult:
    success: bool
    score: Optional[float] = None
    standalone: Optional[bool] = None
    reason: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> 'JudgeResult':
        score = data.get('score')
        return cls(
            success=bool(data.get('success', False)),
            score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
            standalone=data.get('standalone'),
            reason=data.get('reason'),
            model=data.get('model'),
            error=data.get('error'),
        )

    def to_metadata(self) -> Dict[str, Any]:
        return {
            'judge_model': self.model,
            'judge_reason': self.reason,
            'judge_standalone': self.standalone,
        }


@dataclass
class ChunkEmbeddingResult:
    chunk_index: int
    success: bool
    error: Optional[str] = None


@dataclass
class BatchEmbeddingResult:
    """Aggregate of one bounded fan-out over a target's chunks."""
    success_count: int
    failure_count: int
    last_error: Optional[str] = None
    results: List[ChunkEmbeddingResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------

class IContentSource(ABC):
    """Supplies raw text for a target from the content store."""

    @abstractmethod
    async def get_target_content(
        self, target_type: TargetType, target_id: str
    ) -> Optional[TargetContent]:
        """Return content and context, or None if not found / not eligible."""

    @abstractmethod
    async def count_content(self, target_type: TargetType) -> int:
        """Total eligible content items of a type (judge sampling population)."""


class IEmbeddingStore(ABC):
    """External embedding vector store."""

    @abstractmethod
    async def get_existing_chunks(
        self, target_type: TargetType, target_id: str
    ) -> List[ExistingChunkInfo]:
        """Stored chunk hashes ordered by chunk index."""

    @abstractmethod
    async def upsert_embedding(self, record: EmbeddingRecord) -> None:
        """Insert or replace the embedding at (target, chunk_index)."""

    @abstractmethod
    async def delete_stale_chunks(
        self, target_type: TargetType, target_id: str, valid_chunk_count: int
    ) -> int:
        """Delete chunk rows with index >= valid_chunk_count; return count."""

    @abstractmethod
    async def update_quality(
        self,
        target_type: TargetType,
        target_id: str,
        chunk_index: int,
        quality_score: float,
        quality_status: QualityStatus,
        preprocessing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Rewrite quality fields of one stored chunk."""

    @abstractmethod
    async def list_records(self) -> List[EmbeddingRecord]:
        """All stored records (monitoring)."""


class IQueueStore(ABC):
    """External embedding queue table."""

    @abstractmethod
    async def enqueue(
        self,
        target_type: TargetType,
        target_id: str,
        priority: QueuePriority = QueuePriority.NORMAL,
    ) -> QueueItem:
        """Create or reset a queue row to pending."""

    @abstractmethod
    async def claim_items(self, limit: int, lease_seconds: int) -> List[ClaimedQueueItem]:
        """Atomically lease pending or lease-expired items."""

    @abstractmethod
    async def update_status(
        self,
        target_type: TargetType,
        target_id: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Unconditional status update (legacy, no lease)."""

    @abstractmethod
    async def update_with_token(
        self,
        target_type: TargetType,
        target_id: str,
        processing_token: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Token-validated completion; False if the lease is no longer held."""

    @abstractmethod
    async def list_items(self, status: Optional[QueueStatus] = None) -> List[QueueItem]:
        """Queue rows, optionally filtered by status."""

    @abstractmethod
    async def reset_failed(self, max_attempts: int) -> int:
        """Move failed items with attempts < max_attempts back to pending."""

    @abstractmethod
    async def purge_failed(self) -> int:
        """Delete failed items; return count."""


class IConfigSource(ABC):
    """Dynamic preprocessing configuration document."""

    @abstractmethod
    async def load_preprocessing_config(self) -> Mapping[str, Any]:
        """Raw per-type override document."""


class IEmbeddingClient(ABC):
    """External embedding generation API."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> List[float]:
        """Embedding vector for one text."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier recorded with each embedding."""


class IJudgeClient(ABC):
    """External LLM quality judge."""

    @abstractmethod
    async def judge(self, request: JudgeRequest) -> JudgeResult:
        """Judge one chunk; must not raise."""

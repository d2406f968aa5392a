"""
SQLite-backed content, embedding and queue stores

Durable single-file implementations of the store interfaces so the CLI
can run the queue end to end without external services. All three share
one database file and one schema.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiosqlite

from ..models.embedding_models import (
    ClaimedQueueItem, EmbeddingRecord, ExistingChunkInfo, IContentSource,
    IEmbeddingStore, IQueueStore, QueueItem, QueuePriority, QueueStatus,
    TargetContent
)
from ..models.preprocessing_models import EnrichmentContext, QualityStatus, TargetType

logger = logging.getLogger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS content (
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        raw_content TEXT NOT NULL,
        parent_title TEXT,
        category TEXT,
        tags TEXT NOT NULL DEFAULT '[]',
        locale TEXT,
        PRIMARY KEY (target_type, target_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS embeddings (
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        chunk_index INTEGER NOT NULL,
        chunk_total INTEGER NOT NULL,
        content_hash TEXT NOT NULL,
        chunk_content TEXT NOT NULL,
        embedding TEXT NOT NULL,
        quality_score REAL NOT NULL,
        quality_status TEXT NOT NULL,
        model TEXT,
        preprocessing_metadata TEXT NOT NULL DEFAULT '{}',
        updated_at TEXT NOT NULL,
        PRIMARY KEY (target_type, target_id, chunk_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS embedding_queue (
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        priority TEXT NOT NULL DEFAULT 'normal',
        attempts INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        processing_token TEXT,
        lease_expires_at TEXT,
        processing_metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        processed_at TEXT,
        PRIMARY KEY (target_type, target_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_queue_status ON embedding_queue(status, priority, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_status ON embeddings(quality_status, updated_at)",
]

_PRIORITY_RANK = "CASE priority WHEN 'high' THEN 0 WHEN 'normal' THEN 1 ELSE 2 END"


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteDatabase:
    """Owns the database path and schema creation."""

    def __init__(
        self,
        db_path: str = "~/.embedprep/embedprep.db",
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db_path = Path(db_path).expanduser()
        self.clock = clock
        self._initialized = False

    async def initialize(self):
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

        self._initialized = True
        logger.info(f"SQLite store initialized at {self.db_path}")

    def connect(self) -> aiosqlite.Connection:
        # Autocommit mode; multi-statement updates open their own transaction
        return aiosqlite.connect(self.db_path, isolation_level=None)


class _SQLiteStoreBase:
    def __init__(self, database: SQLiteDatabase):
        self.database = database

    async def _ensure_initialized(self):
        await self.database.initialize()


class SQLiteContentSource(_SQLiteStoreBase, IContentSource):
    """Content table reader, plus a writer used by the CLI to load content."""

    async def add_content(
        self,
        target_type: TargetType,
        target_id: str,
        raw_content: str,
        context: Optional[EnrichmentContext] = None
    ) -> None:
        await self._ensure_initialized()
        context = context or EnrichmentContext(target_type=target_type, target_id=target_id)

        async with self.database.connect() as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO content
                (target_type, target_id, raw_content, parent_title, category, tags, locale)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    target_type.value, target_id, raw_content, context.parent_title,
                    context.category, json.dumps(list(context.tags)), context.locale,
                ),
            )

    async def get_target_content(
        self, target_type: TargetType, target_id: str
    ) -> Optional[TargetContent]:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            async with db.execute(
                """
                SELECT raw_content, parent_title, category, tags, locale
                FROM content WHERE target_type = ? AND target_id = ?
                """,
                (target_type.value, target_id),
            ) as cursor:
                row = await cursor.fetchone()

        if row is None:
            return None

        raw_content, parent_title, category, tags, locale = row
        return TargetContent(
            raw_content=raw_content,
            context=EnrichmentContext(
                target_type=target_type,
                target_id=target_id,
                parent_title=parent_title,
                category=category,
                tags=tuple(json.loads(tags or "[]")),
                locale=locale,
            ),
        )

    async def count_content(self, target_type: TargetType) -> int:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            async with db.execute(
                "SELECT COUNT(*) FROM content WHERE target_type = ?", (target_type.value,)
            ) as cursor:
                row = await cursor.fetchone()
        return row[0]


class SQLiteEmbeddingStore(_SQLiteStoreBase, IEmbeddingStore):
    """Embedding rows with the vector serialized as JSON."""

    async def get_existing_chunks(
        self, target_type: TargetType, target_id: str
    ) -> List[ExistingChunkInfo]:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            async with db.execute(
                """
                SELECT chunk_index, content_hash, quality_status FROM embeddings
                WHERE target_type = ? AND target_id = ?
                ORDER BY chunk_index
                """,
                (target_type.value, target_id),
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            ExistingChunkInfo(chunk_index=index, content_hash=content_hash,
                              quality_status=QualityStatus(status))
            for index, content_hash, status in rows
        ]

    async def upsert_embedding(self, record: EmbeddingRecord) -> None:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO embeddings
                (target_type, target_id, chunk_index, chunk_total, content_hash,
                 chunk_content, embedding, quality_score, quality_status, model,
                 preprocessing_metadata, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.target_type.value, record.target_id, record.chunk_index,
                    record.chunk_total, record.content_hash, record.chunk_content,
                    json.dumps(record.embedding), record.quality_score,
                    record.quality_status.value, record.model,
                    json.dumps(record.preprocessing_metadata),
                    _to_text(self.database.clock()),
                ),
            )

    async def delete_stale_chunks(
        self, target_type: TargetType, target_id: str, valid_chunk_count: int
    ) -> int:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            cursor = await db.execute(
                """
                DELETE FROM embeddings
                WHERE target_type = ? AND target_id = ? AND chunk_index >= ?
                """,
                (target_type.value, target_id, valid_chunk_count),
            )
            deleted = cursor.rowcount

        if deleted:
            logger.debug(f"Deleted {deleted} stale chunks for {target_type.value}:{target_id}")
        return deleted

    async def update_quality(
        self,
        target_type: TargetType,
        target_id: str,
        chunk_index: int,
        quality_score: float,
        quality_status: QualityStatus,
        preprocessing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            async with db.execute(
                """
                SELECT preprocessing_metadata FROM embeddings
                WHERE target_type = ? AND target_id = ? AND chunk_index = ?
                """,
                (target_type.value, target_id, chunk_index),
            ) as cursor:
                row = await cursor.fetchone()

            if row is None:
                await db.execute("ROLLBACK")
                return False

            metadata = json.loads(row[0] or "{}")
            metadata.update(preprocessing_metadata or {})

            await db.execute(
                """
                UPDATE embeddings
                SET quality_score = ?, quality_status = ?, preprocessing_metadata = ?, updated_at = ?
                WHERE target_type = ? AND target_id = ? AND chunk_index = ?
                """,
                (
                    quality_score, quality_status.value, json.dumps(metadata),
                    _to_text(self.database.clock()),
                    target_type.value, target_id, chunk_index,
                ),
            )
            await db.execute("COMMIT")
        return True

    async def list_records(self) -> List[EmbeddingRecord]:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            async with db.execute(
                """
                SELECT target_type, target_id, chunk_index, chunk_total, content_hash,
                       chunk_content, embedding, quality_score, quality_status, model,
                       preprocessing_metadata, updated_at
                FROM embeddings ORDER BY target_type, target_id, chunk_index
                """
            ) as cursor:
                rows = await cursor.fetchall()

        return [
            EmbeddingRecord(
                target_type=TargetType(row[0]),
                target_id=row[1],
                chunk_index=row[2],
                chunk_total=row[3],
                content_hash=row[4],
                chunk_content=row[5],
                embedding=json.loads(row[6]),
                quality_score=row[7],
                quality_status=QualityStatus(row[8]),
                model=row[9],
                preprocessing_metadata=json.loads(row[10] or "{}"),
                updated_at=_from_text(row[11]),
            )
            for row in rows
        ]


class SQLiteQueueStore(_SQLiteStoreBase, IQueueStore):
    """
    Embedding queue table with lease-based claiming.

    Claims run inside a write transaction so two workers sharing the file
    never lease the same row.
    """

    _COLUMNS = (
        "target_type, target_id, status, priority, attempts, error_message, "
        "processing_token, lease_expires_at, processing_metadata, created_at, processed_at"
    )

    def _row_to_item(self, row: Any) -> QueueItem:
        return QueueItem(
            target_type=TargetType(row[0]),
            target_id=row[1],
            status=QueueStatus(row[2]),
            priority=QueuePriority(row[3]),
            attempts=row[4],
            error_message=row[5],
            processing_token=row[6],
            lease_expires_at=_from_text(row[7]),
            processing_metadata=json.loads(row[8] or "{}"),
            created_at=_from_text(row[9]),
            processed_at=_from_text(row[10]),
        )

    async def enqueue(
        self,
        target_type: TargetType,
        target_id: str,
        priority: QueuePriority = QueuePriority.NORMAL,
    ) -> QueueItem:
        await self._ensure_initialized()
        item = QueueItem(
            target_type=target_type,
            target_id=target_id,
            priority=priority,
            created_at=self.database.clock(),
        )

        async with self.database.connect() as db:
            await db.execute(
                f"""
                INSERT OR REPLACE INTO embedding_queue ({self._COLUMNS})
                VALUES (?, ?, ?, ?, 0, NULL, NULL, NULL, '{{}}', ?, NULL)
                """,
                (
                    target_type.value, target_id, item.status.value,
                    priority.value, _to_text(item.created_at),
                ),
            )
        return item

    async def claim_items(self, limit: int, lease_seconds: int) -> List[ClaimedQueueItem]:
        await self._ensure_initialized()
        now = self.database.clock()
        lease_expires_at = now + timedelta(seconds=lease_seconds)
        claimed: List[ClaimedQueueItem] = []

        async with self.database.connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                async with db.execute(
                    f"""
                    SELECT target_type, target_id FROM embedding_queue
                    WHERE status = 'pending'
                       OR (status = 'processing' AND lease_expires_at <= ?)
                    ORDER BY {_PRIORITY_RANK}, created_at
                    LIMIT ?
                    """,
                    (_to_text(now), limit),
                ) as cursor:
                    rows = await cursor.fetchall()

                for target_type, target_id in rows:
                    token = str(uuid.uuid4())
                    await db.execute(
                        """
                        UPDATE embedding_queue
                        SET status = 'processing', processing_token = ?,
                            lease_expires_at = ?, attempts = attempts + 1
                        WHERE target_type = ? AND target_id = ?
                        """,
                        (token, _to_text(lease_expires_at), target_type, target_id),
                    )
                    claimed.append(ClaimedQueueItem(
                        target_type=TargetType(target_type),
                        target_id=target_id,
                        processing_token=token,
                        lease_expires_at=lease_expires_at,
                    ))

                await db.execute("COMMIT")
            except Exception:
                await db.execute("ROLLBACK")
                raise

        return claimed

    def _finish_params(
        self,
        status: QueueStatus,
        error_message: Optional[str],
        processing_metadata: Optional[Dict[str, Any]]
    ) -> tuple:
        terminal = status in (QueueStatus.COMPLETED, QueueStatus.FAILED)
        return (
            status.value,
            error_message,
            json.dumps(processing_metadata) if processing_metadata is not None else None,
            _to_text(self.database.clock()) if terminal else None,
            1 if terminal else 0,
            1 if terminal else 0,
        )

    _FINISH_SET = """
        SET status = ?, error_message = ?,
            processing_metadata = COALESCE(?, processing_metadata),
            processed_at = COALESCE(?, processed_at),
            processing_token = CASE WHEN ? THEN NULL ELSE processing_token END,
            lease_expires_at = CASE WHEN ? THEN NULL ELSE lease_expires_at END
    """

    async def update_status(
        self,
        target_type: TargetType,
        target_id: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            await db.execute(
                f"UPDATE embedding_queue {self._FINISH_SET} WHERE target_type = ? AND target_id = ?",
                self._finish_params(status, error_message, processing_metadata)
                + (target_type.value, target_id),
            )

    async def update_with_token(
        self,
        target_type: TargetType,
        target_id: str,
        processing_token: str,
        status: QueueStatus,
        error_message: Optional[str] = None,
        processing_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            cursor = await db.execute(
                f"""
                UPDATE embedding_queue {self._FINISH_SET}
                WHERE target_type = ? AND target_id = ?
                  AND status = 'processing' AND processing_token = ?
                """,
                self._finish_params(status, error_message, processing_metadata)
                + (target_type.value, target_id, processing_token),
            )
            return cursor.rowcount > 0

    async def list_items(self, status: Optional[QueueStatus] = None) -> List[QueueItem]:
        await self._ensure_initialized()
        query = f"SELECT {self._COLUMNS} FROM embedding_queue"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        query += " ORDER BY created_at"

        async with self.database.connect() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        return [self._row_to_item(row) for row in rows]

    async def reset_failed(self, max_attempts: int) -> int:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            cursor = await db.execute(
                """
                UPDATE embedding_queue
                SET status = 'pending', error_message = NULL, processed_at = NULL
                WHERE status = 'failed' AND attempts < ?
                """,
                (max_attempts,),
            )
            return cursor.rowcount

    async def purge_failed(self) -> int:
        await self._ensure_initialized()

        async with self.database.connect() as db:
            cursor = await db.execute("DELETE FROM embedding_queue WHERE status = 'failed'")
            return cursor.rowcount

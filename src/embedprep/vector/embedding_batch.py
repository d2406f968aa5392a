"""
Embedding Batch Generator

Embeds the qualified chunks of one target with a bounded number of
in-flight API calls and upserts each vector as soon as it arrives.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from ..models.embedding_models import (
    BatchEmbeddingResult, ChunkEmbeddingResult, EmbeddingRecord,
    IEmbeddingClient, IEmbeddingStore, hash_content
)
from ..models.preprocessing_models import QualifiedChunk, TargetType

logger = logging.getLogger(__name__)


DEFAULT_EMBEDDING_CONCURRENCY = 2


class EmbeddingBatchGenerator:
    """
    Bounded fan-out over a target's chunks.

    A chunk failure never aborts its siblings; the batch result reports
    success and failure counts plus the last error seen. Retrying is left
    to the embedding client.
    """

    def __init__(
        self,
        client: IEmbeddingClient,
        store: IEmbeddingStore,
        concurrency: int = DEFAULT_EMBEDDING_CONCURRENCY
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.client = client
        self.store = store
        self.concurrency = concurrency

    async def generate(
        self,
        chunks: Sequence[QualifiedChunk],
        target_type: TargetType,
        target_id: str,
        log_prefix: str = "[EmbeddingBatch]",
        preprocessing_metadata: Optional[Dict[str, Any]] = None
    ) -> BatchEmbeddingResult:
        """
        Embed and persist every chunk.

        Args:
            chunks: Qualified chunks to embed, in chunk order
            target_type: Type of the owning content
            target_id: Identifier of the owning content
            log_prefix: Prefix for per-chunk log lines
            preprocessing_metadata: Stored alongside each record

        Returns:
            BatchEmbeddingResult with per-chunk outcomes in chunk order
        """
        if not chunks:
            return BatchEmbeddingResult(success_count=0, failure_count=0)

        semaphore = asyncio.Semaphore(self.concurrency)
        chunk_total = len(chunks)
        start_time = time.time()

        async def embed_one(chunk: QualifiedChunk) -> ChunkEmbeddingResult:
            async with semaphore:
                try:
                    embedding = await self.client.generate_embedding(chunk.text)
                    record = EmbeddingRecord(
                        target_type=target_type,
                        target_id=target_id,
                        chunk_index=chunk.index,
                        chunk_total=chunk_total,
                        content_hash=hash_content(chunk.text),
                        chunk_content=chunk.text,
                        embedding=embedding,
                        quality_score=chunk.quality_score,
                        quality_status=chunk.quality_status,
                        model=self.client.model,
                        preprocessing_metadata=dict(preprocessing_metadata or {}),
                    )
                    await self.store.upsert_embedding(record)
                    return ChunkEmbeddingResult(chunk_index=chunk.index, success=True)
                except Exception as e:
                    logger.error(f"{log_prefix} Chunk {chunk.index} embedding failed: {e}")
                    return ChunkEmbeddingResult(chunk_index=chunk.index, success=False, error=str(e))

        results: List[ChunkEmbeddingResult] = list(
            await asyncio.gather(*(embed_one(chunk) for chunk in chunks))
        )

        success_count = sum(1 for r in results if r.success)
        failures = [r for r in results if not r.success]

        logger.debug(
            f"{log_prefix} Embedded {success_count}/{chunk_total} chunks "
            f"in {time.time() - start_time:.2f}s"
        )

        return BatchEmbeddingResult(
            success_count=success_count,
            failure_count=len(failures),
            last_error=failures[-1].error if failures else None,
            results=results,
        )

"""
Queue Worker Use Case

Single entry point for preprocessing and embedding one queue item. Every
terminal state is written back through the same completion path so a
lease is never left behind, and no exception escapes `run`.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from ..core.config_manager import PreprocessingConfigManager
from ..models.embedding_models import (
    IContentSource, IEmbeddingStore, IQueueStore, QueueStatus
)
from ..models.errors import ProcessingOutcome
from ..models.preprocessing_models import (
    EnrichmentContext, PreprocessingInput, QualifiedChunk, TargetType
)
from ..preprocessing.idempotency import compute_chunk_hashes, is_content_unchanged
from ..preprocessing.judge_sampler import JudgeSampler
from ..preprocessing.pipeline import preprocess_and_filter
from ..vector.embedding_batch import EmbeddingBatchGenerator

logger = logging.getLogger(__name__)


CONTENT_NOT_FOUND_MESSAGE = "Content not found or not eligible"
ALL_CHUNKS_FAILED_MESSAGE = "All chunks failed"


@dataclass
class PreprocessUseCaseInput:
    """One queue item to process."""
    target_type: TargetType
    target_id: str
    source: str = "manual"  # cron | manual | webhook
    run_id: Optional[str] = None
    # Lease token from the claim step; absent means legacy status-flip mode
    processing_token: Optional[str] = None


@dataclass
class PreprocessUseCaseOutput:
    success: bool
    chunks_total: int
    chunks_qualified: int
    chunks_embedded: int
    duration_ms: int
    outcome: ProcessingOutcome
    error: Optional[str] = None
    skipped_idempotent: bool = False
    chunks_judged: int = 0
    lease_lost: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'outcome': self.outcome.value,
            'chunks_total': self.chunks_total,
            'chunks_qualified': self.chunks_qualified,
            'chunks_embedded': self.chunks_embedded,
            'duration_ms': self.duration_ms,
            'error': self.error,
            'skipped_idempotent': self.skipped_idempotent,
            'chunks_judged': self.chunks_judged,
            'lease_lost': self.lease_lost,
        }


@dataclass
class _RunState:
    """Per-invocation bookkeeping shared by the completion helpers."""
    input: PreprocessUseCaseInput
    log_prefix: str
    start_time: float = field(default_factory=time.time)
    lease_lost: bool = False

    @property
    def label(self) -> str:
        return f"{self.input.target_type.value}/{self.input.target_id}"

    def duration_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)


class PreprocessUseCase:
    """
    Clean, chunk, gate, embed and persist one content item.

    Flow:
    1. Mark the item processing (legacy mode) or rely on the claimed lease
    2. Resolve the per-type config override
    3. Fetch raw content; missing content fails the item
    4. Preprocess and drop failed chunks
    5. Skip embedding when the stored chunk hashes are unchanged
    6. Embed with bounded concurrency, then complete or fail the item
    7. Optionally have sampled chunks re-scored by the judge
    """

    def __init__(
        self,
        config_manager: PreprocessingConfigManager,
        content_source: IContentSource,
        embedding_store: IEmbeddingStore,
        queue_store: IQueueStore,
        batch_generator: EmbeddingBatchGenerator,
        judge_sampler: Optional[JudgeSampler] = None
    ):
        self.config_manager = config_manager
        self.content_source = content_source
        self.embedding_store = embedding_store
        self.queue_store = queue_store
        self.batch_generator = batch_generator
        self.judge_sampler = judge_sampler

    async def run(self, input: PreprocessUseCaseInput) -> PreprocessUseCaseOutput:
        """Process one item; always returns, never raises."""
        state = _RunState(
            input=input,
            log_prefix=f"[PreprocessUseCase:{input.run_id or 'no-run-id'}]",
        )

        try:
            return await self._process(state)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(
                f"{state.log_prefix} {state.label} unexpected error "
                f"({state.duration_ms()}ms, source={input.source}): {error_message}",
                exc_info=True,
            )
            await self._complete_safely(state, QueueStatus.FAILED, error_message)
            return self._output(
                state, ProcessingOutcome.UNEXPECTED_EXCEPTION, 0, 0, 0, error=error_message
            )

    async def _process(self, state: _RunState) -> PreprocessUseCaseOutput:
        input = state.input
        target_type, target_id = input.target_type, input.target_id

        if not input.processing_token:
            await self.queue_store.update_status(target_type, target_id, QueueStatus.PROCESSING)

        override = await self.config_manager.get_override_for_type(target_type)

        content = await self.content_source.get_target_content(target_type, target_id)
        if content is None:
            await self._complete(state, QueueStatus.FAILED, CONTENT_NOT_FOUND_MESSAGE)
            logger.info(
                f"{state.log_prefix} {state.label} failed: content not found "
                f"({state.duration_ms()}ms, source={input.source})"
            )
            return self._output(
                state, ProcessingOutcome.CONTENT_NOT_FOUND, 0, 0, 0, error="Content not found"
            )

        if not content.raw_content or not content.raw_content.strip():
            await self._complete(state, QueueStatus.COMPLETED)
            logger.info(
                f"{state.log_prefix} {state.label} completed: empty content "
                f"({state.duration_ms()}ms, source={input.source})"
            )
            return self._output(state, ProcessingOutcome.EMPTY_CONTENT, 0, 0, 0)

        result = preprocess_and_filter(
            PreprocessingInput(
                target_type=target_type,
                raw_content=content.raw_content,
                context=content.context,
            ),
            override,
        )
        # Stored chunk indices are contiguous over the embeddable chunks
        chunks = [replace(chunk, index=i) for i, chunk in enumerate(result.chunks)]
        chunks_total = result.metadata.chunking.total_chunks
        chunks_qualified = len(chunks)

        if chunks_qualified == 0:
            await self._complete(state, QueueStatus.COMPLETED)
            logger.info(
                f"{state.log_prefix} {state.label} completed: no qualified chunks "
                f"(total={chunks_total}, {state.duration_ms()}ms, source={input.source})"
            )
            return self._output(state, ProcessingOutcome.NO_QUALIFIED_CHUNKS, chunks_total, 0, 0)

        existing = await self.embedding_store.get_existing_chunks(target_type, target_id)
        if is_content_unchanged(existing, compute_chunk_hashes(chunks)):
            await self._complete(
                state, QueueStatus.COMPLETED, metadata={'skipped_reason': 'idempotent'}
            )
            logger.info(
                f"{state.log_prefix} {state.label} skipped: idempotent "
                f"({chunks_qualified} chunks unchanged, {state.duration_ms()}ms, source={input.source})"
            )
            return self._output(
                state, ProcessingOutcome.IDEMPOTENT_SKIP, chunks_total, chunks_qualified,
                chunks_qualified, skipped_idempotent=True
            )

        batch = await self.batch_generator.generate(
            chunks, target_type, target_id, state.log_prefix,
            preprocessing_metadata=result.metadata.to_dict(),
        )
        success_count = batch.success_count

        if success_count == chunks_qualified:
            stale_deleted = await self.embedding_store.delete_stale_chunks(
                target_type, target_id, chunks_qualified
            )
            if stale_deleted > 0:
                logger.info(f"{state.log_prefix} {state.label} deleted {stale_deleted} stale chunks")

            await self._complete(state, QueueStatus.COMPLETED)
            logger.info(
                f"{state.log_prefix} {state.label} completed: {success_count}/{chunks_qualified} "
                f"chunks embedded (total={chunks_total}, {state.duration_ms()}ms, source={input.source})"
            )
            judged = await self._judge(state, chunks, content.context)
            return self._output(
                state, ProcessingOutcome.COMPLETED, chunks_total, chunks_qualified,
                success_count, chunks_judged=judged
            )

        if success_count > 0:
            # Lenient: a partially embedded item is still completed
            await self._complete(state, QueueStatus.COMPLETED)
            logger.warning(
                f"{state.log_prefix} {state.label} partial: {success_count}/{chunks_qualified} "
                f"chunks embedded (total={chunks_total}, {state.duration_ms()}ms, source={input.source})"
            )
            embedded = {r.chunk_index for r in batch.results if r.success}
            judged = await self._judge(
                state, [c for c in chunks if c.index in embedded], content.context
            )
            return self._output(
                state, ProcessingOutcome.PARTIAL_CHUNKS_FAILED, chunks_total, chunks_qualified,
                success_count, error=f"Partial: {success_count}/{chunks_qualified} chunks generated",
                chunks_judged=judged
            )

        error_message = batch.last_error or ALL_CHUNKS_FAILED_MESSAGE
        await self._complete(state, QueueStatus.FAILED, error_message)
        logger.error(
            f"{state.log_prefix} {state.label} failed: 0/{chunks_qualified} chunks embedded "
            f"({state.duration_ms()}ms, source={input.source})"
        )
        return self._output(
            state, ProcessingOutcome.ALL_CHUNKS_FAILED, chunks_total, chunks_qualified, 0,
            error=error_message
        )

    async def _judge(
        self,
        state: _RunState,
        chunks: List[QualifiedChunk],
        context: Optional[EnrichmentContext]
    ) -> int:
        """Re-score a sampled item's embedded chunks; returns the number applied."""
        if self.judge_sampler is None or not chunks:
            return 0

        input = state.input
        context = context or EnrichmentContext(target_type=input.target_type, target_id=input.target_id)

        try:
            population = await self.content_source.count_content(input.target_type)
            is_sampled = self.judge_sampler.should_sample(population)
            batch = await self.judge_sampler.judge_chunks_for_content(chunks, context, is_sampled)

            for judged in batch.results:
                if not judged.applied:
                    continue
                await self.embedding_store.update_quality(
                    input.target_type,
                    input.target_id,
                    judged.chunk.index,
                    judged.chunk.quality_score,
                    judged.chunk.quality_status,
                    judged.result.to_metadata(),
                )
        except Exception as e:
            # Judging is advisory; the item has already been completed
            logger.warning(f"{state.log_prefix} {state.label} judge step failed: {e}")
            return 0

        if batch.judged:
            logger.info(
                f"{state.log_prefix} {state.label} judged {batch.applied_count}/{len(batch.results)} chunks"
            )
        return batch.applied_count

    async def _complete(
        self,
        state: _RunState,
        status: QueueStatus,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        input = state.input
        # A terminal status replaces any annotation left by an earlier run
        metadata = metadata or {}

        if input.processing_token:
            updated = await self.queue_store.update_with_token(
                input.target_type, input.target_id, input.processing_token, status,
                error_message=error_message, processing_metadata=metadata,
            )
            if not updated:
                state.lease_lost = True
                logger.warning(
                    f"{state.log_prefix} {state.label} lease no longer held; "
                    f"{status.value} status not recorded"
                )
            return updated

        await self.queue_store.update_status(
            input.target_type, input.target_id, status,
            error_message=error_message, processing_metadata=metadata,
        )
        return True

    async def _complete_safely(
        self,
        state: _RunState,
        status: QueueStatus,
        error_message: Optional[str] = None
    ) -> None:
        try:
            await self._complete(state, status, error_message)
        except Exception as e:
            logger.error(f"{state.log_prefix} {state.label} failed to record {status.value} status: {e}")

    def _output(
        self,
        state: _RunState,
        outcome: ProcessingOutcome,
        chunks_total: int,
        chunks_qualified: int,
        chunks_embedded: int,
        error: Optional[str] = None,
        skipped_idempotent: bool = False,
        chunks_judged: int = 0
    ) -> PreprocessUseCaseOutput:
        return PreprocessUseCaseOutput(
            success=outcome.is_success,
            chunks_total=chunks_total,
            chunks_qualified=chunks_qualified,
            chunks_embedded=chunks_embedded,
            duration_ms=state.duration_ms(),
            outcome=outcome,
            error=error,
            skipped_idempotent=skipped_idempotent,
            chunks_judged=chunks_judged,
            lease_lost=state.lease_lost,
        )

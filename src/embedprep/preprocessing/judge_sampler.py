"""
Judge Sampler - LLM-judge sampling and score application.

Sampling is decided per parent content item. Once an item is selected every
non-failed chunk is judged, and the judge score replaces the heuristic
score under stricter thresholds than the static quality gate.
"""

import dataclasses
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.embedding_models import IJudgeClient, JudgeRequest, JudgeResult
from ..models.preprocessing_models import EnrichmentContext, QualifiedChunk, QualityStatus

logger = logging.getLogger(__name__)


DEFAULT_SAMPLE_RATE = 0.2
MIN_CONTENT_FOR_SAMPLING = 50
JUDGE_PASSED_THRESHOLD = 0.7
JUDGE_INCOMPLETE_THRESHOLD = 0.5


def status_from_judge_score(score: float) -> QualityStatus:
    if score >= JUDGE_PASSED_THRESHOLD:
        return QualityStatus.PASSED
    if score >= JUDGE_INCOMPLETE_THRESHOLD:
        return QualityStatus.INCOMPLETE
    return QualityStatus.FAILED


@dataclass
class JudgedChunk:
    """Judge outcome for one chunk, paired with the chunk it was applied to."""
    chunk: QualifiedChunk
    result: JudgeResult

    @property
    def applied(self) -> bool:
        return self.result.success and self.result.score is not None


@dataclass
class JudgeBatchResult:
    chunks: List[QualifiedChunk]
    judged: bool
    results: List[JudgedChunk] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(1 for judged in self.results if judged.applied)


class JudgeSampler:
    """
    Decides which content is judged and applies judge scores to chunks.

    The random source is injected so sampling can be made deterministic.
    """

    def __init__(
        self,
        client: IJudgeClient,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        min_population: int = MIN_CONTENT_FOR_SAMPLING,
        rng: Optional[random.Random] = None
    ):
        if not 0.0 <= sample_rate <= 1.0:
            raise ValueError("sample_rate must be within 0-1")

        self.client = client
        self.sample_rate = sample_rate
        self.min_population = min_population
        self.rng = rng or random.Random()

    def should_sample(self, total_content: int) -> bool:
        """Judge everything below the population floor, otherwise sample."""
        if total_content < self.min_population:
            return True
        return self.rng.random() < self.sample_rate

    async def judge_chunks_for_content(
        self,
        chunks: List[QualifiedChunk],
        context: EnrichmentContext,
        is_sampled: bool
    ) -> JudgeBatchResult:
        """
        Judge every non-failed chunk of one content item.

        Args:
            chunks: Qualified chunks of the item
            context: Parent context used in the judge prompt
            is_sampled: Sampling decision for the item

        Returns:
            New chunk list with judge scores applied where the judge succeeded
        """
        if not is_sampled or not chunks:
            return JudgeBatchResult(chunks=list(chunks), judged=False)

        updated: List[QualifiedChunk] = []
        results: List[JudgedChunk] = []

        for chunk in chunks:
            if chunk.quality_status == QualityStatus.FAILED:
                updated.append(chunk)
                continue

            request = JudgeRequest(
                chunk_content=chunk.text,
                title=context.parent_title,
                category=context.category,
                target_type=context.target_type,
            )
            result = await self.client.judge(request)

            if result.success and result.score is not None:
                chunk = dataclasses.replace(
                    chunk,
                    quality_score=result.score,
                    quality_status=status_from_judge_score(result.score),
                )
            else:
                logger.debug(
                    f"Judge skipped chunk {chunk.index} of "
                    f"{context.target_type.value}/{context.target_id}: {result.error}"
                )

            updated.append(chunk)
            results.append(JudgedChunk(chunk=chunk, result=result))

        return JudgeBatchResult(chunks=updated, judged=True, results=results)

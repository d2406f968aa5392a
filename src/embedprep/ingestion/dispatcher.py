"""
Queue dispatcher: claim leased items and run the worker on each.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.embedding_models import IQueueStore
from .queue_worker import PreprocessUseCase, PreprocessUseCaseInput, PreprocessUseCaseOutput

logger = logging.getLogger(__name__)


DEFAULT_CLAIM_LIMIT = 5
DEFAULT_LEASE_SECONDS = 120


@dataclass
class DispatchSummary:
    """Result of one dispatch cycle."""
    run_id: str
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: int = 0
    results: List[PreprocessUseCaseOutput] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'claimed': self.claimed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'duration_ms': self.duration_ms,
        }


class QueueDispatcher:
    """
    Claims up to `claim_limit` items and processes them concurrently.

    Each claimed item carries its own lease token, so items never share
    state and one failure does not affect the others.
    """

    def __init__(
        self,
        queue_store: IQueueStore,
        use_case: PreprocessUseCase,
        claim_limit: int = DEFAULT_CLAIM_LIMIT,
        lease_seconds: int = DEFAULT_LEASE_SECONDS
    ):
        self.queue_store = queue_store
        self.use_case = use_case
        self.claim_limit = claim_limit
        self.lease_seconds = lease_seconds

    async def dispatch(self, source: str = "cron", run_id: Optional[str] = None) -> DispatchSummary:
        run_id = run_id or uuid.uuid4().hex[:8]
        start_time = time.time()
        summary = DispatchSummary(run_id=run_id)

        claimed = await self.queue_store.claim_items(self.claim_limit, self.lease_seconds)
        summary.claimed = len(claimed)

        if not claimed:
            logger.debug(f"[Dispatcher:{run_id}] No items to process")
            return summary

        logger.info(f"[Dispatcher:{run_id}] Claimed {len(claimed)} items (source={source})")

        outputs = await asyncio.gather(*(
            self.use_case.run(PreprocessUseCaseInput(
                target_type=item.target_type,
                target_id=item.target_id,
                source=source,
                run_id=run_id,
                processing_token=item.processing_token,
            ))
            for item in claimed
        ))

        summary.results = list(outputs)
        summary.succeeded = sum(1 for output in outputs if output.success)
        summary.failed = summary.claimed - summary.succeeded
        summary.duration_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[Dispatcher:{run_id}] Processed {summary.claimed} items: "
            f"{summary.succeeded} succeeded, {summary.failed} failed ({summary.duration_ms}ms)"
        )
        return summary

"""
Integration tests for QueueDispatcher claiming and leased processing.
"""

import pytest

from embedprep.ingestion.dispatcher import QueueDispatcher
from embedprep.models.embedding_models import QueuePriority, QueueStatus
from embedprep.models.errors import ProcessingOutcome
from embedprep.models.preprocessing_models import TargetType

from tests.helpers import make_post

pytestmark = pytest.mark.integration

POST = TargetType.POST


class TestQueueDispatcher:

    async def test_empty_queue(self, build_use_case, queue_store):
        summary = await QueueDispatcher(queue_store, build_use_case()).dispatch(run_id="r1")

        assert summary.claimed == 0
        assert summary.results == []
        assert summary.to_dict()['run_id'] == "r1"

    async def test_processes_claimed_items(self, build_use_case, content_source, queue_store):
        for target_id in ("1", "2"):
            content_source.add(POST, target_id, make_post("alpha", f"beta{target_id}"))
            await queue_store.enqueue(POST, target_id)
        await queue_store.enqueue(POST, "missing")

        summary = await QueueDispatcher(queue_store, build_use_case()).dispatch(source="cron")

        assert summary.claimed == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        outcomes = sorted(output.outcome.value for output in summary.results)
        assert outcomes == sorted([
            ProcessingOutcome.COMPLETED.value,
            ProcessingOutcome.COMPLETED.value,
            ProcessingOutcome.CONTENT_NOT_FOUND.value,
        ])
        assert not await queue_store.list_items(QueueStatus.PROCESSING)
        assert len(await queue_store.list_items(QueueStatus.FAILED)) == 1

    async def test_claim_limit_and_priority(self, build_use_case, content_source, queue_store):
        for target_id, priority in (("low", QueuePriority.LOW), ("normal", QueuePriority.NORMAL),
                                    ("high", QueuePriority.HIGH)):
            content_source.add(POST, target_id, make_post(target_id))
            await queue_store.enqueue(POST, target_id, priority)

        dispatcher = QueueDispatcher(queue_store, build_use_case(), claim_limit=2)
        summary = await dispatcher.dispatch()

        assert summary.claimed == 2
        [pending] = await queue_store.list_items(QueueStatus.PENDING)
        assert pending.target_id == "low"

    async def test_completed_items_are_not_reclaimed(self, build_use_case, content_source, queue_store):
        content_source.add(POST, "1", make_post("alpha"))
        await queue_store.enqueue(POST, "1")
        dispatcher = QueueDispatcher(queue_store, build_use_case())

        first = await dispatcher.dispatch()
        second = await dispatcher.dispatch()

        assert first.claimed == 1
        assert second.claimed == 0

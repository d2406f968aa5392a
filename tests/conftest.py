"""
Shared fixtures: in-memory stores, fake collaborators and a use case factory.
"""

import pytest

from embedprep.core.config_manager import PreprocessingConfigManager, StaticConfigSource
from embedprep.ingestion.queue_worker import PreprocessUseCase
from embedprep.storage.memory_store import (
    InMemoryContentSource, InMemoryEmbeddingStore, InMemoryQueueStore
)
from embedprep.vector.embedding_batch import EmbeddingBatchGenerator

from tests.helpers import FakeEmbeddingClient


@pytest.fixture
def content_source():
    return InMemoryContentSource()


@pytest.fixture
def embedding_store():
    return InMemoryEmbeddingStore()


@pytest.fixture
def queue_store():
    return InMemoryQueueStore()


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def config_manager():
    return PreprocessingConfigManager(StaticConfigSource())


@pytest.fixture
def build_use_case(content_source, embedding_store, queue_store, config_manager):
    """Factory so each test can choose its embedding client, judge and config."""

    def _build(client=None, judge_sampler=None, manager=None, concurrency=2):
        client = client or FakeEmbeddingClient()
        return PreprocessUseCase(
            config_manager=manager or config_manager,
            content_source=content_source,
            embedding_store=embedding_store,
            queue_store=queue_store,
            batch_generator=EmbeddingBatchGenerator(client, embedding_store, concurrency),
            judge_sampler=judge_sampler,
        )

    return _build

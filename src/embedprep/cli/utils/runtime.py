"""
Component wiring for CLI commands
"""

import logging
import random
from pathlib import Path
from typing import Optional

from ...core.config_manager import PreprocessingConfigManager
from ...core.environment_manager import EnvironmentManager
from ...core.yaml_config import YAMLConfigSource
from ...ingestion.dispatcher import QueueDispatcher
from ...ingestion.monitoring import QueueMonitor
from ...ingestion.queue_worker import PreprocessUseCase
from ...integration.embedding_client import EmbeddingAPIClient, EmbeddingClientConfig
from ...integration.judge_client import HTTPJudgeClient
from ...models.config_models import EmbedPrepSettings
from ...preprocessing.judge_sampler import JudgeSampler
from ...storage.sqlite_store import (
    SQLiteContentSource, SQLiteDatabase, SQLiteEmbeddingStore, SQLiteQueueStore
)
from ...vector.embedding_batch import EmbeddingBatchGenerator

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_PATH = "~/.embedprep/embedprep.db"


def load_settings() -> EmbedPrepSettings:
    return EnvironmentManager().load_settings()


def build_config_manager(
    settings: EmbedPrepSettings,
    config_path: Optional[str] = None
) -> PreprocessingConfigManager:
    path = config_path or settings.config_path
    source = YAMLConfigSource(Path(path)) if path else None
    return PreprocessingConfigManager(source=source, cache_ttl=settings.config_cache_ttl)


class Runtime:
    """SQLite-backed stores plus the HTTP clients, opened for one command."""

    def __init__(self, settings: EmbedPrepSettings, config_path: Optional[str] = None):
        self.settings = settings
        self.database = SQLiteDatabase(settings.database_path or DEFAULT_DATABASE_PATH)
        self.content_source = SQLiteContentSource(self.database)
        self.embedding_store = SQLiteEmbeddingStore(self.database)
        self.queue_store = SQLiteQueueStore(self.database)
        self.config_path = config_path or settings.config_path
        self.config_manager = build_config_manager(settings, config_path)
        self.monitor = QueueMonitor(self.queue_store, self.embedding_store)

        self.embedding_client = EmbeddingAPIClient(EmbeddingClientConfig(
            api_key=settings.embedding_api_key,
            model=settings.embedding_model,
            base_url=settings.embedding_api_url,
            dimensions=settings.embedding_dimensions,
            timeout=settings.http_timeout,
            max_retries=settings.http_max_retries,
        ))
        self.judge_client: Optional[HTTPJudgeClient] = None
        if settings.judge_enabled:
            self.judge_client = HTTPJudgeClient(
                settings.judge_url, settings.judge_api_key, timeout=settings.http_timeout
            )

    def build_dispatcher(self, claim_limit: int, lease_seconds: int) -> QueueDispatcher:
        judge_sampler = None
        if self.judge_client is not None:
            judge_sampler = JudgeSampler(
                self.judge_client,
                sample_rate=self.settings.judge_sample_rate,
                min_population=self.settings.judge_min_population,
                rng=random.Random(),
            )

        use_case = PreprocessUseCase(
            config_manager=self.config_manager,
            content_source=self.content_source,
            embedding_store=self.embedding_store,
            queue_store=self.queue_store,
            batch_generator=EmbeddingBatchGenerator(
                self.embedding_client, self.embedding_store, self.settings.embedding_concurrency
            ),
            judge_sampler=judge_sampler,
        )
        return QueueDispatcher(self.queue_store, use_case, claim_limit, lease_seconds)

    def watch_config(self) -> None:
        """Invalidate cached overrides whenever the YAML document changes."""
        if self.config_path:
            self.config_manager.watch_file(Path(self.config_path))

    async def __aenter__(self) -> "Runtime":
        await self.database.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.config_manager.stop_watching()
        await self.embedding_client.close()
        if self.judge_client is not None:
            await self.judge_client.close()

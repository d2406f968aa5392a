"""
Preprocessing configuration resolution with a TTL-cached dynamic source.
"""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from ..models.config_models import TypeOverrideModel
from ..models.embedding_models import IConfigSource
from ..models.errors import ConfigurationError
from ..models.preprocessing_models import ConfigOverride, TargetType, TypePreprocessingConfig
from ..preprocessing.pipeline import merge_config_override
from ..preprocessing.type_configs import get_type_config
from .yaml_config import ConfigFileWatcher

logger = logging.getLogger(__name__)


DEFAULT_CACHE_TTL = 60.0


class PreprocessingConfigManager:
    """
    Resolves per-type configuration: compiled defaults plus validated overrides.

    The override document is fetched from the source at most once per TTL.
    A failing source or an invalid section falls back to compiled defaults
    for the affected types; compiled defaults are never modified.
    """

    def __init__(
        self,
        source: Optional[IConfigSource] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.source = source
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._overrides: Optional[Dict[TargetType, ConfigOverride]] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()
        self._state_lock = threading.Lock()
        self._watcher: Optional[ConfigFileWatcher] = None

    def invalidate(self) -> None:
        """Drop the cached override document."""
        with self._state_lock:
            self._overrides = None
        logger.debug("Preprocessing config cache invalidated")

    async def get_override_for_type(self, target_type: TargetType) -> ConfigOverride:
        overrides = await self._get_overrides()
        return overrides.get(target_type, ConfigOverride())

    async def get_config_for_type(self, target_type: TargetType) -> TypePreprocessingConfig:
        """Effective configuration for one target type."""
        override = await self.get_override_for_type(target_type)
        return merge_config_override(get_type_config(target_type), override)

    async def get_all_configs(self) -> Dict[TargetType, TypePreprocessingConfig]:
        return {target_type: await self.get_config_for_type(target_type) for target_type in TargetType}

    async def _get_overrides(self) -> Dict[TargetType, ConfigOverride]:
        with self._state_lock:
            if self._overrides is not None and self._clock() - self._loaded_at < self.cache_ttl:
                return self._overrides

        async with self._lock:
            with self._state_lock:
                if self._overrides is not None and self._clock() - self._loaded_at < self.cache_ttl:
                    return self._overrides

            overrides = await self._load_overrides()

            with self._state_lock:
                self._overrides = overrides
                self._loaded_at = self._clock()

            return overrides

    async def _load_overrides(self) -> Dict[TargetType, ConfigOverride]:
        if self.source is None:
            return {}

        try:
            document = await self.source.load_preprocessing_config()
        except Exception as e:
            logger.warning(f"Preprocessing config source failed, using compiled defaults: {e}")
            return {}

        return parse_override_document(document)

    def watch_file(self, config_path: Path) -> None:
        """Invalidate the cache whenever the override file changes."""
        if self._watcher is None:
            self._watcher = ConfigFileWatcher(config_path, self.invalidate)
            self._watcher.start()

    def stop_watching(self) -> None:
        if self._watcher:
            self._watcher.stop()
            self._watcher = None


def parse_override_document(document: Mapping[str, Any]) -> Dict[TargetType, ConfigOverride]:
    """
    Validate an override document section by section.

    An invalid section is dropped with a warning so the other types keep
    their overrides.
    """
    overrides: Dict[TargetType, ConfigOverride] = {}

    for key, section in (document or {}).items():
        try:
            target_type = TargetType(key)
        except ValueError:
            logger.warning(f"Ignoring override for unknown target type '{key}'")
            continue

        try:
            override = TypeOverrideModel.model_validate(section or {}).to_override()
            # Cross-field invariants are checked against the compiled defaults
            merge_config_override(get_type_config(target_type), override)
        except (ValidationError, ConfigurationError) as e:
            logger.warning(f"Invalid preprocessing override for {key}, using defaults: {e}")
            continue

        if not override.is_empty:
            overrides[target_type] = override

    return overrides


class StaticConfigSource(IConfigSource):
    """Fixed in-process override document."""

    def __init__(self, document: Optional[Mapping[str, Any]] = None) -> None:
        self.document = dict(document or {})

    async def load_preprocessing_config(self) -> Mapping[str, Any]:
        return self.document

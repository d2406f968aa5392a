"""
Unit tests for PreprocessingConfigManager.
"""

from unittest.mock import AsyncMock

import pytest

from embedprep.core.config_manager import (
    PreprocessingConfigManager, StaticConfigSource, parse_override_document
)
from embedprep.models.embedding_models import IConfigSource
from embedprep.models.errors import ConfigurationError
from embedprep.models.preprocessing_models import ChunkingStrategy, TargetType
from embedprep.preprocessing.type_configs import get_type_config


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingSource(IConfigSource):
    def __init__(self, document):
        self.document = document
        self.loads = 0

    async def load_preprocessing_config(self):
        self.loads += 1
        return self.document


class TestParseOverrideDocument:

    def test_camel_case_keys(self):
        overrides = parse_override_document({
            "post": {"chunking": {"targetSize": 400, "splitBy": "paragraph"}},
            "comment": {"quality": {"minQualityScore": 0.7}},
        })

        assert overrides[TargetType.POST].chunking == {
            "target_size": 400, "strategy": ChunkingStrategy.PARAGRAPH
        }
        assert overrides[TargetType.COMMENT].quality == {"min_quality_score": 0.7}

    def test_invalid_section_is_dropped_per_type(self):
        overrides = parse_override_document({
            "post": {"chunking": {"target_size": 10}},
            "product": {"chunking": {"target_size": 250}},
        })

        assert TargetType.POST not in overrides
        assert overrides[TargetType.PRODUCT].chunking == {"target_size": 250}

    def test_cross_field_violation_is_dropped(self):
        # Passes field bounds but exceeds the compiled comment max_size
        overrides = parse_override_document({"comment": {"chunking": {"target_size": 300}}})
        assert overrides == {}

    def test_unknown_type_and_unknown_key(self):
        overrides = parse_override_document({
            "podcast": {"chunking": {"target_size": 300}},
            "post": {"chunking": {"chunk_colour": "blue"}},
        })
        assert overrides == {}

    def test_empty_document(self):
        assert parse_override_document({}) == {}
        assert parse_override_document(None) == {}


class TestPreprocessingConfigManager:

    async def test_defaults_without_source(self):
        manager = PreprocessingConfigManager()

        config = await manager.get_config_for_type(TargetType.POST)

        assert config == get_type_config(TargetType.POST)

    async def test_override_is_merged(self):
        manager = PreprocessingConfigManager(StaticConfigSource({
            "post": {"chunking": {"target_size": 400}}
        }))

        config = await manager.get_config_for_type(TargetType.POST)

        assert config.chunking.target_size == 400
        assert get_type_config(TargetType.POST).chunking.target_size == 500

    async def test_cache_respects_ttl(self):
        clock = FakeClock()
        source = CountingSource({"post": {"chunking": {"target_size": 400}}})
        manager = PreprocessingConfigManager(source, cache_ttl=60.0, clock=clock)

        await manager.get_config_for_type(TargetType.POST)
        clock.now = 59.0
        await manager.get_config_for_type(TargetType.COMMENT)
        assert source.loads == 1

        source.document = {"post": {"chunking": {"target_size": 300}}}
        clock.now = 61.0
        config = await manager.get_config_for_type(TargetType.POST)

        assert source.loads == 2
        assert config.chunking.target_size == 300

    async def test_invalidate_forces_reload(self):
        source = CountingSource({})
        manager = PreprocessingConfigManager(source, cache_ttl=3600.0)

        await manager.get_override_for_type(TargetType.POST)
        manager.invalidate()
        await manager.get_override_for_type(TargetType.POST)

        assert source.loads == 2

    async def test_source_failure_falls_back_to_defaults(self, caplog):
        source = AsyncMock(spec=IConfigSource)
        source.load_preprocessing_config.side_effect = ConfigurationError("boom")
        manager = PreprocessingConfigManager(source)

        config = await manager.get_config_for_type(TargetType.GALLERY_ITEM)

        assert config == get_type_config(TargetType.GALLERY_ITEM)
        assert "using compiled defaults" in caplog.text

    async def test_get_all_configs(self):
        manager = PreprocessingConfigManager(StaticConfigSource({
            "comment": {"quality": {"min_length": 10}}
        }))

        configs = await manager.get_all_configs()

        assert set(configs) == set(TargetType)
        assert configs[TargetType.COMMENT].quality.min_length == 10
        assert configs[TargetType.POST] == get_type_config(TargetType.POST)

    @pytest.mark.parametrize("target_type", list(TargetType))
    async def test_unconfigured_types_get_empty_override(self, target_type):
        manager = PreprocessingConfigManager(StaticConfigSource())
        override = await manager.get_override_for_type(target_type)
        assert override.is_empty

"""
Compiled per-type preprocessing defaults.

One immutable configuration per target type; unknown types resolve to the
post configuration.
"""

from typing import Dict, Optional, Union

from ..models.preprocessing_models import (
    ChunkingConfig, ChunkingStrategy, CleanerConfig, QualityGateConfig,
    TargetType, TypePreprocessingConfig
)


# Long-form types keep heading markers so headings can drive chunk boundaries
_LONG_FORM_CLEANING = CleanerConfig(preserve_heading_structure=True)
_SHORT_FORM_CLEANING = CleanerConfig(remove_markdown=False)

CLEANER_CONFIGS: Dict[TargetType, CleanerConfig] = {
    TargetType.PRODUCT: _LONG_FORM_CLEANING,
    TargetType.POST: _LONG_FORM_CLEANING,
    TargetType.GALLERY_ITEM: _SHORT_FORM_CLEANING,
    TargetType.COMMENT: _SHORT_FORM_CLEANING,
}

CHUNKING_CONFIGS: Dict[TargetType, ChunkingConfig] = {
    TargetType.PRODUCT: ChunkingConfig(
        target_size=300, overlap=45, min_size=64, max_size=600,
        strategy=ChunkingStrategy.SEMANTIC, use_headings_as_boundary=True,
    ),
    TargetType.POST: ChunkingConfig(
        target_size=500, overlap=75, min_size=128, max_size=1000,
        strategy=ChunkingStrategy.SEMANTIC, use_headings_as_boundary=True,
    ),
    TargetType.GALLERY_ITEM: ChunkingConfig(
        target_size=128, overlap=20, min_size=32, max_size=256,
        strategy=ChunkingStrategy.SENTENCE, use_headings_as_boundary=False,
    ),
    TargetType.COMMENT: ChunkingConfig(
        target_size=128, overlap=0, min_size=16, max_size=256,
        strategy=ChunkingStrategy.SENTENCE, use_headings_as_boundary=False,
    ),
}

QUALITY_GATE_CONFIGS: Dict[TargetType, QualityGateConfig] = {
    TargetType.PRODUCT: QualityGateConfig(min_length=20, max_length=5000, min_quality_score=0.6, max_noise_ratio=0.3),
    TargetType.POST: QualityGateConfig(min_length=50, max_length=10000, min_quality_score=0.6, max_noise_ratio=0.3),
    TargetType.GALLERY_ITEM: QualityGateConfig(min_length=10, max_length=2000, min_quality_score=0.5, max_noise_ratio=0.4),
    TargetType.COMMENT: QualityGateConfig(min_length=5, max_length=2000, min_quality_score=0.5, max_noise_ratio=0.4),
}

DEFAULT_TARGET_TYPE = TargetType.POST


def _coerce_target_type(target_type: Union[TargetType, str, None]) -> TargetType:
    if isinstance(target_type, TargetType):
        return target_type
    try:
        return TargetType(target_type)
    except ValueError:
        return DEFAULT_TARGET_TYPE


def get_type_config(target_type: Union[TargetType, str, None]) -> TypePreprocessingConfig:
    """Compiled defaults for a target type, falling back to post."""
    resolved = _coerce_target_type(target_type)
    return TypePreprocessingConfig(
        cleaning=CLEANER_CONFIGS[resolved],
        chunking=CHUNKING_CONFIGS[resolved],
        quality=QUALITY_GATE_CONFIGS[resolved],
    )


def get_all_type_configs() -> Dict[TargetType, TypePreprocessingConfig]:
    return {target_type: get_type_config(target_type) for target_type in TargetType}


def parse_target_type(value: str) -> Optional[TargetType]:
    """Strict parse of a target type name; None when unknown."""
    try:
        return TargetType(value)
    except ValueError:
        return None

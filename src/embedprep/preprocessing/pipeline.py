"""
Preprocessing Pipeline - Clean, chunk and quality-gate in one call.

Pure composition of the cleaner, chunker and quality gate under the
per-type configuration, optionally merged with a caller-supplied override.
"""

import dataclasses
import logging
from typing import Optional

from .chunking_engine import ChunkingEngine
from .cleaners import ContentCleaner
from .quality_gate import QualityGate, summarize_quality
from .type_configs import get_type_config
from ..models.errors import ConfigurationError
from ..models.preprocessing_models import (
    ConfigOverride, PreprocessingInput, PreprocessingMetadata, PreprocessingOutput,
    QualityStatus, TypePreprocessingConfig
)

logger = logging.getLogger(__name__)


def merge_config_override(
    base: TypePreprocessingConfig,
    override: Optional[ConfigOverride] = None
) -> TypePreprocessingConfig:
    """
    Layer a partial override onto a base configuration.

    Returns a new configuration; the base is never modified. Cleaning
    configuration is not overridable.

    Raises:
        ConfigurationError: If the merged values break a config invariant
    """
    if override is None or override.is_empty:
        return base

    try:
        chunking = dataclasses.replace(base.chunking, **override.chunking) if override.chunking else base.chunking
        quality = dataclasses.replace(base.quality, **override.quality) if override.quality else base.quality
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid preprocessing override: {e}") from e

    return TypePreprocessingConfig(cleaning=base.cleaning, chunking=chunking, quality=quality)


def preprocess_content(
    input: PreprocessingInput,
    config_override: Optional[ConfigOverride] = None
) -> PreprocessingOutput:
    """
    Run the full preprocessing pipeline.

    Args:
        input: Target type and raw content
        config_override: Optional partial chunking/quality override

    Returns:
        All chunks, including failed ones, with cleaning, chunking and
        quality metadata
    """
    config = merge_config_override(get_type_config(input.target_type), config_override)

    cleaned = ContentCleaner(config.cleaning).clean(input.raw_content)
    chunk_result = ChunkingEngine(config.chunking).chunk(cleaned.cleaned)
    qualified = QualityGate(config.quality).qualify_chunks(chunk_result.chunks)

    metadata = PreprocessingMetadata(
        cleaning=cleaned.metadata(),
        chunking=chunk_result.metadata,
        quality=summarize_quality(qualified),
    )

    logger.debug(
        f"Preprocessed {input.target_type.value}: {metadata.quality.total} chunks "
        f"({metadata.quality.passed} passed, {metadata.quality.incomplete} incomplete, "
        f"{metadata.quality.failed} failed)"
    )

    return PreprocessingOutput(chunks=qualified, metadata=metadata)


def preprocess_and_filter(
    input: PreprocessingInput,
    config_override: Optional[ConfigOverride] = None
) -> PreprocessingOutput:
    """Like preprocess_content but drops failed chunks; metadata still covers all chunks."""
    result = preprocess_content(input, config_override)
    embeddable = [chunk for chunk in result.chunks if chunk.quality_status != QualityStatus.FAILED]
    return PreprocessingOutput(chunks=embeddable, metadata=result.metadata)

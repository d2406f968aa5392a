"""
embedprep - Content preprocessing and embedding pipeline

Cleans, chunks and quality-gates user content per content type, then
embeds the qualified chunks through a leased work queue with idempotent
re-runs and optional LLM-judge re-scoring.
"""

__version__ = "1.0.0"

from .core.config_manager import PreprocessingConfigManager
from .ingestion.queue_worker import PreprocessUseCase, PreprocessUseCaseInput, PreprocessUseCaseOutput
from .models.preprocessing_models import PreprocessingInput, TargetType
from .preprocessing.pipeline import preprocess_and_filter, preprocess_content

__all__ = [
    "PreprocessingConfigManager",
    "PreprocessUseCase",
    "PreprocessUseCaseInput",
    "PreprocessUseCaseOutput",
    "PreprocessingInput",
    "TargetType",
    "preprocess_content",
    "preprocess_and_filter",
]

"""
Content preprocessing: cleaning, chunking and quality gating.

Everything here is synchronous and pure apart from the judge call made
by JudgeSampler.
"""

from .chunking_engine import ChunkingEngine, chunk_content, estimate_token_count
from .cleaners import ContentCleaner, clean_content
from .idempotency import compute_chunk_hashes, is_content_unchanged
from .judge_sampler import JudgeSampler, status_from_judge_score
from .pipeline import merge_config_override, preprocess_and_filter, preprocess_content
from .quality_gate import QualityGate, quality_gate_chunks
from .type_configs import get_all_type_configs, get_type_config

__all__ = [
    'ContentCleaner',
    'clean_content',
    'ChunkingEngine',
    'chunk_content',
    'estimate_token_count',
    'QualityGate',
    'quality_gate_chunks',
    'get_type_config',
    'get_all_type_configs',
    'merge_config_override',
    'preprocess_content',
    'preprocess_and_filter',
    'compute_chunk_hashes',
    'is_content_unchanged',
    'JudgeSampler',
    'status_from_judge_score',
]

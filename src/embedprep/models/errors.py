"""
Exception hierarchy and processing outcome taxonomy.
"""

from enum import Enum


class EmbedPrepError(Exception):
    """Base exception for embedprep errors."""
    pass


class ConfigurationError(EmbedPrepError):
    """Invalid or unloadable preprocessing configuration."""
    pass


class EmbeddingAPIError(EmbedPrepError):
    """Embedding API call failed."""
    pass


class RateLimitError(EmbeddingAPIError):
    """Embedding API rate limit exceeded."""
    pass


class JudgeError(EmbedPrepError):
    """Judge endpoint call failed; converted to a failed JudgeResult."""
    pass


class ProcessingOutcome(Enum):
    """Terminal classification of a queue item run."""
    COMPLETED = "completed"
    CONTENT_NOT_FOUND = "content_not_found"
    EMPTY_CONTENT = "empty_content"
    NO_QUALIFIED_CHUNKS = "no_qualified_chunks"
    IDEMPOTENT_SKIP = "idempotent_skip"
    PARTIAL_CHUNKS_FAILED = "partial_chunks_failed"
    ALL_CHUNKS_FAILED = "all_chunks_failed"
    UNEXPECTED_EXCEPTION = "unexpected_exception"

    @property
    def is_success(self) -> bool:
        return self not in (
            ProcessingOutcome.CONTENT_NOT_FOUND,
            ProcessingOutcome.ALL_CHUNKS_FAILED,
            ProcessingOutcome.UNEXPECTED_EXCEPTION,
        )

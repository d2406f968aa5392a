"""
Preprocessing data models.

Configuration records, chunk records and pipeline results shared by the
cleaner, chunker, quality gate and orchestrator.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class TargetType(Enum):
    """Parent content categories that can be preprocessed."""
    PRODUCT = "product"
    POST = "post"
    GALLERY_ITEM = "gallery_item"
    COMMENT = "comment"


class ChunkingStrategy(Enum):
    """Available chunking strategies."""
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SEMANTIC = "semantic"
    FIXED = "fixed"


class QualityStatus(Enum):
    """Quality gate classification of a chunk."""
    PASSED = "passed"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class InvalidReason(Enum):
    """Reasons a chunk fails the validity check."""
    TOO_SHORT = "too_short"
    TOO_NOISY = "too_noisy"
    NO_CONTENT = "no_content"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class CleanerConfig:
    """Cleaning toggles, one instance per content type."""
    remove_html: bool = True
    remove_markdown: bool = True
    remove_urls: bool = True
    remove_emails: bool = True
    remove_noise: bool = True
    normalize_unicode: bool = True
    normalize_whitespace: bool = True
    preserve_heading_structure: bool = False
    custom_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ChunkingConfig:
    """
    Chunking budgets, all expressed in estimated tokens.

    Invariant: min_size <= target_size <= max_size and overlap < target_size.
    """
    target_size: int = 500
    overlap: int = 75
    min_size: int = 128
    max_size: int = 1000
    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC
    use_headings_as_boundary: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.strategy, str):
            object.__setattr__(self, "strategy", ChunkingStrategy(self.strategy))

        if self.min_size < 1 or self.overlap < 0:
            raise ValueError("Chunk sizes must be positive and overlap non-negative")

        if not (self.min_size <= self.target_size <= self.max_size):
            raise ValueError(
                f"Invalid chunk sizes: requires min_size <= target_size <= max_size "
                f"(got {self.min_size}/{self.target_size}/{self.max_size})"
            )

        if self.overlap >= self.target_size:
            raise ValueError(
                f"Overlap ({self.overlap}) must be smaller than target_size ({self.target_size})"
            )


@dataclass(frozen=True)
class QualityGateConfig:
    """Quality gate thresholds (lengths in characters, ratios in 0-1)."""
    min_length: int = 50
    max_length: int = 10000
    min_quality_score: float = 0.6
    max_noise_ratio: float = 0.3

    def __post_init__(self) -> None:
        if self.min_length < 0 or self.max_length < self.min_length:
            raise ValueError("Invalid length bounds for quality gate")

        if not 0.0 <= self.min_quality_score <= 1.0:
            raise ValueError("min_quality_score must be within 0-1")

        if not 0.0 < self.max_noise_ratio <= 1.0:
            raise ValueError("max_noise_ratio must be within (0, 1]")


@dataclass(frozen=True)
class TypePreprocessingConfig:
    """Complete preprocessing configuration for one target type."""
    cleaning: CleanerConfig
    chunking: ChunkingConfig
    quality: QualityGateConfig


@dataclass(frozen=True)
class ConfigOverride:
    """
    Partial override for chunking and quality configuration.

    Values are plain field-name mappings merged on top of the compiled
    defaults at call time. Cleaning configuration is not overridable.
    """
    chunking: Dict[str, Any] = field(default_factory=dict)
    quality: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.chunking and not self.quality


@dataclass
class CleanedContent:
    """Cleaner output with audit metadata (stage names only)."""
    raw: str
    cleaned: str
    removed_patterns: List[str]
    cleaners_applied: List[str]

    @property
    def original_length(self) -> int:
        return len(self.raw)

    @property
    def cleaned_length(self) -> int:
        return len(self.cleaned)

    @property
    def cleaning_ratio(self) -> float:
        if not self.raw:
            return 1.0
        return len(self.cleaned) / len(self.raw)

    def metadata(self) -> Dict[str, Any]:
        return {
            'original_length': self.original_length,
            'cleaned_length': self.cleaned_length,
            'cleaning_ratio': self.cleaning_ratio,
            'cleaners_applied': list(self.cleaners_applied),
        }


@dataclass(frozen=True)
class ContentChunk:
    """A bounded-size segment of cleaned text, the unit of embedding."""
    index: int
    text: str
    char_start: int
    char_end: int
    token_count: int
    heading_context: Optional[str] = None


@dataclass
class ChunkingMetadata:
    """Summary of a chunking run."""
    total_chunks: int
    average_tokens: int
    strategy: ChunkingStrategy
    original_length: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_chunks': self.total_chunks,
            'average_tokens': self.average_tokens,
            'strategy': self.strategy.value,
            'original_length': self.original_length,
        }


@dataclass
class ChunkResult:
    chunks: List[ContentChunk]
    metadata: ChunkingMetadata


@dataclass(frozen=True)
class ValidityMetrics:
    char_count: int
    word_count: int
    noise_ratio: float


@dataclass(frozen=True)
class ValidityCheckResult:
    is_valid: bool
    metrics: ValidityMetrics
    reason: Optional[InvalidReason] = None


@dataclass(frozen=True)
class QualifiedChunk(ContentChunk):
    """Chunk with its quality gate classification attached."""
    quality_status: QualityStatus = QualityStatus.FAILED
    quality_score: float = 0.0
    validity_result: Optional[ValidityCheckResult] = None

    @property
    def is_embeddable(self) -> bool:
        return self.quality_status != QualityStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['quality_status'] = self.quality_status.value
        if self.validity_result is not None:
            reason = self.validity_result.reason
            data['validity_result']['reason'] = reason.value if reason else None
        return data


@dataclass(frozen=True)
class EnrichmentContext:
    """Parent-content context carried through to judge prompts."""
    target_type: TargetType
    target_id: str
    parent_title: Optional[str] = None
    category: Optional[str] = None
    tags: Tuple[str, ...] = ()
    locale: Optional[str] = None


@dataclass
class QualitySummary:
    total: int = 0
    passed: int = 0
    incomplete: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class PreprocessingMetadata:
    cleaning: Dict[str, Any]
    chunking: ChunkingMetadata
    quality: QualitySummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cleaning': self.cleaning,
            'chunking': self.chunking.to_dict(),
            'quality': self.quality.to_dict(),
        }


@dataclass
class PreprocessingInput:
    target_type: TargetType
    raw_content: str
    context: Optional[EnrichmentContext] = None


@dataclass
class PreprocessingOutput:
    chunks: List[QualifiedChunk]
    metadata: PreprocessingMetadata

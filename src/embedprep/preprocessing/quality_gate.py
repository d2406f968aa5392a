"""
Quality Gate - Chunk validity, scoring and duplicate detection.

Classifies each chunk as passed, incomplete or failed. Failed chunks are
never embedded; incomplete chunks are embedded and remain candidates for
judge reassessment.
"""

import logging
import re
from typing import Iterable, List, Optional, Set

from .chunking_engine import CJK_CHAR_RE
from ..models.preprocessing_models import (
    ContentChunk, InvalidReason, QualifiedChunk, QualityGateConfig,
    QualityStatus, QualitySummary, ValidityCheckResult, ValidityMetrics
)

logger = logging.getLogger(__name__)


DUPLICATE_SIMILARITY_THRESHOLD = 0.95
# Near-duplicate comparison looks back over this many preceding chunks
DUPLICATE_WINDOW = 5

_LATIN_WORD_RE = re.compile(r'[a-zA-Z]+')
_WHITESPACE_RE = re.compile(r'\s+')


def calculate_noise_ratio(text: str) -> float:
    """Fraction of characters that are neither letters nor digits; 1.0 when empty."""
    if not text:
        return 1.0
    noise_chars = sum(1 for ch in text if not ch.isalnum())
    return noise_chars / len(text)


def count_words(text: str) -> int:
    """Latin word runs plus individual CJK ideographs."""
    return len(_LATIN_WORD_RE.findall(text)) + len(CJK_CHAR_RE.findall(text))


def is_purely_punctuation(text: str) -> bool:
    return not any(ch.isalnum() for ch in text)


def _metrics(text: str) -> ValidityMetrics:
    return ValidityMetrics(
        char_count=len(text),
        word_count=count_words(text),
        noise_ratio=calculate_noise_ratio(text),
    )


def check_validity(chunk: ContentChunk, config: Optional[QualityGateConfig] = None) -> ValidityCheckResult:
    """
    Structural validity check applied before scoring.

    Content-free text is rejected first so that symbol-only chunks are
    reported as no_content under every configuration; length and noise
    limits follow.
    """
    config = config or QualityGateConfig()
    metrics = _metrics(chunk.text)

    if is_purely_punctuation(chunk.text) or metrics.word_count == 0:
        return ValidityCheckResult(is_valid=False, metrics=metrics, reason=InvalidReason.NO_CONTENT)

    if metrics.char_count < config.min_length:
        return ValidityCheckResult(is_valid=False, metrics=metrics, reason=InvalidReason.TOO_SHORT)

    if metrics.noise_ratio > config.max_noise_ratio:
        return ValidityCheckResult(is_valid=False, metrics=metrics, reason=InvalidReason.TOO_NOISY)

    return ValidityCheckResult(is_valid=True, metrics=metrics)


def score_metrics(metrics: ValidityMetrics, max_noise_ratio: float) -> float:
    """
    Weighted quality score in 0-1.

    Length contributes up to 0.4 (full at 500 characters), low noise up to
    0.3 and word density up to 0.3.
    """
    length_score = min(0.4, metrics.char_count / 500 * 0.4)
    noise_score = max(0.0, 0.3 * (1 - metrics.noise_ratio / max_noise_ratio))
    word_density = metrics.word_count / max(1, metrics.char_count)
    density_score = min(0.3, word_density * 3)

    return min(1.0, length_score + noise_score + density_score)


def _normalize_for_hash(text: str) -> str:
    return _WHITESPACE_RE.sub(' ', text.lower()).strip()


def rolling_hash(text: str) -> int:
    """32-bit polynomial hash of case- and whitespace-normalized text."""
    value = 0
    for ch in _normalize_for_hash(text):
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    return value


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity over lowercased whitespace-separated words."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())

    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0

    return len(words1 & words2) / len(words1 | words2)


def detect_duplicate_chunks(
    chunks: List[ContentChunk],
    similarity_threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
    window: int = DUPLICATE_WINDOW
) -> Set[int]:
    """
    Indices of chunks that repeat an earlier chunk.

    Exact repeats are caught by hash anywhere in the list; near duplicates
    only against the preceding window. The later occurrence is flagged.
    """
    duplicates: Set[int] = set()
    seen = {}

    for i, chunk in enumerate(chunks):
        normalized = _normalize_for_hash(chunk.text)
        key = rolling_hash(chunk.text)

        if normalized in seen.get(key, ()):
            duplicates.add(i)
            continue
        seen.setdefault(key, set()).add(normalized)

        for j in range(max(0, i - window), i):
            if j in duplicates:
                continue
            if calculate_similarity(chunk.text, chunks[j].text) >= similarity_threshold:
                duplicates.add(i)
                break

    return duplicates


class QualityGate:
    """Scores and classifies chunks against one quality configuration."""

    def __init__(self, config: Optional[QualityGateConfig] = None):
        self.config = config or QualityGateConfig()

    def qualify_chunk(self, chunk: ContentChunk, is_duplicate: bool = False) -> QualifiedChunk:
        if is_duplicate:
            validity = ValidityCheckResult(
                is_valid=False, metrics=_metrics(chunk.text), reason=InvalidReason.DUPLICATE
            )
            return _qualified(chunk, QualityStatus.FAILED, 0.0, validity)

        validity = check_validity(chunk, self.config)
        if not validity.is_valid:
            return _qualified(chunk, QualityStatus.FAILED, 0.0, validity)

        score = score_metrics(validity.metrics, self.config.max_noise_ratio)
        status = QualityStatus.PASSED if score >= self.config.min_quality_score else QualityStatus.INCOMPLETE

        return _qualified(chunk, status, score, validity)

    def qualify_chunks(self, chunks: List[ContentChunk]) -> List[QualifiedChunk]:
        """Duplicate detection over the whole list, then per-chunk classification."""
        duplicates = detect_duplicate_chunks(chunks)
        qualified = [self.qualify_chunk(chunk, i in duplicates) for i, chunk in enumerate(chunks)]

        if duplicates:
            logger.debug(f"Quality gate flagged {len(duplicates)} duplicate chunks")

        return qualified


def _qualified(
    chunk: ContentChunk,
    status: QualityStatus,
    score: float,
    validity: ValidityCheckResult
) -> QualifiedChunk:
    return QualifiedChunk(
        index=chunk.index,
        text=chunk.text,
        char_start=chunk.char_start,
        char_end=chunk.char_end,
        token_count=chunk.token_count,
        heading_context=chunk.heading_context,
        quality_status=status,
        quality_score=score,
        validity_result=validity,
    )


def quality_gate_chunks(
    chunks: List[ContentChunk],
    config: Optional[QualityGateConfig] = None
) -> List[QualifiedChunk]:
    return QualityGate(config).qualify_chunks(chunks)


def summarize_quality(chunks: Iterable[QualifiedChunk]) -> QualitySummary:
    summary = QualitySummary()
    for chunk in chunks:
        summary.total += 1
        if chunk.quality_status == QualityStatus.PASSED:
            summary.passed += 1
        elif chunk.quality_status == QualityStatus.INCOMPLETE:
            summary.incomplete += 1
        else:
            summary.failed += 1
    return summary

"""
Chunking Engine - Boundary-aware splitting of cleaned content.

Splits cleaned text into bounded-size segments using one of four strategies
(sentence, paragraph, semantic, fixed), applies a sliding word overlap and
normalizes segment sizes so no chunk exceeds the configured token ceiling.
"""

import math
import re
import logging
from typing import List, Optional, Pattern, Tuple

from ..models.preprocessing_models import (
    ChunkingConfig, ChunkingMetadata, ChunkingStrategy, ChunkResult, ContentChunk
)

logger = logging.getLogger(__name__)


CJK_CHAR_RE = re.compile(r'[\u4e00-\u9fff]')
CJK_TOKENS_PER_CHAR = 1.5
OTHER_TOKENS_PER_CHAR = 0.25
CHARS_PER_TOKEN = 4

_SENTENCE_SPLIT_RE = re.compile(r'(?<=[。！？])|(?<=[.!?])\s+')
_PARAGRAPH_SPLIT_RE = re.compile(r'\n\n+')
_HEADING_SECTION_RE = re.compile(r'(?=^#{1,3}\s+)', re.M)
_HEADING_RE = re.compile(r'^(#{1,6})\s+(.+)$', re.M)

# Words used to anchor a chunk back onto the cleaned text
_ANCHOR_WORDS = 8


def estimate_token_count(text: str) -> int:
    """
    Estimate tokens with a character heuristic.

    CJK ideographs count 1.5 tokens each, every other character 0.25.
    """
    cjk_chars = len(CJK_CHAR_RE.findall(text))
    other_chars = len(text) - cjk_chars
    return math.ceil(cjk_chars * CJK_TOKENS_PER_CHAR + other_chars * OTHER_TOKENS_PER_CHAR)


def split_by_sentences(content: str) -> List[str]:
    """Split on Latin terminal punctuation plus whitespace, or CJK terminals."""
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(content) if s and s.strip()]


def split_by_paragraphs(content: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(content) if p.strip()]


def split_by_fixed_size(content: str, chunk_size: int, overlap: int) -> List[str]:
    """
    Sliding character window with step-back overlap.

    Stops instead of looping when the step would not move forward.
    """
    chunks = []
    start = 0

    while start < len(content):
        end = min(start + chunk_size, len(content))
        chunks.append(content[start:end])

        step = chunk_size - overlap
        if step <= 0:
            break
        start += step

    return chunks


def extract_headings(content: str) -> List[Tuple[str, int]]:
    """Markdown headings as (text, position) pairs in document order."""
    return [(match.group(2).strip(), match.start()) for match in _HEADING_RE.finditer(content)]


def get_heading_context(headings: List[Tuple[str, int]], position: int) -> Optional[str]:
    """Nearest heading at or before position."""
    for text, heading_position in reversed(headings):
        if heading_position <= position:
            return text
    return None


def apply_overlap(segments: List[str], overlap_tokens: int) -> List[str]:
    """
    Prefix each segment after the first with the tail of its predecessor.

    The token overlap is converted to a word count assuming four characters
    per token at 0.25 tokens per character.
    """
    if overlap_tokens <= 0 or len(segments) <= 1:
        return segments

    overlap_words = math.ceil(overlap_tokens / OTHER_TOKENS_PER_CHAR / CHARS_PER_TOKEN)
    result = [segments[0]]

    for previous, segment in zip(segments, segments[1:]):
        tail = ' '.join(previous.split()[-overlap_words:])
        result.append(f"{tail} {segment}".strip())

    return result


class ChunkingEngine:
    """
    Strategy-driven chunker with size normalization.

    Features:
    - Sentence, paragraph, fixed-window and semantic strategies
    - Heading-aware semantic splitting with sentence and fixed fallbacks
    - Word-based sliding overlap between consecutive chunks
    - Forward merging toward the target size, force-splitting above the
      ceiling and backward merging of an undersized tail
    - Character positions and nearest-heading context per chunk
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        """
        Initialize the chunking engine.

        Args:
            config: Token budgets and strategy; defaults to long-form settings
        """
        self.config = config or ChunkingConfig()

    def chunk(self, content: str) -> ChunkResult:
        """
        Chunk cleaned content.

        Args:
            content: Cleaned text

        Returns:
            ChunkResult with ordered chunks and run metadata
        """
        config = self.config
        segments = self._split(content)

        if config.strategy != ChunkingStrategy.FIXED and config.overlap > 0:
            segments = apply_overlap(segments, config.overlap)

        segments = self._normalize_chunk_sizes(segments)

        headings = extract_headings(content) if config.use_headings_as_boundary else []
        chunks = self._build_chunks(content, segments, headings)

        total_tokens = sum(chunk.token_count for chunk in chunks)
        metadata = ChunkingMetadata(
            total_chunks=len(chunks),
            average_tokens=int(total_tokens / len(chunks) + 0.5) if chunks else 0,
            strategy=config.strategy,
            original_length=len(content),
        )

        logger.debug(
            f"Chunked {len(content)} chars into {len(chunks)} chunks "
            f"(strategy: {config.strategy.value}, avg tokens: {metadata.average_tokens})"
        )

        return ChunkResult(chunks=chunks, metadata=metadata)

    def _split(self, content: str) -> List[str]:
        strategy = self.config.strategy

        if strategy == ChunkingStrategy.SENTENCE:
            return split_by_sentences(content)
        elif strategy == ChunkingStrategy.PARAGRAPH:
            return split_by_paragraphs(content)
        elif strategy == ChunkingStrategy.FIXED:
            return split_by_fixed_size(
                content,
                self.config.target_size * CHARS_PER_TOKEN,
                self.config.overlap * CHARS_PER_TOKEN,
            )
        else:
            return self._split_by_semantic(content)

    def _split_by_semantic(self, content: str) -> List[str]:
        """Heading sections first, paragraph accumulation when headings are off."""
        config = self.config

        if estimate_token_count(content) <= config.max_size:
            return [content.strip()] if content.strip() else []

        chunks: List[str] = []

        if config.use_headings_as_boundary:
            for section in _HEADING_SECTION_RE.split(content):
                section = section.strip()
                if not section:
                    continue
                if estimate_token_count(section) <= config.max_size:
                    chunks.append(section)
                else:
                    chunks.extend(self._split_long_section(section))
        else:
            buffer = ''
            for paragraph in split_by_paragraphs(content):
                combined = f"{buffer}\n\n{paragraph}" if buffer else paragraph
                if estimate_token_count(combined) <= config.target_size:
                    buffer = combined
                    continue

                if buffer:
                    chunks.append(buffer.strip())

                if estimate_token_count(paragraph) > config.max_size:
                    chunks.extend(self._split_long_section(paragraph))
                    buffer = ''
                else:
                    buffer = paragraph

            if buffer:
                chunks.append(buffer.strip())

        return [chunk for chunk in chunks if chunk]

    def _split_long_section(self, section: str) -> List[str]:
        """Sentence accumulation; a single over-target sentence is window-split."""
        config = self.config
        chunks: List[str] = []
        buffer = ''

        for sentence in split_by_sentences(section):
            combined = f"{buffer} {sentence}" if buffer else sentence
            if estimate_token_count(combined) <= config.target_size:
                buffer = combined
                continue

            if buffer:
                chunks.append(buffer.strip())

            if estimate_token_count(sentence) > config.target_size:
                chunks.extend(split_by_fixed_size(
                    sentence,
                    config.target_size * CHARS_PER_TOKEN,
                    config.overlap * CHARS_PER_TOKEN,
                ))
                buffer = ''
            else:
                buffer = sentence

        if buffer:
            chunks.append(buffer.strip())

        return [chunk.strip() for chunk in chunks if chunk.strip()]

    def _force_split(self, segment: str) -> List[str]:
        """Split an oversized segment until every piece fits under max_size."""
        max_size = self.config.max_size
        window = max_size * CHARS_PER_TOKEN

        while True:
            overlap = min(self.config.overlap * CHARS_PER_TOKEN, window // 4)
            pieces = [p.strip() for p in split_by_fixed_size(segment, window, overlap) if p.strip()]
            if window <= 1 or all(estimate_token_count(p) <= max_size for p in pieces):
                return pieces
            # CJK-heavy text needs a narrower character window
            window = max(1, (window * 3) // 4)

    def _normalize_chunk_sizes(self, segments: List[str]) -> List[str]:
        """
        Merge small segments forward and split oversized ones.

        Segments merge while the joined text stays within max_size and are
        flushed once they reach target_size. A trailing segment below
        min_size is folded into its predecessor when the result still fits;
        a lone chunk is always kept.
        """
        config = self.config
        pieces: List[str] = []

        for segment in segments:
            segment = segment.strip()
            if not segment:
                continue
            if estimate_token_count(segment) > config.max_size:
                pieces.extend(self._force_split(segment))
            else:
                pieces.append(segment)

        result: List[str] = []
        buffer = ''

        for piece in pieces:
            if buffer:
                combined = f"{buffer}\n\n{piece}"
                if estimate_token_count(combined) <= config.max_size:
                    buffer = combined
                else:
                    result.append(buffer)
                    buffer = piece
            else:
                buffer = piece

            if estimate_token_count(buffer) >= config.target_size:
                result.append(buffer)
                buffer = ''

        if buffer:
            if estimate_token_count(buffer) >= config.min_size or not result:
                result.append(buffer)
            else:
                merged = f"{result[-1]}\n\n{buffer}"
                if estimate_token_count(merged) <= config.max_size:
                    result[-1] = merged
                else:
                    result.append(buffer)

        return result

    def _build_chunks(
        self,
        content: str,
        segments: List[str],
        headings: List[Tuple[str, int]]
    ) -> List[ContentChunk]:
        chunks = []
        previous_start = 0
        previous_end = 0

        for index, text in enumerate(segments):
            char_start, char_end = _locate_segment(content, text, previous_start, previous_end)

            chunks.append(ContentChunk(
                index=index,
                text=text,
                char_start=char_start,
                char_end=char_end,
                token_count=estimate_token_count(text),
                heading_context=get_heading_context(headings, char_start) if headings else None,
            ))

            previous_start, previous_end = char_start, char_end

        return chunks


def _anchor_pattern(words: List[str]) -> Pattern[str]:
    return re.compile(r'\s*'.join(re.escape(word) for word in words))


def _locate_segment(content: str, text: str, previous_start: int, previous_end: int) -> Tuple[int, int]:
    """
    Map a chunk back to [start, end) offsets in the cleaned content.

    Exact matches are tried first; chunks rebuilt by merging or overlap are
    located whitespace-insensitively from their first and last words.
    """
    for offset in (previous_end, previous_start):
        position = content.find(text, offset)
        if position >= 0:
            return position, position + len(text)

    words = text.split()
    if words:
        head = _anchor_pattern(words[:_ANCHOR_WORDS]).search(content, previous_start)
        if head:
            tail = _anchor_pattern(words[-_ANCHOR_WORDS:]).search(content, head.start())
            end = tail.end() if tail else min(len(content), head.start() + len(text))
            return head.start(), max(end, head.end())

    start = min(previous_end, len(content))
    return start, min(len(content), start + len(text))


def chunk_content(content: str, config: Optional[ChunkingConfig] = None) -> ChunkResult:
    """Chunk content with the given (or default) chunking configuration."""
    return ChunkingEngine(config).chunk(content)

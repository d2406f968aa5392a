"""
Idempotency check for re-embedding decisions.
"""

from typing import List, Sequence

from ..models.embedding_models import ChunkHashPair, ExistingChunkInfo, hash_content
from ..models.preprocessing_models import ContentChunk, QualityStatus


def compute_chunk_hashes(chunks: Sequence[ContentChunk]) -> List[ChunkHashPair]:
    return [ChunkHashPair(text=chunk.text, hash=hash_content(chunk.text)) for chunk in chunks]


def is_content_unchanged(
    existing: Sequence[ExistingChunkInfo],
    new_hashes: Sequence[ChunkHashPair]
) -> bool:
    """
    True only when stored chunks match the new ones exactly.

    Counts must be equal, every hash must match the stored hash at the same
    chunk index, and every stored chunk must have passed the quality gate.
    Any mismatch means the target is re-embedded in full.
    """
    if len(existing) != len(new_hashes):
        return False

    by_index = {chunk.chunk_index: chunk for chunk in existing}

    for index, new_hash in enumerate(new_hashes):
        stored = by_index.get(index)
        if stored is None or stored.content_hash != new_hash.hash:
            return False
        if stored.quality_status != QualityStatus.PASSED:
            return False

    return True

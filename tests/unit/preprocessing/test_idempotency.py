"""
Unit tests for the re-embedding idempotency check.
"""

from embedprep.models.embedding_models import ExistingChunkInfo, hash_content
from embedprep.models.preprocessing_models import ContentChunk, QualityStatus
from embedprep.preprocessing.idempotency import compute_chunk_hashes, is_content_unchanged


def _chunks(*texts):
    return [ContentChunk(index=i, text=t, char_start=0, char_end=len(t), token_count=1)
            for i, t in enumerate(texts)]


def _stored(*texts, status=QualityStatus.PASSED):
    return [ExistingChunkInfo(chunk_index=i, content_hash=hash_content(t), quality_status=status)
            for i, t in enumerate(texts)]


class TestIdempotency:

    def test_hashes_are_deterministic(self):
        first = compute_chunk_hashes(_chunks("one", "two"))
        second = compute_chunk_hashes(_chunks("one", "two"))

        assert [p.hash for p in first] == [p.hash for p in second]
        assert first[0].text == "one"
        assert len(first[0].hash) == 64

    def test_unchanged_content(self):
        assert is_content_unchanged(_stored("one", "two"), compute_chunk_hashes(_chunks("one", "two")))

    def test_count_mismatch(self):
        assert not is_content_unchanged(_stored("one"), compute_chunk_hashes(_chunks("one", "two")))

    def test_hash_mismatch(self):
        assert not is_content_unchanged(_stored("one", "two"), compute_chunk_hashes(_chunks("one", "2")))

    def test_reordered_chunks_are_changed(self):
        assert not is_content_unchanged(_stored("one", "two"), compute_chunk_hashes(_chunks("two", "one")))

    def test_non_passed_stored_chunk_forces_reembed(self):
        stored = _stored("one", "two", status=QualityStatus.INCOMPLETE)
        assert not is_content_unchanged(stored, compute_chunk_hashes(_chunks("one", "two")))

    def test_nothing_stored_and_nothing_new(self):
        assert is_content_unchanged([], [])

"""
Unit tests for the quality gate.
"""

import dataclasses

import pytest

from embedprep.models.preprocessing_models import (
    ContentChunk, InvalidReason, QualityStatus, TargetType, ValidityMetrics
)
from embedprep.preprocessing.quality_gate import (
    QualityGate, calculate_noise_ratio, calculate_similarity, check_validity,
    count_words, detect_duplicate_chunks, quality_gate_chunks, rolling_hash,
    score_metrics, summarize_quality
)
from embedprep.preprocessing.type_configs import get_type_config

from tests.helpers import make_paragraph

GALLERY_QUALITY = get_type_config(TargetType.GALLERY_ITEM).quality
POST_QUALITY = get_type_config(TargetType.POST).quality


def _chunk(text: str, index: int = 0) -> ContentChunk:
    return ContentChunk(index=index, text=text, char_start=0, char_end=len(text), token_count=1)


class TestMetrics:

    @pytest.mark.parametrize("text", ["", "abc", "a b c!", "!!!", "美麗。", "x" * 100])
    def test_noise_ratio_within_unit_interval(self, text):
        assert 0.0 <= calculate_noise_ratio(text) <= 1.0

    def test_noise_ratio_of_empty_text_is_one(self):
        assert calculate_noise_ratio("") == 1.0

    def test_count_words_mixes_latin_runs_and_ideographs(self):
        assert count_words("hello world 你好") == 4

    def test_score_is_monotonic_in_length(self):
        short = ValidityMetrics(char_count=100, word_count=20, noise_ratio=0.1)
        longer = ValidityMetrics(char_count=400, word_count=20, noise_ratio=0.1)

        assert score_metrics(longer, 0.3) >= score_metrics(short, 0.3)

    def test_score_is_monotonic_in_noise(self):
        clean = ValidityMetrics(char_count=200, word_count=40, noise_ratio=0.05)
        noisy = ValidityMetrics(char_count=200, word_count=40, noise_ratio=0.25)

        assert score_metrics(clean, 0.3) > score_metrics(noisy, 0.3)

    def test_score_is_monotonic_in_word_density(self):
        """Test more words over the same length never lowers the score"""
        scores = [
            score_metrics(ValidityMetrics(char_count=200, word_count=words, noise_ratio=0.1), 0.3)
            for words in (1, 5, 10, 19, 20, 21, 40, 200)
        ]

        assert scores == sorted(scores)

    def test_word_density_component_caps_at_point_three(self):
        def score(words):
            return score_metrics(ValidityMetrics(char_count=200, word_count=words, noise_ratio=0.1), 0.3)

        # Density 0.1 reaches the 0.3 cap; more words add nothing
        assert score(20) - score(10) == pytest.approx(0.15)
        assert score(20) == pytest.approx(score(21))
        assert score(20) == pytest.approx(score(200))

    def test_score_is_capped(self):
        metrics = ValidityMetrics(char_count=5000, word_count=5000, noise_ratio=0.0)
        assert score_metrics(metrics, 0.3) == pytest.approx(1.0)

    def test_similarity_is_symmetric(self):
        a = "the quick brown fox"
        b = "the lazy brown dog jumps"

        assert calculate_similarity(a, b) == calculate_similarity(b, a)
        assert calculate_similarity(a, a) == 1.0
        assert calculate_similarity("", "") == 1.0
        assert calculate_similarity("word", "") == 0.0

    def test_rolling_hash_ignores_case_and_whitespace(self):
        assert rolling_hash("Hello   World") == rolling_hash("hello world\n")
        assert 0 <= rolling_hash("anything") <= 0xFFFFFFFF


class TestValidity:

    @pytest.mark.parametrize("target_type", list(TargetType))
    def test_symbol_only_chunk_is_no_content(self, target_type):
        config = get_type_config(target_type).quality
        result = QualityGate(config).qualify_chunk(_chunk("!!!!!!!!!!"))

        assert result.quality_status == QualityStatus.FAILED
        assert result.quality_score == 0.0
        assert result.validity_result.reason == InvalidReason.NO_CONTENT

    def test_too_short(self):
        result = check_validity(_chunk("Too short."), POST_QUALITY)

        assert not result.is_valid
        assert result.reason == InvalidReason.TOO_SHORT

    def test_too_noisy(self):
        text = "words -- ** ## !! ?? :: ;; .. ,, // \\\\ || ++ == ~~ ^^ %% $$ @@ more words here"
        result = check_validity(_chunk(text), POST_QUALITY)

        assert not result.is_valid
        assert result.reason == InvalidReason.TOO_NOISY


class TestQualityGate:

    def test_short_cjk_gallery_caption_passes(self):
        result = QualityGate(GALLERY_QUALITY).qualify_chunk(_chunk("美麗的山景與湖光倒影"))

        assert result.validity_result.is_valid
        assert result.quality_score == pytest.approx(0.608)
        assert result.quality_status == QualityStatus.PASSED

    def test_below_threshold_is_incomplete(self):
        strict = dataclasses.replace(GALLERY_QUALITY, min_quality_score=0.7)
        result = QualityGate(strict).qualify_chunk(_chunk("美麗的山景與湖光倒影"))

        assert result.quality_status == QualityStatus.INCOMPLETE
        assert result.is_embeddable

    def test_prose_paragraph_passes(self):
        result = QualityGate(POST_QUALITY).qualify_chunk(_chunk(make_paragraph("alpha")))

        assert result.quality_status == QualityStatus.PASSED
        assert 0.6 <= result.quality_score <= 1.0

    def test_qualified_chunk_keeps_chunk_fields(self):
        chunk = ContentChunk(index=3, text=make_paragraph("beta"), char_start=10,
                             char_end=20, token_count=83, heading_context="Intro")
        result = QualityGate(POST_QUALITY).qualify_chunk(chunk)

        assert (result.index, result.char_start, result.char_end) == (3, 10, 20)
        assert result.heading_context == "Intro"
        assert result.to_dict()['quality_status'] == result.quality_status.value


class TestDuplicateDetection:

    def test_exact_duplicate_detected_anywhere(self):
        texts = [make_paragraph(f"topic{i}", offset=10 * i) for i in range(8)]
        texts.append(texts[0].upper())
        chunks = [_chunk(text, i) for i, text in enumerate(texts)]

        assert detect_duplicate_chunks(chunks) == {8}

    def test_near_duplicate_within_window(self):
        base = make_paragraph("alpha", sentences=10)
        chunks = [_chunk(base, 0), _chunk(base + " extra", 1)]

        assert detect_duplicate_chunks(chunks) == {1}

    def test_near_duplicate_outside_window_is_kept(self):
        base = make_paragraph("alpha", sentences=10)
        fillers = [make_paragraph(f"filler{i}", offset=10 * (i + 1)) for i in range(6)]
        chunks = [_chunk(text, i) for i, text in enumerate([base, *fillers, base + " extra"])]

        assert detect_duplicate_chunks(chunks) == set()

    def test_duplicate_chunk_fails_gate(self):
        paragraph = make_paragraph("alpha")
        qualified = quality_gate_chunks([_chunk(paragraph, 0), _chunk(paragraph, 1)], POST_QUALITY)

        assert qualified[0].quality_status == QualityStatus.PASSED
        assert qualified[1].quality_status == QualityStatus.FAILED
        assert qualified[1].validity_result.reason == InvalidReason.DUPLICATE

    def test_summarize_quality(self):
        qualified = quality_gate_chunks([
            _chunk(make_paragraph("alpha"), 0),
            _chunk("!!!!", 1),
            _chunk("Short but valid text for a post chunk here.", 2),
        ], POST_QUALITY)

        summary = summarize_quality(qualified)

        assert summary.total == 3
        assert summary.passed + summary.incomplete + summary.failed == 3
        assert summary.failed >= 1
        assert summary.to_dict()['total'] == 3

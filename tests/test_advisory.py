"""Tests for prompt enhancement, quality scoring and recommendations."""

from __future__ import annotations

import math

import pytest

from plumage.core.errors import AnnotationValidationError
from plumage.learning import PatternLearner

from tests.helpers import make_annotation

SPECIES = "Cardenal Rojo"
BASE = "Identify the anatomical features of this bird."


async def _observe(learner: PatternLearner, term: str, times: int, **kwargs) -> None:
    for _ in range(times):
        await learner.learn_from_annotations([make_annotation(term, **kwargs)], species=SPECIES)


# ─── enhance_prompt ──────────────────────────────────────────────────


class TestEnhancePrompt:
    """Tests for enhance_prompt."""

    def test_no_patterns_returns_base(self, learner: PatternLearner):
        assert learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"]) == BASE

    def test_no_target_features_returns_base(self, learner: PatternLearner):
        assert learner.enhance_prompt(BASE, species=SPECIES) == BASE

    @pytest.mark.asyncio
    async def test_below_min_samples_returns_base(self, learner: PatternLearner):
        await _observe(learner, "el pico", 4)
        assert learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"]) == BASE

    @pytest.mark.asyncio
    async def test_matched_pattern_adds_feature_guidance(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5, box=(0.4, 0.2, 0.1, 0.1))
        await learner.learn_from_annotations(
            [make_annotation("el pico")], species=SPECIES, prompt="Locate the beak precisely"
        )

        result = learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico", "la cola"])

        assert result.startswith(BASE)
        assert len(result) > len(BASE)
        assert "LEARNED FEATURE PATTERNS:" in result
        assert "- el pico: typically centered at (0.45, 0.25) with size 0.10x0.10" in result
        assert "over 6 observations" in result
        assert "Locate the beak precisely" in result
        assert "la cola" not in result
        assert "CORRECTION-BASED ADJUSTMENTS" not in result
        assert "COMMON REJECTION PATTERNS" not in result

    @pytest.mark.asyncio
    async def test_other_species_does_not_match(self, learner: PatternLearner):
        await _observe(learner, "el pico", 6)
        assert learner.enhance_prompt(BASE, species="Colibrí", target_features=["el pico"]) == BASE

    @pytest.mark.asyncio
    async def test_frequent_rejection_adds_warning(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5)
        for _ in range(4):
            await learner.learn_from_rejection(make_annotation(), "includes the eye", species=SPECIES)

        result = learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"])

        assert "COMMON REJECTION PATTERNS TO AVOID:" in result
        assert '- el pico: Avoid patterns that caused: "includes the eye" (4x)' in result

    @pytest.mark.asyncio
    async def test_rejections_at_threshold_do_not_warn(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5)
        for _ in range(3):
            await learner.learn_from_rejection(make_annotation(), "includes the eye", species=SPECIES)

        result = learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"])
        assert "LEARNED FEATURE PATTERNS" in result
        assert "COMMON REJECTION PATTERNS" not in result

    @pytest.mark.asyncio
    async def test_rejection_warning_needs_matched_pattern(self, learner: PatternLearner):
        await _observe(learner, "el pico", 2)
        for _ in range(6):
            await learner.learn_from_rejection(make_annotation(), "includes the eye", species=SPECIES)

        assert learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"]) == BASE

    @pytest.mark.asyncio
    async def test_corrections_add_adjustment_block(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5)
        original = make_annotation(box=(0.4, 0.2, 0.1, 0.1))
        corrected = make_annotation(box=(0.5, 0.2, 0.1, 0.1))
        for _ in range(3):
            await learner.learn_from_correction(original, corrected, species=SPECIES)

        result = learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"])

        assert "CORRECTION-BASED ADJUSTMENTS:" in result
        assert "- el pico: Adjust position by (0.1, 0.0) and size by (0.0, 0.0)" in result
        assert "[Based on 3 user corrections]" in result

    @pytest.mark.asyncio
    async def test_too_few_corrections_omit_adjustment_block(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5)
        await learner.learn_from_correction(
            make_annotation(box=(0.4, 0.2, 0.1, 0.1)),
            make_annotation(box=(0.5, 0.2, 0.1, 0.1)),
            species=SPECIES,
        )
        result = learner.enhance_prompt(BASE, species=SPECIES, target_features=["el pico"])
        assert "CORRECTION-BASED ADJUSTMENTS" not in result

    @pytest.mark.asyncio
    async def test_result_always_extends_base(self, learner: PatternLearner):
        await _observe(learner, "el pico", 7)
        for base in ["", "x", BASE, "multi\nline\nprompt"]:
            for features in ([], ["pico"], ["el pico", "unknown"]):
                result = learner.enhance_prompt(base, species=SPECIES, target_features=features)
                assert result.startswith(base)
                assert len(result) >= len(base)


# ─── evaluate_annotation_quality ─────────────────────────────────────


class TestEvaluateAnnotationQuality:
    """Tests for evaluate_annotation_quality."""

    def test_unknown_feature_is_neutral(self, learner: PatternLearner):
        metrics = learner.evaluate_annotation_quality(make_annotation(confidence=0.9), SPECIES)

        assert metrics.confidence == pytest.approx(0.9)
        assert metrics.bounding_box_quality == pytest.approx(0.7)
        assert metrics.prompt_effectiveness == pytest.approx(0.7)
        assert metrics.overall_quality == pytest.approx(0.4 * 0.9 + 0.3 * 0.7 + 0.3 * 0.7)

    def test_missing_confidence_uses_default(self, learner: PatternLearner):
        metrics = learner.evaluate_annotation_quality(make_annotation(confidence=None))
        assert metrics.confidence == pytest.approx(0.8)
        assert metrics.overall_quality > 0

    @pytest.mark.asyncio
    async def test_matching_box_scores_high(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5, confidence=0.8, box=(0.4, 0.2, 0.1, 0.1))

        metrics = learner.evaluate_annotation_quality(
            make_annotation(confidence=1.0, box=(0.4, 0.2, 0.1, 0.1)), SPECIES
        )

        assert metrics.confidence == pytest.approx(0.6 * 1.0 + 0.4 * 0.8)
        assert metrics.bounding_box_quality == pytest.approx(1.0)
        assert metrics.prompt_effectiveness == pytest.approx(math.log(6) / math.log(20))

    @pytest.mark.asyncio
    async def test_distant_box_scores_lower(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5, box=(0.4, 0.2, 0.1, 0.1))

        near = learner.evaluate_annotation_quality(make_annotation(box=(0.42, 0.2, 0.1, 0.1)), SPECIES)
        far = learner.evaluate_annotation_quality(make_annotation(box=(0.9, 0.8, 0.1, 0.1)), SPECIES)

        assert 0.0 <= far.bounding_box_quality < near.bounding_box_quality < 1.0
        assert far.overall_quality < near.overall_quality

    @pytest.mark.asyncio
    async def test_missing_box_is_neutral(self, learner: PatternLearner):
        await _observe(learner, "el pico", 5)
        metrics = learner.evaluate_annotation_quality(make_annotation(box=None), SPECIES)
        assert metrics.bounding_box_quality == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_prompt_effectiveness_saturates(self, learner: PatternLearner):
        await _observe(learner, "el pico", 25)
        metrics = learner.evaluate_annotation_quality(make_annotation(), SPECIES)
        assert metrics.prompt_effectiveness == 1.0

    @pytest.mark.asyncio
    async def test_scores_stay_in_unit_interval(self, learner: PatternLearner):
        await _observe(learner, "el pico", 3, box=(0.0, 0.0, 0.01, 0.01))
        for confidence in (0.0, 0.5, 1.0, None):
            for box in (None, (0.0, 0.0, 0.01, 0.01), (1000.0, -1000.0, 5.0, 5.0)):
                metrics = learner.evaluate_annotation_quality(
                    make_annotation(confidence=confidence, box=box), SPECIES
                )
                for value in metrics.to_dict().values():
                    assert 0.0 <= value <= 1.0

    def test_invalid_annotation_raises(self, learner: PatternLearner):
        with pytest.raises(AnnotationValidationError):
            learner.evaluate_annotation_quality({"spanishTerm": ""})


# ─── get_recommended_features ────────────────────────────────────────


class TestRecommendedFeatures:
    """Tests for get_recommended_features."""

    def test_unknown_species_is_empty(self, learner: PatternLearner):
        assert learner.get_recommended_features("Unknown Species") == []

    @pytest.mark.asyncio
    async def test_orders_by_count_then_confidence(self, learner: PatternLearner):
        await _observe(learner, "el ala", 3, confidence=0.75)
        await _observe(learner, "el pico", 1, confidence=0.99)
        await _observe(learner, "la cola", 3, confidence=0.95)
        await _observe(learner, "la pata", 1, confidence=0.8)

        assert learner.get_recommended_features(SPECIES) == ["cola", "ala", "pico", "pata"]

    @pytest.mark.asyncio
    async def test_limit_truncates(self, learner: PatternLearner):
        await _observe(learner, "el ala", 2)
        await _observe(learner, "el pico", 1)

        assert learner.get_recommended_features(SPECIES, limit=1) == ["ala"]
        assert learner.get_recommended_features(SPECIES, limit=0) == []

    def test_negative_limit_raises(self, learner: PatternLearner):
        with pytest.raises(ValueError):
            learner.get_recommended_features(SPECIES, limit=-1)


# ─── get_position_adjusted_features ──────────────────────────────────


class TestPositionAdjustedFeatures:
    """Tests for get_position_adjusted_features."""

    @pytest.mark.asyncio
    async def test_returns_every_requested_feature(self, learner: PatternLearner):
        await _observe(learner, "el ala", 1)
        await learner.learn_from_correction(
            make_annotation(box=(0.4, 0.2, 0.1, 0.1)),
            make_annotation(box=(0.4, 0.3, 0.1, 0.1)),
            species=SPECIES,
        )

        results = learner.get_position_adjusted_features(SPECIES, ["el pico", "el ala", "la cola"])

        assert [r.feature for r in results] == ["el pico", "el ala", "la cola"]
        pico, ala, cola = results
        assert pico.adjustment is not None
        assert pico.adjustment.dy == pytest.approx(0.1)
        assert pico.based_on_corrections == 1
        assert ala.adjustment is None and ala.based_on_corrections == 0
        assert cola.adjustment is None and cola.based_on_corrections == 0

    @pytest.mark.asyncio
    async def test_result_is_a_copy(self, learner: PatternLearner):
        await learner.learn_from_correction(
            make_annotation(box=(0.4, 0.2, 0.1, 0.1)),
            make_annotation(box=(0.5, 0.2, 0.1, 0.1)),
            species=SPECIES,
        )
        first = learner.get_position_adjusted_features(SPECIES, ["pico"])[0]
        assert first.adjustment is not None
        first.adjustment.dx = 99.0

        again = learner.get_position_adjusted_features(SPECIES, ["pico"])[0]
        assert again.adjustment is not None
        assert again.adjustment.dx == pytest.approx(0.1)

    def test_to_dict_shape(self, learner: PatternLearner):
        data = learner.get_position_adjusted_features(SPECIES, ["pico"])[0].to_dict()
        assert data == {"feature": "pico", "adjustedBoundingBox": None, "basedOnCorrections": 0}

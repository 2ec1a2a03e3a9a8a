"""Query/advisory mixin for PatternLearner.

Read-only operations consulted while building a generation prompt or
reviewing a fresh annotation. They read the published patterns without
taking locks and never mutate the store.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Iterable, Mapping
from typing import Any

from plumage.core.config import LearningConfig
from plumage.core.logging import PlumageLogger
from plumage.learning.models import (
    Annotation,
    LearnedPattern,
    PositionAdjustedFeature,
    QualityMetrics,
    clamp_unit,
    coerce_annotation,
    make_pattern_key,
    resolve_species,
)
from plumage.learning.store import PatternStore

# Neutral sub-score used when there is no history to compare against
NEUTRAL_SCORE = 0.7

# Added to the variance before normalizing so single-sample boxes don't divide by zero
_VARIANCE_FLOOR = 0.01

# Reasons listed per feature in the rejection warning block
_MAX_REASONS_PER_FEATURE = 3


def ranking_key(pattern: LearnedPattern) -> tuple[int, float]:
    """Sort key: most observed first, then most confident."""
    return (-pattern.observation_count, -pattern.average_confidence)


class AdvisoryMixin:
    """Mixin providing prompt enhancement, quality scoring and recommendations.

    This mixin requires that the composed class provides:
    - _store: PatternStore
    - _learning: LearningConfig
    - _logger: PlumageLogger
    """

    _store: PatternStore
    _learning: LearningConfig
    _logger: PlumageLogger

    def enhance_prompt(
        self,
        base_prompt: str,
        species: str | None = None,
        target_features: Iterable[str] = (),
    ) -> str:
        """Append learned guidance for the target features to a prompt.

        Only patterns with at least ``min_samples_for_guidance`` observations
        contribute. The result always starts with ``base_prompt``; when no
        target feature has enough history it is returned unchanged.
        """
        try:
            return base_prompt + self._build_guidance(species, list(target_features))
        except Exception:
            self._logger.exception("prompt_enhancement_failed", species=species)
            return base_prompt

    def _build_guidance(self, species: str | None, features: list[str]) -> str:
        matched: list[tuple[str, LearnedPattern]] = []
        for feature in features:
            pattern = self._store.get(make_pattern_key(feature, species))
            if pattern is not None and pattern.observation_count >= self._learning.min_samples_for_guidance:
                matched.append((feature, pattern))

        if not matched:
            return ""

        sections = [
            _feature_section(matched),
            self._correction_section(matched),
            self._rejection_section(matched),
        ]
        guidance = "".join(s for s in sections if s)
        self._logger.info(
            "prompt_enhanced",
            species=resolve_species(species),
            requested=len(features),
            matched=len(matched),
        )
        return guidance

    def _correction_section(self, matched: list[tuple[str, LearnedPattern]]) -> str:
        hints = []
        for feature, pattern in matched:
            adjustment = pattern.position_adjustment
            if adjustment is None or adjustment.sample_count < self._learning.min_corrections_for_guidance:
                continue
            hints.append(
                f"- {feature}: Adjust position by ({adjustment.dx:.1f}, {adjustment.dy:.1f}) "
                f"and size by ({adjustment.d_width:.1f}, {adjustment.d_height:.1f}) "
                f"[Based on {adjustment.sample_count} user corrections]"
            )
        if not hints:
            return ""
        return (
            "\n\nCORRECTION-BASED ADJUSTMENTS:\n"
            + "\n".join(hints)
            + "\nNote: These adjustments are learned from expert corrections"
        )

    def _rejection_section(self, matched: list[tuple[str, LearnedPattern]]) -> str:
        threshold = self._learning.rejection_warning_threshold
        warnings = []
        for feature, pattern in matched:
            frequent = sorted(
                ((reason, count) for reason, count in pattern.rejection_reasons.items() if count > threshold),
                key=lambda item: (-item[1], item[0]),
            )[:_MAX_REASONS_PER_FEATURE]
            if frequent:
                reasons = ", ".join(f'"{reason}" ({count}x)' for reason, count in frequent)
                warnings.append(f"- {feature}: Avoid patterns that caused: {reasons}")
        if not warnings:
            return ""
        return (
            "\n\nCOMMON REJECTION PATTERNS TO AVOID:\n"
            + "\n".join(warnings)
            + "\nNote: Learn from past mistakes to improve accuracy"
        )

    def evaluate_annotation_quality(
        self,
        annotation: Annotation | Mapping[str, Any],
        species: str | None = None,
    ) -> QualityMetrics:
        """Score an annotation against the learned pattern for its feature.

        Without a pattern the scores are neutral rather than low, since an
        unknown feature is not evidence of a poor annotation.

        Raises:
            AnnotationValidationError: If the annotation is malformed.
        """
        candidate = coerce_annotation(annotation)
        raw_confidence = clamp_unit(
            candidate.confidence if candidate.confidence is not None else self._learning.default_confidence
        )
        pattern = self._store.get(make_pattern_key(candidate.spanish_term, species))

        if pattern is None:
            confidence = raw_confidence
            box_quality = NEUTRAL_SCORE
            effectiveness = NEUTRAL_SCORE
        else:
            confidence = clamp_unit(0.6 * raw_confidence + 0.4 * pattern.average_confidence)
            box_quality = _box_quality(candidate, pattern)
            saturation = max(2, self._learning.effectiveness_saturation)
            effectiveness = clamp_unit(math.log(pattern.observation_count + 1) / math.log(saturation))

        overall = clamp_unit(0.4 * confidence + 0.3 * box_quality + 0.3 * effectiveness)
        return QualityMetrics(
            confidence=confidence,
            bounding_box_quality=box_quality,
            prompt_effectiveness=effectiveness,
            overall_quality=overall,
        )

    def get_recommended_features(self, species: str | None, limit: int = 10) -> list[str]:
        """Features most worth looking for in an image of ``species``.

        Raises:
            ValueError: If ``limit`` is negative.
        """
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        context = resolve_species(species)
        candidates = [p for p in self._store.values() if p.species_context == context]
        candidates.sort(key=ranking_key)
        return [p.feature_type for p in candidates[:limit]]

    def get_position_adjusted_features(
        self,
        species: str | None,
        features: Iterable[str],
    ) -> list[PositionAdjustedFeature]:
        """Learned correction deltas for each requested feature.

        Every requested feature is returned, in order; features without
        correction history carry ``adjustment=None`` and 0 corrections.
        """
        results = []
        for feature in features:
            pattern = self._store.get(make_pattern_key(feature, species))
            adjustment = pattern.position_adjustment if pattern is not None else None
            if adjustment is None:
                results.append(PositionAdjustedFeature(feature, None, 0))
            else:
                results.append(
                    PositionAdjustedFeature(feature, dataclasses.replace(adjustment), adjustment.sample_count)
                )
        return results


def _feature_section(matched: list[tuple[str, LearnedPattern]]) -> str:
    hints = []
    for feature, pattern in matched:
        line = f"- {feature}:"
        box = pattern.primary_box
        if box is not None:
            line += (
                f" typically centered at ({box.center_x:.2f}, {box.center_y:.2f})"
                f" with size {box.width:.2f}x{box.height:.2f},"
            )
        line += f" average confidence {pattern.average_confidence:.2f} over {pattern.observation_count} observations"
        if pattern.successful_prompts:
            excerpt = pattern.successful_prompts[-1].strip().replace("\n", " ")
            if len(excerpt) > 80:
                excerpt = excerpt[:77] + "..."
            line += f'; last successful prompt: "{excerpt}"'
        hints.append(line)
    return (
        "\n\nLEARNED FEATURE PATTERNS:\n"
        + "\n".join(hints)
        + "\nNote: Use these as reference points, not strict requirements"
    )


def _box_quality(candidate: Annotation, pattern: LearnedPattern) -> float:
    box = pattern.primary_box
    observed = candidate.bounding_box
    if box is None or observed is None:
        return NEUTRAL_SCORE
    center_x = observed.x + observed.width / 2
    center_y = observed.y + observed.height / 2
    distance_x = abs(center_x - box.center_x) / math.sqrt(box.variance_x + _VARIANCE_FLOOR)
    distance_y = abs(center_y - box.center_y) / math.sqrt(box.variance_y + _VARIANCE_FLOOR)
    distance = math.hypot(distance_x, distance_y)
    return clamp_unit(math.exp(-distance / 2))


__all__ = ["AdvisoryMixin", "NEUTRAL_SCORE", "ranking_key"]

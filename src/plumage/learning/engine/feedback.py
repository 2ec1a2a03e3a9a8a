"""Feedback processing mixin for PatternLearner.

Mutating operations, one per kind of evidence:
- learn_from_annotations: bulk high-confidence observations from the AI service
- learn_from_approval: a reviewer accepted an annotation (boost toward 1.0)
- learn_from_rejection: a reviewer rejected an annotation (decay toward 0.0)
- learn_from_correction: a reviewer moved/resized a box (position delta learning)

Every operation edits one pattern key at a time under that key's lock and
then triggers a write-through save. None of them raise: failures are logged
and the call returns its "nothing learned" value.
"""

from __future__ import annotations

import copy
import functools
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, ParamSpec, TypeVar

from plumage.core.config import LearningConfig
from plumage.core.errors import AnnotationValidationError
from plumage.core.logging import LearningContext, PlumageLogger, with_context
from plumage.learning.models import (
    Annotation,
    LearnedPattern,
    PositionAdjustment,
    clamp_unit,
    coerce_annotation,
    make_pattern_key,
)
from plumage.learning.store import PatternStore

AnnotationInput = Annotation | Mapping[str, Any]

_P = ParamSpec("_P")
_R = TypeVar("_R")


def _absorb_errors(
    default: Any,
) -> Callable[[Callable[_P, Awaitable[_R]]], Callable[_P, Awaitable[_R]]]:
    """Log and swallow unexpected errors from a learning operation."""

    def decorator(func: Callable[_P, Awaitable[_R]]) -> Callable[_P, Awaitable[_R]]:
        @functools.wraps(func)
        async def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
            try:
                return await func(*args, **kwargs)
            except Exception:
                logger: PlumageLogger = args[0]._logger  # type: ignore[attr-defined]
                logger.exception("learning_operation_failed", operation=func.__name__)
                return default  # type: ignore[no-any-return]

        return wrapper

    return decorator


class FeedbackMixin:
    """Mixin providing the learn_from_* operations.

    This mixin requires that the composed class provides:
    - _store: PatternStore
    - _learning: LearningConfig
    - _logger: PlumageLogger
    - ensure_initialized(): session restore
    - _write_through(): persistence after a mutation
    """

    _store: PatternStore
    _learning: LearningConfig
    _logger: PlumageLogger
    ensure_initialized: Callable[[], Awaitable[None]]
    _write_through: Callable[[], Awaitable[None]]

    @_absorb_errors(default=0)
    async def learn_from_annotations(
        self,
        annotations: Iterable[AnnotationInput],
        species: str | None = None,
        prompt: str | None = None,
        image_characteristics: Iterable[str] | None = None,
    ) -> int:
        """Learn from a batch of AI-generated annotation candidates.

        Only annotations with ``confidence >= confidence_threshold`` are
        learned from; the rest, and any item that fails validation, are
        skipped without side effects.

        Args:
            annotations: Candidate annotations (models or camelCase dicts).
            species: Species the image shows.
            prompt: Prompt that produced the annotations; kept as a successful prompt.
            image_characteristics: Tags such as "perched" or "in flight".

        Returns:
            Number of annotations that contributed to a pattern.
        """
        await self.ensure_initialized()
        threshold = self._learning.confidence_threshold

        qualifying: list[Annotation] = []
        total = 0
        for index, item in enumerate(annotations):
            total += 1
            try:
                annotation = coerce_annotation(item)
            except AnnotationValidationError as e:
                self._logger.warning("annotation_skipped_invalid", index=index, error=str(e))
                continue
            if annotation.confidence is not None and annotation.confidence >= threshold:
                qualifying.append(annotation)

        if not qualifying:
            self._logger.debug("no_high_confidence_annotations", total=total, species=species)
            return 0

        characteristics = list(image_characteristics or [])
        with with_context(LearningContext(species=species, operation="observation")):
            for annotation in qualifying:
                await self._observe(annotation, species, prompt, characteristics)
            self._logger.info(
                "learned_from_annotations",
                total=total,
                high_confidence=len(qualifying),
            )

        await self._write_through()
        return len(qualifying)

    async def _observe(
        self,
        annotation: Annotation,
        species: str | None,
        prompt: str | None,
        image_characteristics: list[str],
    ) -> None:
        key = make_pattern_key(annotation.spanish_term, species)
        confidence = annotation.confidence if annotation.confidence is not None else 0.0

        async with self._store.edit(key) as edit:
            pattern = edit.current or LearnedPattern.create(annotation.spanish_term, species)
            n = pattern.observation_count
            pattern.average_confidence = clamp_unit(
                (pattern.average_confidence * n + confidence) / (n + 1)
            )
            if annotation.bounding_box is not None:
                pattern.fold_box(annotation.bounding_box, self._learning.max_box_samples)
            if prompt:
                pattern.record_prompt(prompt, self._learning.max_prompt_history)
            if image_characteristics:
                known = pattern.metadata.setdefault("imageCharacteristics", [])
                known.extend(c for c in image_characteristics if c not in known)
            self._fold_annotation_metadata(pattern, annotation)
            pattern.observation_count = n + 1
            pattern.touch()
            edit.commit(pattern)

        if edit.current is None:
            self._logger.debug("pattern_created", key=key, source="observation")

    @_absorb_errors(default=None)
    async def learn_from_approval(
        self,
        annotation: AnnotationInput,
        species: str | None = None,
        image_id: str | None = None,
        reviewer_id: str | None = None,
    ) -> LearnedPattern | None:
        """Reinforce the pattern behind an approved annotation.

        An existing pattern moves toward 1.0 by ``approval_boost_rate`` of the
        remaining distance. An unknown annotation originates a new pattern
        seeded from its own confidence and box.

        Returns:
            A copy of the updated pattern, or None if the annotation was invalid.
        """
        await self.ensure_initialized()
        ctx = LearningContext(species=species, image_id=image_id, reviewer_id=reviewer_id, operation="approval")
        with with_context(ctx):
            try:
                approved = coerce_annotation(annotation)
            except AnnotationValidationError as e:
                self._logger.warning("approval_skipped_invalid", error=str(e))
                return None

            key = make_pattern_key(approved.spanish_term, species)
            async with self._store.edit(key) as edit:
                if edit.current is None:
                    pattern = LearnedPattern.create(approved.spanish_term, species)
                    seed = approved.confidence
                    pattern.average_confidence = clamp_unit(
                        seed if seed is not None else self._learning.default_confidence
                    )
                else:
                    pattern = edit.current
                    avg = pattern.average_confidence
                    pattern.average_confidence = clamp_unit(
                        avg + (1.0 - avg) * self._learning.approval_boost_rate
                    )
                if approved.bounding_box is not None:
                    pattern.fold_box(
                        approved.bounding_box,
                        self._learning.max_box_samples,
                        weight=self._learning.approval_box_weight,
                    )
                self._fold_annotation_metadata(pattern, approved)
                _increment(pattern.metadata, "approvalCount")
                pattern.observation_count += 1
                pattern.touch()
                edit.commit(pattern)

            self._logger.info(
                "learned_from_approval",
                key=key,
                created=edit.current is None,
                new_confidence=pattern.average_confidence,
            )

        await self._write_through()
        return copy.deepcopy(pattern)

    @_absorb_errors(default=None)
    async def learn_from_rejection(
        self,
        annotation: AnnotationInput,
        reason: str,
        species: str | None = None,
        image_id: str | None = None,
    ) -> LearnedPattern | None:
        """Penalize the pattern behind a rejected annotation.

        Confidence decays by ``rejection_penalty_rate`` of its current value
        and the reason is counted. The observation count is left alone.
        Rejections for annotations with no learned pattern are logged and
        otherwise ignored.

        Returns:
            A copy of the updated pattern, or None if nothing was changed.
        """
        await self.ensure_initialized()
        reason = reason.strip() if reason and reason.strip() else "unspecified"
        ctx = LearningContext(species=species, image_id=image_id, operation="rejection")
        with with_context(ctx):
            try:
                rejected = coerce_annotation(annotation)
            except AnnotationValidationError as e:
                self._logger.warning("rejection_skipped_invalid", error=str(e))
                return None

            key = make_pattern_key(rejected.spanish_term, species)
            async with self._store.edit(key) as edit:
                pattern = edit.current
                if pattern is not None:
                    avg = pattern.average_confidence
                    pattern.average_confidence = clamp_unit(
                        avg - avg * self._learning.rejection_penalty_rate
                    )
                    _increment(pattern.rejection_reasons, reason)
                    pattern.touch()
                    edit.commit(pattern)

            if pattern is None:
                self._logger.info("rejection_without_pattern", key=key, reason=reason)
                return None

            self._logger.info(
                "learned_from_rejection",
                key=key,
                reason=reason,
                reason_count=pattern.rejection_reasons[reason],
                new_confidence=pattern.average_confidence,
            )

        await self._write_through()
        return copy.deepcopy(pattern)

    @_absorb_errors(default=None)
    async def learn_from_correction(
        self,
        original: AnnotationInput,
        corrected: AnnotationInput,
        species: str | None = None,
        image_id: str | None = None,
        reviewer_id: str | None = None,
    ) -> LearnedPattern | None:
        """Learn from a reviewer's correction of an annotation's box.

        The box delta (corrected minus original) is averaged into the
        pattern's position adjustment unless it is exactly zero. The
        corrected confidence and box count as ``correction_weight``
        observations, since a human-verified box is stronger evidence than
        an unreviewed detection. An unknown feature originates a pattern.

        Returns:
            A copy of the updated pattern, or None if either annotation was invalid.
        """
        await self.ensure_initialized()
        ctx = LearningContext(species=species, image_id=image_id, reviewer_id=reviewer_id, operation="correction")
        with with_context(ctx):
            try:
                before = coerce_annotation(original)
                after = coerce_annotation(corrected)
            except AnnotationValidationError as e:
                self._logger.warning("correction_skipped_invalid", error=str(e))
                return None

            delta: tuple[float, float, float, float] | None = None
            if before.bounding_box is not None and after.bounding_box is not None:
                a, b = before.bounding_box, after.bounding_box
                delta = (b.x - a.x, b.y - a.y, b.width - a.width, b.height - a.height)
                if not any(delta):
                    delta = None
                    self._logger.debug("correction_without_position_change")

            weight = self._learning.correction_weight
            confidence = (
                after.confidence
                if after.confidence is not None
                else self._learning.correction_default_confidence
            )

            key = make_pattern_key(before.spanish_term, species)
            async with self._store.edit(key) as edit:
                pattern = edit.current or LearnedPattern.create(before.spanish_term, species)
                n = pattern.observation_count
                pattern.average_confidence = clamp_unit(
                    (pattern.average_confidence * n + confidence * weight) / (n + weight)
                )
                if after.bounding_box is not None:
                    pattern.fold_box(after.bounding_box, self._learning.max_box_samples, weight=weight)
                if delta is not None:
                    adjustment = pattern.position_adjustment or PositionAdjustment()
                    adjustment.fold(*delta)
                    pattern.position_adjustment = adjustment
                self._fold_annotation_metadata(pattern, after)
                _increment(pattern.metadata, "correctionCount")
                pattern.observation_count = n + 1
                pattern.touch()
                edit.commit(pattern)

            self._logger.info(
                "learned_from_correction",
                key=key,
                created=edit.current is None,
                delta=list(delta) if delta else None,
                corrections_tracked=(
                    pattern.position_adjustment.sample_count if pattern.position_adjustment else 0
                ),
            )

        await self._write_through()
        return copy.deepcopy(pattern)

    def _fold_annotation_metadata(self, pattern: LearnedPattern, annotation: Annotation) -> None:
        """Fold descriptive annotation fields into the pattern's metadata."""
        metadata = pattern.metadata
        if annotation.english_term and not metadata.get("englishTerm"):
            metadata["englishTerm"] = annotation.english_term
        metadata.setdefault("annotationType", annotation.annotation_type)

        if annotation.difficulty_level is not None:
            samples = int(metadata.get("difficultySamples", 0))
            current = float(metadata.get("avgDifficultyLevel", 0.0))
            metadata["avgDifficultyLevel"] = (current * samples + annotation.difficulty_level) / (samples + 1)
            metadata["difficultySamples"] = samples + 1

        limit = self._learning.max_pronunciations
        if annotation.pronunciation and limit > 0:
            pronunciations: list[str] = metadata.setdefault("commonPronunciations", [])
            if annotation.pronunciation not in pronunciations and len(pronunciations) < limit:
                pronunciations.append(annotation.pronunciation)


def _increment(counter: dict[str, Any], name: str) -> None:
    counter[name] = int(counter.get(name, 0)) + 1


__all__ = ["FeedbackMixin"]

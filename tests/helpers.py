"""Shared test helpers for Plumage tests."""

from __future__ import annotations

from typing import Any

from plumage.learning import LearnedPattern, PatternLearner, make_pattern_key


def make_annotation(
    term: str = "el pico",
    confidence: float | None = 0.9,
    box: tuple[float, float, float, float] | None = (0.4, 0.2, 0.1, 0.1),
    **extra: Any,
) -> dict[str, Any]:
    """Build an annotation payload the way the vision service sends it."""
    annotation: dict[str, Any] = {"spanishTerm": term, "englishTerm": "beak", "type": "anatomical"}
    if confidence is not None:
        annotation["confidence"] = confidence
    if box is not None:
        x, y, width, height = box
        annotation["boundingBox"] = {"x": x, "y": y, "width": width, "height": height}
    annotation.update(extra)
    return annotation


def find_pattern(learner: PatternLearner, feature: str, species: str | None) -> LearnedPattern | None:
    """Look up a pattern through the public export."""
    key = make_pattern_key(feature, species)
    for pattern in learner.export_patterns().patterns:
        if pattern.id == key:
            return pattern
    return None

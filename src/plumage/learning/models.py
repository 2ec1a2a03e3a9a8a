"""Data models for the pattern learning engine.

Inbound annotation candidates are pydantic models, because they arrive from
the AI vision service as camelCase JSON and must be validated. Learned state
is plain dataclasses with explicit ``to_dict``/``from_dict`` so that the
persisted snapshot layout is decoupled from the in-memory representation.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from plumage.core.errors import AnnotationValidationError

GLOBAL_CONTEXT = "global"
"""Species context used when an event carries no species."""

REJECTION_REASONS = "rejectionReasons"
"""Metadata key holding the ``{reason: count}`` rejection counter."""

# Leading articles stripped from feature labels ("el pico" -> "pico")
_ARTICLES = frozenset({"el", "la", "los", "las", "un", "una", "unos", "unas", "the", "a", "an"})
_WHITESPACE = re.compile(r"\s+")


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]; NaN becomes 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def normalize_feature(name: str) -> str:
    """Normalize a feature label for use as a pattern key.

    Lower-cases, collapses whitespace and strips one leading article, so
    ``"El  Pico"`` and ``"pico"`` share a pattern. A label that is only an
    article is kept as-is.
    """
    words = _WHITESPACE.sub(" ", name.strip().lower()).split(" ")
    if len(words) > 1 and words[0] in _ARTICLES:
        words = words[1:]
    return " ".join(words)


def resolve_species(species: str | None) -> str:
    """Return the species context for a possibly missing species name."""
    if species is None or not species.strip():
        return GLOBAL_CONTEXT
    return species.strip()


def make_pattern_key(feature: str, species: str | None) -> str:
    """Derive the composite pattern key ``normalized_feature:species``."""
    return f"{normalize_feature(feature)}:{resolve_species(species)}"


# =============================================================================
# Inbound annotations
# =============================================================================


class BoundingBox(BaseModel):
    """Axis-aligned box in the coordinate space of the source image."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class Annotation(BaseModel):
    """An annotation candidate produced by the AI vision service.

    Accepts both the service's camelCase field names and snake_case.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    spanish_term: str = Field(alias="spanishTerm")
    english_term: str = Field(default="", alias="englishTerm")
    bounding_box: BoundingBox | None = Field(default=None, alias="boundingBox")
    annotation_type: str = Field(default="anatomical", alias="type")
    difficulty_level: int | None = Field(default=None, ge=0, alias="difficultyLevel")
    pronunciation: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("spanish_term")
    @classmethod
    def _require_term(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("spanishTerm must not be blank")
        return value.strip()

    @property
    def feature_type(self) -> str:
        return normalize_feature(self.spanish_term)


def coerce_annotation(item: Annotation | Mapping[str, Any]) -> Annotation:
    """Return ``item`` as a validated Annotation.

    Raises:
        AnnotationValidationError: If the item is not a valid annotation.
    """
    if isinstance(item, Annotation):
        return item
    if not isinstance(item, Mapping):
        raise AnnotationValidationError(f"Expected an annotation mapping, got {type(item).__name__}")
    try:
        return Annotation.model_validate(dict(item))
    except ValidationError as e:
        raise AnnotationValidationError(str(e)) from e


# =============================================================================
# Learned state
# =============================================================================


@dataclass
class BoundingBoxPattern:
    """Running summary of the boxes observed for one feature.

    Keeps the mean center and size with per-dimension population variance
    (Welford's online update), plus a bounded list of the most recent boxes.
    """

    center_x: float
    center_y: float
    width: float
    height: float
    variance_x: float = 0.0
    variance_y: float = 0.0
    variance_width: float = 0.0
    variance_height: float = 0.0
    sample_size: int = 1
    recent: list[BoundingBox] = field(default_factory=list)

    @classmethod
    def from_box(cls, box: BoundingBox, max_samples: int = 20) -> BoundingBoxPattern:
        return cls(
            center_x=box.x + box.width / 2,
            center_y=box.y + box.height / 2,
            width=box.width,
            height=box.height,
            recent=[box] if max_samples > 0 else [],
        )

    def fold(self, box: BoundingBox, max_samples: int = 20) -> None:
        """Fold one more box into the running mean and variance."""
        n = self.sample_size
        new_n = n + 1
        observed = (box.x + box.width / 2, box.y + box.height / 2, box.width, box.height)
        means = (self.center_x, self.center_y, self.width, self.height)
        variances = (self.variance_x, self.variance_y, self.variance_width, self.variance_height)

        new_means: list[float] = []
        new_variances: list[float] = []
        for value, mean, variance in zip(observed, means, variances, strict=True):
            delta = value - mean
            new_mean = mean + delta / new_n
            new_means.append(new_mean)
            new_variances.append(max(0.0, (variance * n + delta * (value - new_mean)) / new_n))

        self.center_x, self.center_y, self.width, self.height = new_means
        (
            self.variance_x,
            self.variance_y,
            self.variance_width,
            self.variance_height,
        ) = new_variances
        self.sample_size = new_n

        if max_samples > 0:
            self.recent.append(box)
            del self.recent[:-max_samples]
        else:
            self.recent.clear()

    def mean_box(self) -> BoundingBox:
        """The running-average box as top-left corner plus size."""
        return BoundingBox(
            x=self.center_x - self.width / 2,
            y=self.center_y - self.height / 2,
            width=max(0.0, self.width),
            height=max(0.0, self.height),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "center": {"x": self.center_x, "y": self.center_y},
            "size": {"width": self.width, "height": self.height},
            "variance": {
                "x": self.variance_x,
                "y": self.variance_y,
                "width": self.variance_width,
                "height": self.variance_height,
            },
            "sampleSize": self.sample_size,
            "recent": [b.to_dict() for b in self.recent],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BoundingBoxPattern:
        variance = data.get("variance") or {}
        return cls(
            center_x=float(data["center"]["x"]),
            center_y=float(data["center"]["y"]),
            width=float(data["size"]["width"]),
            height=float(data["size"]["height"]),
            variance_x=float(variance.get("x", 0.0)),
            variance_y=float(variance.get("y", 0.0)),
            variance_width=float(variance.get("width", 0.0)),
            variance_height=float(variance.get("height", 0.0)),
            sample_size=int(data.get("sampleSize", 1)),
            recent=[BoundingBox.model_validate(b) for b in data.get("recent", [])],
        )


@dataclass
class PositionAdjustment:
    """Average delta between AI-detected and human-corrected boxes."""

    dx: float = 0.0
    dy: float = 0.0
    d_width: float = 0.0
    d_height: float = 0.0
    sample_count: int = 0

    def fold(self, dx: float, dy: float, d_width: float, d_height: float) -> None:
        n = self.sample_count
        new_n = n + 1
        self.dx = (self.dx * n + dx) / new_n
        self.dy = (self.dy * n + dy) / new_n
        self.d_width = (self.d_width * n + d_width) / new_n
        self.d_height = (self.d_height * n + d_height) / new_n
        self.sample_count = new_n

    def to_dict(self) -> dict[str, Any]:
        return {
            "dx": self.dx,
            "dy": self.dy,
            "dWidth": self.d_width,
            "dHeight": self.d_height,
            "sampleCount": self.sample_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PositionAdjustment:
        return cls(
            dx=float(data["dx"]),
            dy=float(data["dy"]),
            d_width=float(data["dWidth"]),
            d_height=float(data["dHeight"]),
            sample_count=int(data["sampleCount"]),
        )


@dataclass
class LearnedPattern:
    """Learned knowledge for one (species, feature) pair."""

    id: str
    feature_type: str
    species_context: str
    successful_prompts: list[str] = field(default_factory=list)
    common_bounding_boxes: list[BoundingBoxPattern] = field(default_factory=list)
    average_confidence: float = 0.0
    observation_count: int = 0
    position_adjustment: PositionAdjustment | None = None
    metadata: dict[str, Any] = field(default_factory=lambda: {REJECTION_REASONS: {}})
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(cls, feature: str, species: str | None) -> LearnedPattern:
        """Create an empty pattern with its key derived from feature and species."""
        return cls(
            id=make_pattern_key(feature, species),
            feature_type=normalize_feature(feature),
            species_context=resolve_species(species),
        )

    @property
    def rejection_reasons(self) -> dict[str, int]:
        reasons: dict[str, int] = self.metadata.setdefault(REJECTION_REASONS, {})
        return reasons

    @property
    def primary_box(self) -> BoundingBoxPattern | None:
        return self.common_bounding_boxes[0] if self.common_bounding_boxes else None

    def fold_box(self, box: BoundingBox, max_samples: int, weight: int = 1) -> None:
        """Fold ``box`` into the running box ``weight`` times."""
        for _ in range(weight):
            if not self.common_bounding_boxes:
                self.common_bounding_boxes.append(BoundingBoxPattern.from_box(box, max_samples))
            else:
                self.common_bounding_boxes[0].fold(box, max_samples)

    def record_prompt(self, prompt: str, max_history: int) -> None:
        """Append a prompt, moving duplicates to the end and keeping the last ``max_history``."""
        if prompt in self.successful_prompts:
            self.successful_prompts.remove(prompt)
        self.successful_prompts.append(prompt)
        del self.successful_prompts[:-max_history]

    def touch(self) -> None:
        self.last_updated = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted (camelCase) layout."""
        return {
            "id": self.id,
            "featureType": self.feature_type,
            "speciesContext": self.species_context,
            "successfulPrompts": list(self.successful_prompts),
            "commonBoundingBoxes": [b.to_dict() for b in self.common_bounding_boxes],
            "averageConfidence": self.average_confidence,
            "observationCount": self.observation_count,
            "positionAdjustment": (
                self.position_adjustment.to_dict() if self.position_adjustment else None
            ),
            "metadata": self.metadata,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LearnedPattern:
        """Deserialize from the persisted layout.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing or malformed.
        """
        feature_type = str(data["featureType"])
        species = resolve_species(data.get("speciesContext"))
        metadata = dict(data.get("metadata") or {})
        reasons = metadata.get(REJECTION_REASONS) or {}
        metadata[REJECTION_REASONS] = {str(k): int(v) for k, v in reasons.items()}

        last_updated = datetime.fromisoformat(data["lastUpdated"]) if data.get("lastUpdated") else datetime.now(UTC)
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=UTC)

        adjustment = data.get("positionAdjustment")
        observation_count = int(data.get("observationCount", 0))
        if observation_count < 0:
            raise ValueError(f"observationCount must be >= 0, got {observation_count}")

        return cls(
            id=make_pattern_key(feature_type, species),
            feature_type=normalize_feature(feature_type),
            species_context=species,
            successful_prompts=[str(p) for p in data.get("successfulPrompts", [])],
            common_bounding_boxes=[
                BoundingBoxPattern.from_dict(b) for b in data.get("commonBoundingBoxes", [])
            ][:1],
            average_confidence=clamp_unit(float(data.get("averageConfidence", 0.0))),
            observation_count=observation_count,
            position_adjustment=PositionAdjustment.from_dict(adjustment) if adjustment else None,
            metadata=metadata,
            last_updated=last_updated,
        )


# =============================================================================
# Advisory and analytics results
# =============================================================================


@dataclass(frozen=True)
class QualityMetrics:
    """Quality scores for one annotation, each in [0, 1]."""

    confidence: float
    bounding_box_quality: float
    prompt_effectiveness: float
    overall_quality: float

    def to_dict(self) -> dict[str, float]:
        return {
            "confidence": self.confidence,
            "boundingBoxQuality": self.bounding_box_quality,
            "promptEffectiveness": self.prompt_effectiveness,
            "overallQuality": self.overall_quality,
        }


@dataclass(frozen=True)
class PositionAdjustedFeature:
    """A requested feature with its learned correction delta, if any."""

    feature: str
    adjustment: PositionAdjustment | None
    based_on_corrections: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.feature,
            "adjustedBoundingBox": self.adjustment.to_dict() if self.adjustment else None,
            "basedOnCorrections": self.based_on_corrections,
        }


@dataclass(frozen=True)
class FeatureSummary:
    feature: str
    observations: int
    confidence: float


@dataclass(frozen=True)
class SpeciesSummary:
    species: str
    annotations: int
    features: int


@dataclass(frozen=True)
class PatternAnalytics:
    """Aggregate view of the pattern store for dashboards."""

    total_patterns: int
    species_tracked: int
    top_features: list[FeatureSummary]
    species_breakdown: list[SpeciesSummary]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPatterns": self.total_patterns,
            "speciesTracked": self.species_tracked,
            "topFeatures": [
                {"feature": f.feature, "observations": f.observations, "confidence": f.confidence}
                for f in self.top_features
            ],
            "speciesBreakdown": [
                {"species": s.species, "annotations": s.annotations, "features": s.features}
                for s in self.species_breakdown
            ],
        }


@dataclass(frozen=True)
class FeatureStats:
    """Per-feature statistics within one species."""

    feature_name: str
    occurrence_rate: float
    avg_confidence: float
    avg_difficulty_level: float | None
    bounding_box: BoundingBoxPattern | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureName": self.feature_name,
            "occurrenceRate": self.occurrence_rate,
            "avgConfidence": self.avg_confidence,
            "avgDifficultyLevel": self.avg_difficulty_level,
            "boundingBoxPattern": self.bounding_box.to_dict() if self.bounding_box else None,
        }


@dataclass(frozen=True)
class SpeciesFeatureStats:
    species: str
    total_annotations: int
    features: list[FeatureStats]
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "species": self.species,
            "totalAnnotations": self.total_annotations,
            "features": [f.to_dict() for f in self.features],
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class PatternExport:
    """Full dump of the pattern store for backup and inspection."""

    patterns: list[LearnedPattern]
    species_stats: list[SpeciesFeatureStats]

    def to_dict(self) -> dict[str, Any]:
        return {
            "patterns": [p.to_dict() for p in self.patterns],
            "speciesStats": [s.to_dict() for s in self.species_stats],
        }

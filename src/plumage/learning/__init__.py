"""Online learning of annotation patterns from human review feedback."""

from plumage.learning.engine import PatternLearner
from plumage.learning.models import (
    GLOBAL_CONTEXT,
    Annotation,
    BoundingBox,
    BoundingBoxPattern,
    FeatureStats,
    FeatureSummary,
    LearnedPattern,
    PatternAnalytics,
    PatternExport,
    PositionAdjustedFeature,
    PositionAdjustment,
    QualityMetrics,
    SpeciesFeatureStats,
    SpeciesSummary,
    make_pattern_key,
    normalize_feature,
)
from plumage.learning.snapshot import decode_snapshot, encode_snapshot
from plumage.learning.store import PatternStore

__all__ = [
    "GLOBAL_CONTEXT",
    "Annotation",
    "BoundingBox",
    "BoundingBoxPattern",
    "FeatureStats",
    "FeatureSummary",
    "LearnedPattern",
    "PatternAnalytics",
    "PatternExport",
    "PatternLearner",
    "PatternStore",
    "PositionAdjustedFeature",
    "PositionAdjustment",
    "QualityMetrics",
    "SpeciesFeatureStats",
    "SpeciesSummary",
    "decode_snapshot",
    "encode_snapshot",
    "make_pattern_key",
    "normalize_feature",
]

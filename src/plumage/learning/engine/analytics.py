"""Analytics and export mixin for PatternLearner."""

from __future__ import annotations

import copy
from collections import defaultdict

from plumage.core.config import LearningConfig
from plumage.learning.engine.advisory import ranking_key
from plumage.learning.models import (
    FeatureStats,
    FeatureSummary,
    LearnedPattern,
    PatternAnalytics,
    PatternExport,
    SpeciesFeatureStats,
    SpeciesSummary,
)
from plumage.learning.store import PatternStore


class AnalyticsMixin:
    """Mixin providing full-scan aggregation and export.

    This mixin requires that the composed class provides:
    - _store: PatternStore
    - _learning: LearningConfig
    """

    _store: PatternStore
    _learning: LearningConfig

    def get_analytics(self) -> PatternAnalytics:
        """Summarize the pattern store for a dashboard.

        Observation counts include every contributing event (observations,
        approvals and corrections), not only approved annotations.
        """
        patterns = self._store.values()
        top = sorted(patterns, key=ranking_key)[: self._learning.top_features_limit]

        by_species = _group_by_species(patterns)
        breakdown = [
            SpeciesSummary(
                species=species,
                annotations=sum(p.observation_count for p in members),
                features=len({p.feature_type for p in members}),
            )
            for species, members in by_species.items()
        ]
        breakdown.sort(key=lambda s: (-s.annotations, s.species))

        return PatternAnalytics(
            total_patterns=len(patterns),
            species_tracked=len(by_species),
            top_features=[
                FeatureSummary(p.feature_type, p.observation_count, p.average_confidence) for p in top
            ],
            species_breakdown=breakdown,
        )

    def export_patterns(self) -> PatternExport:
        """Dump the current store with per-species statistics.

        Patterns are deep copies, so the export is unaffected by later
        learning.
        """
        patterns = self._store.snapshot()
        species_stats = [
            _species_stats(species, members)
            for species, members in sorted(_group_by_species(patterns).items())
        ]
        return PatternExport(patterns=patterns, species_stats=species_stats)


def _group_by_species(patterns: list[LearnedPattern]) -> dict[str, list[LearnedPattern]]:
    groups: dict[str, list[LearnedPattern]] = defaultdict(list)
    for pattern in patterns:
        groups[pattern.species_context].append(pattern)
    return dict(groups)


def _species_stats(species: str, members: list[LearnedPattern]) -> SpeciesFeatureStats:
    total = sum(p.observation_count for p in members)
    features = []
    for pattern in sorted(members, key=ranking_key):
        difficulty = pattern.metadata.get("avgDifficultyLevel")
        features.append(
            FeatureStats(
                feature_name=pattern.feature_type,
                occurrence_rate=pattern.observation_count / total if total else 0.0,
                avg_confidence=pattern.average_confidence,
                avg_difficulty_level=float(difficulty) if difficulty is not None else None,
                bounding_box=copy.deepcopy(pattern.primary_box),
            )
        )
    return SpeciesFeatureStats(
        species=species,
        total_annotations=total,
        features=features,
        last_updated=max(p.last_updated for p in members),
    )


__all__ = ["AnalyticsMixin"]

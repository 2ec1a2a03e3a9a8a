"""Pattern learning engine composed from focused mixins.

- FeedbackMixin: learn_from_annotations / approval / rejection / correction
- AdvisoryMixin: prompt enhancement, quality scoring, recommendations,
  position adjustments
- AnalyticsMixin: dashboard aggregation and full export

The base class (PatternLearnerBase) provides:
- Storage backend and configuration handling
- One-time session restore from the persisted snapshot
- Write-through saves after every mutation

PatternLearnerBase is listed LAST so that mixins can rely on ``_store``,
``_learning`` and ``_logger`` being set up by its ``__init__``.

Usage:
    from plumage.learning import PatternLearner

    learner = PatternLearner(storage=SupabaseStorage.from_config(config.storage))
    await learner.learn_from_annotations(annotations, species="Cardenal Rojo")
    prompt = learner.enhance_prompt(base, species="Cardenal Rojo", target_features=["el pico"])
"""

from plumage.learning.engine.advisory import NEUTRAL_SCORE, AdvisoryMixin, ranking_key
from plumage.learning.engine.analytics import AnalyticsMixin
from plumage.learning.engine.base import PatternLearnerBase
from plumage.learning.engine.feedback import FeedbackMixin


class PatternLearner(
    FeedbackMixin,
    AdvisoryMixin,
    AnalyticsMixin,
    PatternLearnerBase,
):
    """Online learner of annotation patterns from review feedback.

    Mutating operations are coroutines that restore the persisted session on
    first use and never raise. Query and analytics operations are synchronous
    and read whatever has been learned or restored so far; call
    ``await ensure_initialized()`` first when the persisted session matters.
    """


__all__ = [
    "AdvisoryMixin",
    "AnalyticsMixin",
    "FeedbackMixin",
    "NEUTRAL_SCORE",
    "PatternLearner",
    "PatternLearnerBase",
    "ranking_key",
]

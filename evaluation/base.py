"""Evaluation strategy contract."""
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from models.evaluation import (
    EvaluationConfig,
    EvaluationContext,
    EvaluationResult,
    DetailedFeedback,
    FailurePattern,
)
from utils.error_handling import LengthMismatchError

# Closed set of strategy variants, in auto-selection priority order
STRATEGY_TYPES = ("hybrid", "fact-based", "numeric", "custom")


class EvaluationStrategy(ABC):
    """
    One interchangeable evaluation algorithm.

    Subclasses turn predictions plus ground truth into an EvaluationResult and
    derive feedback from it. A subclass may also define
    ``analyze_patterns(results) -> List[FailurePattern]``; when it does not,
    the PatternAnalyzer falls back to its generic pass.
    """

    name: str = "custom"
    type: str = "custom"

    @abstractmethod
    async def evaluate(
        self,
        predictions: Sequence[Any],
        ground_truth: Sequence[Any],
        config: Optional[EvaluationConfig] = None
    ) -> EvaluationResult:
        """Evaluate predictions against ground truth. Must not mutate inputs."""

    @abstractmethod
    def generate_feedback(self, result: EvaluationResult) -> DetailedFeedback:
        """Derive feedback from one result. Pure; never performs I/O."""

    @abstractmethod
    def is_applicable(self, context: EvaluationContext) -> bool:
        """Whether this strategy fits the available ground truth."""

    def default_config(self) -> EvaluationConfig:
        return EvaluationConfig()

    def validate_input(self, predictions: Sequence[Any], ground_truth: Sequence[Any]) -> bool:
        """Raise LengthMismatchError unless both sequences have the same length."""
        if len(predictions) != len(ground_truth):
            raise LengthMismatchError(len(predictions), len(ground_truth))
        return True

    def has_pattern_analysis(self) -> bool:
        return callable(getattr(self, "analyze_patterns", None))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def pass_rate(item_scores: List[float], config: EvaluationConfig) -> float:
    """Fraction of per-item scores at or above the configured pass threshold."""
    if not item_scores:
        return 0.0
    passed = sum(1 for s in item_scores if s >= config.pass_threshold)
    return passed / len(item_scores)

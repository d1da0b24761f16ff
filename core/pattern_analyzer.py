"""Detects recurring failure modes within and across evaluation runs."""
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from config.optimization_config import OptimizationConfig
from evaluation.base import EvaluationStrategy
from evaluation import stats
from models.evaluation import EvaluationResult, EvaluationExample, FailurePattern
from utils.logging_utils import get_logger

logger = get_logger("pattern_analyzer")

# (label, lower bound, upper bound); the last range includes 1.0
SCORE_RANGES = [
    ("very-low", 0.0, 0.3),
    ("low", 0.3, 0.5),
    ("medium", 0.5, 0.7),
    ("high", 0.7, 0.9),
    ("very-high", 0.9, 1.0),
]

SCORE_RANGE_FIXES = {
    "very-low": "Major revision needed - consider complete prompt restructuring",
    "low": "Significant improvements required - review core evaluation logic",
    "medium": "Moderate adjustments needed - fine-tune parameters and prompts",
    "high": "Minor optimizations - focus on edge cases and consistency",
    "very-high": "Maintain current approach - monitor for regression",
}

# (substrings of the base pattern type, remediation)
REMEDIATIONS = [
    (("overestimation", "underestimation"), "Implement calibration mechanism to correct systematic bias"),
    (("variance", "inconsistent"), "Stabilize predictions through temperature adjustment or few-shot examples"),
    (("missing", "incomplete"), "Enhance prompt with explicit requirements and structure"),
    (("edge-case",), "Add specialized handling for boundary conditions"),
]

_DERIVED_PREFIX = re.compile(r"^(persistent-|cross-strategy-)")


def _summarize(result: EvaluationResult) -> Dict[str, Any]:
    return {"score": result.score, "metrics": dict(result.metrics)}


class PatternAnalyzer:
    """
    Finds failure patterns and tracks them across optimization iterations.

    One instance belongs to one optimization run; its history is never shared.
    """

    def __init__(self):
        self._history: "OrderedDict[str, List[FailurePattern]]" = OrderedDict()
        self._type_counts: Dict[str, int] = {}

    def analyze_patterns(
        self,
        results: List[EvaluationResult],
        strategy: EvaluationStrategy
    ) -> List[FailurePattern]:
        """Use the strategy's own pattern analysis when it has one, else the generic pass."""
        if isinstance(results, EvaluationResult):
            results = [results]
        if strategy.has_pattern_analysis():
            return strategy.analyze_patterns(results)
        return self.generic_patterns(results, strategy.name)

    def analyze_cross_strategy_patterns(
        self,
        results_by_strategy: Dict[str, List[EvaluationResult]]
    ) -> List[FailurePattern]:
        """
        Patterns the generic pass finds under two or more strategies.

        Patterns are grouped by (type, suggested_fix). The merged pattern keeps
        the highest frequency and one example from each later strategy.
        """
        groups: "OrderedDict[Tuple[str, str], Tuple[FailurePattern, List[str]]]" = OrderedDict()

        for strategy_name, results in results_by_strategy.items():
            for pattern in self.generic_patterns(results, strategy_name):
                key = (pattern.type, pattern.suggested_fix)
                if key not in groups:
                    groups[key] = (pattern, [strategy_name])
                    continue

                merged, strategies = groups[key]
                if strategy_name not in strategies:
                    strategies.append(strategy_name)
                groups[key] = (
                    merged.model_copy(update={
                        "frequency": max(merged.frequency, pattern.frequency),
                        "examples": merged.examples + pattern.examples[:1],
                    }),
                    strategies,
                )

        return [
            pattern.model_copy(update={
                "type": f"cross-strategy-{pattern.type}",
                "evaluator_source": ", ".join(strategies),
            })
            for pattern, strategies in groups.values()
            if len(strategies) > 1
        ]

    def track_pattern_evolution(self, patterns: List[FailurePattern], iteration_number: int):
        """
        Record the patterns seen in one iteration.

        Each pattern type counts at most once per iteration. Tracking the same
        iteration again replaces its earlier record.
        """
        key = f"iteration-{iteration_number}"
        previous = self._history.pop(key, None)
        if previous is not None:
            for pattern_type in {p.type for p in previous}:
                self._type_counts[pattern_type] -= 1
                if self._type_counts[pattern_type] <= 0:
                    del self._type_counts[pattern_type]

        self._history[key] = list(patterns)
        for pattern_type in dict.fromkeys(p.type for p in patterns):
            self._type_counts[pattern_type] = self._type_counts.get(pattern_type, 0) + 1

        logger.debug(
            "Tracked iteration patterns",
            iteration=iteration_number,
            pattern_types=sorted({p.type for p in patterns})
        )

    def get_persistent_patterns(
        self,
        min_iterations: int = OptimizationConfig.PERSISTENT_PATTERN_MIN_ITERATIONS
    ) -> List[FailurePattern]:
        """Pattern types seen in at least ``min_iterations`` tracked iterations."""
        tracked = len(self._history)
        persistent = []

        for pattern_type, count in self._type_counts.items():
            if count < min_iterations:
                continue
            latest = self._latest_occurrence(pattern_type)
            if latest is None:
                continue
            persistent.append(latest.model_copy(update={
                "type": f"persistent-{pattern_type}",
                "frequency": min(1.0, count / tracked) if tracked else 0.0,
            }))

        return persistent

    def suggest_improvements(self, patterns: List[FailurePattern]) -> List[str]:
        by_type: "OrderedDict[str, List[FailurePattern]]" = OrderedDict()
        for pattern in patterns:
            base_type = _DERIVED_PREFIX.sub("", pattern.type)
            by_type.setdefault(base_type, []).append(pattern)

        improvements: List[str] = []
        for base_type, group in by_type.items():
            for markers, remediation in REMEDIATIONS:
                if any(marker in base_type for marker in markers):
                    improvements.append(remediation)
            if stats.mean([p.frequency for p in group]) > 0.5:
                improvements.append(f"Priority fix: {group[0].suggested_fix}")

        return list(dict.fromkeys(improvements))

    def generic_patterns(self, results: List[EvaluationResult], strategy_name: str) -> List[FailurePattern]:
        """Strategy-agnostic analysis over result-level scores and metrics."""
        patterns: List[FailurePattern] = []
        total = len(results)
        if total == 0:
            return patterns

        def pattern(type_: str, frequency: float, examples: List[EvaluationExample], fix: str) -> FailurePattern:
            return FailurePattern(
                type=type_,
                frequency=frequency,
                examples=examples,
                suggested_fix=fix,
                evaluator_source=strategy_name,
            )

        low = [r for r in results if r.score < 0.5]
        if len(low) > total * 0.3:
            patterns.append(pattern(
                "low-scores", len(low) / total,
                self._examples(low, "Low score"),
                "Review evaluation criteria and prompt effectiveness",
            ))

        if stats.variance([r.score for r in results]) > 0.1:
            patterns.append(pattern(
                "high-score-variance", 1.0,
                self._variance_examples(results),
                "Improve consistency in evaluation approach",
            ))

        without_metrics = [r for r in results if not r.metrics]
        if len(without_metrics) > total * 0.2:
            patterns.append(pattern(
                "missing-metrics", len(without_metrics) / total, [],
                "Ensure comprehensive metric calculation",
            ))

        for label, low_bound, high_bound in SCORE_RANGES:
            in_range = [
                r for r in results
                if low_bound <= r.score < high_bound or (high_bound == 1.0 and r.score == 1.0)
            ]
            if len(in_range) > total * 0.4:
                patterns.append(pattern(
                    f"error-cluster-{label}", len(in_range) / total,
                    self._examples(in_range, f"Score in {label} range", limit=2),
                    SCORE_RANGE_FIXES[label],
                ))

        high_rmse = [r for r in results if r.metrics.get("rmse", 0.0) > 0.2]
        if len(high_rmse) > total * 0.3:
            patterns.append(pattern(
                "error-cluster-high-rmse", len(high_rmse) / total,
                self._examples(high_rmse, "High RMSE", limit=2),
                "Improve model accuracy through prompt engineering or parameter tuning",
            ))

        low_correlation = [
            r for r in results
            if "correlation" in r.metrics and r.metrics["correlation"] < 0.5
        ]
        if len(low_correlation) > total * 0.3:
            patterns.append(pattern(
                "error-cluster-low-correlation", len(low_correlation) / total,
                self._examples(low_correlation, "Low correlation", limit=2),
                "Align evaluation criteria with ground truth expectations",
            ))

        return patterns

    def clear_history(self):
        self._history.clear()
        self._type_counts.clear()

    def get_statistics(self) -> Dict[str, Any]:
        most_frequent = sorted(self._type_counts.items(), key=lambda kv: kv[1], reverse=True)[:5]
        return {
            "total_iterations": len(self._history),
            "unique_patterns": len(self._type_counts),
            "most_frequent": [pattern_type for pattern_type, _ in most_frequent],
            "persistent_count": len(self.get_persistent_patterns()),
        }

    def _latest_occurrence(self, pattern_type: str) -> Optional[FailurePattern]:
        for patterns in reversed(list(self._history.values())):
            for pattern in patterns:
                if pattern.type == pattern_type:
                    return pattern
        return None

    @staticmethod
    def _examples(results: List[EvaluationResult], error: str, limit: int = 3) -> List[EvaluationExample]:
        return [
            EvaluationExample(
                input=_summarize(r),
                expected="Higher score",
                actual=f"Score: {r.score:.3f}",
                error=error,
            )
            for r in results[:limit]
        ]

    @staticmethod
    def _variance_examples(results: List[EvaluationResult]) -> List[EvaluationExample]:
        """Highest, lowest and median scoring results."""
        ranked = sorted(results, key=lambda r: r.score, reverse=True)
        picks = [("High", ranked[0])]
        if len(ranked) > 1:
            picks.append(("Low", ranked[-1]))
        if len(ranked) > 2:
            picks.append(("Median", ranked[len(ranked) // 2]))
        return [
            EvaluationExample(
                input=_summarize(r),
                expected="Consistent scoring",
                actual=f"{label} score: {r.score:.3f}",
            )
            for label, r in picks
        ]

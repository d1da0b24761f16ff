"""Numeric score strategy - compares predicted scores with corrected ground truth."""
from typing import Any, Dict, List, Optional, Sequence

from evaluation.base import EvaluationStrategy, pass_rate
from evaluation import stats
from models.evaluation import (
    EvaluationConfig,
    EvaluationContext,
    EvaluationResult,
    EvaluationExample,
    DetailedFeedback,
    FailurePattern,
)

MAX_EXAMPLES = 3

# Pattern thresholds
OVERESTIMATION_ERROR = 0.1
OVERESTIMATION_SHARE = 0.3
HIGH_VARIANCE_STD = 0.2
EDGE_LOW, EDGE_HIGH = 0.1, 0.9
EDGE_ERROR = 0.2
EDGE_SHARE = 0.5


class NumericScoreEvaluator(EvaluationStrategy):
    """
    Scores numeric predictions on a 0-1 scale.

    score = max(0, 1 - RMSE); errors are assumed normalized so that an RMSE
    of 1 or more floors the score at 0.
    """

    name = "numeric-score"
    type = "numeric"

    async def evaluate(
        self,
        predictions: Sequence[float],
        ground_truth: Sequence[float],
        config: Optional[EvaluationConfig] = None
    ) -> EvaluationResult:
        self.validate_input(predictions, ground_truth)
        config = config or self.default_config()

        predicted = [float(p) for p in predictions]
        actual = [float(t) for t in ground_truth]
        errors = [p - t for p, t in zip(predicted, actual)]
        absolute_errors = [abs(e) for e in errors]

        rmse = stats.rmse(errors)
        score = max(0.0, 1.0 - rmse) if errors else 0.0

        details = [
            {
                "predicted": p,
                "actual": t,
                "error": e,
                "absolute_error": abs(e),
                "percentage_error": (e / t) * 100 if t != 0 else None,
                "score": max(0.0, 1.0 - abs(e)),
            }
            for p, t, e in zip(predicted, actual, errors)
        ]

        metrics = {
            "rmse": rmse,
            "mae": stats.mae(errors),
            "correlation": stats.pearson_correlation(predicted, actual),
            "bias": stats.mean(errors),
            "consistency": stats.grouped_consistency(predicted, actual),
            "max_error": max(absolute_errors) if absolute_errors else 0.0,
            "min_error": min(absolute_errors) if absolute_errors else 0.0,
            "error_std_dev": stats.std_dev(errors),
            "pass_rate": pass_rate([d["score"] for d in details], config),
        }

        return EvaluationResult(score=score, metrics=metrics, details=details)

    def generate_feedback(self, result: EvaluationResult) -> DetailedFeedback:
        metrics = result.metrics
        correlation = metrics.get("correlation")
        mae = metrics.get("mae")
        consistency = metrics.get("consistency")
        bias = metrics.get("bias", 0.0)

        strengths: List[str] = []
        weaknesses: List[str] = []
        action_items: List[str] = []

        if correlation is not None and correlation > 0.8:
            strengths.append("Strong correlation with ground truth")
        if mae is not None and mae < 0.1:
            strengths.append("Low average error rate")
        if consistency is not None and consistency > 0.9:
            strengths.append("High prediction consistency")
        if abs(bias) < 0.05:
            strengths.append("Minimal systematic bias")

        if correlation is not None and correlation < 0.5:
            weaknesses.append("Poor correlation with ground truth")
            action_items.append("Review the scoring logic and criteria")
        if mae is not None and mae > 0.2:
            weaknesses.append("High average error rate")
            action_items.append("Consider adjusting model parameters or prompt")
        if consistency is not None and consistency < 0.7:
            weaknesses.append("Inconsistent predictions")
            action_items.append("Improve stability through temperature adjustment")
        if abs(bias) > 0.1:
            direction = "overestimating" if bias > 0 else "underestimating"
            weaknesses.append(f"Systematic bias: {direction} scores")
            action_items.append(f"Adjust calibration to correct for {direction}")

        return DetailedFeedback(
            summary=f"Numeric evaluation score: {result.score * 100:.1f}%",
            strengths=strengths or ["None identified"],
            weaknesses=weaknesses or ["None identified"],
            patterns=self._describe_error_patterns(result.details),
            action_items=action_items or ["Continue monitoring performance"],
            improvements=self._improvement_suggestions(metrics),
        )

    def is_applicable(self, context: EvaluationContext) -> bool:
        return context.has_numeric_ground_truth and not context.has_fact_requirements

    def analyze_patterns(self, results: List[EvaluationResult]) -> List[FailurePattern]:
        patterns: List[FailurePattern] = []
        details = [d for r in results for d in r.details if "error" in d]
        if not details:
            return patterns

        overestimated = [d for d in details if d["error"] > OVERESTIMATION_ERROR]
        if len(overestimated) > len(details) * OVERESTIMATION_SHARE:
            patterns.append(FailurePattern(
                type="consistent-overestimation",
                frequency=len(overestimated) / len(details),
                examples=[
                    self._example(d, f"Overestimated by {d['error']:.3f}")
                    for d in overestimated[:MAX_EXAMPLES]
                ],
                suggested_fix="Reduce model confidence or adjust temperature downward",
                evaluator_source=self.name,
            ))

        if stats.std_dev([d["error"] for d in details]) > HIGH_VARIANCE_STD:
            patterns.append(FailurePattern(
                type="high-variance",
                frequency=1.0,
                examples=self._high_variance_examples(details),
                suggested_fix="Improve prompt consistency or use more structured output format",
                evaluator_source=self.name,
            ))

        edge_cases = [d for d in details if d["actual"] < EDGE_LOW or d["actual"] > EDGE_HIGH]
        edge_errors = [d for d in edge_cases if abs(d["error"]) > EDGE_ERROR]
        if edge_cases and len(edge_errors) > len(edge_cases) * EDGE_SHARE:
            patterns.append(FailurePattern(
                type="edge-case-failures",
                frequency=len(edge_errors) / len(edge_cases),
                examples=[
                    self._example(d, f"Error: {d['error']:.3f}")
                    for d in edge_errors[:MAX_EXAMPLES]
                ],
                suggested_fix="Add specific handling for edge cases in prompt",
                evaluator_source=self.name,
            ))

        return patterns

    @staticmethod
    def _example(detail: Dict[str, Any], error: str) -> EvaluationExample:
        return EvaluationExample(
            input=detail,
            expected=detail["actual"],
            actual=detail["predicted"],
            error=error,
        )

    def _high_variance_examples(self, details: List[Dict[str, Any]]) -> List[EvaluationExample]:
        """Two worst items plus the best one for contrast."""
        ranked = sorted(details, key=lambda d: d["absolute_error"], reverse=True)
        examples = [
            self._example(d, f"High error: {d['error']:.3f}")
            for d in ranked[:2]
        ]
        if len(ranked) > 2:
            best = ranked[-1]
            examples.append(self._example(best, f"Low error: {best['error']:.3f}"))
        return examples

    @staticmethod
    def _describe_error_patterns(details: List[Dict[str, Any]]) -> List[str]:
        patterns: List[str] = []
        if not details:
            return patterns

        high_errors = [d for d in details if abs(d["error"]) > 0.2]
        if len(high_errors) > len(details) * 0.3:
            patterns.append(
                f"High error rate: {len(high_errors)}/{len(details)} predictions have >20% error"
            )

        low_values = [d for d in details if d["actual"] < 0.3]
        low_value_errors = [d for d in low_values if abs(d["error"]) > 0.15]
        if low_values and len(low_value_errors) > len(low_values) * 0.5:
            patterns.append("Poor performance on low-value predictions")

        high_values = [d for d in details if d["actual"] > 0.7]
        high_value_errors = [d for d in high_values if abs(d["error"]) > 0.15]
        if high_values and len(high_value_errors) > len(high_values) * 0.5:
            patterns.append("Poor performance on high-value predictions")

        return patterns

    @staticmethod
    def _improvement_suggestions(metrics: Dict[str, float]) -> List[str]:
        suggestions: List[str] = []
        if metrics.get("rmse", 0.0) > 0.15:
            suggestions.append("Consider using a more powerful model or refining the prompt")
        if abs(metrics.get("bias", 0.0)) > 0.1:
            suggestions.append("Add calibration examples to correct systematic bias")
        if metrics.get("consistency", 1.0) < 0.8:
            suggestions.append("Reduce temperature for more consistent predictions")
        if metrics.get("correlation", 1.0) < 0.7:
            suggestions.append("Review scoring criteria alignment with ground truth")
        return suggestions

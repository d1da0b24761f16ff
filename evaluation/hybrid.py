"""Hybrid strategy - weighted combination of numeric and fact-based evaluation."""
import asyncio
from typing import Any, Dict, List, Optional, Sequence

from config.optimization_config import OptimizationConfig
from evaluation.base import EvaluationStrategy, pass_rate
from evaluation.numeric import NumericScoreEvaluator
from evaluation.fact_based import FactBasedEvaluator
from evaluation import stats
from models.evaluation import (
    EvaluationConfig,
    EvaluationContext,
    EvaluationResult,
    EvaluationExample,
    DetailedFeedback,
    FailurePattern,
    HybridItem,
    HybridTruth,
)
from utils.error_handling import LengthMismatchError

MAX_EXAMPLES = 3
DIVERGENCE_GAP = 0.3
DIVERGENCE_SHARE = 0.3
UNDERPERFORMANCE_SCORE = 0.5
UNDERPERFORMANCE_SHARE = 0.5


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class HybridEvaluator(EvaluationStrategy):
    """
    Runs a numeric and a fact-based evaluation side by side.

    Predictions are HybridItem objects and ground truth HybridTruth objects.
    Both sub-evaluations run concurrently over the flattened scores and
    responses; the final score is ``numeric * w_n + facts * w_f`` with the
    weights normalized to sum to 1.
    """

    name = "hybrid"
    type = "hybrid"

    def __init__(
        self,
        numeric_evaluator: Optional[NumericScoreEvaluator] = None,
        fact_evaluator: Optional[FactBasedEvaluator] = None,
        numeric_weight: Optional[float] = None,
        fact_weight: Optional[float] = None
    ):
        self.numeric_evaluator = numeric_evaluator or NumericScoreEvaluator()
        self.fact_evaluator = fact_evaluator or FactBasedEvaluator()

        if numeric_weight is None:
            numeric_weight = OptimizationConfig.HYBRID_NUMERIC_WEIGHT
        if fact_weight is None:
            fact_weight = OptimizationConfig.HYBRID_FACT_WEIGHT
        if numeric_weight < 0 or fact_weight < 0:
            raise ValueError("Hybrid weights must not be negative")
        total = numeric_weight + fact_weight
        if total <= 0:
            raise ValueError("Hybrid weights must sum to a positive value")

        self.numeric_weight = numeric_weight / total
        self.fact_weight = fact_weight / total

    async def evaluate(
        self,
        predictions: Sequence[HybridItem],
        ground_truth: Sequence[HybridTruth],
        config: Optional[EvaluationConfig] = None
    ) -> EvaluationResult:
        self.validate_input(predictions, ground_truth)
        config = config or self.default_config()

        for item, truth in zip(predictions, ground_truth):
            if len(item.scores) != len(truth.scores):
                raise LengthMismatchError(len(item.scores), len(truth.scores), what="Hybrid item scores")
            if len(item.responses) != len(truth.facts):
                raise LengthMismatchError(len(item.responses), len(truth.facts), what="Hybrid item responses")

        numeric_predictions = [s for item in predictions for s in item.scores]
        numeric_truth = [s for truth in ground_truth for s in truth.scores]
        responses = [r for item in predictions for r in item.responses]
        requirements = [f for truth in ground_truth for f in truth.facts]

        numeric_result, fact_result = await asyncio.gather(
            self.numeric_evaluator.evaluate(numeric_predictions, numeric_truth, config),
            self.fact_evaluator.evaluate(responses, requirements, config),
        )

        score = numeric_result.score * self.numeric_weight + fact_result.score * self.fact_weight
        details = self._combine_details(numeric_result, fact_result, predictions)

        metrics = {
            **numeric_result.metrics,
            **fact_result.metrics,
            "numeric_score": numeric_result.score,
            "fact_score": fact_result.score,
            "hybrid_score": score,
            "numeric_weight": self.numeric_weight,
            "fact_weight": self.fact_weight,
            "pass_rate": pass_rate([d["combined_score"] for d in details], config),
        }

        return EvaluationResult(
            score=score,
            metrics=metrics,
            details=details,
            numeric_analysis=numeric_result,
            fact_analysis=fact_result,
            insights=self._synthesize_insights(numeric_result, fact_result),
        )

    def generate_feedback(self, result: EvaluationResult) -> DetailedFeedback:
        numeric_feedback = self.numeric_evaluator.generate_feedback(
            result.numeric_analysis or EvaluationResult(score=0.0)
        )
        fact_feedback = self.fact_evaluator.generate_feedback(
            result.fact_analysis or EvaluationResult(score=0.0)
        )
        metrics = result.metrics
        numeric_score = metrics.get("numeric_score", 0.0)
        fact_score = metrics.get("fact_score", 0.0)

        strengths = (
            [f"[Numeric] {s}" for s in numeric_feedback.strengths]
            + [f"[Facts] {s}" for s in fact_feedback.strengths]
        )
        weaknesses = (
            [f"[Numeric] {w}" for w in numeric_feedback.weaknesses]
            + [f"[Facts] {w}" for w in fact_feedback.weaknesses]
        )

        # The weaker dimension's action items come first
        if numeric_score < fact_score:
            action_items = numeric_feedback.action_items + fact_feedback.action_items
        else:
            action_items = fact_feedback.action_items + numeric_feedback.action_items

        improvements: List[str] = []
        if numeric_score < 0.7:
            improvements.extend(numeric_feedback.improvements)
        if fact_score < 0.7:
            improvements.extend(fact_feedback.improvements)
        if abs(numeric_score - fact_score) > 0.3:
            improvements.append("Balance improvement efforts between numeric accuracy and factual completeness")
        if not improvements and result.score < 0.8:
            improvements.append("Consider adjusting the weights between numeric and fact-based evaluation")

        summary = f"Hybrid evaluation score: {result.score * 100:.1f}%"
        if "numeric_score" in metrics and "fact_score" in metrics:
            summary += f" (Numeric: {numeric_score * 100:.0f}%, Facts: {fact_score * 100:.0f}%)"

        return DetailedFeedback(
            summary=summary,
            strengths=strengths or ["None identified"],
            weaknesses=weaknesses or ["None identified"],
            patterns=numeric_feedback.patterns + fact_feedback.patterns,
            action_items=_dedupe(action_items),
            improvements=_dedupe(improvements),
            missing_clauses=fact_feedback.missing_clauses,
            risks=self._identify_risks(metrics),
        )

    def is_applicable(self, context: EvaluationContext) -> bool:
        return context.has_numeric_ground_truth and (
            context.has_textual_content or context.has_fact_requirements
        )

    def analyze_patterns(self, results: List[EvaluationResult]) -> List[FailurePattern]:
        numeric_results = [r.numeric_analysis for r in results if r.numeric_analysis is not None]
        fact_results = [r.fact_analysis for r in results if r.fact_analysis is not None]

        patterns = [
            p.model_copy(update={"evaluator_source": "hybrid-numeric"})
            for p in self.numeric_evaluator.analyze_patterns(numeric_results)
        ]
        patterns.extend(
            p.model_copy(update={"evaluator_source": "hybrid-facts"})
            for p in self.fact_evaluator.analyze_patterns(fact_results)
        )

        details = [d for r in results for d in r.details if "combined_score" in d]
        if not details:
            return patterns

        divergent = [
            d for d in details
            if abs(d["numeric_score"] - d["fact_score"]) > DIVERGENCE_GAP
        ]
        if len(divergent) > len(details) * DIVERGENCE_SHARE:
            patterns.append(FailurePattern(
                type="numeric-fact-divergence",
                frequency=len(divergent) / len(details),
                examples=[
                    EvaluationExample(
                        input=d["input"],
                        expected="Balanced performance",
                        actual=f"Numeric: {d['numeric_score']:.2f}, Facts: {d['fact_score']:.2f}",
                        error="Performance imbalance between evaluation methods",
                    )
                    for d in divergent[:MAX_EXAMPLES]
                ],
                suggested_fix="Review prompt to ensure both accuracy and completeness are addressed",
                evaluator_source=self.name,
            ))

        underperforming = [d for d in details if d["combined_score"] < UNDERPERFORMANCE_SCORE]
        if len(underperforming) > len(details) * UNDERPERFORMANCE_SHARE:
            patterns.append(FailurePattern(
                type="consistent-underperformance",
                frequency=len(underperforming) / len(details),
                examples=[
                    EvaluationExample(
                        input=d["input"],
                        expected="Score > 0.5",
                        actual=f"Score: {d['combined_score']:.2f}",
                        error="Below acceptable threshold",
                    )
                    for d in underperforming[:MAX_EXAMPLES]
                ],
                suggested_fix="Major prompt revision needed - consider restructuring approach",
                evaluator_source=self.name,
            ))

        return patterns

    def _combine_details(
        self,
        numeric_result: EvaluationResult,
        fact_result: EvaluationResult,
        predictions: Sequence[HybridItem]
    ) -> List[Dict[str, Any]]:
        """Slice the flattened sub-details back into one record per hybrid item."""
        details = []
        numeric_offset = 0
        fact_offset = 0

        for item in predictions:
            numeric_details = numeric_result.details[numeric_offset:numeric_offset + len(item.scores)]
            fact_details = fact_result.details[fact_offset:fact_offset + len(item.responses)]
            numeric_offset += len(item.scores)
            fact_offset += len(item.responses)

            numeric_score = stats.mean([d["score"] for d in numeric_details])
            fact_score = stats.mean([d["score"] for d in fact_details])
            details.append({
                "input": item.model_dump(),
                "numeric_analysis": numeric_details,
                "fact_analysis": fact_details,
                "numeric_score": numeric_score,
                "fact_score": fact_score,
                "combined_score": numeric_score * self.numeric_weight + fact_score * self.fact_weight,
            })

        return details

    @staticmethod
    def _synthesize_insights(numeric_result: EvaluationResult, fact_result: EvaluationResult) -> List[str]:
        insights: List[str] = []
        numeric_score = numeric_result.score
        fact_score = fact_result.score

        if abs(numeric_score - fact_score) > 0.3:
            if numeric_score > fact_score:
                insights.append(
                    "Strong numeric performance but weak factual accuracy - consider improving content completeness"
                )
            else:
                insights.append(
                    "Good factual coverage but poor numeric accuracy - consider improving scoring calibration"
                )

        if numeric_score > 0.8 and fact_score > 0.8:
            insights.append("Excellent overall performance across both dimensions")
        elif numeric_score < 0.5 and fact_score < 0.5:
            insights.append("Significant improvement needed in both scoring accuracy and content quality")

        if numeric_result.metrics.get("consistency", 1.0) < 0.7:
            insights.append("Inconsistent numeric scoring may be affecting overall reliability")
        if 0 < fact_result.metrics.get("average_confidence", 0.0) < 0.6:
            insights.append("Low confidence in fact detection suggests response ambiguity")

        return insights

    @staticmethod
    def _identify_risks(metrics: Dict[str, float]) -> List[str]:
        risks: List[str] = []
        numeric_score = metrics.get("numeric_score")
        fact_score = metrics.get("fact_score")

        if numeric_score is not None and fact_score is not None and abs(numeric_score - fact_score) > 0.4:
            risks.append("Significant performance imbalance between evaluation dimensions")
        if numeric_score is not None and numeric_score < 0.4:
            risks.append("Critical: Numeric accuracy below acceptable threshold")
        if fact_score is not None and fact_score < 0.4:
            risks.append("Critical: Factual accuracy below acceptable threshold")
        if metrics.get("consistency", 1.0) < 0.6:
            risks.append("Low consistency may lead to unpredictable results")

        return risks

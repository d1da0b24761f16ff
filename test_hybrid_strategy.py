"""Tests for the hybrid strategy."""
import pytest

from config.optimization_config import OptimizationConfig
from evaluation.hybrid import HybridEvaluator
from models.evaluation import (
    EvaluationContext,
    FactDefinition,
    HybridItem,
    HybridTruth,
    RequiredFacts,
)
from utils.error_handling import LengthMismatchError

PRICE = RequiredFacts(facts=[FactDefinition(name="price")])


def item(score: float, response: str) -> HybridItem:
    return HybridItem(scores=[score], responses=[response])


def truth(score: float, facts=PRICE) -> HybridTruth:
    return HybridTruth(scores=[score], facts=[facts])


# ============================================================================
# Tests: Weights
# ============================================================================

@pytest.mark.parametrize("numeric_weight, fact_weight", [
    (0.5, 0.5),
    (3.0, 1.0),
    (0.0, 2.0),
    (0.2, 0.2),
])
def test_weights_are_normalized(numeric_weight, fact_weight):
    evaluator = HybridEvaluator(numeric_weight=numeric_weight, fact_weight=fact_weight)
    assert evaluator.numeric_weight + evaluator.fact_weight == pytest.approx(1.0)
    assert evaluator.numeric_weight == pytest.approx(numeric_weight / (numeric_weight + fact_weight))


def test_default_weights_come_from_config():
    evaluator = HybridEvaluator()
    total = OptimizationConfig.HYBRID_NUMERIC_WEIGHT + OptimizationConfig.HYBRID_FACT_WEIGHT
    assert evaluator.numeric_weight == pytest.approx(OptimizationConfig.HYBRID_NUMERIC_WEIGHT / total)


@pytest.mark.parametrize("numeric_weight, fact_weight", [(-0.5, 1.0), (0.0, 0.0)])
def test_invalid_weights_raise(numeric_weight, fact_weight):
    with pytest.raises(ValueError):
        HybridEvaluator(numeric_weight=numeric_weight, fact_weight=fact_weight)


# ============================================================================
# Tests: Scoring
# ============================================================================

@pytest.mark.asyncio
async def test_weighted_combination():
    evaluator = HybridEvaluator(numeric_weight=0.75, fact_weight=0.25)
    result = await evaluator.evaluate(
        [item(0.5, "No details."), item(0.9, "The price is $10.")],
        [truth(0.5), truth(0.9)],
    )

    assert result.metrics["numeric_score"] == pytest.approx(1.0)
    assert result.metrics["fact_score"] == pytest.approx(0.5)
    assert result.score == pytest.approx(0.75 * 1.0 + 0.25 * 0.5)
    assert result.metrics["hybrid_score"] == pytest.approx(result.score)
    assert result.numeric_analysis is not None
    assert result.fact_analysis is not None
    assert result.metrics["rmse"] == pytest.approx(0.0)
    assert "fact_coverage" in result.metrics


@pytest.mark.asyncio
async def test_per_item_details_use_each_items_own_results():
    evaluator = HybridEvaluator(numeric_weight=0.5, fact_weight=0.5)
    result = await evaluator.evaluate(
        [item(0.5, "No details."), item(0.9, "The price is $10.")],
        [truth(0.5), truth(0.9)],
    )

    first, second = result.details
    assert first["numeric_score"] == pytest.approx(1.0)
    assert first["fact_score"] == pytest.approx(0.0)
    assert first["combined_score"] == pytest.approx(0.5)
    assert second["fact_score"] == pytest.approx(1.0)
    assert second["combined_score"] == pytest.approx(1.0)
    assert len(first["numeric_analysis"]) == 1
    assert len(first["fact_analysis"]) == 1
    assert result.metrics["pass_rate"] == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_item_level_length_mismatch_raises():
    evaluator = HybridEvaluator()
    with pytest.raises(LengthMismatchError):
        await evaluator.evaluate(
            [HybridItem(scores=[0.1, 0.2], responses=["a"])],
            [HybridTruth(scores=[0.1], facts=[PRICE])],
        )
    with pytest.raises(LengthMismatchError):
        await evaluator.evaluate([item(0.1, "a")], [])


# ============================================================================
# Tests: Feedback and Patterns
# ============================================================================

@pytest.mark.asyncio
async def test_feedback_prefixes_and_weaker_dimension_first():
    evaluator = HybridEvaluator(numeric_weight=0.5, fact_weight=0.5)
    result = await evaluator.evaluate(
        [item(0.5, "No details."), item(0.9, "Nothing either.")],
        [truth(0.5), truth(0.9)],
    )
    feedback = evaluator.generate_feedback(result)

    assert feedback.summary.startswith("Hybrid evaluation score: 50.0%")
    assert "(Numeric: 100%, Facts: 0%)" in feedback.summary
    assert all(s.startswith(("[Numeric] ", "[Facts] ")) for s in feedback.strengths)
    assert "[Facts] Poor fact coverage" in feedback.weaknesses
    # Facts are the weaker dimension
    assert feedback.action_items[0] == "Review prompt to ensure all required facts are addressed"
    assert "Critical: Factual accuracy below acceptable threshold" in feedback.risks
    assert "Significant performance imbalance between evaluation dimensions" in feedback.risks
    assert any("weak factual accuracy" in i for i in result.insights)


@pytest.mark.asyncio
async def test_patterns_are_tagged_and_divergence_detected():
    evaluator = HybridEvaluator(numeric_weight=0.5, fact_weight=0.5)
    result = await evaluator.evaluate(
        [item(0.5, "No details."), item(0.9, "Nothing either.")],
        [truth(0.5), truth(0.9)],
    )
    patterns = evaluator.analyze_patterns([result])
    by_type = {p.type: p for p in patterns}

    assert by_type["systematic-missing-fact"].evaluator_source == "hybrid-facts"
    assert by_type["numeric-fact-divergence"].evaluator_source == "hybrid"
    assert by_type["numeric-fact-divergence"].frequency == pytest.approx(1.0)
    assert "consistent-underperformance" not in by_type


@pytest.mark.asyncio
async def test_accurate_scores_and_full_coverage_are_excellent():
    evaluator = HybridEvaluator(numeric_weight=0.5, fact_weight=0.5)
    result = await evaluator.evaluate(
        [item(0.5, "The price is $4."), item(0.9, "Price: $12.")],
        [truth(0.5), truth(0.9)],
    )

    assert result.score == pytest.approx(1.0)
    assert "Excellent overall performance across both dimensions" in result.insights
    assert not any("improvement needed" in i for i in result.insights)
    assert evaluator.generate_feedback(result).risks == []


@pytest.mark.asyncio
async def test_poor_scores_and_missing_facts_underperform():
    evaluator = HybridEvaluator(numeric_weight=0.5, fact_weight=0.5)
    result = await evaluator.evaluate(
        [item(0.0, "No details."), item(0.1, "Nothing either.")],
        [truth(0.9), truth(1.0)],
    )

    assert result.metrics["numeric_score"] == pytest.approx(0.1)
    assert result.metrics["fact_score"] == pytest.approx(0.0)
    assert "Significant improvement needed in both scoring accuracy and content quality" in result.insights
    assert not any("Excellent" in i for i in result.insights)

    by_type = {p.type: p for p in evaluator.analyze_patterns([result])}
    underperformance = by_type["consistent-underperformance"]
    assert underperformance.frequency == pytest.approx(1.0)
    assert underperformance.evaluator_source == "hybrid"
    assert [e.actual for e in underperformance.examples] == ["Score: 0.05", "Score: 0.05"]
    assert "numeric-fact-divergence" not in by_type


def test_is_applicable():
    evaluator = HybridEvaluator()
    assert evaluator.is_applicable(
        EvaluationContext(has_numeric_ground_truth=True, has_fact_requirements=True)
    )
    assert evaluator.is_applicable(
        EvaluationContext(has_numeric_ground_truth=True, has_textual_content=True)
    )
    assert not evaluator.is_applicable(EvaluationContext(has_numeric_ground_truth=True))
    assert not evaluator.is_applicable(EvaluationContext(has_fact_requirements=True))

"""Tests for the numeric score strategy."""
import pytest

from evaluation.numeric import NumericScoreEvaluator
from models.evaluation import EvaluationConfig, EvaluationContext
from utils.error_handling import LengthMismatchError


@pytest.fixture
def evaluator():
    return NumericScoreEvaluator()


# ============================================================================
# Tests: Scoring
# ============================================================================

@pytest.mark.asyncio
async def test_identical_predictions_score_one(evaluator):
    result = await evaluator.evaluate([0.2, 0.8], [0.2, 0.8])

    assert result.score == pytest.approx(1.0)
    assert result.metrics["rmse"] == pytest.approx(0.0)
    assert result.metrics["bias"] == pytest.approx(0.0)
    assert result.metrics["correlation"] == pytest.approx(1.0)
    assert result.metrics["pass_rate"] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_score_is_one_minus_rmse(evaluator):
    result = await evaluator.evaluate([0.5, 0.9], [0.3, 0.9])

    # rmse = sqrt(0.04 / 2)
    assert result.metrics["rmse"] == pytest.approx(0.1414, abs=1e-4)
    assert result.score == pytest.approx(1 - 0.1414, abs=1e-4)
    assert result.metrics["max_error"] == pytest.approx(0.2)
    assert result.metrics["min_error"] == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_large_errors_floor_score_at_zero(evaluator):
    result = await evaluator.evaluate([5.0, -4.0], [0.0, 1.0])
    assert result.score == 0.0


@pytest.mark.asyncio
async def test_empty_input_scores_zero(evaluator):
    result = await evaluator.evaluate([], [])

    assert result.score == 0.0
    assert result.details == []
    assert result.metrics["pass_rate"] == 0.0


@pytest.mark.asyncio
async def test_details_per_item(evaluator):
    result = await evaluator.evaluate([0.6, 0.2], [0.5, 0.0])

    first, second = result.details
    assert first["predicted"] == 0.6
    assert first["actual"] == 0.5
    assert first["error"] == pytest.approx(0.1)
    assert first["percentage_error"] == pytest.approx(20.0)
    assert first["score"] == pytest.approx(0.9)
    # No percentage error against a zero target
    assert second["percentage_error"] is None


@pytest.mark.asyncio
async def test_pass_rate_uses_configured_threshold(evaluator):
    config = EvaluationConfig(pass_threshold=0.95)
    result = await evaluator.evaluate([0.5, 0.9], [0.5, 0.7], config)
    assert result.metrics["pass_rate"] == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_length_mismatch_raises(evaluator):
    with pytest.raises(LengthMismatchError):
        await evaluator.evaluate([0.1, 0.2], [0.1])


@pytest.mark.asyncio
async def test_inputs_are_not_mutated(evaluator):
    predictions = [0.3, 0.4]
    truth = [0.5, 0.6]
    await evaluator.evaluate(predictions, truth)
    assert predictions == [0.3, 0.4]
    assert truth == [0.5, 0.6]


# ============================================================================
# Tests: Feedback and Patterns
# ============================================================================

@pytest.mark.asyncio
async def test_overestimation_bias_and_pattern(evaluator):
    result = await evaluator.evaluate([0.9, 0.9, 0.9], [0.5, 0.5, 0.5])

    assert result.metrics["bias"] == pytest.approx(0.4)
    patterns = evaluator.analyze_patterns([result])
    types = [p.type for p in patterns]
    assert "consistent-overestimation" in types
    assert "high-variance" not in types

    overestimation = patterns[types.index("consistent-overestimation")]
    assert overestimation.frequency == pytest.approx(1.0)
    assert overestimation.evaluator_source == "numeric-score"
    assert len(overestimation.examples) == 3

    feedback = evaluator.generate_feedback(result)
    assert "Systematic bias: overestimating scores" in feedback.weaknesses
    assert "Adjust calibration to correct for overestimating" in feedback.action_items


@pytest.mark.asyncio
async def test_high_variance_and_edge_case_patterns(evaluator):
    result = await evaluator.evaluate([0.6, 0.05, 0.4, 0.6], [0.05, 0.05, 0.95, 0.95])

    types = [p.type for p in evaluator.analyze_patterns([result])]
    assert "high-variance" in types
    assert "edge-case-failures" in types


@pytest.mark.asyncio
async def test_feedback_for_accurate_predictions(evaluator):
    result = await evaluator.evaluate([0.1, 0.5, 0.9], [0.1, 0.5, 0.9])
    feedback = evaluator.generate_feedback(result)

    assert feedback.summary == "Numeric evaluation score: 100.0%"
    assert "Strong correlation with ground truth" in feedback.strengths
    assert "Minimal systematic bias" in feedback.strengths
    assert feedback.weaknesses == ["None identified"]
    assert feedback.action_items == ["Continue monitoring performance"]
    assert evaluator.analyze_patterns([result]) == []


def test_is_applicable(evaluator):
    assert evaluator.is_applicable(EvaluationContext(has_numeric_ground_truth=True))
    assert not evaluator.is_applicable(EvaluationContext(has_textual_content=True))
    assert not evaluator.is_applicable(
        EvaluationContext(has_numeric_ground_truth=True, has_fact_requirements=True)
    )

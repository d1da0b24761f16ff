"""Tests for agent evaluation: score extraction, strategy selection and input shaping."""
import pytest

from core.evaluator import AgentEvaluator, extract_score, response_text
from core.interfaces import AgentExecutor
from evaluation.fact_based import FactBasedEvaluator
from evaluation.hybrid import HybridEvaluator
from models.entities import Agent, Prompt, LabeledRecord
from models.evaluation import FactDefinition, RequiredFacts, HybridItem
from utils.error_handling import CollaboratorFailure, NoTestDataError, NotFoundError
from utils.version_store import VersionStore


class LookupExecutor(AgentExecutor):
    """Returns a canned output per input."""

    def __init__(self, outputs, fail: bool = False):
        self.outputs = outputs
        self.fail = fail
        self.calls = []

    async def run(self, agent, template, input):
        self.calls.append((agent.key, template, input))
        if self.fail:
            raise RuntimeError("model unavailable")
        return self.outputs[input]


PRICE = RequiredFacts(facts=[FactDefinition(name="price")])


def store_with(records) -> VersionStore:
    store = VersionStore()
    store.add_prompt(Prompt(version="v1", name="Agent", template="Answer: {input}"))
    store.add_agent(Agent(key="agent", name="Agent", model="gpt-4o-mini", prompt_version="v1"))
    store.add_labeled_records(records)
    return store


# ============================================================================
# Tests: Output Parsing
# ============================================================================

@pytest.mark.parametrize("output, expected", [
    (0.7, 0.7),
    (1, 1.0),
    ({"score": 0.4}, 0.4),
    ("0.85", 0.85),
    ('{"score": 0.3, "reason": "weak"}', 0.3),
    ("The score is 0.6 out of 1", 0.6),
    ("no number here", None),
    (True, None),
    (None, None),
])
def test_extract_score(output, expected):
    assert extract_score(output) == expected


def test_response_text():
    assert response_text("plain") == "plain"
    assert response_text(None) == ""
    assert response_text({"a": 1}) == '{"a": 1}'


# ============================================================================
# Tests: Evaluation
# ============================================================================

@pytest.mark.asyncio
async def test_numeric_records_select_numeric_strategy():
    store = store_with([
        LabeledRecord(input="a", corrected_score=0.2),
        LabeledRecord(input="b", corrected_score=0.8),
    ])
    executor = LookupExecutor({"a": "0.2", "b": {"score": 0.8}})
    evaluator = AgentEvaluator(store, executor)

    evaluation = await evaluator.evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "numeric-score"
    assert evaluation.score == pytest.approx(1.0)
    assert evaluation.sample_size == 2
    assert evaluation.template == "Answer: {input}"
    assert executor.calls[0] == ("agent", "Answer: {input}", "a")


@pytest.mark.asyncio
async def test_unparseable_score_counts_as_zero():
    store = store_with([LabeledRecord(input="a", corrected_score=0.5)])
    evaluator = AgentEvaluator(store, LookupExecutor({"a": "I cannot say"}))

    evaluation = await evaluator.evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "numeric-score"
    assert evaluation.result.details[0]["predicted"] == 0.0
    assert evaluation.score == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_fact_records_select_fact_strategy():
    store = store_with([
        LabeledRecord(input="a", required_facts=PRICE),
        LabeledRecord(input="b", required_facts=PRICE),
    ])
    executor = LookupExecutor({"a": "The price is $3.", "b": "Out of stock."})
    evaluation = await AgentEvaluator(store, executor).evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "fact-based"
    assert evaluation.score == pytest.approx(0.5)
    assert evaluation.feedback.summary == "Fact-based evaluation score: 50.0%"


@pytest.mark.asyncio
async def test_scored_records_with_facts_select_hybrid():
    store = store_with([
        LabeledRecord(input="a", corrected_score=0.9, required_facts=PRICE),
        LabeledRecord(input="b", corrected_score=0.1, required_facts=PRICE),
    ])
    executor = LookupExecutor({"a": '{"score": 0.9, "note": "price ok"}', "b": {"score": 0.1}})
    evaluation = await AgentEvaluator(store, executor).evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "hybrid"
    assert evaluation.result.metrics["numeric_score"] == pytest.approx(1.0)
    assert evaluation.result.metrics["fact_score"] == pytest.approx(0.5)
    assert isinstance(evaluation.result.details[0]["input"], dict)


@pytest.mark.asyncio
async def test_text_references_without_facts_fall_back_to_numeric():
    store = store_with([
        LabeledRecord(input="a", corrected_score=1.0, expected_output="clear summary"),
        LabeledRecord(input="b", corrected_score=1.0, expected_output="clear summary"),
    ])
    reply = "Score: 1.0 - clear and well written summary"
    evaluator = AgentEvaluator(store, LookupExecutor({"a": reply, "b": reply}))

    evaluation = await evaluator.evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "numeric-score"
    assert evaluation.score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_text_references_keep_hybrid_when_facts_are_defined():
    store = store_with([
        LabeledRecord(input="a", corrected_score=1.0, expected_output="clear summary"),
        LabeledRecord(input="b", corrected_score=1.0, expected_output="clear summary"),
    ])
    reply = "Score: 1.0 - clear and well written summary"
    evaluator = AgentEvaluator(store, LookupExecutor({"a": reply, "b": reply}))
    evaluator.registry.register(HybridEvaluator(
        fact_evaluator=FactBasedEvaluator(fact_definitions=[FactDefinition(name="summary")])
    ))

    evaluation = await evaluator.evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "hybrid"
    assert evaluation.result.metrics["fact_score"] == pytest.approx(1.0)
    assert evaluation.score == pytest.approx(1.0)


def test_prepare_inputs_for_hybrid():
    records = [LabeledRecord(input="a", corrected_score=0.4, required_facts=PRICE)]
    evaluator = AgentEvaluator(store_with([]), LookupExecutor({}))
    hybrid = evaluator.registry.get("hybrid")

    predictions, truth = evaluator.prepare_inputs(hybrid, records, ["score 0.5, price $2"])

    assert predictions == [HybridItem(scores=[0.5], responses=["score 0.5, price $2"])]
    assert truth[0].scores == [0.4]
    assert truth[0].facts == [PRICE]


def test_text_without_textual_reference_is_not_textual_content():
    records = [LabeledRecord(input="a", corrected_score=0.4)]
    context = AgentEvaluator.build_context(records, ["Probably around 0.4"])

    assert context.has_numeric_ground_truth
    assert not context.has_textual_content
    assert not context.has_fact_requirements


def test_bare_scores_are_not_textual_content():
    records = [LabeledRecord(input="a", corrected_score=0.4, expected_output="0.4")]
    context = AgentEvaluator.build_context(records, ["0.4", '{"score": 0.4}'])
    assert not context.has_textual_content


@pytest.mark.asyncio
async def test_fixed_strategy_skips_selection():
    store = store_with([LabeledRecord(input="a", corrected_score=0.5)])
    strategy = FactBasedEvaluator(fact_definitions=[FactDefinition(name="price")])
    evaluator = AgentEvaluator(store, LookupExecutor({"a": "price: 4"}), strategy=strategy)

    evaluation = await evaluator.evaluate_agent(await store.find_agent_by_key("agent"))

    assert evaluation.strategy_name == "fact-based"
    assert evaluation.score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_sample_limit_is_applied():
    store = store_with([LabeledRecord(input=str(i), corrected_score=0.5) for i in range(5)])
    executor = LookupExecutor({str(i): 0.5 for i in range(5)})
    evaluation = await AgentEvaluator(store, executor, sample_limit=2).evaluate_agent(
        await store.find_agent_by_key("agent")
    )
    assert evaluation.sample_size == 2
    assert len(executor.calls) == 2


# ============================================================================
# Tests: Errors
# ============================================================================

@pytest.mark.asyncio
async def test_empty_sample_raises():
    store = store_with([])
    with pytest.raises(NoTestDataError):
        await AgentEvaluator(store, LookupExecutor({})).evaluate_agent(await store.find_agent_by_key("agent"))


@pytest.mark.asyncio
async def test_missing_prompt_raises():
    store = store_with([LabeledRecord(input="a", corrected_score=0.5)])
    orphan = Agent(key="orphan", name="Orphan", model="m", prompt_version="v404")
    with pytest.raises(NotFoundError):
        await AgentEvaluator(store, LookupExecutor({})).evaluate_agent(orphan)


@pytest.mark.asyncio
async def test_executor_failure_is_wrapped():
    store = store_with([LabeledRecord(input="a", corrected_score=0.5)])
    with pytest.raises(CollaboratorFailure) as excinfo:
        await AgentEvaluator(store, LookupExecutor({}, fail=True)).evaluate_agent(
            await store.find_agent_by_key("agent")
        )
    assert excinfo.value.role == "executor"
    assert isinstance(excinfo.value.__cause__, RuntimeError)

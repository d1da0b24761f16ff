"""Agent evaluator - runs an agent over the labeled sample and scores it."""
import json
import re
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from config.optimization_config import OptimizationConfig
from core.interfaces import Repository, AgentExecutor
from core.pattern_analyzer import PatternAnalyzer
from evaluation.base import EvaluationStrategy
from evaluation.registry import EvaluationRegistry, create_default_registry
from models.entities import Agent, LabeledRecord
from models.evaluation import (
    EvaluationConfig,
    EvaluationContext,
    EvaluationResult,
    DetailedFeedback,
    FailurePattern,
    HybridItem,
    HybridTruth,
)
from utils.error_handling import CollaboratorFailure, NotFoundError, NoTestDataError
from utils.logging_utils import get_logger
from utils.metrics import get_metrics_collector

logger = get_logger("evaluator")
metrics = get_metrics_collector()

_FLOAT = re.compile(r"-?\d+(?:\.\d+)?")


def extract_score(output: Any) -> Optional[float]:
    """
    Pull a numeric score out of executor output.

    Accepts a number, a dict with a ``score`` key, a JSON string of either,
    or free text containing a number (the first one wins).
    """
    if isinstance(output, bool):
        return None
    if isinstance(output, (int, float)):
        return float(output)
    if isinstance(output, dict):
        return extract_score(output.get("score"))
    if isinstance(output, str):
        text = output.strip()
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if parsed is not None and not isinstance(parsed, str):
            return extract_score(parsed)
        match = _FLOAT.search(text)
        if match:
            return float(match.group())
    return None


def _is_bare_score(text: str) -> bool:
    """True when the whole string is a number or a JSON score object."""
    try:
        parsed = json.loads(text)
    except ValueError:
        return False
    if isinstance(parsed, dict):
        return extract_score(parsed) is not None
    return isinstance(parsed, (int, float)) and not isinstance(parsed, bool)


def response_text(output: Any) -> str:
    """Render executor output as text for fact checking."""
    if isinstance(output, str):
        return output
    if output is None:
        return ""
    return json.dumps(output, default=str)


def _fact_definitions(strategy: EvaluationStrategy) -> List[Any]:
    """Constructor fact definitions of a fact-based strategy or of a hybrid's fact half."""
    fact_evaluator = getattr(strategy, "fact_evaluator", strategy)
    return list(getattr(fact_evaluator, "fact_definitions", None) or [])


class AgentEvaluation(BaseModel):
    """Outcome of evaluating one agent on one labeled sample."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    agent_key: str
    prompt_version: str
    template: str
    strategy_name: str
    score: float
    result: EvaluationResult
    feedback: DetailedFeedback
    patterns: List[FailurePattern] = Field(default_factory=list)
    sample_size: int


class AgentEvaluator:
    """
    Evaluates an agent against labeled records.

    The strategy is fixed when given; otherwise it is selected from the
    registry using the capabilities of each sample.
    """

    def __init__(
        self,
        repository: Repository,
        executor: AgentExecutor,
        strategy: Optional[EvaluationStrategy] = None,
        registry: Optional[EvaluationRegistry] = None,
        analyzer: Optional[PatternAnalyzer] = None,
        sample_limit: Optional[int] = None,
        evaluation_config: Optional[EvaluationConfig] = None
    ):
        self.repository = repository
        self.executor = executor
        self.strategy = strategy
        self.registry = registry or create_default_registry()
        self.analyzer = analyzer or PatternAnalyzer()
        self.sample_limit = sample_limit or OptimizationConfig.EVAL_SAMPLE_LIMIT
        self.evaluation_config = evaluation_config

    async def evaluate_agent(self, agent: Agent) -> AgentEvaluation:
        """
        Run ``agent`` over the labeled sample and evaluate its outputs.

        Raises:
            NotFoundError: The agent's prompt version does not exist
            NoTestDataError: The labeled sample is empty
            CollaboratorFailure: The repository or executor raised
        """
        try:
            prompt = await self.repository.find_prompt_by_version(agent.prompt_version)
        except Exception as e:
            raise CollaboratorFailure("repository", e) from e
        if prompt is None:
            raise NotFoundError("Prompt", agent.prompt_version)

        try:
            records = await self.repository.find_labeled_sample(self.sample_limit)
        except Exception as e:
            raise CollaboratorFailure("repository", e) from e
        if not records:
            raise NoTestDataError()

        outputs = []
        for record in records:
            try:
                outputs.append(await self.executor.run(agent, prompt.template, record.input))
            except Exception as e:
                raise CollaboratorFailure("executor", e) from e

        context = self.build_context(records, outputs)
        strategy = self.strategy or self.select_strategy(context)
        predictions, ground_truth = self.prepare_inputs(strategy, records, outputs)

        result = await strategy.evaluate(predictions, ground_truth, self.evaluation_config)
        feedback = strategy.generate_feedback(result)
        patterns = self.analyzer.analyze_patterns([result], strategy)

        logger.info(
            "Agent evaluated",
            agent_key=agent.key,
            prompt_version=agent.prompt_version,
            strategy=strategy.name,
            score=result.score,
            sample_size=len(records),
            patterns=[p.type for p in patterns]
        )
        metrics.histogram("evaluation.score", result.score, tags={"strategy": strategy.name})

        return AgentEvaluation(
            agent_key=agent.key,
            prompt_version=agent.prompt_version,
            template=prompt.template,
            strategy_name=strategy.name,
            score=result.score,
            result=result,
            feedback=feedback,
            patterns=patterns,
            sample_size=len(records),
        )

    def select_strategy(self, context: EvaluationContext) -> EvaluationStrategy:
        """
        Pick a registry strategy for ``context``.

        Free text only helps a fact-checking strategy that has facts to look
        for. When no record carries fact requirements and the chosen
        strategy has no fact definitions of its own, selection is repeated
        with the textual content ignored.
        """
        strategy = self.registry.select_strategy(context)
        if context.has_fact_requirements or _fact_definitions(strategy):
            return strategy
        if strategy.type not in ("fact-based", "hybrid"):
            return strategy

        logger.info("No facts to check, selecting without textual content", skipped_strategy=strategy.name)
        return self.registry.select_strategy(context.model_copy(update={"has_textual_content": False}))

    @staticmethod
    def build_context(records: List[LabeledRecord], outputs: List[Any]) -> EvaluationContext:
        """
        Capabilities of one sample.

        Text only counts as evaluable content when some record also carries a
        textual reference (required facts or a string expected output).
        """
        textual_reference = any(
            r.required_facts is not None or isinstance(r.expected_output, str) for r in records
        )
        return EvaluationContext(
            has_numeric_ground_truth=all(r.corrected_score is not None for r in records),
            has_textual_content=textual_reference and any(
                isinstance(o, str) and not _is_bare_score(o) for o in outputs
            ),
            has_fact_requirements=any(
                r.required_facts is not None and r.required_facts.facts for r in records
            ),
        )

    def prepare_inputs(
        self,
        strategy: EvaluationStrategy,
        records: List[LabeledRecord],
        outputs: List[Any]
    ) -> Tuple[List[Any], List[Any]]:
        """Shape executor outputs and records into the strategy's prediction/ground-truth form."""
        if strategy.type == "fact-based":
            return (
                [response_text(o) for o in outputs],
                [r.required_facts for r in records],
            )

        if strategy.type == "hybrid":
            scored = self._scored_pairs(records, outputs)
            return (
                [HybridItem(scores=[p], responses=[response_text(o)]) for p, _, o, _ in scored],
                [HybridTruth(scores=[t], facts=[r.required_facts]) for _, t, _, r in scored],
            )

        if strategy.type == "numeric":
            scored = self._scored_pairs(records, outputs)
            return [p for p, _, _, _ in scored], [t for _, t, _, _ in scored]

        # Custom strategies see raw outputs and the most specific label available
        return (
            list(outputs),
            [r.expected_output if r.expected_output is not None else r.corrected_score for r in records],
        )

    def _scored_pairs(
        self,
        records: List[LabeledRecord],
        outputs: List[Any]
    ) -> List[Tuple[float, float, Any, LabeledRecord]]:
        """(prediction, truth, output, record) for every record that carries a corrected score."""
        pairs = []
        for record, output in zip(records, outputs):
            if record.corrected_score is None:
                logger.debug("Skipping record without corrected score", input=record.input[:50])
                continue
            prediction = extract_score(output)
            if prediction is None:
                logger.warning(
                    "No score found in executor output, counting it as 0",
                    input=record.input[:50]
                )
                prediction = 0.0
            pairs.append((prediction, record.corrected_score, output, record))
        return pairs

"""Optimizer - iterative evaluate / research / engineer loop."""
import sys
import time
import uuid
from typing import List, Optional

from tqdm import tqdm

from config.optimization_config import OptimizationConfig
from core.evaluator import AgentEvaluator, AgentEvaluation
from core.history import OptimizationHistory
from core.interfaces import Repository, AgentExecutor, PromptResearcher, PromptEngineer
from core.pattern_analyzer import PatternAnalyzer
from evaluation.base import EvaluationStrategy
from evaluation.feedback import combine_feedback, pattern_feedback, format_feedback_text, iteration_trend
from evaluation.registry import EvaluationRegistry
from models.entities import Agent
from models.evaluation import DetailedFeedback, EvaluationResult
from models.optimization import (
    ConvergenceConfig,
    IterativeOptimizationStep,
    IterativeOptimizationResult,
    StopReason,
)
from utils.error_handling import (
    handle_errors,
    ErrorSeverity,
    CollaboratorFailure,
    LengthMismatchError,
    NotFoundError,
)
from utils.logging_utils import get_logger, set_correlation_id
from utils.metrics import get_metrics_collector
from utils.result_saver import save_optimization_result

logger = get_logger("optimizer")
metrics = get_metrics_collector()


def derive_prompt_version(parent_version: str, run_id: str, iteration: int) -> str:
    """``<parent base>_optimized_<run prefix>_<iteration>``; unique per run and iteration."""
    return f"{parent_version.split('_')[0]}_optimized_{run_id[:8]}_{iteration}"


def derive_agent_key(base_agent_key: str, run_id: str, iteration: int) -> str:
    return f"{base_agent_key}_opt_{iteration}_{run_id[:8]}"


async def _collaborate(role: str, call, *args):
    """Await a collaborator call, wrapping any failure in CollaboratorFailure."""
    try:
        return await call(*args)
    except Exception as e:
        raise CollaboratorFailure(role, e) from e


class IterativeOptimizer:
    """
    Drives successive prompt rewrites until the agent converges.

    Each iteration evaluates the current agent, stops on target score, stalled
    improvement or the iteration budget, and otherwise asks the researcher and
    engineer for a rewritten template. Every rewrite becomes a new prompt
    version and a new agent version; nothing is modified in place.
    """

    def __init__(
        self,
        repository: Repository,
        executor: AgentExecutor,
        researcher: PromptResearcher,
        engineer: PromptEngineer,
        evaluator: Optional[AgentEvaluator] = None,
        strategy: Optional[EvaluationStrategy] = None,
        registry: Optional[EvaluationRegistry] = None,
        analyzer: Optional[PatternAnalyzer] = None,
        sample_limit: Optional[int] = None,
        show_progress: Optional[bool] = None,
        save_results: Optional[bool] = None
    ):
        """
        Args:
            repository: Agent, prompt and labeled-record store
            executor: Runs an agent on one input
            researcher: Turns feedback into recommendations
            engineer: Rewrites the template from recommendations
            evaluator: Prebuilt evaluator (overrides strategy/registry/sample_limit)
            strategy: Fixed evaluation strategy; selected per sample when omitted
            registry: Strategy registry used for selection
            analyzer: Pattern analyzer; its history is reset at the start of each run
            sample_limit: Labeled records per evaluation (defaults to config)
            show_progress: Show the tqdm progress bar (defaults to config)
            save_results: Save each result as JSON (defaults to config)
        """
        self.repository = repository
        self.researcher = researcher
        self.engineer = engineer

        if evaluator is not None:
            self.evaluator = evaluator
            self.analyzer = evaluator.analyzer
        else:
            self.analyzer = analyzer or PatternAnalyzer()
            self.evaluator = AgentEvaluator(
                repository,
                executor,
                strategy=strategy,
                registry=registry,
                analyzer=self.analyzer,
                sample_limit=sample_limit
            )

        self.show_progress = OptimizationConfig.SHOW_PROGRESS if show_progress is None else show_progress
        self.save_results = OptimizationConfig.SAVE_RESULTS if save_results is None else save_results

    @handle_errors(severity=ErrorSeverity.HIGH, log_error=True, reraise=True)
    async def optimize(
        self,
        base_agent_key: str,
        convergence: Optional[ConvergenceConfig] = None,
        run_id: Optional[str] = None
    ) -> IterativeOptimizationResult:
        """
        Optimize an agent's prompt.

        Args:
            base_agent_key: Agent to start from
            convergence: Stop criteria (defaults to config)
            run_id: Run identifier, also used as the log correlation id

        Returns:
            IterativeOptimizationResult describing the run

        Raises:
            NotFoundError: The base agent or its prompt does not exist
            LengthMismatchError: Always propagated
            Exception: Any failure during the first iteration
        """
        convergence = convergence or ConvergenceConfig()
        run_id = run_id or str(uuid.uuid4())
        set_correlation_id(run_id)
        start_time = time.time()

        base_agent = await _collaborate("repository", self.repository.find_agent_by_key, base_agent_key)
        if base_agent is None:
            raise NotFoundError("Agent", base_agent_key)

        self.analyzer.clear_history()
        history = OptimizationHistory()
        results: List[EvaluationResult] = []
        current_agent = base_agent
        previous_score = 0.0

        logger.info(
            "Starting optimization",
            base_agent_key=base_agent_key,
            run_id=run_id,
            target_score=convergence.target_score,
            max_iterations=convergence.max_iterations
        )
        metrics.increment("optimization.started", tags={"agent": base_agent_key})

        progress_bar = tqdm(
            total=convergence.max_iterations,
            desc="Optimizing",
            unit="iter",
            file=sys.stdout,  # logging uses stderr
            disable=None if self.show_progress else True  # None auto-detects a TTY
        )

        def finish(
            agent_key: str,
            prompt_version: str,
            score: float,
            reason: StopReason,
            error: Optional[BaseException] = None
        ) -> IterativeOptimizationResult:
            steps = history.get_all()
            initial_score = steps[0].score if steps else 0.0
            result = IterativeOptimizationResult(
                final_agent_key=agent_key,
                final_prompt_version=prompt_version,
                final_score=score,
                total_improvement=score - initial_score,
                iterations=len(steps),
                history=steps,
                target_reached=score >= convergence.target_score,
                stopped_reason=reason,
                duration_ms=(time.time() - start_time) * 1000,
                run_id=run_id,
                error_message=str(error) if error else None,
            )
            logger.info(
                "Optimization finished",
                stopped_reason=reason.value,
                final_agent_key=agent_key,
                final_score=score,
                total_improvement=result.total_improvement,
                iterations=result.iterations,
                duration_ms=round(result.duration_ms, 1)
            )
            metrics.increment("optimization.finished", tags={"reason": reason.value})
            metrics.gauge("optimization.final_score", score, tags={"agent": base_agent_key})
            if self.save_results:
                save_optimization_result(result, base_agent_key)
            return result

        try:
            for iteration in range(1, convergence.max_iterations + 1):
                progress_bar.set_description(f"Optimizing [iter {iteration}/{convergence.max_iterations}]")
                evaluation = None

                def record(applied: List[str]):
                    history.add_step(IterativeOptimizationStep(
                        iteration=iteration,
                        agent_key=current_agent.key,
                        prompt_version=current_agent.prompt_version,
                        score=score,
                        improvement=improvement,
                        feedback=evaluation.feedback.summary,
                        applied_improvements=applied,
                    ))
                    progress_bar.update(1)

                try:
                    with metrics.timer("optimization.evaluation_ms"):
                        evaluation = await self.evaluator.evaluate_agent(current_agent)
                    score = evaluation.score
                    improvement = score - previous_score
                    self.analyzer.track_pattern_evolution(evaluation.patterns, iteration)

                    logger.info(
                        "Iteration evaluated",
                        iteration=iteration,
                        agent_key=current_agent.key,
                        prompt_version=current_agent.prompt_version,
                        score=score,
                        improvement=improvement,
                        strategy=evaluation.strategy_name
                    )
                    metrics.gauge("optimization.iteration.score", score, tags={"iteration": str(iteration)})
                    metrics.histogram("optimization.score", score)
                    progress_bar.set_postfix_str(f"score={score:.3f}")

                    if score >= convergence.target_score:
                        record([])
                        logger.info("Target score reached", score=score, target=convergence.target_score)
                        metrics.increment("optimization.target_reached")
                        return finish(current_agent.key, current_agent.prompt_version, score, StopReason.TARGET_REACHED)

                    stalled = history.register_improvement(
                        iteration, improvement, convergence.min_improvement_threshold
                    )
                    if stalled >= convergence.max_consecutive_no_improvement:
                        record([])
                        logger.info("No improvement, stopping", consecutive_no_improvement=stalled)
                        return finish(current_agent.key, current_agent.prompt_version, score, StopReason.NO_IMPROVEMENT)

                    # The last iteration's agent is final; a rewrite would never be evaluated
                    if iteration == convergence.max_iterations:
                        record([])
                        break

                    results.append(evaluation.result)
                    with metrics.timer("optimization.rewrite_ms"):
                        next_agent, applied = await self._improve(
                            base_agent, current_agent, evaluation, results, run_id, iteration
                        )
                    record(applied)
                    previous_score = score
                    current_agent = next_agent

                except LengthMismatchError:
                    raise
                except Exception as e:
                    if iteration == 1:
                        raise
                    logger.exception(
                        "Iteration failed, returning best state",
                        iteration=iteration,
                        exception_type=type(e).__name__
                    )
                    metrics.increment("optimization.errors", tags={"iteration": str(iteration)})
                    # An evaluated iteration keeps its step
                    latest = history.latest()
                    if evaluation is not None and (latest is None or latest.iteration != iteration):
                        record([])
                    best = history.get_best_step()
                    return finish(best.agent_key, best.prompt_version, best.score, StopReason.ERROR, error=e)

            last = history.latest()
            return finish(last.agent_key, last.prompt_version, last.score, StopReason.MAX_ITERATIONS)
        finally:
            progress_bar.close()

    async def _improve(
        self,
        base_agent: Agent,
        current_agent: Agent,
        evaluation: AgentEvaluation,
        results: List[EvaluationResult],
        run_id: str,
        iteration: int
    ):
        """Research, engineer and materialize the next prompt and agent versions."""
        feedback_text = self.compose_feedback(evaluation, results[:-1])

        findings = await _collaborate(
            "researcher", self.researcher.research,
            evaluation.template, evaluation.score, feedback_text
        )
        logger.info(
            "Research findings received",
            iteration=iteration,
            recommendations=[f"{r.technique} ({r.priority})" for r in findings.prioritized()]
        )

        engineered = await _collaborate(
            "engineer", self.engineer.engineer,
            evaluation.template, evaluation.score, feedback_text, findings
        )
        # Telemetry only; never used to accept or reject the rewrite
        logger.info(
            "Improved prompt generated",
            iteration=iteration,
            applied_techniques=engineered.applied_techniques,
            expected_improvement=engineered.expected_improvement
        )
        metrics.gauge("optimization.expected_improvement", engineered.expected_improvement,
                      tags={"iteration": str(iteration)})

        prompt = await _collaborate(
            "repository", self.repository.create_prompt_version,
            derive_prompt_version(current_agent.prompt_version, run_id, iteration),
            engineered.improved_prompt,
            current_agent.prompt_version,
            engineered.applied_techniques
        )
        agent = await _collaborate(
            "repository", self.repository.create_agent_version,
            derive_agent_key(base_agent.key, run_id, iteration),
            current_agent,
            prompt.version,
            iteration
        )
        metrics.increment("optimization.versions_created")
        return agent, list(engineered.applied_techniques)

    def compose_feedback(self, evaluation: AgentEvaluation, previous: List[EvaluationResult]) -> str:
        """Feedback text for the research role: strategy feedback, patterns and trend."""
        patterns = evaluation.patterns + self.analyzer.get_persistent_patterns()
        suggestions = self.analyzer.suggest_improvements(patterns)

        sources = {evaluation.strategy_name: evaluation.feedback}
        if patterns:
            sources["patterns"] = pattern_feedback(patterns)
        trend = iteration_trend(evaluation.result, previous)
        if trend:
            sources["progress"] = DetailedFeedback(
                summary=f"Iteration {len(previous) + 1}",
                patterns=trend,
            )

        combined = combine_feedback(sources, main_strategy=evaluation.strategy_name)
        return format_feedback_text(combined, patterns, suggestions)

"""Tests for metrics, error handling, logging and result persistence helpers."""
import inspect
import json
import logging
import warnings

import pytest

from models.optimization import IterativeOptimizationResult, StopReason
from utils.error_handling import (
    CollaboratorFailure,
    ErrorSeverity,
    LengthMismatchError,
    NotFoundError,
    handle_errors,
)
from utils.logging_utils import StructuredFormatter, get_logger, set_correlation_id
from utils.metrics import MetricsCollector
from utils.result_saver import load_optimization_result, save_optimization_result


# ============================================================================
# Tests: Metrics
# ============================================================================

def test_counters_gauges_and_histograms():
    collector = MetricsCollector()
    collector.increment("runs")
    collector.increment("runs", 2)
    collector.gauge("score", 0.4)
    collector.gauge("score", 0.7)
    for value in [1.0, 2.0, 3.0, 4.0]:
        collector.histogram("latency", value)

    assert collector.get_counter("runs") == 3
    assert collector.get_counter("missing") == 0
    assert collector.get_gauge("score") == 0.7
    stats = collector.get_histogram_stats("latency")
    assert stats["count"] == 4
    assert stats["min"] == 1.0
    assert stats["max"] == 4.0
    assert stats["mean"] == pytest.approx(2.5)
    assert collector.get_histogram_stats("missing") == {"count": 0}


def test_timer_records_a_histogram_even_on_error():
    collector = MetricsCollector()
    with pytest.raises(RuntimeError):
        with collector.timer("phase_ms"):
            raise RuntimeError("boom")
    assert collector.get_histogram_stats("phase_ms")["count"] == 1


def test_histograms_keep_only_recent_observations():
    collector = MetricsCollector(max_retained=3)
    for value in [10.0, 1.0, 2.0, 3.0]:
        collector.histogram("latency", value)

    stats = collector.get_histogram_stats("latency")
    assert stats["count"] == 3
    assert stats["max"] == 3.0
    assert stats["mean"] == pytest.approx(2.0)


def test_retention_and_export(tmp_path):
    collector = MetricsCollector(max_retained=3)
    for i in range(5):
        collector.increment("events")

    path = collector.export(str(tmp_path / "metrics.json"))
    data = json.loads(open(path).read())
    assert data["summary"]["counters"] == {"events": 5}
    assert len(data["measurements"]) == 3

    collector.clear()
    assert collector.get_summary()["counters"] == {}


# ============================================================================
# Tests: Errors
# ============================================================================

def test_error_messages():
    assert str(NotFoundError("Agent", "scorer")) == "Agent 'scorer' not found"
    mismatch = LengthMismatchError(3, 2)
    assert isinstance(mismatch, ValueError)
    assert "(got 3 and 2)" in str(mismatch)

    cause = TimeoutError("slow")
    failure = CollaboratorFailure("engineer", cause)
    assert failure.role == "engineer"
    assert str(failure) == "engineer call failed: TimeoutError: slow"


def test_handle_errors_sync_and_async():
    @handle_errors(severity=ErrorSeverity.LOW, reraise=False)
    def quiet():
        raise ValueError("ignored")

    @handle_errors()
    def loud():
        raise ValueError("raised")

    assert quiet() is None
    with pytest.raises(ValueError):
        loud()


@pytest.mark.asyncio
async def test_handle_errors_wraps_coroutines():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)

        @handle_errors()
        async def failing():
            raise NotFoundError("Prompt", "v9")

        @handle_errors()
        async def working():
            return 42

    assert inspect.iscoroutinefunction(working)

    assert await working() == 42
    with pytest.raises(NotFoundError):
        await failing()


# ============================================================================
# Tests: Logging
# ============================================================================

def test_structured_formatter_includes_context_and_correlation_id():
    set_correlation_id("corr-1")
    record = logging.LogRecord("prompt_engine.test", logging.INFO, __file__, 1, "Iteration evaluated", None, None)
    record.iteration = 2
    record.score = 0.71

    data = json.loads(StructuredFormatter().format(record))

    assert data["message"] == "Iteration evaluated"
    assert data["iteration"] == 2
    assert data["score"] == 0.71
    assert data["correlation_id"] == "corr-1"


def test_bound_logger_keeps_context():
    logger = get_logger("tests").bind(run="abc")
    assert logger._context == {"run": "abc"}
    logger.info("bound message", step=1)


def test_records_point_at_the_calling_function():
    captured = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            captured.append(record)

    handler = ListHandler()
    logging.getLogger("prompt_engine.callsite").addHandler(handler)
    try:
        get_logger("callsite").warning("from the test", step=2)
        get_logger("callsite").bind(run="r1").info("bound")
    finally:
        logging.getLogger("prompt_engine.callsite").removeHandler(handler)

    assert [r.funcName for r in captured] == ["test_records_point_at_the_calling_function"] * 2
    assert captured[0].step == 2
    assert captured[1].run == "r1"


# ============================================================================
# Tests: Result Persistence
# ============================================================================

def test_load_of_unreadable_result_returns_none(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert load_optimization_result(broken) is None
    assert load_optimization_result(tmp_path / "absent.json") is None


def test_save_to_explicit_directory(tmp_path):
    result = IterativeOptimizationResult(
        final_agent_key="scorer",
        final_prompt_version="v1",
        final_score=0.5,
        total_improvement=0.0,
        iterations=0,
        stopped_reason=StopReason.MAX_ITERATIONS,
        run_id="r1",
    )
    path = save_optimization_result(result, "scorer", output_dir=tmp_path)

    assert path == tmp_path / "scorer" / "scorer_r1.json"
    assert load_optimization_result(path).final_score == 0.5

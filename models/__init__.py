"""Data models for the evaluation and optimization engine."""
from models.evaluation import (
    EvaluationContext,
    EvaluationConfig,
    EvaluationResult,
    EvaluationExample,
    DetailedFeedback,
    FailurePattern,
    FactDefinition,
    RequiredFacts,
    FactCheckResult,
    HybridItem,
    HybridTruth,
)
from models.optimization import (
    StopReason,
    ConvergenceConfig,
    IterativeOptimizationStep,
    IterativeOptimizationResult,
)
from models.entities import (
    Agent,
    Prompt,
    LabeledRecord,
    Recommendation,
    ResearchFindings,
    EngineeringResult,
)

__all__ = [
    "EvaluationContext",
    "EvaluationConfig",
    "EvaluationResult",
    "EvaluationExample",
    "DetailedFeedback",
    "FailurePattern",
    "FactDefinition",
    "RequiredFacts",
    "FactCheckResult",
    "HybridItem",
    "HybridTruth",
    "StopReason",
    "ConvergenceConfig",
    "IterativeOptimizationStep",
    "IterativeOptimizationResult",
    "Agent",
    "Prompt",
    "LabeledRecord",
    "Recommendation",
    "ResearchFindings",
    "EngineeringResult",
]

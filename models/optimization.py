"""Optimization loop models."""
from enum import Enum
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from config.optimization_config import OptimizationConfig


class StopReason(str, Enum):
    """Why an optimization run ended."""
    TARGET_REACHED = "target-reached"
    NO_IMPROVEMENT = "no-improvement"
    MAX_ITERATIONS = "max-iterations"
    ERROR = "error"


class ConvergenceConfig(BaseModel):
    """Stop criteria for one optimization run."""
    model_config = ConfigDict(frozen=True)

    target_score: float = Field(default_factory=lambda: OptimizationConfig.TARGET_SCORE, ge=0, le=1)
    max_iterations: int = Field(default_factory=lambda: OptimizationConfig.MAX_ITERATIONS, ge=1)
    max_consecutive_no_improvement: int = Field(
        default_factory=lambda: OptimizationConfig.MAX_CONSECUTIVE_NO_IMPROVEMENT, ge=1
    )
    min_improvement_threshold: float = Field(
        default_factory=lambda: OptimizationConfig.MIN_IMPROVEMENT_THRESHOLD, ge=0
    )


class IterativeOptimizationStep(BaseModel):
    """Record of one loop iteration."""
    iteration: int
    agent_key: str
    prompt_version: str
    score: float
    improvement: float
    feedback: str = Field(description="Feedback summary for this iteration")
    applied_improvements: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class IterativeOptimizationResult(BaseModel):
    """Terminal summary of an optimization run."""
    final_agent_key: str
    final_prompt_version: str
    final_score: float
    total_improvement: float
    iterations: int
    history: List[IterativeOptimizationStep] = Field(default_factory=list)
    target_reached: bool = False
    stopped_reason: StopReason
    duration_ms: float = 0.0
    run_id: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def initial_score(self) -> float:
        return self.history[0].score if self.history else 0.0

    @property
    def best_step(self) -> Optional[IterativeOptimizationStep]:
        if not self.history:
            return None
        return max(self.history, key=lambda s: s.score)

"""History tracking for optimization runs."""
from typing import List, Optional
from models.optimization import IterativeOptimizationStep


class OptimizationHistory:
    """Tracks the optimization trajectory and the no-improvement streak."""

    def __init__(self):
        self.steps: List[IterativeOptimizationStep] = []
        self.consecutive_no_improvement = 0

    def add_step(self, step: IterativeOptimizationStep):
        """Append a step. Steps are never modified or removed."""
        self.steps.append(step)

    def get_best_step(self) -> IterativeOptimizationStep:
        """Get the highest-scoring step; the earliest wins ties."""
        if not self.steps:
            raise ValueError("No steps in history")
        return max(self.steps, key=lambda s: s.score)

    def latest(self) -> Optional[IterativeOptimizationStep]:
        return self.steps[-1] if self.steps else None

    def register_improvement(self, iteration: int, improvement: float, threshold: float) -> int:
        """
        Update the no-improvement streak and return it.

        The first iteration has no baseline and never counts.
        """
        if iteration > 1 and improvement < threshold:
            self.consecutive_no_improvement += 1
        else:
            self.consecutive_no_improvement = 0
        return self.consecutive_no_improvement

    def get_all(self) -> List[IterativeOptimizationStep]:
        """Get all steps."""
        return self.steps.copy()

    def __len__(self) -> int:
        return len(self.steps)

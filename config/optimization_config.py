"""Optimization configuration settings."""
import os
from dotenv import load_dotenv

load_dotenv()


class OptimizationConfig:
    """Configuration for the evaluation and optimization loop."""

    # Convergence defaults (scores are on a 0-1 scale)
    TARGET_SCORE: float = float(os.getenv("TARGET_SCORE", "0.8"))
    MAX_ITERATIONS: int = int(os.getenv("MAX_ITERATIONS", "5"))
    MAX_CONSECUTIVE_NO_IMPROVEMENT: int = int(os.getenv("MAX_CONSECUTIVE_NO_IMPROVEMENT", "3"))
    MIN_IMPROVEMENT_THRESHOLD: float = float(os.getenv("MIN_IMPROVEMENT_THRESHOLD", "0.01"))

    # Evaluation sample drawn from the labeled dataset each iteration
    EVAL_SAMPLE_LIMIT: int = int(os.getenv("EVAL_SAMPLE_LIMIT", "20"))

    # Hybrid strategy weights (renormalized by the strategy)
    HYBRID_NUMERIC_WEIGHT: float = float(os.getenv("HYBRID_NUMERIC_WEIGHT", "0.5"))
    HYBRID_FACT_WEIGHT: float = float(os.getenv("HYBRID_FACT_WEIGHT", "0.5"))

    # Persistent patterns need this many tracked iterations
    PERSISTENT_PATTERN_MIN_ITERATIONS: int = int(os.getenv("PERSISTENT_PATTERN_MIN_ITERATIONS", "3"))

    # Result saving
    SAVE_RESULTS: bool = os.getenv("SAVE_RESULTS", "false").lower() == "true"
    OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "outputs")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json | text

    # Progress bar (None lets tqdm auto-detect a TTY)
    SHOW_PROGRESS: bool = os.getenv("SHOW_PROGRESS", "true").lower() == "true"

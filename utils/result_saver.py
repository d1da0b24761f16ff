"""Utility for saving optimization results."""
import json
from pathlib import Path
from typing import Optional
from config.optimization_config import OptimizationConfig
from models.optimization import IterativeOptimizationResult
from utils.logging_utils import get_logger

logger = get_logger("result_saver")


def save_optimization_result(
    result: IterativeOptimizationResult,
    base_agent_key: str,
    output_dir: Optional[Path] = None
) -> Path:
    """
    Save an optimization result to JSON, one subdirectory per base agent.

    Args:
        result: Result to save
        base_agent_key: Agent the run started from
        output_dir: Output directory (defaults to <OUTPUT_DIR>/optimization_runs/)

    Returns:
        Path to saved file
    """
    if output_dir is None:
        output_dir = Path(OptimizationConfig.OUTPUT_DIR) / "optimization_runs"

    save_dir = Path(output_dir) / base_agent_key
    save_dir.mkdir(parents=True, exist_ok=True)
    filepath = save_dir / f"{base_agent_key}_{result.run_id}.json"

    result_dict = result.model_dump(mode='json')
    result_dict["_metadata"] = {
        "run_id": result.run_id,
        "base_agent_key": base_agent_key,
        "saved_at": result.timestamp.isoformat(),
    }

    with open(filepath, "w") as f:
        json.dump(result_dict, f, indent=2, default=str)

    logger.debug(
        "Saved optimization result",
        filepath=str(filepath),
        run_id=result.run_id,
        iterations=result.iterations,
        final_score=result.final_score
    )
    return filepath


def load_optimization_result(filepath: Path) -> Optional[IterativeOptimizationResult]:
    """
    Load an optimization result from JSON.

    Returns:
        The result, or None if the file cannot be read or parsed
    """
    try:
        with open(filepath, "r") as f:
            data = json.load(f)
        data.pop("_metadata", None)
        return IterativeOptimizationResult.model_validate(data)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load optimization result: {e}", filepath=str(filepath))
        return None

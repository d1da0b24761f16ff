"""Example: Optimize a sentiment-scoring prompt."""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.llm_config import LLMConfig
from core.agents import AgentRunner, PromptResearchAgent, PromptEngineerAgent
from core.optimizer import IterativeOptimizer
from models.entities import Agent, Prompt, LabeledRecord
from models.optimization import ConvergenceConfig
from utils.llm_client import LLMClient
from utils.version_store import VersionStore

INITIAL_TEMPLATE = (
    "Rate how positive this product review is.\n"
    "Reply with only a number between 0 and 1.\n\n"
    "Review: {input}"
)

# Human-corrected scores for a handful of reviews
LABELED_REVIEWS = [
    ("Absolutely love it, works perfectly and arrived early.", 0.95),
    ("Does the job. Nothing special.", 0.55),
    ("Broke after two days and support never answered.", 0.05),
    ("Good value, although the manual is confusing.", 0.7),
    ("Not what I ordered, but the replacement was fine.", 0.45),
    ("Terrible smell, returned it immediately.", 0.1),
]


def build_store() -> VersionStore:
    store = VersionStore()
    store.add_prompt(Prompt(version="v1", name="Sentiment scorer", template=INITIAL_TEMPLATE))
    store.add_agent(Agent(
        key="sentiment-scorer",
        name="Sentiment scorer",
        model=LLMConfig.DEFAULT_AGENT_MODEL,
        temperature=0.0,
        max_tokens=10,
        prompt_version="v1",
    ))
    store.add_labeled_records([
        LabeledRecord(input=text, corrected_score=score) for text, score in LABELED_REVIEWS
    ])
    return store


async def main():
    LLMConfig.validate()
    client = LLMClient()
    store = build_store()

    optimizer = IterativeOptimizer(
        repository=store,
        executor=AgentRunner(client),
        researcher=PromptResearchAgent(client),
        engineer=PromptEngineerAgent(client),
    )

    print("Starting optimization...")
    result = await optimizer.optimize(
        "sentiment-scorer",
        convergence=ConvergenceConfig(target_score=0.9, max_iterations=4),
    )

    print(f"\n{'='*60}")
    print("OPTIMIZATION RESULTS")
    print(f"{'='*60}")
    print(f"Stopped: {result.stopped_reason.value}")
    print(f"Initial Score: {result.initial_score:.3f}")
    print(f"Final Score: {result.final_score:.3f}")
    print(f"Improvement: {result.total_improvement:+.3f}")
    print(f"Iterations: {result.iterations}")
    print(f"Total Tokens: {client.total_tokens}")
    print(f"\nFinal Agent: {result.final_agent_key} (prompt {result.final_prompt_version})")

    final_prompt = await store.find_prompt_by_version(result.final_prompt_version)
    print(f"\nOptimized Prompt:\n{final_prompt.template}")

    lineage = store.get_prompt_lineage(result.final_prompt_version)
    print(f"\nLineage: {' -> '.join(p.version for p in lineage)}")


if __name__ == "__main__":
    asyncio.run(main())

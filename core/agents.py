"""LLM-backed executor and rewrite agents."""
import json
from typing import Any, Optional

from pydantic import ValidationError

from config.llm_config import LLMConfig
from core.interfaces import AgentExecutor, PromptResearcher, PromptEngineer
from models.entities import Agent, ResearchFindings, EngineeringResult
from utils.llm_client import LLMClient, strip_code_fences
from utils.logging_utils import get_logger

logger = get_logger("agents")

RESEARCH_SYSTEM_PROMPT = """You are a prompt engineering researcher.
You receive an instruction template, its evaluation score (0-1) and evaluation feedback.
Diagnose why the template underperforms and recommend proven prompting techniques.

Respond with a JSON object:
{
  "issues": ["..."],
  "root_causes": ["..."],
  "recommendations": [
    {"technique": "...", "rationale": "...", "priority": "high|medium|low"}
  ],
  "implementation_strategy": "..."
}"""

ENGINEER_SYSTEM_PROMPT = """You are a prompt engineer.
You receive an instruction template, its evaluation score (0-1), evaluation feedback
and research findings. Rewrite the template applying the recommended techniques,
highest priority first. Keep every placeholder and output format requirement intact.

Respond with a JSON object:
{
  "improved_prompt": "...",
  "applied_techniques": ["..."],
  "expected_improvement": 0.0
}"""


class AgentRunner(AgentExecutor):
    """Runs an agent by sending its template and the input to the agent's model."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def run(self, agent: Agent, template: str, input: str) -> Any:
        if "{input}" in template:
            prompt, system_prompt = template.replace("{input}", input), None
        else:
            prompt, system_prompt = input, template

        return await self.llm_client.complete(
            model=agent.model,
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=agent.temperature,
            max_tokens=agent.max_tokens
        )


class PromptResearchAgent(PromptResearcher):
    """Diagnoses a template's weaknesses and recommends techniques."""

    def __init__(self, llm_client: LLMClient, model: Optional[str] = None):
        self.llm_client = llm_client
        self.model = model or LLMConfig.RESEARCH_MODEL
        logger.info("Research agent initialized", model=self.model)

    async def research(
        self,
        current_prompt: str,
        evaluation_score: float,
        feedback: str
    ) -> ResearchFindings:
        request = json.dumps({
            "current_prompt": current_prompt,
            "evaluation_score": round(evaluation_score, 4),
            "feedback": feedback,
        }, indent=2)

        data = await self.llm_client.complete_json(
            model=self.model,
            prompt=request,
            system_prompt=RESEARCH_SYSTEM_PROMPT,
            temperature=LLMConfig.RESEARCH_TEMPERATURE,
            max_tokens=LLMConfig.MAX_TOKENS
        )
        try:
            findings = ResearchFindings.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Malformed research findings: {e}") from e

        logger.info(
            "Research complete",
            issues=len(findings.issues),
            recommendations=[r.technique for r in findings.prioritized()]
        )
        return findings


class PromptEngineerAgent(PromptEngineer):
    """Rewrites a template from research findings."""

    def __init__(self, llm_client: LLMClient, model: Optional[str] = None):
        self.llm_client = llm_client
        self.model = model or LLMConfig.ENGINEER_MODEL
        logger.info("Engineer agent initialized", model=self.model)

    async def engineer(
        self,
        current_prompt: str,
        evaluation_score: float,
        feedback: str,
        research_findings: ResearchFindings
    ) -> EngineeringResult:
        request = json.dumps({
            "current_prompt": current_prompt,
            "evaluation_score": round(evaluation_score, 4),
            "feedback": feedback,
            "research_findings": {
                "issues": research_findings.issues,
                "recommendations": [r.model_dump() for r in research_findings.prioritized()],
                "implementation_strategy": research_findings.implementation_strategy,
            },
        }, indent=2)

        data = await self.llm_client.complete_json(
            model=self.model,
            prompt=request,
            system_prompt=ENGINEER_SYSTEM_PROMPT,
            temperature=LLMConfig.ENGINEER_TEMPERATURE,
            max_tokens=LLMConfig.MAX_TOKENS
        )
        try:
            result = EngineeringResult.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Malformed engineering result: {e}") from e

        improved = strip_code_fences(result.improved_prompt)
        if not improved:
            raise ValueError("Engineer returned an empty prompt")
        return result.model_copy(update={"improved_prompt": improved})

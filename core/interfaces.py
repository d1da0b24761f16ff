"""Collaborator interfaces the optimization loop depends on.

Every method is async and may raise; the loop treats implementations as opaque.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from models.entities import Agent, Prompt, LabeledRecord, ResearchFindings, EngineeringResult


class Repository(ABC):
    """Append-only store for agents, prompt versions and labeled records."""

    @abstractmethod
    async def find_agent_by_key(self, key: str) -> Optional[Agent]:
        pass

    @abstractmethod
    async def find_prompt_by_version(self, version: str) -> Optional[Prompt]:
        pass

    @abstractmethod
    async def find_labeled_sample(self, limit: int) -> List[LabeledRecord]:
        """Return up to ``limit`` labeled records for evaluation."""
        pass

    @abstractmethod
    async def create_prompt_version(
        self,
        version: str,
        template: str,
        parent_version: Optional[str],
        applied_techniques: List[str]
    ) -> Prompt:
        """Create a new prompt version linked to ``parent_version``. Never overwrites."""
        pass

    @abstractmethod
    async def create_agent_version(
        self,
        key: str,
        based_on: Agent,
        prompt_version: str,
        iteration: int
    ) -> Agent:
        """Create a new agent copying ``based_on``'s model settings, bound to ``prompt_version``."""
        pass


class AgentExecutor(ABC):
    """Runs an agent's instruction template on one input."""

    @abstractmethod
    async def run(self, agent: Agent, template: str, input: str) -> Any:
        """
        Execute the agent.

        Returns:
            Free text, a number, or a structured (dict) output
        """
        pass


class PromptResearcher(ABC):
    """Turns evaluation feedback into prioritized recommendations."""

    @abstractmethod
    async def research(
        self,
        current_prompt: str,
        evaluation_score: float,
        feedback: str
    ) -> ResearchFindings:
        pass


class PromptEngineer(ABC):
    """Rewrites a template from research findings."""

    @abstractmethod
    async def engineer(
        self,
        current_prompt: str,
        evaluation_score: float,
        feedback: str,
        research_findings: ResearchFindings
    ) -> EngineeringResult:
        pass

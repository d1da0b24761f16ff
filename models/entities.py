"""Entities exchanged with the repository and the rewrite agents."""
from typing import List, Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field
from models.evaluation import RequiredFacts


class Prompt(BaseModel):
    """One immutable version of an instruction template."""
    version: str
    name: str
    template: str
    description: Optional[str] = None
    parent_version: Optional[str] = None
    applied_techniques: List[str] = Field(default_factory=list)
    created_by: str = Field(default="human", description="human | ai")
    created_at: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Agent(BaseModel):
    """A model configuration bound to one prompt version."""
    key: str
    name: str
    model: str
    temperature: float = 0.3
    max_tokens: int = 1000
    prompt_version: str
    description: Optional[str] = None
    base_agent_key: Optional[str] = Field(default=None, description="Agent this one was derived from")
    iteration: Optional[int] = Field(default=None, description="Optimization iteration that produced it")
    created_at: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LabeledRecord(BaseModel):
    """One labeled evaluation-dataset item."""
    input: str
    corrected_score: Optional[float] = Field(default=None, description="Human-corrected numeric score (0-1)")
    expected_output: Optional[Any] = None
    required_facts: Optional[RequiredFacts] = None


class Recommendation(BaseModel):
    """One improvement technique proposed by the research role."""
    technique: str
    rationale: str = ""
    priority: str = Field(default="medium", description="high | medium | low")


class ResearchFindings(BaseModel):
    """Output of the research role."""
    issues: List[str] = Field(default_factory=list)
    root_causes: List[str] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    implementation_strategy: str = ""

    def prioritized(self) -> List[Recommendation]:
        order = {"high": 0, "medium": 1, "low": 2}
        return sorted(self.recommendations, key=lambda r: order.get(r.priority, 3))


class EngineeringResult(BaseModel):
    """Output of the engineer role."""
    improved_prompt: str
    applied_techniques: List[str] = Field(default_factory=list)
    expected_improvement: float = Field(default=0.0, description="Informational estimate only")

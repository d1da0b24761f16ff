"""Evaluation models: results, feedback, failure patterns and fact requirements."""
from typing import List, Optional, Dict, Any, Callable
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


class EvaluationContext(BaseModel):
    """Capability flags describing what ground truth is available."""
    has_numeric_ground_truth: bool = False
    has_textual_content: bool = False
    has_fact_requirements: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EvaluationConfig(BaseModel):
    """Per-call evaluation options."""
    pass_threshold: float = Field(default=0.7, ge=0, le=1, description="Per-item score counted as a pass")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FactDefinition(BaseModel):
    """A fact a response is expected to contain."""
    name: str
    description: Optional[str] = None
    required: bool = True
    check_function: Optional[Callable[[str], bool]] = Field(
        default=None,
        description="Custom presence check; overrides keyword matching"
    )


class RequiredFacts(BaseModel):
    """The facts expected for one response."""
    facts: List[FactDefinition] = Field(default_factory=list)

    def get(self, name: str) -> Optional[FactDefinition]:
        for fact in self.facts:
            if fact.name == name:
                return fact
        return None

    def is_required(self, name: str) -> bool:
        fact = self.get(name)
        # Unknown facts count as required
        return fact is None or fact.required


class FactCheckResult(BaseModel):
    """Outcome of checking one fact against one response."""
    fact_name: str
    present: bool
    confidence: float = Field(ge=0, le=1)
    evidence: str = ""


class EvaluationResult(BaseModel):
    """Score, metrics and per-item detail from one evaluate() call."""
    model_config = ConfigDict(frozen=True)

    score: float
    metrics: Dict[str, float] = Field(default_factory=dict)
    details: List[Dict[str, Any]] = Field(default_factory=list)

    # Fact-based sub-results
    fact_results: Optional[List[FactCheckResult]] = None
    missing_facts: Optional[List[str]] = None

    # Hybrid sub-results
    numeric_analysis: Optional["EvaluationResult"] = None
    fact_analysis: Optional["EvaluationResult"] = None
    insights: Optional[List[str]] = None

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return _clamp_unit(value)


class DetailedFeedback(BaseModel):
    """Human-readable feedback derived from one EvaluationResult."""
    summary: str
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)
    missing_clauses: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class EvaluationExample(BaseModel):
    """A representative item illustrating a failure pattern."""
    input: Any = None
    expected: Any = None
    actual: Any = None
    error: Optional[str] = None


class FailurePattern(BaseModel):
    """A recurring characteristic of evaluation failures."""
    type: str
    frequency: float = Field(description="Fraction of items exhibiting the pattern, 0-1")
    examples: List[EvaluationExample] = Field(default_factory=list)
    suggested_fix: str
    evaluator_source: str

    @field_validator("frequency", mode="before")
    @classmethod
    def clamp_frequency(cls, value: float) -> float:
        return _clamp_unit(value)


class HybridItem(BaseModel):
    """One hybrid prediction: numeric scores plus free-text responses."""
    scores: List[float] = Field(default_factory=list)
    responses: List[str] = Field(default_factory=list)


class HybridTruth(BaseModel):
    """Ground truth paired with one HybridItem."""
    scores: List[float] = Field(default_factory=list)
    facts: List[Optional[RequiredFacts]] = Field(default_factory=list)


EvaluationResult.model_rebuild()

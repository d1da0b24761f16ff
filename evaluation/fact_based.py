"""Fact-based strategy - checks responses for required facts."""
import re
from typing import Any, Dict, List, Optional, Sequence

from evaluation.base import EvaluationStrategy, pass_rate
from models.evaluation import (
    EvaluationConfig,
    EvaluationContext,
    EvaluationResult,
    EvaluationExample,
    DetailedFeedback,
    FailurePattern,
    FactDefinition,
    FactCheckResult,
    RequiredFacts,
)

MAX_EXAMPLES = 3
EVIDENCE_WINDOW = 50
MISSING_SHARE = 0.3
PARTIAL_LOW, PARTIAL_HIGH = 0.3, 0.7
PARTIAL_SHARE = 0.5

STOP_WORDS = {"the", "and", "or", "but", "with", "from", "for", "that", "this", "have", "has"}

# Checked in order; first match wins
FACT_CATEGORIES = [
    ("temporal", ("date", "time")),
    ("quantitative", ("number", "count", "amount")),
    ("identity", ("name", "person", "who")),
    ("spatial", ("location", "where", "place")),
    ("causal", ("reason", "why", "because")),
]


def extract_keywords(name: str, description: Optional[str] = None) -> List[str]:
    """
    Keywords used to detect a fact without a custom check.

    Name tokens longer than 2 characters, then up to three description words
    longer than 3 characters that are not stop words. Duplicates are dropped
    keeping first occurrence.
    """
    keywords = [w for w in re.split(r"[_\s-]+", name) if len(w) > 2]
    if description:
        words = [
            w for w in description.split()
            if len(w) > 3 and w.lower() not in STOP_WORDS
        ]
        keywords.extend(words[:3])
    return list(dict.fromkeys(keywords))


def categorize_fact(fact_name: str) -> str:
    for category, markers in FACT_CATEGORIES:
        if any(marker in fact_name for marker in markers):
            return category
    return "general"


def categorize_facts(fact_names: List[str]) -> Dict[str, List[str]]:
    categories: Dict[str, List[str]] = {}
    for name in fact_names:
        categories.setdefault(categorize_fact(name), []).append(name)
    return categories


class FactBasedEvaluator(EvaluationStrategy):
    """
    Scores free-text responses by the facts they contain.

    Each prediction is a response string; each ground-truth item is the
    RequiredFacts for that response. When a ground-truth item is None the
    evaluator falls back to the fact definitions given at construction.
    """

    name = "fact-based"
    type = "fact-based"

    def __init__(self, fact_definitions: Optional[List[FactDefinition]] = None):
        self.fact_definitions = fact_definitions or []

    async def evaluate(
        self,
        predictions: Sequence[str],
        ground_truth: Sequence[Optional[RequiredFacts]],
        config: Optional[EvaluationConfig] = None
    ) -> EvaluationResult:
        self.validate_input(predictions, ground_truth)
        config = config or self.default_config()

        requirements = [self._resolve(req) for req in ground_truth]
        all_checks: List[List[FactCheckResult]] = []
        details: List[Dict[str, Any]] = []
        missing_counts: Dict[str, int] = {}

        for response, reqs in zip(predictions, requirements):
            checks = self.check_facts(response, reqs)
            missing = [
                c.fact_name for c in checks
                if not c.present and reqs.is_required(c.fact_name)
            ]
            for name in missing:
                missing_counts[name] = missing_counts.get(name, 0) + 1

            all_checks.append(checks)
            details.append({
                "response": response,
                "fact_checks": checks,
                "missing_facts": missing,
                "score": self._response_score(checks, reqs),
            })

        score = self._coverage(all_checks, requirements)
        flat = [c for checks in all_checks for c in checks]
        present = [c for c in flat if c.present]
        systematic = [
            name for name, count in missing_counts.items()
            if count > len(predictions) * MISSING_SHARE
        ]

        metrics = {
            "total_facts": float(len(flat)),
            "present_facts": float(len(present)),
            "missing_facts": float(len(flat) - len(present)),
            "average_confidence": (
                sum(c.confidence for c in present) / len(present) if present else 0.0
            ),
            "fact_coverage": score,
            "pass_rate": pass_rate([d["score"] for d in details], config),
        }

        return EvaluationResult(
            score=score,
            metrics=metrics,
            details=details,
            fact_results=flat,
            missing_facts=systematic,
        )

    def check_facts(self, response: str, requirements: RequiredFacts) -> List[FactCheckResult]:
        """Check every fact in ``requirements`` against one response."""
        results = []
        response_lower = response.lower()

        for fact in requirements.facts:
            if fact.check_function is not None:
                present = bool(fact.check_function(response))
                results.append(FactCheckResult(
                    fact_name=fact.name,
                    present=present,
                    confidence=0.9 if present else 0.1,
                ))
                continue

            keywords = extract_keywords(fact.name, fact.description)
            matches = [kw for kw in keywords if kw.lower() in response_lower]
            if not matches:
                results.append(FactCheckResult(fact_name=fact.name, present=False, confidence=0.0))
                continue

            first = matches[0].lower()
            index = response_lower.index(first)
            start = max(0, index - EVIDENCE_WINDOW)
            end = min(len(response), index + len(first) + EVIDENCE_WINDOW)
            results.append(FactCheckResult(
                fact_name=fact.name,
                present=True,
                confidence=min(1.0, len(matches) / len(keywords)),
                evidence=response[start:end],
            ))

        return results

    def generate_feedback(self, result: EvaluationResult) -> DetailedFeedback:
        metrics = result.metrics
        missing_facts = result.missing_facts or []
        fact_results = result.fact_results or []
        coverage = metrics.get("fact_coverage", 0.0)
        confidence = metrics.get("average_confidence", 0.0)

        strengths: List[str] = []
        weaknesses: List[str] = []
        action_items: List[str] = []

        if coverage > 0.9:
            strengths.append("Excellent fact coverage")
        if confidence > 0.8:
            strengths.append("High confidence in fact detection")

        critical = [
            f for f in fact_results
            if "critical" in f.fact_name or "required" in f.fact_name
        ]
        if critical and all(f.present for f in critical):
            strengths.append("All critical facts present")

        if coverage < 0.7:
            weaknesses.append("Poor fact coverage")
            action_items.append("Review prompt to ensure all required facts are addressed")
        if missing_facts:
            listed = ", ".join(missing_facts[:3])
            more = "..." if len(missing_facts) > 3 else ""
            weaknesses.append(f"Missing facts: {listed}{more}")
            action_items.append("Add explicit instructions for missing facts in prompt")
        if 0 < confidence < 0.6:
            weaknesses.append("Low confidence in fact detection")
            action_items.append("Improve response clarity and structure")

        return DetailedFeedback(
            summary=f"Fact-based evaluation score: {result.score * 100:.1f}%",
            strengths=strengths or ["None identified"],
            weaknesses=weaknesses or ["None identified"],
            patterns=self._describe_fact_patterns(result.details),
            action_items=action_items or ["Maintain current fact coverage"],
            missing_clauses=list(missing_facts),
            improvements=self._improvement_suggestions(metrics, missing_facts),
        )

    def is_applicable(self, context: EvaluationContext) -> bool:
        return context.has_fact_requirements or context.has_textual_content

    def analyze_patterns(self, results: List[EvaluationResult]) -> List[FailurePattern]:
        patterns: List[FailurePattern] = []
        details = [d for r in results for d in r.details if "missing_facts" in d]
        if not details:
            return patterns

        counts: Dict[str, int] = {}
        for detail in details:
            for name in detail["missing_facts"]:
                counts[name] = counts.get(name, 0) + 1

        for name, count in counts.items():
            if count > len(details) * MISSING_SHARE:
                patterns.append(FailurePattern(
                    type="systematic-missing-fact",
                    frequency=count / len(details),
                    examples=self._fact_examples(name, details),
                    suggested_fix=f"Add explicit instruction for '{name}' in prompt",
                    evaluator_source=self.name,
                ))

        partial = [d for d in details if PARTIAL_LOW < d["score"] < PARTIAL_HIGH]
        if len(partial) > len(details) * PARTIAL_SHARE:
            patterns.append(FailurePattern(
                type="partial-fact-coverage",
                frequency=len(partial) / len(details),
                examples=[
                    EvaluationExample(
                        input=self._snippet(d["response"]),
                        expected="Full fact coverage",
                        actual=f"{d['score'] * 100:.0f}% coverage",
                        error=f"Missing {len(d['missing_facts'])} facts",
                    )
                    for d in partial[:MAX_EXAMPLES]
                ],
                suggested_fix="Use more structured output format to ensure all facts are addressed",
                evaluator_source=self.name,
            ))

        return patterns

    def _resolve(self, requirements: Optional[RequiredFacts]) -> RequiredFacts:
        if requirements is None:
            return RequiredFacts(facts=list(self.fact_definitions))
        return requirements

    @staticmethod
    def _coverage(all_checks: List[List[FactCheckResult]], requirements: List[RequiredFacts]) -> float:
        """Required facts weigh 1; present optional facts add 0.5 to both sides."""
        total_required = 0.0
        total_present = 0.0
        for checks, reqs in zip(all_checks, requirements):
            for check in checks:
                if reqs.is_required(check.fact_name):
                    total_required += 1
                    if check.present:
                        total_present += 1
                elif check.present:
                    total_required += 0.5
                    total_present += 0.5
        return total_present / total_required if total_required > 0 else 0.0

    @staticmethod
    def _response_score(checks: List[FactCheckResult], requirements: RequiredFacts) -> float:
        score = 0.0
        total_weight = 0.0
        for check in checks:
            fact = requirements.get(check.fact_name)
            weight = 2.0 if fact is not None and fact.required else 1.0
            total_weight += weight
            if check.present:
                score += weight * check.confidence
        return score / total_weight if total_weight > 0 else 0.0

    @staticmethod
    def _snippet(response: str, length: int = 100) -> str:
        if len(response) <= length:
            return response
        return response[:length] + "..."

    def _fact_examples(self, fact_name: str, details: List[Dict[str, Any]]) -> List[EvaluationExample]:
        return [
            EvaluationExample(
                input=self._snippet(d["response"]),
                expected=f"Include fact: {fact_name}",
                actual="Fact missing",
                error=f"Missing required fact: {fact_name}",
            )
            for d in details
            if fact_name in d["missing_facts"]
        ][:MAX_EXAMPLES]

    @staticmethod
    def _describe_fact_patterns(details: List[Dict[str, Any]]) -> List[str]:
        patterns: List[str] = []
        if not details:
            return patterns

        scores = [d.get("score", 0.0) for d in details]
        if sum(scores) / len(scores) < 0.5:
            patterns.append("Consistently low fact coverage across responses")

        all_missing = [name for d in details for name in d.get("missing_facts", [])]
        for category, names in categorize_facts(all_missing).items():
            if len(names) > len(all_missing) * 0.2:
                patterns.append(f"Difficulty with {category} facts")

        return patterns

    @staticmethod
    def _improvement_suggestions(metrics: Dict[str, float], missing_facts: List[str]) -> List[str]:
        suggestions: List[str] = []
        if len(missing_facts) > 3:
            suggestions.append("Consider using a checklist format in the prompt")
        if 0 < metrics.get("average_confidence", 0.0) < 0.7:
            suggestions.append("Make fact requirements more explicit in the prompt")
        for category, names in categorize_facts(missing_facts).items():
            if len(names) > 2:
                suggestions.append(f"Improve handling of {category} information")
        if metrics.get("fact_coverage", 0.0) < 0.6:
            suggestions.append("Use structured output format to ensure comprehensive coverage")
        return suggestions

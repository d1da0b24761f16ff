"""Feedback synthesis: merging strategy feedback and rendering it for the research role."""
from typing import Dict, List, Optional

from evaluation import stats
from models.evaluation import DetailedFeedback, EvaluationResult, FailurePattern

ACTION_KEYWORDS = {"critical": 3, "major": 2, "fix": 2, "immediately": 3, "address": 1}
RISK_KEYWORDS = {"critical": 5, "high": 3, "significant": 2, "performance": 2, "failure": 4}


def dedupe(items: List[str]) -> List[str]:
    """Drop case/whitespace-insensitive duplicates, keeping first occurrence."""
    seen = set()
    unique = []
    for item in items:
        normalized = item.lower().strip()
        if normalized not in seen:
            seen.add(normalized)
            unique.append(item)
    return unique


def _rank(items: List[str], keywords: Dict[str, int]) -> List[str]:
    def weight(item: str) -> int:
        lowered = item.lower()
        return sum(w for kw, w in keywords.items() if kw in lowered)
    # Stable sort keeps original order among equal weights
    return dedupe(sorted(items, key=weight, reverse=True))


def prioritize_action_items(items: List[str]) -> List[str]:
    return _rank(items, ACTION_KEYWORDS)


def prioritize_risks(risks: List[str]) -> List[str]:
    return _rank(risks, RISK_KEYWORDS)


def combine_feedback(
    feedbacks: Dict[str, DetailedFeedback],
    main_strategy: Optional[str] = None
) -> DetailedFeedback:
    """
    Merge feedback produced by several strategies.

    The summary joins every strategy's summary, tagging ``main_strategy`` as
    ``[Primary]``. List fields are concatenated and de-duplicated in order;
    action items and risks are additionally ranked by severity keywords.
    """
    summaries = []
    merged: Dict[str, List[str]] = {
        "strengths": [], "weaknesses": [], "patterns": [], "action_items": [],
        "improvements": [], "missing_clauses": [], "risks": [],
    }

    for strategy, feedback in feedbacks.items():
        prefix = "[Primary]" if strategy == main_strategy else f"[{strategy}]"
        summaries.append(f"{prefix} {feedback.summary}")
        for field_name, values in merged.items():
            values.extend(getattr(feedback, field_name))

    return DetailedFeedback(
        summary=" | ".join(summaries),
        strengths=dedupe(merged["strengths"]),
        weaknesses=dedupe(merged["weaknesses"]),
        patterns=dedupe(merged["patterns"]),
        action_items=prioritize_action_items(merged["action_items"]),
        improvements=dedupe(merged["improvements"]),
        missing_clauses=dedupe(merged["missing_clauses"]),
        risks=prioritize_risks(merged["risks"]),
    )


def pattern_feedback(patterns: List[FailurePattern]) -> DetailedFeedback:
    """Feedback built from failure patterns, grouped by frequency band."""
    critical = [p for p in patterns if p.frequency > 0.7]
    major = [p for p in patterns if 0.4 < p.frequency <= 0.7]

    weaknesses = []
    if critical:
        weaknesses.append(f"Critical issues: {', '.join(p.type for p in critical)}")
    if major:
        weaknesses.append(f"Major issues: {', '.join(p.type for p in major)}")

    improvements = []
    if critical:
        improvements.append("Address critical patterns immediately")
    if any("persistent" in p.type for p in patterns):
        improvements.append("Focus on breaking persistent failure patterns")

    return DetailedFeedback(
        summary=f"Identified {len(patterns)} failure patterns",
        weaknesses=weaknesses,
        patterns=[f"{p.type} ({p.frequency * 100:.0f}% frequency)" for p in patterns],
        action_items=list(dict.fromkeys(p.suggested_fix for p in patterns)),
        improvements=improvements,
    )


def iteration_trend(current: EvaluationResult, previous: List[EvaluationResult]) -> List[str]:
    """Describe how the score moved relative to earlier iterations."""
    if not previous:
        return []

    notes = []
    delta = current.score - previous[-1].score
    if delta > 0.1:
        notes.append(f"Significant improvement: +{delta * 100:.1f}%")
    elif delta > 0:
        notes.append(f"Moderate improvement: +{delta * 100:.1f}%")
    elif delta < -0.05:
        notes.append(f"Performance regression: {delta * 100:.1f}%")
    else:
        notes.append("Performance plateau detected")

    if len(previous) >= 3:
        recent = [r.score for r in previous[-3:]] + [current.score]
        if stats.variance(recent) < 0.01:
            notes.append("Optimization has converged")

    return notes


def _section(title: str, items: List[str]) -> List[str]:
    if not items:
        return []
    return [f"{title}:"] + [f"- {item}" for item in items] + [""]


def format_feedback_text(
    feedback: DetailedFeedback,
    patterns: Optional[List[FailurePattern]] = None,
    suggestions: Optional[List[str]] = None
) -> str:
    """Render feedback, detected patterns and suggested improvements as plain text."""
    lines = [feedback.summary, ""]
    lines += _section("Strengths", feedback.strengths)
    lines += _section("Weaknesses", feedback.weaknesses)
    lines += _section("Missing facts", feedback.missing_clauses)
    lines += _section("Observed patterns", feedback.patterns)
    lines += _section("Action items", feedback.action_items)
    lines += _section("Improvements", feedback.improvements)
    lines += _section("Risks", feedback.risks)
    lines += _section("Failure patterns", [
        f"{p.type} ({p.frequency * 100:.0f}%): {p.suggested_fix}" for p in patterns or []
    ])
    lines += _section("Suggested improvements", suggestions or [])
    return "\n".join(lines).strip()

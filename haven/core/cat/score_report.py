"""
Score report for a completed CAT session.

Summarizes the classification, the ability estimate with its 95% confidence
interval, per-category performance, and study recommendations.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from haven.core.cat.item_bank import difficulty_level
from haven.core.cat.session import CATSession
from haven.core.cat.stopping_rules import CONFIDENCE_Z, passing_probability
from haven.domain_types import ClassificationResult

logger = logging.getLogger(__name__)

# Category accuracy bands relative to the passing standard
ABOVE_STANDARD_RATE = 0.6
AT_STANDARD_RATE = 0.4

STRENGTH_RATE = 0.7
WEAKNESS_RATE = 0.5

# Reported confidence interval is clamped to the theta range
REPORT_THETA_BOUND = 4.0


@dataclass
class CategoryPerformance:
    """Accuracy in one client-need category."""

    category: str
    correct: int
    total: int
    performance: str  # "above", "at" or "below" the passing standard

    @property
    def rate(self) -> float:
        return self.correct / self.total if self.total > 0 else 0.0


@dataclass
class CATReport:
    """Candidate-facing summary of a completed session."""

    session_id: str
    passed: bool
    result: Optional[ClassificationResult]
    score: int
    total: int
    theta: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    passing_probability: int  # percentage, 0-100
    time_spent_seconds: float
    stop_reason: Optional[str]
    category_performance: List[CategoryPerformance] = field(default_factory=list)
    difficulty_distribution: Dict[str, int] = field(default_factory=dict)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def _performance_band(correct: int, total: int) -> str:
    if total == 0:
        return "at"
    rate = correct / total
    if rate >= ABOVE_STANDARD_RATE:
        return "above"
    if rate >= AT_STANDARD_RATE:
        return "at"
    return "below"


def _display_name(category: str) -> str:
    return category.replace("-", " ").replace("_", " ")


def build_report(
    session: CATSession,
    passing_threshold: float = 0.0,
    z: float = CONFIDENCE_Z,
    theta_bound: float = REPORT_THETA_BOUND,
) -> CATReport:
    """
    Build the score report for a session.

    Args:
        session: Session to summarize (normally completed).
        passing_threshold: Passing standard, used when the session carries no
            stored passing probability.
        z: Confidence multiplier for the reported interval.
        theta_bound: Interval bounds are clamped to [-theta_bound, theta_bound].

    Returns:
        CATReport.
    """
    theta = session.theta
    se = session.standard_error
    lower = max(-theta_bound, theta - z * se)
    upper = min(theta_bound, theta + z * se)

    probability = session.passing_probability
    if probability is None:
        probability = passing_probability(theta, se, passing_threshold)

    counts: Dict[str, List[int]] = {}
    difficulty_distribution: Dict[str, int] = {}
    for response in session.responses:
        category = response.category_id or "uncategorized"
        correct_total = counts.setdefault(category, [0, 0])
        correct_total[0] += int(response.is_correct)
        correct_total[1] += 1
        level = difficulty_level(response.difficulty).value
        difficulty_distribution[level] = difficulty_distribution.get(level, 0) + 1

    category_performance = [
        CategoryPerformance(
            category=category,
            correct=correct,
            total=total,
            performance=_performance_band(correct, total),
        )
        for category, (correct, total) in counts.items()
    ]

    strengths: List[str] = []
    weaknesses: List[str] = []
    recommendations: List[str] = []
    for perf in category_performance:
        if perf.rate >= STRENGTH_RATE:
            strengths.append(_display_name(perf.category))
        elif perf.rate < WEAKNESS_RATE:
            name = _display_name(perf.category)
            weaknesses.append(name)
            recommendations.append(f"Focus more on {name} topics")

    if session.result == ClassificationResult.FAIL:
        recommendations.append("Schedule additional CAT practice sessions")
        recommendations.append("Review rationales for missed questions")

    logger.debug(
        f"Built report for session {session.session_id}: "
        f"result={session.result.value if session.result else None}, "
        f"{session.correct_count}/{len(session.responses)} correct"
    )

    return CATReport(
        session_id=session.session_id,
        passed=session.result == ClassificationResult.PASS,
        result=session.result,
        score=session.correct_count,
        total=len(session.responses),
        theta=theta,
        standard_error=se,
        confidence_interval=(lower, upper),
        passing_probability=round(probability * 100),
        time_spent_seconds=session.time_spent_seconds,
        stop_reason=session.stop_reason.value if session.stop_reason else None,
        category_performance=category_performance,
        difficulty_distribution=difficulty_distribution,
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
    )

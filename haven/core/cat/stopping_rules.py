"""
Stopping rules for variable-length NCLEX-style adaptive tests.

The test ends as soon as the examinee's ability is confidently on one side of
the passing standard, or when the test length or time runs out.

Stopping Rules (evaluated in priority order):
    1. Time limit: stop; classify by point estimate, or undetermined if the
       minimum length was not reached
    2. Minimum length: never stop before max(min_questions, 1) responses
    3. Confidence interval: stop with pass when theta - z*SE > cut, or fail
       when theta + z*SE < cut (subject to the optional coverage gate)
    4. Precision (optional): stop when SE < se_threshold, classify by point
       estimate (subject to the optional coverage gate)
    5. Maximum length: stop and classify by theta >= cut

The passing probability Phi((theta - cut) / SE) is reported with every
decision, whether or not the test stops.

References:
    - Kingsbury, G. G., & Weiss, D. J. (1983). A comparison of IRT-based
      adaptive mastery testing and a sequential mastery testing procedure.
      In D. J. Weiss (Ed.), New horizons in testing.
    - Spray, J. A., & Reckase, M. D. (1996). Comparison of SPRT and
      sequential Bayes procedures for classifying examinees into two
      categories using a computerized test. Journal of Educational and
      Behavioral Statistics, 21(4), 405-414.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from scipy.stats import norm

from haven.core.cat.content_balancing import is_content_balanced
from haven.domain_types import ClassificationResult, StopReason

logger = logging.getLogger(__name__)

# Two-sided 95% confidence multiplier
CONFIDENCE_Z = 1.96


@dataclass
class StopDecision:
    """
    Result of evaluating the stopping rule.

    Attributes:
        stop: Whether the test should terminate.
        result: Classification when stop is True, otherwise None.
        passing_probability: Phi((theta - cut) / SE), always populated.
        reason: Why the test stopped, or None when it continues.
        details: Diagnostic values (interval bounds, counts, gates).
    """

    stop: bool
    result: Optional[ClassificationResult]
    passing_probability: float
    reason: Optional[StopReason] = None
    details: Dict[str, Any] = field(default_factory=dict)


def passing_probability(
    theta: float, standard_error: float, passing_threshold: float
) -> float:
    """
    Probability that true ability is at or above the passing standard.

    Uses the normal approximation to the ability posterior:
        P(pass) = Phi((theta - cut) / SE)

    A non-positive SE means no uncertainty: 1.0 when theta >= cut, else 0.0.
    """
    if standard_error <= 0:
        return 1.0 if theta >= passing_threshold else 0.0
    return float(norm.cdf((theta - passing_threshold) / standard_error))


def confidence_interval(
    theta: float, standard_error: float, z: float = CONFIDENCE_Z
) -> Tuple[float, float]:
    """Return (theta - z*SE, theta + z*SE)."""
    return (theta - z * standard_error, theta + z * standard_error)


def classify_by_point_estimate(
    theta: float, passing_threshold: float
) -> ClassificationResult:
    """Pass when theta >= cut, otherwise fail."""
    if theta >= passing_threshold:
        return ClassificationResult.PASS
    return ClassificationResult.FAIL


def evaluate_stop(
    theta: float,
    standard_error: float,
    responses_count: int,
    min_questions: int,
    max_questions: int,
    passing_threshold: float,
    z: float = CONFIDENCE_Z,
    se_threshold: Optional[float] = None,
    time_spent_seconds: Optional[float] = None,
    time_limit_seconds: Optional[float] = None,
    category_coverage: Optional[Dict[str, int]] = None,
    target_weights: Optional[Dict[str, float]] = None,
    min_items_per_category: int = 0,
) -> StopDecision:
    """
    Decide whether an adaptive test should stop, and with which result.

    Args:
        theta: Current ability estimate.
        standard_error: Current standard error of theta.
        responses_count: Number of responses recorded so far.
        min_questions: No confidence or length stop before this many responses.
        max_questions: Stop unconditionally at this many responses.
        passing_threshold: Passing standard (cut score) on the theta scale.
        z: Confidence multiplier (1.96 for a two-sided 95% interval).
        se_threshold: Optional precision stop. None disables it.
        time_spent_seconds: Elapsed test time.
        time_limit_seconds: Time limit. None disables it.
        category_coverage: Items administered per category. With
            ``min_items_per_category`` > 0, confidence and precision stops
            wait until every category reaches the minimum.
        target_weights: Categories to check for coverage (missing ones count
            as zero). Defaults to the keys of ``category_coverage``.
        min_items_per_category: Coverage minimum for the gate.

    Returns:
        StopDecision.

    Raises:
        ValueError: If standard_error or responses_count is negative, or
            min_questions exceeds max_questions.
    """
    if standard_error < 0:
        raise ValueError(f"Standard error must be non-negative, got {standard_error}")
    if responses_count < 0:
        raise ValueError(
            f"Number of responses must be non-negative, got {responses_count}"
        )
    if min_questions > max_questions:
        raise ValueError(
            f"min_questions ({min_questions}) must not exceed "
            f"max_questions ({max_questions})"
        )

    probability = passing_probability(theta, standard_error, passing_threshold)
    lower, upper = confidence_interval(theta, standard_error, z)
    min_required = max(min_questions, 1)

    details: Dict[str, Any] = {
        "theta": theta,
        "standard_error": standard_error,
        "ci_lower": lower,
        "ci_upper": upper,
        "responses_count": responses_count,
        "min_questions_met": responses_count >= min_required,
        "at_max_questions": responses_count >= max_questions,
    }

    def decision(
        stop: bool,
        result: Optional[ClassificationResult] = None,
        reason: Optional[StopReason] = None,
    ) -> StopDecision:
        return StopDecision(
            stop=stop,
            result=result,
            passing_probability=probability,
            reason=reason,
            details=details,
        )

    # Rule 1: Time limit
    if (
        time_limit_seconds is not None
        and time_spent_seconds is not None
        and time_spent_seconds >= time_limit_seconds
    ):
        if responses_count >= min_required:
            result = classify_by_point_estimate(theta, passing_threshold)
        else:
            result = ClassificationResult.UNDETERMINED
        logger.info(
            f"Stopping: time limit reached ({time_spent_seconds:.0f}s >= "
            f"{time_limit_seconds:.0f}s) after {responses_count} responses, "
            f"result={result.value}"
        )
        return decision(True, result, StopReason.TIME_LIMIT)

    # Rule 2: Minimum length
    if responses_count < min_required:
        logger.debug(
            f"Continuing: {responses_count}/{min_required} responses (below minimum)"
        )
        return decision(False)

    coverage_met = True
    if category_coverage is not None and min_items_per_category > 0:
        coverage_met = is_content_balanced(
            category_coverage,
            responses_count,
            target_weights=target_weights,
            min_items_per_category=min_items_per_category,
        )
    details["content_balanced"] = coverage_met

    if coverage_met:
        # Rule 3: Confidence interval excludes the cut score
        if lower > passing_threshold:
            logger.info(
                f"Stopping: confident pass (CI lower {lower:.3f} > "
                f"{passing_threshold:.3f}) after {responses_count} responses"
            )
            return decision(True, ClassificationResult.PASS, StopReason.CONFIDENCE_PASS)
        if upper < passing_threshold:
            logger.info(
                f"Stopping: confident fail (CI upper {upper:.3f} < "
                f"{passing_threshold:.3f}) after {responses_count} responses"
            )
            return decision(True, ClassificationResult.FAIL, StopReason.CONFIDENCE_FAIL)

        # Rule 4: Precision
        if se_threshold is not None and standard_error < se_threshold:
            logger.info(
                f"Stopping: SE threshold met (SE={standard_error:.4f} < "
                f"{se_threshold:.4f}) after {responses_count} responses"
            )
            return decision(
                True,
                classify_by_point_estimate(theta, passing_threshold),
                StopReason.PRECISION_REACHED,
            )

    # Rule 5: Maximum length
    if responses_count >= max_questions:
        logger.info(
            f"Stopping: reached maximum questions ({responses_count}/{max_questions})"
        )
        return decision(
            True,
            classify_by_point_estimate(theta, passing_threshold),
            StopReason.MAX_QUESTIONS,
        )

    logger.debug(
        f"Continuing: CI=({lower:.3f}, {upper:.3f}) straddles "
        f"{passing_threshold:.3f}, responses={responses_count}"
    )
    return decision(False)

"""
Three-parameter logistic (3PL) item response model.

The probability that an examinee of ability theta answers an item correctly:

    P(theta) = c + (1 - c) / (1 + exp(-a * (theta - b)))

Where:
    a = discrimination (> 0), how sharply the item separates ability levels
    b = difficulty, the theta at which the logistic term equals 0.5
    c = guessing (in [0, 1)), the lower asymptote

Fisher information of a 3PL item (Lord, 1980):

    I(theta) = a^2 * (P - c)^2 * (1 - P) / ((1 - c)^2 * P)

which reduces to the 2PL form a^2 * P * (1 - P) when c = 0. With c > 0 the
peak sits slightly above b.

The logit a * (theta - b) is clamped to +/- MAX_LOGIT before exponentiation,
so probabilities always stay strictly inside (c, 1) and every quantity
computed here is finite.

References:
    - Lord, F. M. (1980). Applications of item response theory to practical
      testing problems. Hillsdale, NJ: Erlbaum.
    - Baker, F. B., & Kim, S.-H. (2004). Item response theory: Parameter
      estimation techniques (2nd ed.). New York: Marcel Dekker.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from haven.core.cat.errors import InvalidItemParametersError
from haven.domain_types import QuestionFormat

# sigmoid(35) = 1 - 6.3e-16, so 1 - P never underflows to zero
MAX_LOGIT = 35.0


@dataclass(frozen=True)
class Item:
    """A calibrated test item.

    Items are immutable; parameters never change mid-session. Construction
    validates the IRT parameters and raises InvalidItemParametersError for
    a <= 0, c outside [0, 1) or non-finite values.
    """

    id: str
    discrimination: float  # a parameter
    difficulty: float  # b parameter
    guessing: float = 0.0  # c parameter
    category_id: Optional[str] = None  # NCLEX client-need category
    question_format: Optional[QuestionFormat] = None

    def __post_init__(self) -> None:
        validate_item_parameters(
            self.discrimination, self.difficulty, self.guessing, item_id=self.id
        )
        # Normalize str-backed enums so coverage dicts key on plain strings
        category = self.category_id
        if category is not None and hasattr(category, "value"):
            object.__setattr__(self, "category_id", category.value)


def validate_item_parameters(
    discrimination: float,
    difficulty: float,
    guessing: float,
    item_id: Any = None,
) -> None:
    """
    Validate 3PL item parameters.

    Args:
        discrimination: a parameter, must be finite and > 0.
        difficulty: b parameter, must be finite.
        guessing: c parameter, must be in [0, 1).
        item_id: Optional item ID included in the error context.

    Raises:
        InvalidItemParametersError: If any parameter is out of range.
    """
    context = {"item_id": item_id} if item_id is not None else None
    if not all(math.isfinite(v) for v in (discrimination, difficulty, guessing)):
        raise InvalidItemParametersError(
            f"Item parameters must be finite, got a={discrimination}, "
            f"b={difficulty}, c={guessing}",
            context=context,
        )
    if discrimination <= 0:
        raise InvalidItemParametersError(
            f"Discrimination parameter must be positive, got {discrimination}",
            context=context,
        )
    if not (0.0 <= guessing < 1.0):
        raise InvalidItemParametersError(
            f"Guessing parameter must be in [0, 1), got {guessing}",
            context=context,
        )


def _sigmoid(logit: float) -> float:
    """Numerically stable logistic function."""
    if logit >= 0:
        return 1.0 / (1.0 + math.exp(-logit))
    exp_logit = math.exp(logit)
    return exp_logit / (1.0 + exp_logit)


def _clamped_logit(theta: float, a: float, b: float) -> float:
    logit = a * (theta - b)
    return max(-MAX_LOGIT, min(MAX_LOGIT, logit))


def _probabilities(
    theta: float, a: float, b: float, c: float
) -> Tuple[float, float, float]:
    """Return (P, Q, sigma) where Q = 1 - P is computed without cancellation."""
    logit = _clamped_logit(theta, a, b)
    sigma = _sigmoid(logit)
    one_minus_sigma = _sigmoid(-logit)
    p = c + (1.0 - c) * sigma
    q = (1.0 - c) * one_minus_sigma
    return p, q, sigma


def probability_correct(
    theta: float,
    discrimination: float,
    difficulty: float,
    guessing: float = 0.0,
) -> float:
    """
    Probability of a correct response under the 3PL model.

    Args:
        theta: Ability level.
        discrimination: Item discrimination (a). Must be > 0.
        difficulty: Item difficulty (b).
        guessing: Item lower asymptote (c). Must be in [0, 1).

    Returns:
        Probability in [c, 1); strictly increasing in theta.

    Raises:
        InvalidItemParametersError: If the parameters are invalid.
    """
    validate_item_parameters(discrimination, difficulty, guessing)
    p, _, _ = _probabilities(theta, discrimination, difficulty, guessing)
    return p


def fisher_information(
    theta: float,
    discrimination: float,
    difficulty: float,
    guessing: float = 0.0,
) -> float:
    """
    Fisher information of a 3PL item at a given ability level.

    Computed in the equivalent form a^2 * (1 - c) * sigma^2 * (1 - sigma) / P,
    where sigma is the logistic term, which avoids subtracting nearly equal
    numbers when P is close to c or to 1.

    Args:
        theta: Ability level.
        discrimination: Item discrimination (a). Must be > 0.
        difficulty: Item difficulty (b).
        guessing: Item lower asymptote (c). Must be in [0, 1).

    Returns:
        Fisher information value (non-negative).

    Raises:
        InvalidItemParametersError: If the parameters are invalid.
    """
    validate_item_parameters(discrimination, difficulty, guessing)
    return _information(theta, discrimination, difficulty, guessing)


def _information(theta: float, a: float, b: float, c: float) -> float:
    p, q, sigma = _probabilities(theta, a, b, c)
    one_minus_sigma = q / (1.0 - c)
    return (a**2) * (1.0 - c) * (sigma**2) * one_minus_sigma / p


def compute_probability(theta: float, item: Item) -> float:
    """Probability that an examinee at theta answers ``item`` correctly."""
    p, _, _ = _probabilities(
        theta, item.discrimination, item.difficulty, item.guessing
    )
    return p


def compute_information(theta: float, item: Item) -> float:
    """Fisher information of ``item`` at theta."""
    return _information(theta, item.discrimination, item.difficulty, item.guessing)


def log_likelihood_terms(
    theta: float,
    a: float,
    b: float,
    c: float,
    is_correct: bool,
) -> Tuple[float, float, float, float]:
    """
    Log-likelihood of one response and its derivatives with respect to theta.

    With P' = a * (1 - c) * sigma * (1 - sigma) and
    P'' = a^2 * (1 - c) * sigma * (1 - sigma) * (1 - 2 * sigma):

        correct:    l = log P,  l' = P'/P,  l'' = (P''P - P'^2) / P^2
        incorrect:  l = log Q,  l' = -P'/Q, l'' = -(P''Q + P'^2) / Q^2

    The expected (Fisher) information P'^2 / (P * Q) is returned as well so
    callers can fall back to Fisher scoring when l'' is not negative.

    Returns:
        Tuple of (log_likelihood, first_derivative, second_derivative,
        information).
    """
    p, q, sigma = _probabilities(theta, a, b, c)
    one_minus_sigma = q / (1.0 - c)
    slope = sigma * one_minus_sigma
    p_prime = a * (1.0 - c) * slope
    p_double_prime = (a**2) * (1.0 - c) * slope * (1.0 - 2.0 * sigma)
    information = (a**2) * (1.0 - c) * (sigma**2) * one_minus_sigma / p

    if is_correct:
        log_lik = math.log(p)
        first = p_prime / p
        second = (p_double_prime * p - p_prime**2) / (p**2)
    else:
        log_lik = math.log(q)
        first = -p_prime / q
        second = -(p_double_prime * q + p_prime**2) / (q**2)

    return log_lik, first, second, information

"""
Ability (theta) estimation for Computerized Adaptive Testing.

Two estimators over the 3PL model:

MLE (default): Newton-Raphson on the log-likelihood of the observed response
pattern,

    theta_{k+1} = theta_k - L'(theta_k) / L''(theta_k)

iterated until |delta| < tolerance or the iteration cap is hit. The 3PL
log-likelihood is not globally concave, so when L'' >= 0 the step falls back
to Fisher scoring (L' / sum of item information), and any step that lowers
the objective is halved. Steps are capped at MAX_STEP and theta is kept
within [-theta_bound, theta_bound].

Degenerate patterns (no responses, all correct, all incorrect) have no finite
MLE. They are estimated by maximizing the posterior under a normal prior
N(prior_theta, prior_sd^2) instead (MAP), which always has an interior
maximum. Such estimates carry ``regularized=True``.

Standard error:
    SE = 1 / sqrt(sum_i I_i(theta))           for MLE estimates
    SE = 1 / sqrt(sum_i I_i(theta) + 1/sd^2)  for regularized estimates

EAP (Bock & Mislevy, 1982): posterior mean and SD over a quadrature grid.

References:
    - Baker, F. B., & Kim, S.-H. (2004). Item response theory: Parameter
      estimation techniques (2nd ed.), chapter 7.
    - Bock, R. D., & Mislevy, R. J. (1982). Adaptive EAP estimation of
      ability in a microcomputer environment. Applied Psychological
      Measurement, 6(4), 431-444.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from haven.core.cat.errors import EstimationNonConvergenceError
from haven.core.cat.irt_model import (
    Item,
    log_likelihood_terms,
    validate_item_parameters,
)
from haven.domain_types import EstimationMethod

logger = logging.getLogger(__name__)

# Newton-Raphson configuration
MAX_ITERATIONS = 50
TOLERANCE = 1e-4
THETA_BOUND = 4.0
MAX_STEP = 1.0  # Largest allowed change in theta per iteration
MAX_STEP_HALVINGS = 10

# EAP quadrature configuration
QUADRATURE_POINTS = 61

# (discrimination, difficulty, guessing, is_correct)
ResponseParameters = Tuple[float, float, float, bool]


@dataclass
class AbilityEstimate:
    """
    Result of an ability estimation.

    Attributes:
        theta: Point estimate of ability.
        standard_error: Uncertainty of theta.
        converged: False only when the iteration cap was hit before the
            update fell below tolerance. The theta is then the last iterate.
        iterations: Newton-Raphson iterations performed (0 for EAP).
        method: Estimator that produced the result.
        regularized: True when a normal prior was part of the objective
            (degenerate patterns, and always for EAP).
        at_bound: True when theta sits on +/- theta_bound. A mixed 3PL
            pattern can have a likelihood that keeps rising toward the bound
            (e.g. correct on a hard item, wrong on an easy one), so an
            unregularized MLE may end on the bound with a very large
            standard error. Callers should treat such an estimate as
            uninformative rather than extreme.
        last_delta: Absolute change in theta on the final iteration.
    """

    theta: float
    standard_error: float
    converged: bool
    iterations: int = 0
    method: EstimationMethod = EstimationMethod.MLE
    regularized: bool = False
    at_bound: bool = False
    last_delta: float = 0.0


def is_degenerate_pattern(responses: Sequence[ResponseParameters]) -> bool:
    """True when the pattern has no finite MLE (empty, all correct or all incorrect)."""
    if not responses:
        return True
    outcomes = {bool(r[3]) for r in responses}
    return len(outcomes) == 1


def _objective(
    theta: float,
    responses: Sequence[ResponseParameters],
    prior_mean: Optional[float],
    prior_sd: float,
) -> Tuple[float, float, float, float]:
    """Sum log-likelihood terms, adding the normal log-prior when prior_mean is set."""
    log_lik = 0.0
    first = 0.0
    second = 0.0
    information = 0.0
    for a, b, c, is_correct in responses:
        ll, d1, d2, info = log_likelihood_terms(theta, a, b, c, is_correct)
        log_lik += ll
        first += d1
        second += d2
        information += info

    if prior_mean is not None:
        precision = 1.0 / (prior_sd**2)
        log_lik -= 0.5 * precision * (theta - prior_mean) ** 2
        first -= precision * (theta - prior_mean)
        second -= precision
        information += precision

    return log_lik, first, second, information


def _total_information(theta: float, responses: Sequence[ResponseParameters]) -> float:
    return sum(
        log_likelihood_terms(theta, a, b, c, is_correct)[3]
        for a, b, c, is_correct in responses
    )


def estimate_ability_mle(
    responses: Sequence[ResponseParameters],
    prior_theta: float = 0.0,
    prior_sd: float = 1.0,
    initial_theta: Optional[float] = None,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = TOLERANCE,
    theta_bound: float = THETA_BOUND,
    raise_on_nonconvergence: bool = False,
) -> AbilityEstimate:
    """
    Estimate ability by Newton-Raphson maximum likelihood.

    Args:
        responses: (discrimination, difficulty, guessing, is_correct) tuples
            in administration order.
        prior_theta: Mean of the normal prior used for degenerate patterns,
            and the starting point when initial_theta is not given.
        prior_sd: SD of that prior. Returned as the SE when there are no
            responses.
        initial_theta: Optional starting point (e.g. the previous estimate).
        max_iterations: Iteration cap guaranteeing termination.
        tolerance: Convergence threshold on |delta theta|.
        theta_bound: Estimates are kept within [-theta_bound, theta_bound].
        raise_on_nonconvergence: Raise EstimationNonConvergenceError instead
            of returning a flagged estimate when the cap is hit.

    Returns:
        AbilityEstimate.

    Raises:
        InvalidItemParametersError: If any item has invalid parameters.
        EstimationNonConvergenceError: Only with raise_on_nonconvergence=True.
    """
    if prior_sd <= 0:
        raise ValueError(f"prior_sd must be positive, got {prior_sd}")

    def clamp(value: float) -> float:
        return max(-theta_bound, min(theta_bound, value))

    if not responses:
        theta = clamp(prior_theta)
        return AbilityEstimate(
            theta=theta,
            standard_error=prior_sd,
            converged=True,
            regularized=True,
            at_bound=abs(theta) >= theta_bound,
        )

    for i, (a, b, c, _) in enumerate(responses):
        validate_item_parameters(a, b, c, item_id=f"response[{i}]")

    regularized = is_degenerate_pattern(responses)
    prior_mean = prior_theta if regularized else None

    theta = clamp(prior_theta if initial_theta is None else initial_theta)
    converged = False
    iterations = 0
    last_delta = 0.0

    log_lik, first, second, information = _objective(
        theta, responses, prior_mean, prior_sd
    )
    for iterations in range(1, max_iterations + 1):
        if second < 0:
            step = -first / second
        elif information > 0:
            step = first / information
        else:
            # Flat objective: nothing more to learn from the data
            converged = True
            last_delta = 0.0
            break

        step = max(-MAX_STEP, min(MAX_STEP, step))
        candidate = clamp(theta + step)
        candidate_terms = _objective(candidate, responses, prior_mean, prior_sd)

        halvings = 0
        while candidate_terms[0] < log_lik and halvings < MAX_STEP_HALVINGS:
            step /= 2.0
            candidate = clamp(theta + step)
            candidate_terms = _objective(candidate, responses, prior_mean, prior_sd)
            halvings += 1

        last_delta = abs(candidate - theta)
        theta = candidate
        log_lik, first, second, information = candidate_terms

        if last_delta < tolerance:
            converged = True
            break

    if regularized:
        se_information = information
    else:
        se_information = _total_information(theta, responses)
    standard_error = (
        1.0 / math.sqrt(se_information) if se_information > 0 else prior_sd
    )

    estimate = AbilityEstimate(
        theta=theta,
        standard_error=standard_error,
        converged=converged,
        iterations=iterations,
        method=EstimationMethod.MLE,
        regularized=regularized,
        at_bound=abs(theta) >= theta_bound,
        last_delta=last_delta,
    )

    if not converged:
        logger.warning(
            f"Ability estimation did not converge after {iterations} iterations "
            f"(theta={theta:.4f}, last_delta={last_delta:.6f}, "
            f"responses={len(responses)})"
        )
        if raise_on_nonconvergence:
            raise EstimationNonConvergenceError(
                "Newton-Raphson exceeded its iteration cap",
                estimate=estimate,
                context={"iterations": iterations, "responses": len(responses)},
            )

    return estimate


def estimate_ability_eap(
    responses: Sequence[ResponseParameters],
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    theta_bound: float = THETA_BOUND,
    n_points: int = QUADRATURE_POINTS,
) -> AbilityEstimate:
    """
    Estimate ability using Expected A Posteriori (EAP) with numerical quadrature.

    The EAP estimate is the posterior mean over an evenly spaced grid on
    [-theta_bound, theta_bound]:
        theta_hat = sum(theta_i * p(theta_i | responses))

    Standard error is the posterior standard deviation:
        SE = sqrt(sum((theta_i - theta_hat)^2 * p(theta_i | responses)))

    Args:
        responses: (discrimination, difficulty, guessing, is_correct) tuples.
        prior_mean: Mean of the Gaussian prior on theta.
        prior_sd: Standard deviation of the Gaussian prior on theta.
        theta_bound: Half-width of the quadrature range.
        n_points: Number of quadrature points.

    Returns:
        AbilityEstimate with method=EAP. EAP always converges.

    Raises:
        InvalidItemParametersError: If any item has invalid parameters.
    """
    if prior_sd <= 0:
        raise ValueError(f"prior_sd must be positive, got {prior_sd}")

    if not responses:
        return AbilityEstimate(
            theta=prior_mean,
            standard_error=prior_sd,
            converged=True,
            method=EstimationMethod.EAP,
            regularized=True,
        )

    for i, (a, b, c, _) in enumerate(responses):
        validate_item_parameters(a, b, c, item_id=f"response[{i}]")

    step = (2.0 * theta_bound) / (n_points - 1)
    theta_points = [-theta_bound + step * i for i in range(n_points)]

    variance = prior_sd**2
    log_posteriors: List[float] = []
    for theta in theta_points:
        log_prior = -((theta - prior_mean) ** 2) / (2.0 * variance)
        log_lik = sum(
            log_likelihood_terms(theta, a, b, c, is_correct)[0]
            for a, b, c, is_correct in responses
        )
        log_posteriors.append(log_prior + log_lik)

    # Normalize using log-sum-exp for numerical stability
    max_log_post = max(log_posteriors)
    posteriors = [math.exp(lp - max_log_post) for lp in log_posteriors]
    posterior_sum = sum(posteriors)
    posterior_probs = [p / posterior_sum for p in posteriors]

    theta_hat = sum(theta * prob for theta, prob in zip(theta_points, posterior_probs))
    posterior_variance = sum(
        (theta - theta_hat) ** 2 * prob
        for theta, prob in zip(theta_points, posterior_probs)
    )

    return AbilityEstimate(
        theta=theta_hat,
        standard_error=math.sqrt(posterior_variance),
        converged=True,
        method=EstimationMethod.EAP,
        regularized=True,
        at_bound=abs(theta_hat) >= theta_bound,
    )


def estimate_ability_from_parameters(
    responses: Sequence[ResponseParameters],
    prior_theta: float = 0.0,
    prior_sd: float = 1.0,
    method: EstimationMethod = EstimationMethod.MLE,
    initial_theta: Optional[float] = None,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = TOLERANCE,
    theta_bound: float = THETA_BOUND,
) -> AbilityEstimate:
    """Dispatch to the configured estimator."""
    if method == EstimationMethod.EAP:
        return estimate_ability_eap(
            responses,
            prior_mean=prior_theta,
            prior_sd=prior_sd,
            theta_bound=theta_bound,
        )
    return estimate_ability_mle(
        responses,
        prior_theta=prior_theta,
        prior_sd=prior_sd,
        initial_theta=initial_theta,
        max_iterations=max_iterations,
        tolerance=tolerance,
        theta_bound=theta_bound,
    )


def estimate_ability(
    responses: Sequence[Tuple[Item, bool]],
    prior_theta: float = 0.0,
    prior_sd: float = 1.0,
    method: EstimationMethod = EstimationMethod.MLE,
) -> AbilityEstimate:
    """
    Estimate ability from (item, is_correct) pairs.

    Args:
        responses: Administered items and outcomes, in administration order.
        prior_theta: Prior ability (0.0 for a first attempt).
        prior_sd: Prior standard deviation.
        method: MLE (default) or EAP.

    Returns:
        AbilityEstimate with theta, standard_error and converged.
    """
    params = [
        (item.discrimination, item.difficulty, item.guessing, bool(is_correct))
        for item, is_correct in responses
    ]
    return estimate_ability_from_parameters(
        params, prior_theta=prior_theta, prior_sd=prior_sd, method=method
    )

"""
Tests for ability estimation (MLE Newton-Raphson and EAP).

Tests cover:
- Closed-form 2PL MLE and agreement with a brute-force likelihood maximum
- Standard error from summed Fisher information
- Convergence bound and non-convergence flagging
- Regularized fallback for empty, all-correct and all-incorrect patterns
- Idempotence
- EAP generalized to 3PL
"""

import logging
import math

import pytest

from haven.core.cat.ability_estimation import (
    AbilityEstimate,
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_from_parameters,
    estimate_ability_mle,
    is_degenerate_pattern,
)
from haven.core.cat.errors import (
    EstimationNonConvergenceError,
    InvalidItemParametersError,
)
from haven.core.cat.irt_model import Item, compute_information, log_likelihood_terms
from haven.domain_types import EstimationMethod


MIXED_3PL_PATTERN = [
    (1.2, -1.0, 0.2, True),
    (0.9, -0.5, 0.15, True),
    (1.5, 0.0, 0.2, False),
    (1.1, 0.4, 0.1, True),
    (0.8, 1.0, 0.25, False),
    (1.3, 0.2, 0.2, True),
    (1.0, -0.2, 0.2, False),
]


def _brute_force_mle(responses, lo=-4.0, hi=4.0, step=0.001):
    best_theta, best_ll = lo, -math.inf
    n = int(round((hi - lo) / step))
    for i in range(n + 1):
        theta = lo + i * step
        ll = sum(log_likelihood_terms(theta, a, b, c, u)[0] for a, b, c, u in responses)
        if ll > best_ll:
            best_theta, best_ll = theta, ll
    return best_theta


# ── MLE ──────────────────────────────────────────────────────────────────────


class TestMLEEstimation:
    """Newton-Raphson maximum likelihood on well-defined patterns."""

    def test_closed_form_2pl(self):
        """Five equal Rasch items, 4 correct: theta = ln(4), SE = 1/sqrt(5 * .8 * .2)."""
        responses = [(1.0, 0.0, 0.0, True)] * 4 + [(1.0, 0.0, 0.0, False)]
        est = estimate_ability_mle(responses)
        assert est.theta == pytest.approx(math.log(4), abs=1e-4)
        assert est.standard_error == pytest.approx(1 / math.sqrt(0.8), abs=1e-3)
        assert est.converged is True
        assert est.regularized is False
        assert est.method == EstimationMethod.MLE

    def test_matches_brute_force_maximum(self):
        est = estimate_ability_mle(MIXED_3PL_PATTERN)
        assert est.theta == pytest.approx(_brute_force_mle(MIXED_3PL_PATTERN), abs=0.002)

    def test_standard_error_from_summed_information(self):
        est = estimate_ability_mle(MIXED_3PL_PATTERN)
        total_info = sum(
            compute_information(
                est.theta, Item(id=str(i), discrimination=a, difficulty=b, guessing=c)
            )
            for i, (a, b, c, _) in enumerate(MIXED_3PL_PATTERN)
        )
        assert est.standard_error == pytest.approx(1 / math.sqrt(total_info))

    def test_likelihood_rising_toward_bound(self):
        """Right on a hard item, wrong on an easy one: the 3PL likelihood peaks at -inf."""
        est = estimate_ability_mle([(1.0, 2.0, 0.25, True), (1.0, -2.0, 0.25, False)])
        assert est.theta == pytest.approx(-4.0)
        assert est.at_bound is True
        assert est.regularized is False
        assert est.standard_error > 1.0

    def test_convergence_bound(self):
        est = estimate_ability_mle(MIXED_3PL_PATTERN, max_iterations=50, tolerance=1e-4)
        assert est.converged is True
        assert 1 <= est.iterations <= 50
        assert est.last_delta < 1e-4

    def test_result_independent_of_start(self):
        from_prior = estimate_ability_mle(MIXED_3PL_PATTERN)
        from_high = estimate_ability_mle(MIXED_3PL_PATTERN, initial_theta=3.0)
        from_low = estimate_ability_mle(MIXED_3PL_PATTERN, initial_theta=-3.0)
        assert from_high.theta == pytest.approx(from_prior.theta, abs=1e-3)
        assert from_low.theta == pytest.approx(from_prior.theta, abs=1e-3)

    def test_more_correct_answers_raise_theta(self):
        base = [(1.0, b, 0.2, u) for b, u in [(-1, True), (0, False), (1, False)]]
        better = [(1.0, b, 0.2, u) for b, u in [(-1, True), (0, True), (1, False)]]
        assert estimate_ability_mle(better).theta > estimate_ability_mle(base).theta

    def test_idempotent(self):
        first = estimate_ability_mle(MIXED_3PL_PATTERN)
        second = estimate_ability_mle(MIXED_3PL_PATTERN)
        assert first.theta == second.theta
        assert first.standard_error == second.standard_error

    def test_invalid_item_parameters_propagate(self):
        with pytest.raises(InvalidItemParametersError):
            estimate_ability_mle([(0.0, 0.0, 0.0, True), (1.0, 0.0, 0.0, False)])

    def test_invalid_prior_sd(self):
        with pytest.raises(ValueError, match="prior_sd"):
            estimate_ability_mle([(1.0, 0.0, 0.0, True)], prior_sd=0.0)


class TestNonConvergence:
    """Hitting the iteration cap is flagged, never silent."""

    PATTERN = [(1.0, 0.0, 0.0, True)] * 4 + [(1.0, 0.0, 0.0, False)]

    def test_flagged_when_cap_hit(self):
        est = estimate_ability_mle(self.PATTERN, max_iterations=1)
        assert est.converged is False
        assert est.iterations == 1
        assert est.last_delta >= 1e-4
        assert math.isfinite(est.theta)

    def test_warning_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="haven.core.cat.ability_estimation"):
            estimate_ability_mle(self.PATTERN, max_iterations=1)
        assert "did not converge" in caplog.text

    def test_raises_on_request(self):
        with pytest.raises(EstimationNonConvergenceError) as exc_info:
            estimate_ability_mle(
                self.PATTERN, max_iterations=1, raise_on_nonconvergence=True
            )
        estimate = exc_info.value.estimate
        assert isinstance(estimate, AbilityEstimate)
        assert estimate.converged is False


# ── Degenerate patterns ─────────────────────────────────────────────────────


class TestDegeneratePatterns:
    """Patterns without a finite MLE fall back to a regularized estimate."""

    def test_is_degenerate_pattern(self):
        assert is_degenerate_pattern([])
        assert is_degenerate_pattern([(1.0, 0.0, 0.0, True)] * 3)
        assert is_degenerate_pattern([(1.0, 0.0, 0.0, False)] * 3)
        assert not is_degenerate_pattern(
            [(1.0, 0.0, 0.0, True), (1.0, 0.0, 0.0, False)]
        )

    def test_no_responses_returns_prior(self):
        est = estimate_ability_mle([], prior_theta=0.3, prior_sd=0.8)
        assert est.theta == pytest.approx(0.3)
        assert est.standard_error == pytest.approx(0.8)
        assert est.converged is True
        assert est.regularized is True

    def test_all_correct_is_finite_and_above_prior(self):
        responses = [(1.0, b, 0.2, True) for b in (-0.5, 0.0, 0.5, 1.0)]
        est = estimate_ability_mle(responses)
        assert est.regularized is True
        assert est.converged is True
        assert math.isfinite(est.theta)
        assert 0.0 < est.theta < 4.0

    def test_all_incorrect_is_finite_and_below_prior(self):
        responses = [(1.0, b, 0.2, False) for b in (-1.0, -0.5, 0.0, 0.5)]
        est = estimate_ability_mle(responses)
        assert est.regularized is True
        assert -4.0 < est.theta < 0.0

    def test_many_hard_correct_answers_stay_in_bounds(self):
        responses = [(2.0, 3.5, 0.0, True)] * 40
        est = estimate_ability_mle(responses, theta_bound=4.0)
        assert -4.0 <= est.theta <= 4.0
        assert est.standard_error > 0

    def test_single_correct_response(self):
        est = estimate_ability_mle([(1.0, 0.0, 0.0, True)])
        assert est.theta > 0.0
        assert est.standard_error < 1.0

    def test_regularized_is_posterior_mode(self):
        """At the MAP estimate the log-posterior derivative is zero."""
        responses = [(1.0, 0.0, 0.0, True), (1.0, 0.5, 0.0, True)]
        est = estimate_ability_mle(responses, prior_theta=0.0, prior_sd=1.0)
        slope = sum(
            log_likelihood_terms(est.theta, a, b, c, u)[1] for a, b, c, u in responses
        ) - est.theta
        assert slope == pytest.approx(0.0, abs=1e-3)

    def test_five_consecutive_correct_answers(self):
        """theta rises and SE falls after each of five correct answers."""
        difficulties = [0.0, 0.375, 0.75, 1.125, 1.5]
        thetas, ses = [0.0], [1.0]
        for n in range(1, 6):
            items = [
                (Item(id=f"q{i}", discrimination=1.0, difficulty=b), True)
                for i, b in enumerate(difficulties[:n])
            ]
            est = estimate_ability(items, prior_theta=0.0)
            thetas.append(est.theta)
            ses.append(est.standard_error)
        assert all(t2 > t1 for t1, t2 in zip(thetas, thetas[1:]))
        assert all(s2 < s1 for s1, s2 in zip(ses, ses[1:]))


# ── EAP ──────────────────────────────────────────────────────────────────────


class TestEAPEstimation:
    """Expected A Posteriori estimation generalized to 3PL."""

    def test_no_responses_returns_prior(self):
        est = estimate_ability_eap([], prior_mean=0.5, prior_sd=0.9)
        assert est.theta == pytest.approx(0.5)
        assert est.standard_error == pytest.approx(0.9)
        assert est.method == EstimationMethod.EAP

    def test_correct_answer_moves_up_and_shrinks_se(self):
        est = estimate_ability_eap([(1.0, 0.0, 0.0, True)])
        assert est.theta > 0.0
        assert est.standard_error < 1.0
        assert est.converged is True

    def test_symmetric_pattern_centers_on_zero(self):
        responses = [(1.0, -1.0, 0.0, True), (1.0, 1.0, 0.0, False)]
        est = estimate_ability_eap(responses)
        assert est.theta == pytest.approx(0.0, abs=1e-9)

    def test_guessing_weakens_evidence_of_correct_answer(self):
        no_guess = estimate_ability_eap([(1.0, 0.0, 0.0, True)])
        guess = estimate_ability_eap([(1.0, 0.0, 0.25, True)])
        assert guess.theta < no_guess.theta

    def test_dispatch_by_method(self):
        est = estimate_ability_from_parameters(
            [(1.0, 0.0, 0.0, True)], method=EstimationMethod.EAP
        )
        assert est.method == EstimationMethod.EAP


class TestEstimateAbility:
    """Item-level entry point."""

    def test_returns_theta_se_and_converged(self):
        items = [
            (Item(id="a", discrimination=1.0, difficulty=-0.5), True),
            (Item(id="b", discrimination=1.0, difficulty=0.5), False),
        ]
        est = estimate_ability(items)
        assert est.converged is True
        assert est.theta == pytest.approx(0.0, abs=1e-4)
        assert est.standard_error > 0

    def test_idempotent_under_no_new_data(self):
        items = [
            (Item(id="a", discrimination=1.4, difficulty=-0.2, guessing=0.2), True),
            (Item(id="b", discrimination=0.7, difficulty=0.9, guessing=0.1), False),
            (Item(id="c", discrimination=1.1, difficulty=0.3, guessing=0.2), True),
        ]
        first = estimate_ability(items)
        second = estimate_ability(items)
        assert (first.theta, first.standard_error) == (
            second.theta,
            second.standard_error,
        )

"""
Tests for the 3PL item response model.

Tests cover:
- Probability of a correct response (monotonicity, asymptotes, 2PL reduction)
- Fisher information (closed forms, peak location, non-negativity)
- Log-likelihood derivatives against finite differences
- Parameter validation and Item construction
"""

import math

import pytest

from haven.core.cat.errors import InvalidItemParametersError
from haven.core.cat.irt_model import (
    Item,
    compute_information,
    compute_probability,
    fisher_information,
    log_likelihood_terms,
    probability_correct,
    validate_item_parameters,
)
from haven.domain_types import NclexCategory


def _lord_information(theta, a, b, c):
    """Textbook form a^2 (P - c)^2 (1 - P) / ((1 - c)^2 P)."""
    p = c + (1 - c) / (1 + math.exp(-a * (theta - b)))
    return (a**2) * ((p - c) ** 2) * (1 - p) / (((1 - c) ** 2) * p)


# ── Probability ──────────────────────────────────────────────────────────────


class TestProbabilityCorrect:
    """Tests for probability_correct / compute_probability."""

    def test_at_difficulty_without_guessing_is_half(self):
        assert probability_correct(0.7, 1.3, 0.7) == pytest.approx(0.5)

    def test_at_difficulty_with_guessing(self):
        """At theta = b the logistic term is 0.5, so P = c + (1 - c) / 2."""
        assert probability_correct(0.0, 1.0, 0.0, 0.2) == pytest.approx(0.6)

    def test_matches_closed_form(self):
        expected = 0.25 + 0.75 / (1 + math.exp(-1.5 * (0.3 - (-0.4))))
        assert probability_correct(0.3, 1.5, -0.4, 0.25) == pytest.approx(expected)

    @pytest.mark.parametrize("guessing", [0.0, 0.15, 0.3])
    def test_strictly_increasing_in_theta(self, guessing):
        thetas = [-5.0 + 0.25 * i for i in range(41)]
        probs = [probability_correct(t, 1.2, 0.5, guessing) for t in thetas]
        assert all(p2 > p1 for p1, p2 in zip(probs, probs[1:]))

    def test_lower_asymptote_is_guessing(self):
        p = probability_correct(-50.0, 1.0, 0.0, 0.2)
        assert p == pytest.approx(0.2, abs=1e-9)
        assert p >= 0.2

    def test_upper_asymptote_is_one(self):
        p = probability_correct(50.0, 1.0, 0.0, 0.0)
        assert p == pytest.approx(1.0, abs=1e-9)
        assert p < 1.0

    def test_extreme_logits_stay_finite(self):
        for theta in (-1e6, 1e6):
            p = probability_correct(theta, 2.5, 0.0, 0.1)
            assert math.isfinite(p)
            assert 0.1 <= p <= 1.0

    def test_item_level_entry_point(self):
        item = Item(id="q1", discrimination=1.1, difficulty=-0.3, guessing=0.2)
        assert compute_probability(0.4, item) == pytest.approx(
            probability_correct(0.4, 1.1, -0.3, 0.2)
        )


# ── Information ──────────────────────────────────────────────────────────────


class TestFisherInformation:
    """Tests for fisher_information / compute_information."""

    def test_reduces_to_2pl_form_without_guessing(self):
        a, b, theta = 1.2, 0.0, 0.5
        p = 1 / (1 + math.exp(-a * (theta - b)))
        assert fisher_information(theta, a, b) == pytest.approx(a**2 * p * (1 - p))

    @pytest.mark.parametrize(
        "theta,a,b,c",
        [
            (0.0, 1.0, 0.0, 0.2),
            (1.3, 0.8, -0.5, 0.25),
            (-2.0, 2.0, -1.5, 0.1),
            (0.4, 1.7, 1.0, 0.0),
        ],
    )
    def test_matches_lord_formula(self, theta, a, b, c):
        assert fisher_information(theta, a, b, c) == pytest.approx(
            _lord_information(theta, a, b, c), rel=1e-9
        )

    def test_maximum_at_difficulty_without_guessing(self):
        thetas = [-3.0 + 0.01 * i for i in range(601)]
        infos = [fisher_information(t, 1.4, 0.8) for t in thetas]
        best = thetas[infos.index(max(infos))]
        assert best == pytest.approx(0.8, abs=0.011)

    def test_peak_shifts_above_difficulty_with_guessing(self):
        """3PL peak: b + ln((1 + sqrt(1 + 8c)) / 2) / a."""
        a, b, c = 1.0, 0.0, 0.2
        expected_peak = b + math.log((1 + math.sqrt(1 + 8 * c)) / 2) / a
        thetas = [-3.0 + 0.01 * i for i in range(601)]
        infos = [fisher_information(t, a, b, c) for t in thetas]
        best = thetas[infos.index(max(infos))]
        assert best > b
        assert best == pytest.approx(expected_peak, abs=0.011)

    def test_guessing_lowers_information(self):
        assert fisher_information(0.0, 1.0, 0.0, 0.25) < fisher_information(
            0.0, 1.0, 0.0, 0.0
        )

    def test_non_negative_everywhere(self):
        for theta in (-100.0, -4.0, 0.0, 4.0, 100.0):
            assert fisher_information(theta, 1.5, 0.0, 0.2) >= 0.0

    def test_vanishes_far_from_difficulty(self):
        assert fisher_information(40.0, 1.0, 0.0) == pytest.approx(0.0, abs=1e-12)

    def test_item_level_entry_point(self):
        item = Item(id="q1", discrimination=0.9, difficulty=0.2, guessing=0.15)
        assert compute_information(1.0, item) == pytest.approx(
            fisher_information(1.0, 0.9, 0.2, 0.15)
        )


# ── Log-likelihood ───────────────────────────────────────────────────────────


class TestLogLikelihoodTerms:
    """Analytic derivatives agree with central finite differences."""

    H = 1e-5

    @pytest.mark.parametrize("is_correct", [True, False])
    @pytest.mark.parametrize("theta", [-1.5, 0.0, 0.7, 2.0])
    def test_first_derivative(self, theta, is_correct):
        a, b, c = 1.3, 0.2, 0.2
        ll_plus = log_likelihood_terms(theta + self.H, a, b, c, is_correct)[0]
        ll_minus = log_likelihood_terms(theta - self.H, a, b, c, is_correct)[0]
        numeric = (ll_plus - ll_minus) / (2 * self.H)
        _, first, _, _ = log_likelihood_terms(theta, a, b, c, is_correct)
        assert first == pytest.approx(numeric, rel=1e-5, abs=1e-8)

    @pytest.mark.parametrize("is_correct", [True, False])
    @pytest.mark.parametrize("theta", [-1.5, 0.0, 0.7, 2.0])
    def test_second_derivative(self, theta, is_correct):
        a, b, c = 1.3, 0.2, 0.2
        d_plus = log_likelihood_terms(theta + self.H, a, b, c, is_correct)[1]
        d_minus = log_likelihood_terms(theta - self.H, a, b, c, is_correct)[1]
        numeric = (d_plus - d_minus) / (2 * self.H)
        _, _, second, _ = log_likelihood_terms(theta, a, b, c, is_correct)
        assert second == pytest.approx(numeric, rel=1e-4, abs=1e-7)

    def test_information_term_matches_fisher_information(self):
        info = log_likelihood_terms(0.3, 1.1, -0.2, 0.15, True)[3]
        assert info == pytest.approx(fisher_information(0.3, 1.1, -0.2, 0.15))

    def test_log_likelihood_values(self):
        p = probability_correct(0.5, 1.0, 0.0, 0.2)
        assert log_likelihood_terms(0.5, 1.0, 0.0, 0.2, True)[0] == pytest.approx(
            math.log(p)
        )
        assert log_likelihood_terms(0.5, 1.0, 0.0, 0.2, False)[0] == pytest.approx(
            math.log(1 - p)
        )

    def test_2pl_first_derivative_is_residual(self):
        """Without guessing, l' = a * (u - P)."""
        p = probability_correct(0.4, 1.5, 0.0)
        assert log_likelihood_terms(0.4, 1.5, 0.0, 0.0, True)[1] == pytest.approx(
            1.5 * (1 - p)
        )
        assert log_likelihood_terms(0.4, 1.5, 0.0, 0.0, False)[1] == pytest.approx(
            -1.5 * p
        )


# ── Validation ───────────────────────────────────────────────────────────────


class TestParameterValidation:
    """Invalid parameters are hard failures."""

    @pytest.mark.parametrize("a", [0.0, -0.5])
    def test_non_positive_discrimination_rejected(self, a):
        with pytest.raises(InvalidItemParametersError, match="Discrimination"):
            validate_item_parameters(a, 0.0, 0.0)

    @pytest.mark.parametrize("c", [-0.1, 1.0, 1.5])
    def test_guessing_out_of_range_rejected(self, c):
        with pytest.raises(InvalidItemParametersError, match="Guessing"):
            validate_item_parameters(1.0, 0.0, c)

    @pytest.mark.parametrize(
        "params", [(math.nan, 0.0, 0.0), (1.0, math.inf, 0.0), (1.0, 0.0, math.nan)]
    )
    def test_non_finite_rejected(self, params):
        with pytest.raises(InvalidItemParametersError, match="finite"):
            validate_item_parameters(*params)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            probability_correct(0.0, -1.0, 0.0)

    def test_information_validates(self):
        with pytest.raises(InvalidItemParametersError):
            fisher_information(0.0, 1.0, 0.0, 1.0)

    def test_item_id_in_context(self):
        with pytest.raises(InvalidItemParametersError) as exc_info:
            Item(id="bad-item", discrimination=0.0, difficulty=0.0)
        assert exc_info.value.context == {"item_id": "bad-item"}
        assert "bad-item" in str(exc_info.value)


class TestItem:
    """Tests for the Item dataclass."""

    def test_defaults(self):
        item = Item(id="q1", discrimination=1.0, difficulty=0.5)
        assert item.guessing == 0.0
        assert item.category_id is None
        assert item.question_format is None

    def test_immutable(self):
        item = Item(id="q1", discrimination=1.0, difficulty=0.5)
        with pytest.raises(AttributeError):
            item.difficulty = 1.0  # type: ignore[misc]

    def test_enum_category_normalized_to_string(self):
        item = Item(
            id="q1",
            discrimination=1.0,
            difficulty=0.0,
            category_id=NclexCategory.MANAGEMENT_OF_CARE,
        )
        assert item.category_id == "management-of-care"
        assert type(item.category_id) is str

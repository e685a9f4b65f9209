"""
Tests for dichotomous answer scoring.
"""

import pytest

from haven.core.cat.answer_scoring import is_answer_correct
from haven.domain_types import QuestionFormat


class TestMultipleChoice:
    def test_correct(self):
        assert is_answer_correct(["b"], ["b"]) is True

    def test_wrong_option(self):
        assert is_answer_correct(["a"], ["b"]) is False

    def test_more_than_one_option_is_wrong(self):
        assert is_answer_correct(["b", "c"], ["b"]) is False

    def test_empty_answer(self):
        assert is_answer_correct([], ["b"]) is False


class TestSelectAll:
    FMT = QuestionFormat.SELECT_ALL

    def test_any_order(self):
        assert is_answer_correct(["c", "a"], ["a", "c"], self.FMT) is True

    def test_missing_option(self):
        assert is_answer_correct(["a"], ["a", "c"], self.FMT) is False

    def test_extra_option(self):
        assert is_answer_correct(["a", "b", "c"], ["a", "c"], self.FMT) is False

    def test_string_format(self):
        assert is_answer_correct(["a", "c"], ["c", "a"], "select_all") is True


class TestOrderedResponse:
    FMT = QuestionFormat.ORDERED_RESPONSE

    def test_same_order(self):
        assert is_answer_correct(["1", "2", "3"], ["1", "2", "3"], self.FMT) is True

    def test_wrong_order(self):
        assert is_answer_correct(["2", "1", "3"], ["1", "2", "3"], self.FMT) is False


class TestOtherFormats:
    @pytest.mark.parametrize(
        "fmt", [QuestionFormat.MATRIX, QuestionFormat.BOW_TIE, None]
    )
    def test_set_equality(self, fmt):
        assert is_answer_correct(["x", "y"], ["y", "x"], fmt) is True
        assert is_answer_correct(["x"], ["y", "x"], fmt) is False

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            is_answer_correct(["a"], ["a"], "essay")

"""
Dichotomous scoring of submitted answers.

The IRT model only sees correct/incorrect, so every format, including the
partial-credit Next Generation formats, is scored all-or-nothing.
"""
from typing import Optional, Sequence, Union

from haven.domain_types import QuestionFormat


def is_answer_correct(
    user_answer: Sequence[str],
    correct_answers: Sequence[str],
    question_format: Union[QuestionFormat, str, None] = QuestionFormat.MULTIPLE_CHOICE,
) -> bool:
    """
    Score one answer as correct or incorrect.

    Rules by format:
        multiple_choice: exactly one option, equal to the keyed option
        select_all: the same options, in any order, with no extras
        ordered_response: the same options in the same order
        anything else: the same set of options

    Args:
        user_answer: Option IDs chosen by the examinee.
        correct_answers: Keyed option IDs.
        question_format: Item format. None is scored as set equality.

    Returns:
        True if the answer is correct.
    """
    fmt: Optional[QuestionFormat] = (
        QuestionFormat(question_format) if question_format is not None else None
    )

    if fmt == QuestionFormat.MULTIPLE_CHOICE:
        return (
            len(user_answer) == 1
            and len(correct_answers) > 0
            and user_answer[0] == correct_answers[0]
        )

    if fmt == QuestionFormat.SELECT_ALL:
        return len(user_answer) == len(correct_answers) and set(user_answer) == set(
            correct_answers
        )

    if fmt == QuestionFormat.ORDERED_RESPONSE:
        return list(user_answer) == list(correct_answers)

    return set(user_answer) == set(correct_answers)

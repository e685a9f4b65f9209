"""
Item bank interface and an in-memory implementation.

The engine only needs two things from an item bank: look up an item by ID,
and list candidate items, optionally filtered by category and difficulty.
An exhausted bank returns an empty list; that is never an error.

This module is also the single place where difficulty labels and default
parameters for uncalibrated items are derived from IRT parameters.
"""

import logging
from typing import (
    Collection,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

from haven.core.cat.errors import ItemNotFoundError
from haven.core.cat.irt_model import Item
from haven.domain_types import DifficultyLevel, QuestionFormat

logger = logging.getLogger(__name__)

# Difficulty band boundaries on the b scale
EASY_UPPER_BOUND = -1.0
HARD_LOWER_BOUND = 1.0

# Base difficulty for uncalibrated items, by label
_BASE_DIFFICULTY: Dict[DifficultyLevel, float] = {
    DifficultyLevel.EASY: -1.5,
    DifficultyLevel.MEDIUM: 0.0,
    DifficultyLevel.HARD: 1.5,
}

# Next Generation formats are harder than their nominal label suggests
_FORMAT_DIFFICULTY_ADJUSTMENT: Dict[QuestionFormat, float] = {
    QuestionFormat.MULTIPLE_CHOICE: -0.3,
    QuestionFormat.SELECT_ALL: 0.3,
    QuestionFormat.ORDERED_RESPONSE: 0.5,
    QuestionFormat.CLOZE_DROPDOWN: 0.4,
    QuestionFormat.MATRIX: 0.5,
    QuestionFormat.HIGHLIGHT: 0.6,
    QuestionFormat.BOW_TIE: 0.8,
    QuestionFormat.HOT_SPOT: 0.4,
    QuestionFormat.CASE_STUDY: 1.0,
}

DEFAULT_DISCRIMINATION = 1.0
MULTIPLE_CHOICE_GUESSING = 0.2
DEFAULT_GUESSING = 0.1


def difficulty_level(difficulty: float) -> DifficultyLevel:
    """Label an IRT difficulty: easy below -1, hard above 1, medium otherwise."""
    if difficulty < EASY_UPPER_BOUND:
        return DifficultyLevel.EASY
    if difficulty > HARD_LOWER_BOUND:
        return DifficultyLevel.HARD
    return DifficultyLevel.MEDIUM


def default_item_parameters(
    level: Union[DifficultyLevel, str],
    question_format: Union[QuestionFormat, str, None] = None,
) -> Tuple[float, float, float]:
    """
    Starting 3PL parameters for an item that has not been calibrated yet.

    Args:
        level: Author-assigned difficulty label.
        question_format: Item format; shifts difficulty and sets guessing.

    Returns:
        (discrimination, difficulty, guessing)
    """
    level = DifficultyLevel(level)
    fmt = QuestionFormat(question_format) if question_format is not None else None

    difficulty = _BASE_DIFFICULTY[level]
    if fmt is not None:
        difficulty += _FORMAT_DIFFICULTY_ADJUSTMENT[fmt]

    guessing = (
        MULTIPLE_CHOICE_GUESSING
        if fmt in (None, QuestionFormat.MULTIPLE_CHOICE)
        else DEFAULT_GUESSING
    )
    return DEFAULT_DISCRIMINATION, difficulty, guessing


@runtime_checkable
class ItemBank(Protocol):
    """Source of calibrated items for adaptive selection."""

    def get_item(self, item_id: str) -> Item:
        ...

    def get_candidates(
        self,
        category_id: Optional[str] = None,
        min_difficulty: Optional[float] = None,
        max_difficulty: Optional[float] = None,
        exclude_ids: Optional[Collection[str]] = None,
    ) -> List[Item]:
        ...


class InMemoryItemBank:
    """Item bank backed by a dict, keyed by item ID."""

    def __init__(self, items: Iterable[Item] = ()):
        self._items: Dict[str, Item] = {}
        for item in items:
            self.add_item(item)

    def add_item(self, item: Item) -> None:
        if item.id in self._items:
            raise ValueError(f"Duplicate item id: {item.id}")
        self._items[item.id] = item

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: str) -> Item:
        try:
            return self._items[item_id]
        except KeyError as e:
            raise ItemNotFoundError(
                f"Item not found: {item_id}", original_error=e
            ) from e

    def get_candidates(
        self,
        category_id: Optional[str] = None,
        min_difficulty: Optional[float] = None,
        max_difficulty: Optional[float] = None,
        exclude_ids: Optional[Collection[str]] = None,
    ) -> List[Item]:
        """
        List items matching all given filters, in insertion order.

        Returns an empty list when nothing matches.
        """
        excluded = set(exclude_ids) if exclude_ids else set()
        if category_id is not None and hasattr(category_id, "value"):
            category_id = category_id.value

        candidates = [
            item
            for item in self._items.values()
            if item.id not in excluded
            and (category_id is None or item.category_id == category_id)
            and (min_difficulty is None or item.difficulty >= min_difficulty)
            and (max_difficulty is None or item.difficulty <= max_difficulty)
        ]
        if not candidates:
            logger.debug(
                f"Item bank returned no candidates (category={category_id}, "
                f"difficulty=[{min_difficulty}, {max_difficulty}], "
                f"excluded={len(excluded)})"
            )
        return candidates

"""
Content balancing against the NCLEX-RN client-need blueprint.

Enforces category coverage constraints during adaptive item selection so a
test that stops early still samples the whole test plan. Target weights come
from settings.CAT_BLUEPRINT_WEIGHTS.

Two constraint tiers:
    Hard constraint: Each category must have >= min_items_per_category items
    before the test can stop on confidence.

    Soft constraint: Category distribution should be within +/- tolerance of
    the target weights.

References:
    - van der Linden, W.J. (2005). Linear Models for Optimal Test Design.
    - Cheng, Y., & Chang, H.-H. (2009). The maximum priority index method
      for severely constrained item selection in CAT.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MIN_ITEMS_PER_CATEGORY = 1

# Soft constraint tolerance: categories below (target - tolerance) are prioritized.
CONTENT_BALANCE_TOLERANCE = 0.10

# Tolerance for floating-point rounding when summing weight fractions
WEIGHT_SUM_TOLERANCE = 0.01


@dataclass(frozen=True)
class BlueprintConstraints:
    """
    Target category distribution for one test.

    Attributes:
        target_weights: category_id -> target proportion, summing to ~1.0.
        min_items_per_category: Hard minimum per category.
        tolerance: Soft constraint band below each target.
        max_items: Test length cap, used to decide whether the hard
            constraint can still be satisfied. None means unbounded.
    """

    target_weights: Dict[str, float]
    min_items_per_category: int = MIN_ITEMS_PER_CATEGORY
    tolerance: float = CONTENT_BALANCE_TOLERANCE
    max_items: Optional[int] = None

    def __post_init__(self) -> None:
        if any(w < 0 for w in self.target_weights.values()):
            raise ValueError("Category weights must be non-negative")
        if self.target_weights:
            weight_sum = sum(self.target_weights.values())
            if abs(weight_sum - 1.0) > WEIGHT_SUM_TOLERANCE:
                raise ValueError(
                    f"Category weights must sum to ~1.0, got {weight_sum:.3f}"
                )
        if self.min_items_per_category < 0:
            raise ValueError(
                f"min_items_per_category must be >= 0, got {self.min_items_per_category}"
            )


def get_item_category(item: Any) -> Optional[str]:
    """
    Extract the category string from an item's ``category_id`` attribute.

    Handles both plain strings and str-backed enums.
    """
    category = getattr(item, "category_id", None)
    if category is None:
        return None
    return category.value if hasattr(category, "value") else category


def track_category_coverage(administered_items: Iterable[Any]) -> Dict[str, int]:
    """
    Count the number of administered items per category.

    Args:
        administered_items: Items (or responses) with a ``category_id``
            attribute.

    Returns:
        Dict mapping category to the count of items administered in it.
    """
    coverage: Dict[str, int] = {}
    for item in administered_items:
        category = get_item_category(item)
        if category is not None:
            coverage[category] = coverage.get(category, 0) + 1
    return coverage


def is_content_balanced(
    coverage: Dict[str, int],
    num_items: int,
    target_weights: Optional[Dict[str, float]] = None,
    min_items_per_category: int = MIN_ITEMS_PER_CATEGORY,
) -> bool:
    """
    Check whether every category meets the hard minimum.

    Args:
        coverage: Current category coverage counts.
        num_items: Total items administered (logging context only).
        target_weights: If provided, all of its categories are checked
            (missing categories count as 0).
        min_items_per_category: Minimum items required per category.

    Returns:
        ``True`` if all categories meet the minimum coverage requirement.
    """
    categories_to_check = target_weights.keys() if target_weights else coverage.keys()

    for category in categories_to_check:
        count = coverage.get(category, 0)
        if count < min_items_per_category:
            logger.debug(
                f"Content balance not met: category '{category}' has "
                f"{count}/{min_items_per_category} items after {num_items} "
                f"total administered"
            )
            return False
    return True


def apply_content_balancing(
    eligible: List[Any],
    constraints: BlueprintConstraints,
    coverage: Dict[str, int],
    items_administered: int,
) -> List[Any]:
    """
    Narrow the eligible pool according to the blueprint.

    Hard constraint: if any category is below its minimum and the remaining
    test length can still fill every deficit, restrict the pool to deficit
    categories. Soft constraint: once every minimum is met, prefer categories
    below ``target - tolerance``.

    Either constraint is skipped when it would leave nothing to administer,
    so balancing never empties a non-empty pool.

    Returns:
        Filtered list of eligible items (unchanged if no constraint applies).
    """
    target_weights = constraints.target_weights
    deficits = {
        category: constraints.min_items_per_category - coverage.get(category, 0)
        for category in target_weights
        if coverage.get(category, 0) < constraints.min_items_per_category
    }

    if deficits:
        total_deficit = sum(deficits.values())
        items_remaining = (
            constraints.max_items - items_administered
            if constraints.max_items is not None
            else total_deficit
        )
        if total_deficit <= items_remaining:
            constrained = [
                item for item in eligible if get_item_category(item) in deficits
            ]
            if constrained:
                logger.debug(
                    f"Content balancing: restricting to deficit categories "
                    f"{sorted(deficits)} ({len(constrained)} items available)"
                )
                return constrained

    if items_administered > 0 and not deficits:
        underweight = {
            category
            for category, target in target_weights.items()
            if coverage.get(category, 0) / items_administered
            < target - constraints.tolerance
        }
        if underweight:
            preferred = [
                item for item in eligible if get_item_category(item) in underweight
            ]
            if preferred:
                logger.debug(
                    f"Content balancing: preferring underweight categories "
                    f"{sorted(underweight)} ({len(preferred)} items available)"
                )
                return preferred

    return list(eligible)

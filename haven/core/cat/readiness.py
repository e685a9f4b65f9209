"""
Item pool readiness evaluation.

Checks whether an item bank has enough items across every client-need
category, and across the easy/medium/hard difficulty bands within each
category, to run a full-length adaptive test.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from haven.core.cat.irt_model import Item
from haven.core.cat.item_bank import difficulty_level
from haven.domain_types import DifficultyLevel, NclexCategory

logger = logging.getLogger(__name__)

# Defaults sized for a 150-item test where the largest category takes ~20%
MIN_ITEMS_PER_CATEGORY = 30
MIN_ITEMS_PER_DIFFICULTY_BAND = 5


@dataclass
class CategoryReadiness:
    """Per-category readiness result."""

    category: str
    is_ready: bool
    total_items: int
    easy_count: int  # b < -1.0
    medium_count: int  # -1.0 <= b <= 1.0
    hard_count: int  # b > 1.0
    reasons: List[str] = field(default_factory=list)


@dataclass
class PoolReadinessResult:
    """Global readiness result."""

    is_globally_ready: bool
    categories: List[CategoryReadiness]
    summary: str
    thresholds: Dict[str, int]


def evaluate_pool_readiness(
    items: Iterable[Item],
    categories: Optional[Iterable[str]] = None,
    min_items_per_category: int = MIN_ITEMS_PER_CATEGORY,
    min_items_per_band: int = MIN_ITEMS_PER_DIFFICULTY_BAND,
) -> PoolReadinessResult:
    """
    Evaluate whether an item pool can support adaptive testing.

    A category passes if it has at least ``min_items_per_category`` items
    and each difficulty band has at least ``min_items_per_band``. The pool is
    ready when every category passes.

    Args:
        items: Items in the pool.
        categories: Categories to evaluate. Defaults to all NCLEX categories.
        min_items_per_category: Minimum items per category.
        min_items_per_band: Minimum items per difficulty band per category.

    Returns:
        PoolReadinessResult with per-category breakdown.
    """
    category_ids = (
        [c.value if hasattr(c, "value") else c for c in categories]
        if categories is not None
        else [c.value for c in NclexCategory]
    )
    thresholds = {
        "min_items_per_category": min_items_per_category,
        "min_items_per_difficulty_band": min_items_per_band,
    }

    bands: Dict[str, Dict[DifficultyLevel, int]] = {
        c: {level: 0 for level in DifficultyLevel} for c in category_ids
    }
    for item in items:
        if item.category_id in bands:
            bands[item.category_id][difficulty_level(item.difficulty)] += 1

    results: List[CategoryReadiness] = []
    for category in category_ids:
        counts = bands[category]
        easy = counts[DifficultyLevel.EASY]
        medium = counts[DifficultyLevel.MEDIUM]
        hard = counts[DifficultyLevel.HARD]
        total = easy + medium + hard

        reasons: List[str] = []
        if total < min_items_per_category:
            reasons.append(f"Insufficient items: {total}/{min_items_per_category}")
        if easy < min_items_per_band:
            reasons.append(f"Insufficient easy items (b < -1.0): {easy}/{min_items_per_band}")
        if medium < min_items_per_band:
            reasons.append(
                f"Insufficient medium items (-1.0 <= b <= 1.0): {medium}/{min_items_per_band}"
            )
        if hard < min_items_per_band:
            reasons.append(f"Insufficient hard items (b > 1.0): {hard}/{min_items_per_band}")

        results.append(
            CategoryReadiness(
                category=category,
                is_ready=not reasons,
                total_items=total,
                easy_count=easy,
                medium_count=medium,
                hard_count=hard,
                reasons=reasons,
            )
        )

    is_globally_ready = bool(results) and all(r.is_ready for r in results)
    ready_count = sum(1 for r in results if r.is_ready)
    summary = f"{ready_count}/{len(results)} categories ready for CAT"

    logger.info(f"Pool readiness evaluation: globally_ready={is_globally_ready}, {summary}")

    return PoolReadinessResult(
        is_globally_ready=is_globally_ready,
        categories=results,
        summary=summary,
        thresholds=thresholds,
    )


def serialize_readiness_result(
    result: PoolReadinessResult, evaluated_at: datetime
) -> Dict[str, Any]:
    """Serialize a PoolReadinessResult to a JSON-compatible dict."""
    return {
        "is_globally_ready": result.is_globally_ready,
        "evaluated_at": evaluated_at.isoformat(),
        "thresholds": result.thresholds,
        "categories": [
            {
                "category": r.category,
                "is_ready": r.is_ready,
                "total_items": r.total_items,
                "easy_count": r.easy_count,
                "medium_count": r.medium_count,
                "hard_count": r.hard_count,
                "reasons": r.reasons,
            }
            for r in result.categories
        ],
        "summary": result.summary,
    }

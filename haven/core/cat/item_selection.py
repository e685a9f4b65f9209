"""
Maximum Fisher Information (MFI) item selection for Computerized Adaptive Testing.

Selects the next item that maximizes 3PL Fisher information at the current
ability estimate (theta):

    I_i(theta) = a_i^2 * (P_i - c_i)^2 * (1 - P_i) / ((1 - c_i)^2 * P_i)

The selection pipeline:
1. Filter out already-administered items
2. Apply blueprint constraints (category coverage)
3. Skip items over the exposure ceiling, unless nothing else remains
4. Rank by Fisher information; items within INFORMATION_TIE_TOLERANCE of
   the best are ordered by smallest item ID
5. Pick the best item, or randomly among the top-K (randomesque)

References:
    - van der Linden, W.J. (1998). Bayesian item selection criteria for
      adaptive testing.
    - Lord, F. M. (1980). Applications of item response theory to practical
      testing problems, chapter 10.
"""

import logging
import random
from typing import Collection, Dict, List, Optional, Sequence

from haven.core.cat.content_balancing import (
    BlueprintConstraints,
    apply_content_balancing,
    track_category_coverage,
)
from haven.core.cat.exposure_control import (
    DEFAULT_RANDOMESQUE_K,
    ExposureMonitor,
    ItemCandidate,
    apply_randomesque,
)
from haven.core.cat.irt_model import Item, compute_information

logger = logging.getLogger(__name__)

# Items whose information is this close to the maximum count as tied
INFORMATION_TIE_TOLERANCE = 1e-9


def rank_candidates(theta: float, items: Sequence[Item]) -> List[ItemCandidate]:
    """
    Rank items by Fisher information at theta, best first.

    Items tied with the best (within INFORMATION_TIE_TOLERANCE) come first
    in ascending ID order; the rest follow by descending information, then ID.
    """
    candidates = [
        ItemCandidate(item=item, information=compute_information(theta, item))
        for item in items
    ]
    if not candidates:
        return []

    best = max(c.information for c in candidates)
    tied = sorted(
        (c for c in candidates if best - c.information <= INFORMATION_TIE_TOLERANCE),
        key=lambda c: c.item.id,
    )
    rest = sorted(
        (c for c in candidates if best - c.information > INFORMATION_TIE_TOLERANCE),
        key=lambda c: (-c.information, c.item.id),
    )
    return tied + rest


def select_next_item(
    theta: float,
    candidate_pool: Sequence[Item],
    administered_ids: Collection[str],
    blueprint_constraints: Optional[BlueprintConstraints] = None,
    category_coverage: Optional[Dict[str, int]] = None,
    exposure_monitor: Optional[ExposureMonitor] = None,
    max_exposure_rate: Optional[float] = None,
    randomesque_k: int = DEFAULT_RANDOMESQUE_K,
    rng: Optional[random.Random] = None,
) -> Optional[Item]:
    """
    Select the next item using Maximum Fisher Information with constraints.

    Args:
        theta: Current ability estimate.
        candidate_pool: Items available for this session.
        administered_ids: IDs already administered; never returned.
        blueprint_constraints: Optional category targets and minimums.
        category_coverage: Items administered per category. Derived from
            the administered items found in ``candidate_pool`` when omitted.
        exposure_monitor: Optional shared monitor. Records the selection
            and, with ``max_exposure_rate``, enforces the exposure ceiling.
        max_exposure_rate: Exposure ceiling in (0, 1].
        randomesque_k: Choose randomly among the top-K items. 1 disables
            randomization.
        rng: Optional Random instance for deterministic testing.

    Returns:
        The selected Item, or None if no eligible items remain.
    """
    administered = set(administered_ids)
    eligible = [item for item in candidate_pool if item.id not in administered]

    if not eligible:
        logger.warning(
            "No eligible items remaining after filtering. "
            f"Pool size: {len(candidate_pool)}, administered: {len(administered)}"
        )
        return None

    if blueprint_constraints is not None:
        if category_coverage is None:
            category_coverage = track_category_coverage(
                item for item in candidate_pool if item.id in administered
            )
        eligible = apply_content_balancing(
            eligible,
            blueprint_constraints,
            category_coverage,
            items_administered=len(administered),
        )

    if exposure_monitor is not None and max_exposure_rate is not None:
        unexposed = [
            item
            for item in eligible
            if not exposure_monitor.is_overexposed(item.id, max_exposure_rate)
        ]
        if unexposed:
            eligible = unexposed
        else:
            logger.info(
                f"All {len(eligible)} eligible items exceed exposure rate "
                f"{max_exposure_rate:.1%}; ignoring the ceiling"
            )

    ranked = rank_candidates(theta, eligible)
    selected = apply_randomesque(
        ranked, k=randomesque_k, monitor=exposure_monitor, rng=rng
    )

    logger.debug(
        f"Item selection: theta={theta:.3f}, eligible={len(ranked)}, "
        f"selected {selected.item.id} "
        f"(a={selected.item.discrimination:.2f}, b={selected.item.difficulty:.2f}, "
        f"c={selected.item.guessing:.2f}, info={selected.information:.4f})"
    )

    return selected.item

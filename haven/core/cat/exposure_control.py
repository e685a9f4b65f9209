"""
Randomesque exposure control with monitoring.

Over-exposure occurs when a small subset of the item bank is administered
disproportionately often, which compromises item security. Two mechanisms
are offered:

    - Randomesque selection (Kingsbury & Zara, 1989): choose randomly among
      the top-K most informative items instead of always the single best.
    - Exposure ceiling: items whose observed exposure rate exceeds a maximum
      are skipped while any other item remains.

References:
    - Kingsbury, G.G., & Zara, A.R. (1989). Procedures for selecting items for
      computerized adaptive tests.
    - Stocking, M.L., & Lewis, C. (1998). Controlling item exposure conditional
      on ability in computerized adaptive testing.
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from haven.core.cat.irt_model import Item

logger = logging.getLogger(__name__)

# 1 = always the most informative item (reproducible selection)
DEFAULT_RANDOMESQUE_K = 1

# Default exposure rate threshold for logging alerts (15%)
DEFAULT_EXPOSURE_ALERT_THRESHOLD = 0.15

# Exposure rates are unreliable until the monitor has seen this many selections
MIN_SELECTIONS_FOR_CEILING = 20


@dataclass
class ItemCandidate:
    """An item with its Fisher information at the current theta."""

    item: Item
    information: float


def apply_randomesque(
    ranked_items: List[ItemCandidate],
    k: int = DEFAULT_RANDOMESQUE_K,
    monitor: Optional["ExposureMonitor"] = None,
    rng: Optional[random.Random] = None,
) -> ItemCandidate:
    """
    Select randomly from the top-K items and optionally record exposure.

    With k=1 the first ranked item is returned without consulting any RNG.

    Args:
        ranked_items: Candidates in ranked order (best first).
        k: Number of top items to select from.
        monitor: Optional ExposureMonitor to record the selection.
        rng: Optional Random instance for deterministic testing.

    Returns:
        The selected ItemCandidate.

    Raises:
        ValueError: If ranked_items is empty or k is not positive.
    """
    if not ranked_items:
        raise ValueError("Cannot select from empty ranked_items list")
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")

    top_k = ranked_items[: min(k, len(ranked_items))]
    if len(top_k) == 1:
        selected = top_k[0]
    elif rng is not None:
        selected = rng.choice(top_k)
    else:
        selected = random.choice(top_k)

    if monitor is not None:
        monitor.record_selection(selected.item.id)

    logger.debug(
        f"Randomesque selection: chose item {selected.item.id} from top-{len(top_k)} "
        f"(info={selected.information:.4f})"
    )

    return selected


class ExposureMonitor:
    """
    Tracks per-item exposure rates across sessions and alerts on over-exposure.

    Thread-safe; the only engine object meant to be shared between sessions.
    Uses in-memory counters.

    Exposure rate is defined as:
        rate_i = selections_i / total_selections

    Attributes:
        alert_threshold: Exposure rate above which items are flagged (0.0-1.0).
    """

    def __init__(self, alert_threshold: float = DEFAULT_EXPOSURE_ALERT_THRESHOLD):
        if not (0.0 <= alert_threshold <= 1.0):
            raise ValueError(
                f"alert_threshold must be in [0.0, 1.0], got {alert_threshold}"
            )

        self._lock = threading.Lock()
        self._item_counts: Dict[str, int] = {}
        self._total_selections = 0
        self.alert_threshold = alert_threshold

    def record_selection(self, item_id: str) -> None:
        """Record that an item was administered."""
        with self._lock:
            self._item_counts[item_id] = self._item_counts.get(item_id, 0) + 1
            self._total_selections += 1

    def get_exposure_rate(self, item_id: str) -> float:
        """Exposure rate of one item, 0.0 if it has never been selected."""
        with self._lock:
            if self._total_selections == 0:
                return 0.0
            return self._item_counts.get(item_id, 0) / self._total_selections

    def get_exposure_rates(self) -> Dict[str, float]:
        """Exposure rates of every item selected at least once."""
        with self._lock:
            if self._total_selections == 0:
                return {}
            return {
                item_id: count / self._total_selections
                for item_id, count in self._item_counts.items()
            }

    def is_overexposed(self, item_id: str, max_rate: float) -> bool:
        """
        Whether an item's exposure exceeds ``max_rate``.

        Always False until MIN_SELECTIONS_FOR_CEILING selections have been
        recorded.
        """
        with self._lock:
            if self._total_selections < MIN_SELECTIONS_FOR_CEILING:
                return False
            rate = self._item_counts.get(item_id, 0) / self._total_selections
            return rate > max_rate

    def get_overexposed_items(self) -> List[Tuple[str, float]]:
        """(item_id, rate) for items above the alert threshold, highest first."""
        overexposed = [
            (item_id, rate)
            for item_id, rate in self.get_exposure_rates().items()
            if rate > self.alert_threshold
        ]
        overexposed.sort(key=lambda x: x[1], reverse=True)
        return overexposed

    def check_and_alert(self) -> List[Tuple[str, float]]:
        """
        Check for overexposed items and log warnings.

        Snapshots counts under the lock and logs outside it.

        Returns:
            List of (item_id, exposure_rate) tuples for overexposed items.
        """
        with self._lock:
            if self._total_selections == 0:
                return []
            total = self._total_selections
            overexposed = [
                (item_id, count / total)
                for item_id, count in self._item_counts.items()
                if count / total > self.alert_threshold
            ]
            overexposed.sort(key=lambda x: x[1], reverse=True)
            log_entries = [
                (item_id, rate, self._item_counts[item_id])
                for item_id, rate in overexposed[:10]
            ]
            remaining = len(overexposed) - 10

        if overexposed:
            logger.warning(
                f"Exposure alert: {len(overexposed)} items exceed "
                f"{self.alert_threshold:.1%} threshold"
            )
            for item_id, rate, count in log_entries:
                logger.warning(
                    f"  Item {item_id}: {rate:.1%} exposure ({count}/{total} selections)"
                )
            if remaining > 0:
                logger.warning(f"  ... and {remaining} more items")

        return overexposed

    @property
    def total_selections(self) -> int:
        """Total number of item selections recorded."""
        with self._lock:
            return self._total_selections

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._item_counts.clear()
            self._total_selections = 0
        logger.info("ExposureMonitor counters reset")

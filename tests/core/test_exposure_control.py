"""
Tests for randomesque exposure control and ExposureMonitor.
"""

import logging
import random
import threading

import pytest

from haven.core.cat.exposure_control import (
    MIN_SELECTIONS_FOR_CEILING,
    ExposureMonitor,
    ItemCandidate,
    apply_randomesque,
)
from haven.core.cat.irt_model import Item


def _ranked(n):
    return [
        ItemCandidate(
            item=Item(id=f"q{i}", discrimination=1.0, difficulty=0.0),
            information=1.0 - 0.1 * i,
        )
        for i in range(n)
    ]


class TestApplyRandomesque:
    """Selection among the top-K candidates."""

    def test_k1_returns_best(self):
        assert apply_randomesque(_ranked(5), k=1).item.id == "q0"

    def test_selection_within_top_k(self):
        rng = random.Random(7)
        ranked = _ranked(10)
        chosen = {apply_randomesque(ranked, k=3, rng=rng).item.id for _ in range(200)}
        assert chosen <= {"q0", "q1", "q2"}
        assert len(chosen) > 1

    def test_k_larger_than_pool(self):
        rng = random.Random(1)
        assert apply_randomesque(_ranked(2), k=10, rng=rng).item.id in {"q0", "q1"}

    def test_seeded_rng_is_reproducible(self):
        ranked = _ranked(10)
        first = [apply_randomesque(ranked, k=5, rng=random.Random(3)).item.id]
        second = [apply_randomesque(ranked, k=5, rng=random.Random(3)).item.id]
        assert first == second

    def test_records_in_monitor(self):
        monitor = ExposureMonitor()
        apply_randomesque(_ranked(3), k=1, monitor=monitor)
        assert monitor.total_selections == 1
        assert monitor.get_exposure_rate("q0") == pytest.approx(1.0)

    def test_empty_list_raises(self):
        with pytest.raises(ValueError, match="empty"):
            apply_randomesque([], k=1)

    def test_non_positive_k_raises(self):
        with pytest.raises(ValueError, match="k must be positive"):
            apply_randomesque(_ranked(3), k=0)


class TestExposureMonitor:
    """Per-item exposure tracking."""

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            ExposureMonitor(alert_threshold=1.5)

    def test_rates(self):
        monitor = ExposureMonitor()
        for item_id in ["a", "a", "a", "b"]:
            monitor.record_selection(item_id)
        assert monitor.get_exposure_rate("a") == pytest.approx(0.75)
        assert monitor.get_exposure_rate("never") == pytest.approx(0.0)
        assert monitor.get_exposure_rates() == pytest.approx({"a": 0.75, "b": 0.25})

    def test_empty_monitor(self):
        monitor = ExposureMonitor()
        assert monitor.get_exposure_rate("a") == pytest.approx(0.0)
        assert monitor.get_exposure_rates() == {}
        assert monitor.check_and_alert() == []

    def test_overexposed_items_sorted(self):
        monitor = ExposureMonitor(alert_threshold=0.2)
        for item_id in ["a"] * 5 + ["b"] * 3 + ["c"] * 2:
            monitor.record_selection(item_id)
        overexposed = monitor.get_overexposed_items()
        assert [item_id for item_id, _ in overexposed] == ["a", "b"]

    def test_check_and_alert_logs(self, caplog):
        monitor = ExposureMonitor(alert_threshold=0.4)
        for item_id in ["a", "a", "b"]:
            monitor.record_selection(item_id)
        with caplog.at_level(logging.WARNING, logger="haven.core.cat.exposure_control"):
            overexposed = monitor.check_and_alert()
        assert overexposed[0][0] == "a"
        assert "Exposure alert" in caplog.text

    def test_ceiling_needs_enough_selections(self):
        monitor = ExposureMonitor()
        monitor.record_selection("a")
        assert monitor.is_overexposed("a", 0.5) is False

        for _ in range(MIN_SELECTIONS_FOR_CEILING):
            monitor.record_selection("a")
        assert monitor.is_overexposed("a", 0.5) is True
        assert monitor.is_overexposed("b", 0.5) is False

    def test_reset(self):
        monitor = ExposureMonitor()
        monitor.record_selection("a")
        monitor.reset()
        assert monitor.total_selections == 0
        assert monitor.get_exposure_rates() == {}

    def test_thread_safe_counting(self):
        monitor = ExposureMonitor()

        def worker():
            for _ in range(500):
                monitor.record_selection("a")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert monitor.total_selections == 4000

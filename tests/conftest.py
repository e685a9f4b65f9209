"""
Pytest configuration and shared fixtures for testing.
"""
import sys
from pathlib import Path

# Add project root to path so haven/ is importable without installation
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from typing import Callable, List, Optional  # noqa: E402

import pytest  # noqa: E402

from haven.core.cat.engine import CATConfig, CATSessionManager  # noqa: E402
from haven.core.cat.irt_model import Item  # noqa: E402
from haven.core.cat.item_bank import InMemoryItemBank  # noqa: E402
from haven.core.cat.session_store import InMemorySessionStore  # noqa: E402


def make_item(
    item_id: str,
    difficulty: float = 0.0,
    discrimination: float = 1.0,
    guessing: float = 0.0,
    category_id: Optional[str] = None,
) -> Item:
    return Item(
        id=item_id,
        discrimination=discrimination,
        difficulty=difficulty,
        guessing=guessing,
        category_id=category_id,
    )


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    """Factory for 3PL items with 2PL-like defaults (a=1, c=0)."""
    return make_item


@pytest.fixture
def spread_items() -> List[Item]:
    """41 items with difficulties from -2.0 to 2.0 in steps of 0.1."""
    return [
        make_item(f"item-{i:03d}", difficulty=round(-2.0 + 0.1 * i, 1))
        for i in range(41)
    ]


@pytest.fixture
def short_test_config() -> CATConfig:
    """Small test length, no blueprint, no time limit."""
    return CATConfig(
        min_questions=5,
        max_questions=20,
        time_limit_seconds=None,
        passing_threshold=0.0,
        blueprint_weights={},
    )


@pytest.fixture
def manager_factory(
    short_test_config: CATConfig,
) -> Callable[..., CATSessionManager]:
    """Build a CATSessionManager over an in-memory bank and store."""

    def _factory(
        items: List[Item], config: Optional[CATConfig] = None
    ) -> CATSessionManager:
        return CATSessionManager(
            item_bank=InMemoryItemBank(items),
            session_store=InMemorySessionStore(),
            config=config if config is not None else short_test_config,
        )

    return _factory

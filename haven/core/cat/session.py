"""
In-memory representation of an adaptive test session.

A session is owned by exactly one attempt. The engine loads it from the
session store, mutates it for one step, and saves it back; nothing holds on
to a session between calls.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from haven.domain_types import ClassificationResult, SessionStatus, StopReason


@dataclass
class Response:
    """Single answered item. Responses are append-only."""

    item_id: str
    is_correct: bool
    sequence_number: int  # 1-based position in the session
    ability_before: float
    ability_after: float
    standard_error_after: float
    # Item parameter snapshot so re-estimation never needs the item bank
    discrimination: float
    difficulty: float
    guessing: float
    category_id: Optional[str] = None
    time_spent_seconds: float = 0.0


@dataclass
class CATSession:
    """State of one adaptive test attempt."""

    session_id: str
    user_id: str
    theta: float
    standard_error: float
    started_at: datetime
    # Prior used to regularize degenerate response patterns
    prior_theta: float = 0.0
    prior_se: float = 1.0
    responses: List[Response] = field(default_factory=list)
    administered_item_ids: List[str] = field(default_factory=list)
    category_coverage: Dict[str, int] = field(default_factory=dict)
    theta_history: List[float] = field(default_factory=list)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    result: Optional[ClassificationResult] = None
    stop_reason: Optional[StopReason] = None
    passing_probability: Optional[float] = None
    # Item handed out by select_next_item and not yet answered
    pending_item_id: Optional[str] = None
    time_spent_seconds: float = 0.0
    converged: bool = True
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.responses if r.is_correct)

    @property
    def responses_count(self) -> int:
        return len(self.responses)

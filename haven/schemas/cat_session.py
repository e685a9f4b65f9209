"""
Pydantic schemas for persisted CAT session state.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from haven.domain_types import ClassificationResult, SessionStatus, StopReason


class ResponseSnapshot(BaseModel):
    """Schema for one recorded response."""

    model_config = ConfigDict(from_attributes=True)

    item_id: str = Field(..., description="Administered item ID")
    is_correct: bool = Field(..., description="Whether the answer was correct")
    sequence_number: int = Field(..., ge=1, description="1-based position")
    ability_before: float = Field(..., description="Theta before this response")
    ability_after: float = Field(..., description="Theta after this response")
    standard_error_after: float = Field(
        ..., ge=0.0, description="Standard error after this response"
    )
    discrimination: float = Field(..., gt=0.0, description="IRT a parameter")
    difficulty: float = Field(..., description="IRT b parameter")
    guessing: float = Field(..., ge=0.0, lt=1.0, description="IRT c parameter")
    category_id: Optional[str] = Field(None, description="NCLEX client-need category")
    time_spent_seconds: float = Field(0.0, ge=0.0, description="Time on this item")


class CATSessionSnapshot(BaseModel):
    """Schema for a full CAT session as stored between requests."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str = Field(..., description="Session ID")
    user_id: str = Field(..., description="User ID")
    theta: float = Field(..., description="Current ability estimate")
    standard_error: float = Field(..., ge=0.0, description="Current standard error")
    started_at: datetime = Field(..., description="Session start timestamp")
    prior_theta: float = Field(0.0, description="Prior ability mean")
    prior_se: float = Field(1.0, gt=0.0, description="Prior ability SD")
    responses: List[ResponseSnapshot] = Field(default_factory=list)
    administered_item_ids: List[str] = Field(default_factory=list)
    category_coverage: Dict[str, int] = Field(default_factory=dict)
    theta_history: List[float] = Field(default_factory=list)
    status: SessionStatus = Field(SessionStatus.IN_PROGRESS)
    result: Optional[ClassificationResult] = Field(
        None, description="Terminal classification (completed sessions only)"
    )
    stop_reason: Optional[StopReason] = Field(None)
    passing_probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    pending_item_id: Optional[str] = Field(
        None, description="Item awaiting an answer"
    )
    time_spent_seconds: float = Field(0.0, ge=0.0)
    converged: bool = Field(True, description="Last estimation converged")
    completed_at: Optional[datetime] = Field(
        None, description="Session completion timestamp"
    )

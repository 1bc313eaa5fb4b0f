"""
Anomaly scoring and access-state data models.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .common import utc_now


class AccessState(str, Enum):
    """User access state."""

    ACTIVE = "active"
    AUTO_BLOCKED = "auto_blocked"
    UNBLOCKED = "unblocked"


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        if score >= 0.7:
            return cls.CRITICAL
        if score >= 0.5:
            return cls.HIGH
        if score >= 0.3:
            return cls.MEDIUM
        if score >= 0.1:
            return cls.LOW
        return cls.NONE


class AnomalyScore(BaseModel):
    """Result of one evaluation window."""
    user_id: str = Field(description="Evaluated user")
    score: float = Field(ge=0.0, le=1.0, description="Weighted combination of signals")
    signals: Dict[str, float] = Field(default_factory=dict, description="Per-signal values in [0, 1]")
    risk_level: RiskLevel = Field(default=RiskLevel.NONE, description="Coarse risk band")
    reason: Optional[str] = Field(default=None, description="Explanation when the score crosses the threshold")
    window_event_count: int = Field(default=0, description="Events in the evaluation window")
    consecutive_breaches: int = Field(default=0, description="Consecutive breaching windows, this one included")
    evaluated_at: datetime = Field(default_factory=utc_now, description="Evaluation time (UTC)")


class AccessTransition(BaseModel):
    """Audit record for a single access-state change."""
    from_state: AccessState = Field(description="State before the transition")
    to_state: AccessState = Field(description="State after the transition")
    actor: str = Field(description="'system' or the administrator id")
    reason: Optional[str] = Field(default=None, description="Block reason or administrator note")
    score: Optional[float] = Field(default=None, description="Anomaly score at transition time")
    at: datetime = Field(default_factory=utc_now, description="Transition time (UTC)")


class AccessRecord(BaseModel):
    """Durable per-user access state, queryable by session collaborators."""
    user_id: str = Field(description="User identifier")
    state: AccessState = Field(default=AccessState.ACTIVE, description="Current access state")
    last_score: Optional[AnomalyScore] = Field(default=None, description="Most recent evaluation")
    consecutive_breaches: int = Field(default=0, description="Consecutive windows at or above threshold")
    reason: Optional[str] = Field(default=None, description="Reason recorded with the last block")
    blocked_score: Optional[float] = Field(default=None, description="Score recorded with the last block")
    blocked_at: Optional[datetime] = Field(default=None, description="Time of the last automatic block")
    unblocked_at: Optional[datetime] = Field(default=None, description="Time of the last administrator unblock")
    unblocked_by: Optional[str] = Field(default=None, description="Administrator who issued the last unblock")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification time (UTC)")
    history: List[AccessTransition] = Field(default_factory=list, description="Transition audit trail")

    @property
    def is_blocked(self) -> bool:
        return self.state is AccessState.AUTO_BLOCKED


class PopulationBaseline(BaseModel):
    """Population event-rate statistics used by the rate signal."""
    mean_rate: float = Field(description="Mean events per minute across active user windows")
    std_rate: float = Field(description="Standard deviation of events per minute")
    sample_size: int = Field(default=0, description="Number of user windows sampled")
    window_minutes: int = Field(description="Window length the rates were measured over")
    computed_at: datetime = Field(default_factory=utc_now, description="Computation time (UTC)")
    is_default: bool = Field(default=False, description="True when built from configured defaults")

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum

from hitl_agent.domain.clock import utc_now


class RiskLevel(str, Enum):
    """Risk of running a tool, ordered low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER[self]


_RISK_ORDER = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class ConfirmationStatus(str, Enum):
    """Lifecycle of a single tool confirmation"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class HITLStatus(str, Enum):
    """Human-in-the-loop status of a conversation"""
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"
    COMPLETED = "completed"


class ToolCallRequest(BaseModel):
    """A tool call proposed by the LLM"""
    model_config = ConfigDict(frozen=True)

    tool_name: str
    tool_args: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""


class ToolConfirmation(BaseModel):
    """Approval request for one risky tool call.

    Frozen: every status change produces a new instance through the state
    machine, so a resolved confirmation is never touched again.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique confirmation identifier")
    tool_name: str
    tool_args: Dict[str, Any] = Field(default_factory=dict)
    description: str = Field("", description="Human-readable description of the call")
    risk_level: RiskLevel = RiskLevel.HIGH
    requested_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    rejection_reason: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.status == ConfirmationStatus.PENDING and self.expires_at <= now


class ToolExecutionEntry(BaseModel):
    """Outcome of running one approved confirmation"""
    model_config = ConfigDict(frozen=True)

    confirmation_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


class HITLState(BaseModel):
    """Immutable HITL state value, transitioned only by the state machine"""
    model_config = ConfigDict(frozen=True)

    status: HITLStatus = HITLStatus.IDLE
    pending_confirmations: List[ToolConfirmation] = Field(default_factory=list)
    approved_confirmations: List[ToolConfirmation] = Field(
        default_factory=list,
        description="Approved and waiting for the execution coordinator"
    )
    resolved_confirmations: List[ToolConfirmation] = Field(
        default_factory=list,
        description="Rejected, expired or executed confirmations"
    )
    completed_executions: List[ToolExecutionEntry] = Field(default_factory=list)
    pending_tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    session_id: str = ""
    last_activity_at: datetime = Field(default_factory=utc_now)

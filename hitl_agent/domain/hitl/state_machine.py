"""Pure HITL confirmation state machine.

transition(state, event) never mutates its input and never performs I/O; it
returns either a new HITLState or the very same object when the event does not
apply (unknown confirmation ids, duplicate requests, duplicate completions).
"""
from typing import Dict, List, Literal, Optional, Set, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

from hitl_agent.domain.clock import utc_now
from hitl_agent.domain.models.hitl_state import (
    ConfirmationStatus,
    HITLState,
    HITLStatus,
    ToolConfirmation,
    ToolExecutionEntry,
)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    at: datetime = Field(default_factory=utc_now)


class RequestConfirmation(_Event):
    type: Literal["REQUEST_CONFIRMATION"] = "REQUEST_CONFIRMATION"
    confirmation: ToolConfirmation


class UserApproved(_Event):
    type: Literal["USER_APPROVED"] = "USER_APPROVED"
    confirmation_id: str


class UserRejected(_Event):
    type: Literal["USER_REJECTED"] = "USER_REJECTED"
    confirmation_id: str
    reason: Optional[str] = None


class ConfirmationExpired(_Event):
    type: Literal["CONFIRMATION_EXPIRED"] = "CONFIRMATION_EXPIRED"
    confirmation_id: str


class ExecutionCompleted(_Event):
    type: Literal["EXECUTION_COMPLETED"] = "EXECUTION_COMPLETED"
    entry: ToolExecutionEntry


class Reset(_Event):
    type: Literal["RESET"] = "RESET"


HITLEvent = Union[
    RequestConfirmation,
    UserApproved,
    UserRejected,
    ConfirmationExpired,
    ExecutionCompleted,
    Reset,
]


# Resolved confirmations and execution entries kept per conversation, oldest dropped first
MAX_ARCHIVED_ENTRIES = 50


_VALID_TRANSITIONS: Dict[HITLStatus, Set[HITLStatus]] = {
    HITLStatus.IDLE: {HITLStatus.AWAITING_CONFIRMATION},
    HITLStatus.AWAITING_CONFIRMATION: {
        HITLStatus.AWAITING_CONFIRMATION,
        HITLStatus.EXECUTING,
        HITLStatus.IDLE,
    },
    HITLStatus.EXECUTING: {
        HITLStatus.EXECUTING,
        HITLStatus.AWAITING_CONFIRMATION,
        HITLStatus.COMPLETED,
        HITLStatus.IDLE,
    },
    HITLStatus.COMPLETED: {HITLStatus.IDLE, HITLStatus.AWAITING_CONFIRMATION},
}


def create_initial_hitl_state(session_id: str = "", now: Optional[datetime] = None) -> HITLState:
    """Fresh idle state"""
    return HITLState(session_id=session_id, last_activity_at=now or utc_now())


def can_transition_to(current: HITLStatus, target: HITLStatus) -> bool:
    """Whether moving between two statuses is a legal step"""
    if current == target:
        return True
    return target in _VALID_TRANSITIONS.get(current, set())


def _derive_status(
    pending: List[ToolConfirmation],
    approved: List[ToolConfirmation],
    finished_execution: bool = False
) -> HITLStatus:
    if pending:
        return HITLStatus.AWAITING_CONFIRMATION
    if approved:
        return HITLStatus.EXECUTING
    if finished_execution:
        return HITLStatus.COMPLETED
    return HITLStatus.IDLE


def _split(
    confirmations: List[ToolConfirmation],
    confirmation_id: str
) -> Tuple[Optional[ToolConfirmation], List[ToolConfirmation]]:
    found = None
    rest = []
    for confirmation in confirmations:
        if found is None and confirmation.id == confirmation_id:
            found = confirmation
        else:
            rest.append(confirmation)
    return found, rest


def _archive(items: list, item) -> list:
    return [*items, item][-MAX_ARCHIVED_ENTRIES:]

def _known_ids(state: HITLState) -> Set[str]:
    return {
        c.id for c in (
            *state.pending_confirmations,
            *state.approved_confirmations,
            *state.resolved_confirmations,
        )
    }


def _request(state: HITLState, event: RequestConfirmation) -> HITLState:
    confirmation = event.confirmation
    if confirmation.id in _known_ids(state):
        return state
    if confirmation.status != ConfirmationStatus.PENDING:
        confirmation = confirmation.model_copy(update={"status": ConfirmationStatus.PENDING})

    pending = [*state.pending_confirmations, confirmation]
    return state.model_copy(update={
        "pending_confirmations": pending,
        "status": _derive_status(pending, state.approved_confirmations),
        "last_activity_at": event.at,
    })


def _resolve(
    state: HITLState,
    confirmation_id: str,
    status: ConfirmationStatus,
    at: datetime,
    reason: Optional[str] = None
) -> HITLState:
    found, pending = _split(state.pending_confirmations, confirmation_id)
    if found is None:
        return state

    update = {"status": status}
    if status == ConfirmationStatus.REJECTED and reason:
        update["rejection_reason"] = reason
    resolved_confirmation = found.model_copy(update=update)

    approved = state.approved_confirmations
    resolved = state.resolved_confirmations
    if status == ConfirmationStatus.APPROVED:
        approved = [*approved, resolved_confirmation]
    else:
        resolved = _archive(resolved, resolved_confirmation)

    return state.model_copy(update={
        "pending_confirmations": pending,
        "approved_confirmations": approved,
        "resolved_confirmations": resolved,
        "status": _derive_status(pending, approved),
        "last_activity_at": at,
    })


def _complete(state: HITLState, event: ExecutionCompleted) -> HITLState:
    entry = event.entry
    if any(e.confirmation_id == entry.confirmation_id for e in state.completed_executions):
        return state

    found, approved = _split(state.approved_confirmations, entry.confirmation_id)
    if found is None:
        return state

    return state.model_copy(update={
        "approved_confirmations": approved,
        "resolved_confirmations": _archive(state.resolved_confirmations, found),
        "completed_executions": _archive(state.completed_executions, entry),
        "status": _derive_status(state.pending_confirmations, approved, finished_execution=True),
        "last_activity_at": event.at,
    })


def transition(state: HITLState, event: HITLEvent) -> HITLState:
    """Apply one event to the HITL state"""

    if isinstance(event, RequestConfirmation):
        return _request(state, event)
    if isinstance(event, UserApproved):
        return _resolve(state, event.confirmation_id, ConfirmationStatus.APPROVED, event.at)
    if isinstance(event, UserRejected):
        return _resolve(state, event.confirmation_id, ConfirmationStatus.REJECTED, event.at, event.reason)
    if isinstance(event, ConfirmationExpired):
        return _resolve(state, event.confirmation_id, ConfirmationStatus.EXPIRED, event.at)
    if isinstance(event, ExecutionCompleted):
        return _complete(state, event)
    if isinstance(event, Reset):
        return create_initial_hitl_state(state.session_id, now=event.at)
    return state


def apply_events(state: HITLState, events: List[HITLEvent]) -> HITLState:
    """Fold a sequence of events over a state"""
    for event in events:
        state = transition(state, event)
    return state


def is_awaiting_confirmation(state: HITLState) -> bool:
    return state.status == HITLStatus.AWAITING_CONFIRMATION and bool(state.pending_confirmations)


def get_pending_confirmations(state: HITLState) -> List[ToolConfirmation]:
    return list(state.pending_confirmations)


def get_approved_confirmations(state: HITLState) -> List[ToolConfirmation]:
    return list(state.approved_confirmations)


def get_expired_confirmation_ids(state: HITLState, now: datetime) -> List[str]:
    return [c.id for c in state.pending_confirmations if c.is_expired(now)]


def has_expired_confirmations(state: HITLState, now: datetime) -> bool:
    return bool(get_expired_confirmation_ids(state, now))


def expire_confirmations(state: HITLState, now: datetime) -> Tuple[HITLState, List[str]]:
    """Resolve every pending confirmation whose deadline has passed"""

    expired_ids = get_expired_confirmation_ids(state, now)
    for confirmation_id in expired_ids:
        state = transition(state, ConfirmationExpired(confirmation_id=confirmation_id, at=now))
    return state, expired_ids

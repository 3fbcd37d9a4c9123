"""Parsing of user replies to confirmation prompts and prompt formatting"""
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict
from datetime import datetime, timedelta
from enum import Enum
import json
import re
import uuid

from hitl_agent.domain.clock import utc_now
from hitl_agent.domain.models.hitl_state import RiskLevel, ToolCallRequest, ToolConfirmation

DEFAULT_CONFIRMATION_EXPIRY_SECONDS = 5 * 60

APPROVAL_PATTERNS = [
    re.compile(r"^y(es)?$"),
    re.compile(r"^ok(ay)?$"),
    re.compile(r"^approve$"),
    re.compile(r"^confirm$"),
    re.compile(r"^go( ahead)?$"),
    re.compile(r"^do it$"),
    re.compile(r"^proceed$"),
    re.compile(r"^execute$"),
    re.compile(r"^run( it)?$"),
    re.compile(r"^accept$"),
    re.compile(r"^✅$"),
    re.compile(r"^👍$"),
]

REJECTION_PATTERNS = [
    re.compile(r"^n(o)?$"),
    re.compile(r"^cancel$"),
    re.compile(r"^reject$"),
    re.compile(r"^stop$"),
    re.compile(r"^abort$"),
    re.compile(r"^don'?t$"),
    re.compile(r"^nope$"),
    re.compile(r"^decline$"),
    re.compile(r"^refuse$"),
    re.compile(r"^❌$"),
    re.compile(r"^✖$"),
    re.compile(r"^👎$"),
]

REJECTION_WITH_REASON = re.compile(
    r"^(?:no|n|nope|cancel|reject|stop|abort|decline|refuse|don'?t)\s*[,:;.!-]\s*(.+)$|"
    r"^(?:no|cancel|reject|stop|abort|decline)\s+(.+)$",
    re.I | re.S
)

EXPLICIT_REFERENCE = re.compile(
    r"^(approve|confirm|reject)\s+(?:id[:\s]\s*([a-z0-9_-]+)|#?(\d+)|(confirm_[a-z0-9_-]+))"
    r"(?:\s*[,:;.!-]\s*(.*?)|\s+(.+?))?\s*$",
    re.I | re.S
)

_RISK_EMOJI = {
    RiskLevel.CRITICAL: "⛔",
    RiskLevel.HIGH: "🔴",
    RiskLevel.MEDIUM: "🟡",
    RiskLevel.LOW: "🟢",
}


class ConfirmationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    NONE = "none"


class ConfirmationParseResult(BaseModel):
    """Interpretation of a user reply while a confirmation is pending"""
    model_config = ConfigDict(frozen=True)

    is_confirmation: bool
    action: ConfirmationAction = ConfirmationAction.NONE
    target_confirmation_id: Optional[str] = None
    reason: Optional[str] = None


def _normalize(message: str) -> str:
    return re.sub(r"[.!]+$", "", message.strip().lower()).strip()


def _matches(text: str, patterns: List[re.Pattern]) -> bool:
    return any(p.match(text) for p in patterns)


def has_tool_confirmation(message: str) -> bool:
    """Whether a message is a bare approval or rejection"""
    text = _normalize(message)
    return _matches(text, APPROVAL_PATTERNS) or _matches(text, REJECTION_PATTERNS)


def parse_confirmation_response(message: str) -> ConfirmationParseResult:
    """Parse a user message for confirmation intent"""

    trimmed = (message or "").strip()
    text = _normalize(trimmed)

    if _matches(text, APPROVAL_PATTERNS):
        return ConfirmationParseResult(is_confirmation=True, action=ConfirmationAction.APPROVE)

    if _matches(text, REJECTION_PATTERNS):
        return ConfirmationParseResult(is_confirmation=True, action=ConfirmationAction.REJECT)

    reference = EXPLICIT_REFERENCE.match(trimmed)
    if reference:
        verb = reference.group(1).lower()
        target = next(g for g in reference.groups()[1:4] if g)
        if verb == "reject":
            reason = (reference.group(5) or reference.group(6) or "").strip()
            return ConfirmationParseResult(
                is_confirmation=True,
                action=ConfirmationAction.REJECT,
                target_confirmation_id=target,
                reason=reason or None
            )
        return ConfirmationParseResult(
            is_confirmation=True,
            action=ConfirmationAction.APPROVE,
            target_confirmation_id=target
        )

    with_reason = REJECTION_WITH_REASON.match(trimmed)
    if with_reason:
        reason = (with_reason.group(1) or with_reason.group(2) or "").strip()
        return ConfirmationParseResult(
            is_confirmation=True,
            action=ConfirmationAction.REJECT,
            reason=reason or None
        )

    return ConfirmationParseResult(is_confirmation=False)


def select_confirmations(
    pending: List[ToolConfirmation],
    target: Optional[str]
) -> List[ToolConfirmation]:
    """Resolve a reply target to pending confirmations.

    No target selects every pending confirmation. A number is a 1-based index
    into the pending list as it was presented; anything else is matched as an id.
    An unresolvable target selects nothing.
    """
    if not target:
        return list(pending)
    if target.isdigit():
        index = int(target) - 1
        return [pending[index]] if 0 <= index < len(pending) else []
    return [c for c in pending if c.id.lower() == target.lower()]


def create_tool_confirmation(
    call: ToolCallRequest,
    risk_level: RiskLevel,
    now: Optional[datetime] = None,
    expiry_seconds: float = DEFAULT_CONFIRMATION_EXPIRY_SECONDS
) -> ToolConfirmation:
    """Build a pending confirmation for a proposed tool call"""

    requested_at = now or utc_now()
    return ToolConfirmation(
        id=f"confirm_{uuid.uuid4().hex[:12]}",
        tool_name=call.tool_name,
        tool_args=dict(call.tool_args),
        description=call.description or f"Run {call.tool_name}",
        risk_level=risk_level,
        requested_at=requested_at,
        expires_at=requested_at + timedelta(seconds=expiry_seconds)
    )


def format_confirmation_request(confirmation: ToolConfirmation, now: Optional[datetime] = None) -> str:
    """Format a single confirmation request for display to the user"""

    remaining = (confirmation.expires_at - (now or utc_now())).total_seconds()
    expires_in = max(0, round(remaining / 60))

    message = f"{_RISK_EMOJI[confirmation.risk_level]} **Confirmation Required**\n\n"
    message += f"**Tool:** `{confirmation.tool_name}`\n"
    message += f"**Risk Level:** {confirmation.risk_level.value}\n"
    message += f"**Description:** {confirmation.description}\n"

    if confirmation.tool_args:
        message += "\n**Arguments:**\n```json\n"
        message += json.dumps(confirmation.tool_args, indent=2, default=str)
        message += "\n```\n"

    message += f"\n⏱️ Expires in {expires_in} minutes\n"
    message += "\nReply **yes** to approve or **no** to reject."
    return message


def format_multiple_confirmations(
    confirmations: List[ToolConfirmation],
    now: Optional[datetime] = None
) -> str:
    """Enumerate every pending confirmation with approve/reject instructions"""

    if not confirmations:
        return "No pending confirmations."
    if len(confirmations) == 1:
        return format_confirmation_request(confirmations[0], now)

    message = f"⚠️ **{len(confirmations)} Confirmations Required**\n\n"
    for i, c in enumerate(confirmations, start=1):
        message += (
            f"**{i}.** {_RISK_EMOJI[c.risk_level]} `{c.tool_name}` "
            f"({c.risk_level.value}) - {c.description}\n"
        )

    message += "\nReply **yes** to approve all or **no** to reject all."
    message += "\nOr reply **approve 1** / **reject 2** for specific items."
    return message


def confirmation_data(confirmations: List[ToolConfirmation]) -> List[Dict[str, Any]]:
    """Structured view of pending confirmations for AgentResult.data"""
    return [
        {
            "id": c.id,
            "tool_name": c.tool_name,
            "risk_level": c.risk_level.value,
            "description": c.description,
            "expires_at": c.expires_at.isoformat(),
        }
        for c in confirmations
    ]

from typing import Dict, Any, List, Optional, Union
from pydantic import BaseModel, Field
from datetime import datetime, timedelta
from enum import Enum
import uuid

from hitl_agent.domain.clock import utc_now, elapsed_ms
from hitl_agent.domain.models.hitl_state import HITLState
from hitl_agent.domain.tracing.trace_accumulator import TraceAccumulator


class Platform(str, Enum):
    """Platform a message originated from"""
    TELEGRAM = "telegram"
    GITHUB = "github"
    API = "api"


class NextAction(str, Enum):
    """What the transport should expect after a result"""
    COMPLETE = "complete"
    AWAIT_CONFIRMATION = "await_confirmation"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """A single conversation turn"""
    role: MessageRole
    content: str


class ParsedInput(BaseModel):
    """Platform-neutral inbound message produced by a platform adapter"""
    text: str
    user_id: Union[str, int]
    chat_id: Union[str, int]
    username: Optional[str] = None
    message_ref: Optional[Union[str, int]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def new_id() -> str:
    return str(uuid.uuid4())


class ExecutionContext(BaseModel):
    """Everything needed to process one inbound message"""
    trace_id: str = Field(default_factory=new_id, frozen=True, description="Stable for the whole message")
    span_id: str = Field(default_factory=new_id)
    parent_span_id: Optional[str] = None
    platform: Platform = Platform.API
    user_id: Union[str, int]
    chat_id: Union[str, int]
    username: Optional[str] = None
    user_message_id: Optional[Union[str, int]] = None
    provider: str = Field(description="LLM provider name")
    model: str = Field(description="LLM model name")
    query: str = Field(description="User query or request")
    conversation_history: List[Message] = Field(default_factory=list)
    trace: TraceAccumulator = Field(default_factory=TraceAccumulator)
    started_at: datetime = Field(default_factory=utc_now)
    deadline: datetime = Field(description="Soft budget, informational only")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_input(
        cls,
        parsed: ParsedInput,
        provider: str,
        model: str,
        budget_seconds: float,
        platform: Platform = Platform.API,
        history: Optional[List[Message]] = None,
        now: Optional[datetime] = None
    ) -> "ExecutionContext":
        """Build a fresh context for an inbound message"""
        started = now or utc_now()
        fields: Dict[str, Any] = {}
        trace_id = parsed.metadata.get("trace_id")
        if trace_id:
            fields["trace_id"] = str(trace_id)

        return cls(
            platform=platform,
            user_id=parsed.user_id,
            chat_id=parsed.chat_id,
            username=parsed.username,
            user_message_id=parsed.message_ref,
            provider=provider,
            model=model,
            query=parsed.text,
            conversation_history=list(history or []),
            started_at=started,
            deadline=started + timedelta(seconds=budget_seconds),
            metadata=dict(parsed.metadata),
            **fields
        )

    def is_past_deadline(self, now: datetime) -> bool:
        return now >= self.deadline

    def elapsed_ms(self, now: datetime) -> int:
        return elapsed_ms(self.started_at, now)


class AgentResult(BaseModel):
    """Result handed back to the platform transport"""
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    debug: Optional[Dict[str, Any]] = None
    next_action: NextAction = NextAction.COMPLETE
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success_result(
        cls,
        content: str,
        duration_ms: int,
        next_action: NextAction = NextAction.COMPLETE,
        data: Optional[Dict[str, Any]] = None
    ) -> "AgentResult":
        return cls(
            success=True,
            content=content,
            duration_ms=duration_ms,
            next_action=next_action,
            data=data or {}
        )

    @classmethod
    def error_result(cls, error: Union[Exception, str], duration_ms: int) -> "AgentResult":
        message = str(error) if isinstance(error, Exception) else error
        return cls(success=False, error=message, duration_ms=duration_ms)


class ReceiveResult(BaseModel):
    """Acknowledgement returned by receive_message"""
    trace_id: str
    queued: bool = True
    superseded_trace_id: Optional[str] = Field(
        None,
        description="Trace id of a pending context that was overwritten"
    )


class ConversationActorState(BaseModel):
    """Durable state of one conversation actor"""
    key: str
    messages: List[Message] = Field(default_factory=list)
    hitl: HITLState = Field(default_factory=HITLState)
    pending_context: Optional[ExecutionContext] = Field(None, description="Received, not started")
    active_context: Optional[ExecutionContext] = Field(None, description="Currently executing")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def evolve(self, **updates: Any) -> "ConversationActorState":
        """Return a copy with updates applied and the version bumped"""
        updates.setdefault("updated_at", utc_now())
        updates["version"] = self.version + 1
        return self.model_copy(update=updates)

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "key": self.key,
            "messages": len(self.messages),
            "hitl_status": self.hitl.status.value,
            "pending_confirmations": len(self.hitl.pending_confirmations),
            "has_pending_context": self.pending_context is not None,
            "has_active_context": self.active_context is not None,
            "version": self.version,
            "updated_at": self.updated_at.isoformat()
        }

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from hitl_agent.domain.clock import utc_now


class AgentSpan(BaseModel):
    """One responder execution inside a request"""
    agent: str = Field(description="Name of the responder that executed")
    span_id: str
    parent_span_id: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


class DebugToolCall(BaseModel):
    """Tool invocation as seen by the trace"""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class TraceAccumulator(BaseModel):
    """Append-only record of what happened while handling one message.

    Lives inside the ExecutionContext, so it is persisted together with the
    pending/active slot and survives a process restart mid-request. Entries are
    only ever appended; the timing fields are set once they are measured.
    """
    agent_chain: List[AgentSpan] = Field(default_factory=list)
    tool_calls: List[DebugToolCall] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    routing_ms: Optional[int] = None
    llm_ms: Optional[int] = None
    total_ms: Optional[int] = None

    def record_span(
        self,
        agent: str,
        span_id: str,
        duration_ms: int,
        parent_span_id: Optional[str] = None
    ) -> AgentSpan:
        """Record a responder span"""
        span = AgentSpan(
            agent=agent,
            span_id=span_id,
            parent_span_id=parent_span_id,
            duration_ms=duration_ms
        )
        self.agent_chain.append(span)
        return span

    def record_tool_call(self, entry: DebugToolCall):
        """Record a tool call"""
        self.tool_calls.append(entry)

    def add_warning(self, text: str):
        """Record a non-fatal warning"""
        self.warnings.append(text)

    def add_error(self, text: str):
        """Record an error"""
        self.errors.append(text)

    def summary(self) -> Dict[str, Any]:
        """Compact view used for AgentResult.debug"""
        return {
            "agents": [span.agent for span in self.agent_chain],
            "tool_calls": [call.name for call in self.tool_calls],
            "warnings": len(self.warnings),
            "errors": len(self.errors),
            "routing_ms": self.routing_ms,
            "llm_ms": self.llm_ms,
            "total_ms": self.total_ms
        }

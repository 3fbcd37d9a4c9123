from typing import Awaitable, Callable, Optional
import re
import time
import structlog

from hitl_agent.domain.hitl.confirmation import has_tool_confirmation
from hitl_agent.domain.hitl.state_machine import is_awaiting_confirmation
from hitl_agent.domain.models.agent_state import ExecutionContext, new_id
from hitl_agent.domain.models.hitl_state import HITLState
from hitl_agent.domain.orchestration.subagent.base_subagent import BaseResponder, ResponderOutcome
from hitl_agent.domain.orchestration.subagent.hitl_responder import HITLResponder
from hitl_agent.domain.orchestration.subagent.simple_responder import SimpleResponder

logger = structlog.get_logger(__name__)

ROUTE_SIMPLE = "simple"
ROUTE_HITL = "hitl"

DESTRUCTIVE_VERBS = re.compile(
    r"\b(delete|remove|drop|truncate|rm|deploy|push|merge|publish|run|execute|exec|install|"
    r"uninstall|kill|shutdown|restart|reboot|format|wipe|write|overwrite|chmod|chown)\b",
    re.I
)

RouteClassifier = Callable[[str, ExecutionContext], Awaitable[str]]


def quick_route(query: str, hitl_state: HITLState) -> Optional[str]:
    """Pattern-based routing decision, None when undecided"""

    if is_awaiting_confirmation(hitl_state):
        return ROUTE_HITL
    if hitl_state.pending_confirmations or has_tool_confirmation(query):
        return ROUTE_HITL
    if DESTRUCTIVE_VERBS.search(query or ""):
        return ROUTE_HITL
    return None


class RouterResponder(BaseResponder):
    """Dispatches each query to the simple or the HITL responder"""

    def __init__(
        self,
        simple: BaseResponder,
        hitl: BaseResponder,
        classify: Optional[RouteClassifier] = None
    ):
        super().__init__("router", "Routes queries to the simple or HITL responder")
        self.simple = simple
        self.hitl = hitl
        self.classify = classify
        # Tool calls proposed on the simple route still pass the HITL gate
        if isinstance(simple, SimpleResponder) and simple.tool_gate is None and isinstance(hitl, HITLResponder):
            simple.tool_gate = hitl.gate_tool_calls

    async def route(self, query: str, context: ExecutionContext, hitl_state: HITLState) -> str:
        """Pick a route for the query"""

        route = quick_route(query, hitl_state)
        if route is not None:
            return route
        if self.classify is not None:
            decision = await self.classify(query, context)
            if str(decision).lower() == ROUTE_HITL:
                return ROUTE_HITL
        return ROUTE_SIMPLE

    async def handle(self, query: str, context: ExecutionContext, hitl_state: HITLState) -> ResponderOutcome:
        start = time.monotonic()
        route = await self.route(query, context, hitl_state)
        routing_ms = int((time.monotonic() - start) * 1000)

        span_id = new_id()
        context.trace.routing_ms = routing_ms
        context.trace.record_span(self.name, span_id, routing_ms, parent_span_id=context.span_id)
        logger.info("Routed query", route=route, routing_ms=routing_ms)

        target = self.hitl if route == ROUTE_HITL else self.simple
        return await target.handle(query, context, hitl_state)

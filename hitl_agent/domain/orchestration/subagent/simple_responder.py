from typing import Optional
import time
import structlog

from hitl_agent.domain.models.agent_state import AgentResult, ExecutionContext, NextAction, new_id
from hitl_agent.domain.models.hitl_state import HITLState
from hitl_agent.domain.orchestration.core.llm_provider import LLMProvider, call_provider
from hitl_agent.domain.orchestration.subagent.base_subagent import (
    BaseResponder,
    ResponderOutcome,
    ToolGate,
    assistant_turn,
    build_llm_messages,
    user_turn,
)
from hitl_agent.domain.tool.tool_calls import extract_tool_calls

logger = structlog.get_logger(__name__)


class SimpleResponder(BaseResponder):
    """One LLM call. Replies that propose tool calls go to the tool gate"""

    def __init__(
        self,
        provider: LLMProvider,
        system_prompt: str = "",
        history_window: int = 20,
        tool_gate: Optional[ToolGate] = None
    ):
        super().__init__("simple", "Plain chat completion")
        self.provider = provider
        self.system_prompt = system_prompt
        self.history_window = history_window
        self.tool_gate = tool_gate

    async def handle(self, query: str, context: ExecutionContext, hitl_state: HITLState) -> ResponderOutcome:
        start = time.monotonic()
        messages = build_llm_messages(
            self.system_prompt,
            context.conversation_history,
            query,
            self.history_window
        )

        logger.info("Calling LLM", responder=self.name, history=len(messages) - 1)
        response = await call_provider(self.provider, messages)

        duration_ms = int((time.monotonic() - start) * 1000)
        context.trace.llm_ms = duration_ms
        context.trace.record_span(self.name, new_id(), duration_ms, parent_span_id=context.span_id)

        if extract_tool_calls(response.content, response.tool_calls):
            if self.tool_gate is not None:
                logger.info("Reply proposes tool calls, handing to tool gate", responder=self.name)
                outcome = await self.tool_gate(query, context, hitl_state, response)
                outcome.result.duration_ms = duration_ms
                return outcome
            logger.warning("Reply proposes tool calls but no tool gate is set, nothing runs")
            context.trace.add_warning("Tool calls proposed without a tool gate")

        return ResponderOutcome(
            result=AgentResult.success_result(response.content, duration_ms, NextAction.COMPLETE),
            hitl_state=hitl_state,
            new_messages=[user_turn(query), assistant_turn(response.content)]
        )

"""Responder that gates risky tool calls behind user confirmation"""
from typing import List, Optional, Union
import time
import structlog

from hitl_agent.domain.clock import Clock, utc_now
from hitl_agent.domain.hitl.confirmation import (
    DEFAULT_CONFIRMATION_EXPIRY_SECONDS,
    ConfirmationAction,
    confirmation_data,
    create_tool_confirmation,
    format_multiple_confirmations,
    parse_confirmation_response,
    select_confirmations,
)
from hitl_agent.domain.hitl.state_machine import (
    RequestConfirmation,
    UserApproved,
    UserRejected,
    expire_confirmations,
    get_approved_confirmations,
    is_awaiting_confirmation,
    transition,
)
from hitl_agent.domain.models.agent_state import AgentResult, ExecutionContext, NextAction, new_id
from hitl_agent.domain.models.hitl_state import HITLState, RiskLevel, ToolCallRequest, ToolExecutionEntry
from hitl_agent.domain.orchestration.core.llm_provider import LLMProvider, LLMResponse, call_provider
from hitl_agent.domain.orchestration.subagent.base_subagent import (
    BaseResponder,
    ResponderOutcome,
    assistant_turn,
    build_llm_messages,
    user_turn,
)
from hitl_agent.domain.tool.risk_classifier import RiskClassifier, parse_risk_level
from hitl_agent.domain.tool.tool_calls import extract_tool_calls
from hitl_agent.domain.tool.tool_executor import (
    ToolExecutionCoordinator,
    ToolExecutor,
    format_execution_results,
    no_executor_configured,
)
from hitl_agent.domain.tracing.trace_accumulator import DebugToolCall
from hitl_agent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

NOT_UNDERSTOOD_PREFIX = "I didn't understand that. "
UNKNOWN_TARGET_PREFIX = "I couldn't find that confirmation. "
CANCELLED_MESSAGE = "Tool execution cancelled."
EXPIRED_MESSAGE = "The confirmation request expired, so nothing was run. Please ask again if you still need it."


class HITLResponder(BaseResponder):
    """LLM responder with human-in-the-loop approval of risky tool calls.

    While confirmations are pending every message is read as an approve/reject
    reply. Otherwise the LLM is called, proposed tool calls are classified, and
    calls at or above the threshold are turned into confirmations. Calls below
    the threshold are recorded in the trace but not executed.
    """

    def __init__(
        self,
        provider: LLMProvider,
        classifier: Optional[RiskClassifier] = None,
        threshold: Union[RiskLevel, str] = RiskLevel.HIGH,
        executor: Optional[ToolExecutor] = None,
        coordinator: Optional[ToolExecutionCoordinator] = None,
        system_prompt: str = "",
        history_window: int = 20,
        confirmation_expiry_seconds: float = DEFAULT_CONFIRMATION_EXPIRY_SECONDS,
        clock: Clock = utc_now
    ):
        super().__init__("hitl", "Chat with confirmation of risky tool calls")
        self.provider = provider
        self.classifier = classifier or RiskClassifier()
        self.threshold = parse_risk_level(threshold)
        self.executor = executor or no_executor_configured
        self.coordinator = coordinator or ToolExecutionCoordinator(clock=clock)
        self.system_prompt = system_prompt
        self.history_window = history_window
        self.confirmation_expiry_seconds = confirmation_expiry_seconds
        self.clock = clock

    async def handle(self, query: str, context: ExecutionContext, hitl_state: HITLState) -> ResponderOutcome:
        start = time.monotonic()
        state, expired_ids = expire_confirmations(hitl_state, self.clock())
        if expired_ids:
            logger.info("Confirmations expired", confirmation_ids=expired_ids)
            context.trace.add_warning(f"{len(expired_ids)} confirmation(s) expired")

        if is_awaiting_confirmation(state):
            outcome = await self._handle_reply(query, context, state)
        elif expired_ids and parse_confirmation_response(query).is_confirmation:
            outcome = self._outcome(
                AgentResult.success_result(EXPIRED_MESSAGE, 0, data={"expired": expired_ids}),
                state.model_copy(update={"pending_tool_calls": []}),
                [user_turn(query), assistant_turn(EXPIRED_MESSAGE)]
            )
        else:
            outcome = await self._handle_query(query, context, state)

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome.result.duration_ms = duration_ms
        context.trace.record_span(self.name, new_id(), duration_ms, parent_span_id=context.span_id)
        self._log_transition(hitl_state, outcome.hitl_state)
        return outcome

    async def _handle_query(self, query: str, context: ExecutionContext, state: HITLState) -> ResponderOutcome:
        messages = build_llm_messages(
            self.system_prompt,
            context.conversation_history,
            query,
            self.history_window
        )

        llm_start = time.monotonic()
        response = await call_provider(self.provider, messages)
        context.trace.llm_ms = int((time.monotonic() - llm_start) * 1000)
        return self._gate(query, context, state, response)

    async def gate_tool_calls(
        self,
        query: str,
        context: ExecutionContext,
        hitl_state: HITLState,
        response: LLMResponse
    ) -> ResponderOutcome:
        """Classify the tool calls of an LLM response produced elsewhere"""

        outcome = self._gate(query, context, hitl_state, response)
        self._log_transition(hitl_state, outcome.hitl_state)
        return outcome

    def _gate(self, query: str, context: ExecutionContext, state: HITLState, response: LLMResponse) -> ResponderOutcome:
        calls = extract_tool_calls(response.content, response.tool_calls)
        needs_confirmation: List[ToolCallRequest] = []
        for call in calls:
            if self.classifier.requires_confirmation(call.tool_name, call.tool_args, self.threshold):
                needs_confirmation.append(call)
            else:
                context.trace.record_tool_call(DebugToolCall(name=call.tool_name, arguments=call.tool_args))

        if not needs_confirmation:
            return self._outcome(
                AgentResult.success_result(response.content, 0),
                state,
                [user_turn(query), assistant_turn(response.content)]
            )

        now = self.clock()
        for call in needs_confirmation:
            risk_level = self.classifier.determine_risk_level(call.tool_name, call.tool_args)
            confirmation = create_tool_confirmation(call, risk_level, now, self.confirmation_expiry_seconds)
            state = transition(state, RequestConfirmation(confirmation=confirmation, at=now))
        state = state.model_copy(update={"pending_tool_calls": needs_confirmation})

        logger.info(
            "Requesting tool confirmation",
            tools=[c.tool_name for c in needs_confirmation],
            threshold=self.threshold.value
        )
        return self._awaiting(
            format_multiple_confirmations(state.pending_confirmations, now),
            state,
            [user_turn(query)]
        )

    async def _handle_reply(self, query: str, context: ExecutionContext, state: HITLState) -> ResponderOutcome:
        now = self.clock()
        parsed = parse_confirmation_response(query)
        if not parsed.is_confirmation:
            return self._awaiting(
                NOT_UNDERSTOOD_PREFIX + format_multiple_confirmations(state.pending_confirmations, now),
                state,
                []
            )

        targets = select_confirmations(state.pending_confirmations, parsed.target_confirmation_id)
        if not targets:
            return self._awaiting(
                UNKNOWN_TARGET_PREFIX + format_multiple_confirmations(state.pending_confirmations, now),
                state,
                []
            )

        if parsed.action == ConfirmationAction.REJECT:
            for confirmation in targets:
                state = transition(state, UserRejected(
                    confirmation_id=confirmation.id,
                    reason=parsed.reason,
                    at=now
                ))
            content = CANCELLED_MESSAGE
            if parsed.reason:
                content += f" Reason: {parsed.reason}"
            data = {"rejected": [c.id for c in targets]}
        else:
            for confirmation in targets:
                state = transition(state, UserApproved(confirmation_id=confirmation.id, at=now))
            batch = await self.coordinator.execute_approved(
                get_approved_confirmations(state),
                self.executor,
                state,
                progress_callback=lambda entry, index, total: self._record_execution(context, entry)
            )
            state = batch.state
            content = format_execution_results(batch)
            data = {"executions": [entry.model_dump(mode="json") for entry in batch.results]}

        if state.pending_confirmations:
            return self._awaiting(
                content + "\n\n" + format_multiple_confirmations(state.pending_confirmations, now),
                state,
                [user_turn(query), assistant_turn(content)],
                data
            )

        state = state.model_copy(update={"pending_tool_calls": []})
        return self._outcome(
            AgentResult.success_result(content, 0, data=data),
            state,
            [user_turn(query), assistant_turn(content)]
        )

    def _log_transition(self, before: HITLState, after: HITLState):
        if after.status != before.status:
            agent_logger.log_state_transition(
                conversation_key=before.session_id,
                from_status=before.status.value,
                to_status=after.status.value,
                event=self.name
            )

    def _record_execution(self, context: ExecutionContext, entry: ToolExecutionEntry):
        context.trace.record_tool_call(DebugToolCall(
            name=entry.tool_name,
            arguments=entry.args,
            result=entry.result,
            duration_ms=entry.duration_ms,
            error=entry.error
        ))
        agent_logger.log_tool_execution(
            tool_name=entry.tool_name,
            conversation_key=context.metadata.get("conversation_key", str(context.chat_id)),
            input_data=entry.args,
            output_data=entry.result,
            duration_ms=entry.duration_ms,
            success=entry.success,
            error=entry.error
        )

    def _awaiting(self, content: str, state: HITLState, new_messages, data=None) -> ResponderOutcome:
        payload = {"confirmations": confirmation_data(state.pending_confirmations)}
        payload.update(data or {})
        return self._outcome(
            AgentResult.success_result(content, 0, NextAction.AWAIT_CONFIRMATION, payload),
            state,
            new_messages
        )

    def _outcome(self, result: AgentResult, state: HITLState, new_messages) -> ResponderOutcome:
        return ResponderOutcome(result=result, hitl_state=state, new_messages=new_messages)

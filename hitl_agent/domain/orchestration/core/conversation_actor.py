"""Single-writer conversation actor.

Inbound messages are parked in the durable pending slot and processed later by
an idempotent wake-up. Processing moves the context pending -> active, persists
that before doing anything else, and clears the active slot as the last state
change. Because both slots live in the durable store, a process evicted mid-run
leaves enough behind for the next wake-up to pick up where it stopped.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import time
import structlog

from hitl_agent.domain.clock import Clock, utc_now
from hitl_agent.domain.context.history import append_and_trim, trim_history
from hitl_agent.domain.context.state.state_manager import StateStore
from hitl_agent.domain.hitl.state_machine import Reset, create_initial_hitl_state, transition
from hitl_agent.domain.models.agent_state import (
    AgentResult,
    ConversationActorState,
    ExecutionContext,
    Message,
    ParsedInput,
    Platform,
    ReceiveResult,
)
from hitl_agent.domain.orchestration.subagent.base_subagent import (
    BaseResponder,
    ResponderOutcome,
    assistant_turn,
    user_turn,
)
from hitl_agent.domain.scheduling.wakeup import AsyncioWakeupScheduler, WakeupScheduler
from hitl_agent.domain.streaming.thinking_rotator import ThinkingRotator
from hitl_agent.infrastructure.config.settings import AgentSettings, get_settings
from hitl_agent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

INTERRUPTED_ERROR = "Request interrupted before completion"

ReplySink = Callable[[AgentResult, ExecutionContext], Awaitable[None]]
ThinkingSink = Callable[[str, ExecutionContext], Awaitable[None]]


class ConversationActor:
    """Owns the durable state of one conversation"""

    def __init__(
        self,
        key: str,
        store: StateStore,
        responder: BaseResponder,
        settings: Optional[AgentSettings] = None,
        scheduler: Optional[WakeupScheduler] = None,
        reply_sink: Optional[ReplySink] = None,
        thinking_sink: Optional[ThinkingSink] = None,
        clock: Clock = utc_now
    ):
        self.key = key
        self.store = store
        self.responder = responder
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncioWakeupScheduler(self.on_process_message)
        self.reply_sink = reply_sink
        self.thinking_sink = thinking_sink
        self.clock = clock
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def processing(self) -> bool:
        """Whether this instance is running a message right now"""
        return self._running

    async def _load_state(self) -> ConversationActorState:
        state = await self.store.get(self.key)
        if state is None:
            now = self.clock()
            state = ConversationActorState(
                key=self.key,
                hitl=create_initial_hitl_state(self.key, now=now),
                created_at=now,
                updated_at=now
            )
        return state

    async def _save_state(self, state: ConversationActorState):
        await self.store.put(self.key, state)

    def _arm_wakeup(self, delay_seconds: Optional[float] = None):
        if self.scheduler.is_scheduled():
            return
        delay = self.settings.wakeup_delay_seconds if delay_seconds is None else delay_seconds
        self.scheduler.schedule_once(delay)

    async def receive_message(self, parsed: ParsedInput, platform: Platform = Platform.API) -> ReceiveResult:
        """Park an inbound message in the pending slot and arm the wake-up"""

        async with self._lock:
            state = await self._load_state()
            now = self.clock()
            context = ExecutionContext.from_input(
                parsed,
                provider=parsed.metadata.get("provider", self.settings.default_provider),
                model=parsed.metadata.get("model", self.settings.default_model),
                budget_seconds=self.settings.deadline_seconds,
                platform=platform,
                history=state.messages,
                now=now
            )
            context.metadata.setdefault("conversation_key", self.key)

            superseded = state.pending_context.trace_id if state.pending_context is not None else None
            if superseded:
                logger.warning(
                    "Pending message superseded",
                    conversation_key=self.key,
                    superseded_trace_id=superseded,
                    trace_id=context.trace_id
                )

            await self._save_state(state.evolve(pending_context=context, updated_at=now))

        agent_logger.log_agent_event(
            "message_received",
            agent_name=self.responder.name,
            conversation_key=self.key,
            data={"trace_id": context.trace_id, "platform": platform.value}
        )
        self._arm_wakeup()
        return ReceiveResult(trace_id=context.trace_id, queued=True, superseded_trace_id=superseded)

    async def on_process_message(self) -> Optional[AgentResult]:
        """Run one processing pass; None when there was nothing to do"""

        recovered: Optional[AgentResult] = None
        async with self._lock:
            state = await self._load_state()
            now = self.clock()

            if state.active_context is not None:
                active = state.active_context
                if self._running:
                    logger.debug("Run in progress, wake-up deferred", trace_id=active.trace_id)
                    return None
                if not active.is_past_deadline(now):
                    if state.pending_context is not None:
                        self._arm_wakeup((active.deadline - now).total_seconds())
                    return None
                state, recovered = await self._recover_interrupted(state, active, now)

            if state.pending_context is None:
                return recovered

            context = state.pending_context.model_copy(update={"conversation_history": list(state.messages)})
            # Persisted before any other I/O; on failure the context stays pending
            await self._save_state(state.evolve(pending_context=None, active_context=context, updated_at=now))
            self._running = True

        try:
            with structlog.contextvars.bound_contextvars(trace_id=context.trace_id, conversation_key=self.key):
                result = await self._run(context, state)
        finally:
            self._running = False

        await self._deliver(result, context)
        return result

    async def _recover_interrupted(self, state: ConversationActorState, active: ExecutionContext, now):
        logger.warning(
            "Recovering interrupted message",
            conversation_key=self.key,
            trace_id=active.trace_id,
            deadline=active.deadline.isoformat()
        )
        messages = append_and_trim(
            state.messages,
            [user_turn(active.query), assistant_turn(f"Error: {INTERRUPTED_ERROR}")],
            self.settings.max_history_length
        )
        state = state.evolve(messages=messages, active_context=None, updated_at=now)
        await self._save_state(state)

        result = AgentResult.error_result(INTERRUPTED_ERROR, active.elapsed_ms(now))
        result.data["trace_id"] = active.trace_id
        await self._deliver(result, active)
        return state, result

    async def _run(self, context: ExecutionContext, state: ConversationActorState) -> AgentResult:
        start = time.monotonic()
        rotator = ThinkingRotator(
            on_tick=lambda message: self._send_thinking(message, context),
            interval_seconds=self.settings.thinking_interval_seconds
        )
        rotator.start()

        try:
            outcome = await self._dispatch(context, state)
        except Exception as e:
            logger.error("Message processing failed", error=str(e), exc_info=True)
            context.trace.add_error(str(e))
            outcome = ResponderOutcome(
                result=AgentResult.error_result(e, int((time.monotonic() - start) * 1000)),
                hitl_state=state.hitl,
                new_messages=[user_turn(context.query), assistant_turn(f"Error: {e}")]
            )
        finally:
            await rotator.stop()

        result = outcome.result
        result.duration_ms = int((time.monotonic() - start) * 1000)
        context.trace.total_ms = result.duration_ms
        result.debug = context.trace.summary()
        result.data.setdefault("trace_id", context.trace_id)

        await self._finalize(context, outcome)

        logger.info(
            "Message processed",
            success=result.success,
            next_action=result.next_action.value,
            duration_ms=result.duration_ms
        )
        return result

    async def _dispatch(self, context: ExecutionContext, state: ConversationActorState) -> ResponderOutcome:
        command = self._parse_command(context.query)
        if command is not None:
            return self._handle_command(command, state)
        return await self.responder.handle(context.query, context, state.hitl)

    def _parse_command(self, text: str) -> Optional[str]:
        stripped = (text or "").strip()
        if not stripped.startswith("/"):
            return None
        command = stripped.split()[0].split("@")[0].lower()
        return command if command in ("/start", "/help", "/clear") else None

    def _handle_command(self, command: str, state: ConversationActorState) -> ResponderOutcome:
        if command == "/clear":
            return ResponderOutcome(
                result=AgentResult.success_result("Conversation history cleared.", 0),
                hitl_state=transition(state.hitl, Reset(at=self.clock())),
                reset_history=True
            )
        content = self.settings.welcome_message if command == "/start" else self.settings.help_message
        return ResponderOutcome(result=AgentResult.success_result(content, 0), hitl_state=state.hitl)

    async def _finalize(self, context: ExecutionContext, outcome: ResponderOutcome):
        # Reload so a message received during the run keeps its pending slot
        async with self._lock:
            latest = await self._load_state()
            messages = [] if outcome.reset_history else latest.messages
            messages = append_and_trim(messages, outcome.new_messages, self.settings.max_history_length)

            updates: Dict[str, Any] = {"messages": messages, "hitl": outcome.hitl_state}
            if latest.active_context is not None and latest.active_context.trace_id == context.trace_id:
                updates["active_context"] = None
            else:
                logger.warning("Active slot no longer holds this message", trace_id=context.trace_id)

            final = latest.evolve(updated_at=self.clock(), **updates)
            await self._save_state(final)

            if final.pending_context is not None:
                self._arm_wakeup()

    async def _send_thinking(self, message: str, context: ExecutionContext):
        if self.thinking_sink is not None:
            await self.thinking_sink(message, context)
        else:
            logger.debug("Still thinking", message=message)

    async def _deliver(self, result: AgentResult, context: ExecutionContext):
        if self.reply_sink is None:
            return
        try:
            await self.reply_sink(result, context)
        except Exception as e:
            logger.error("Reply delivery failed", trace_id=context.trace_id, error=str(e))

    async def get_history(self) -> List[Message]:
        """Get the stored conversation history"""

        state = await self._load_state()
        return list(state.messages)

    async def get_message_count(self) -> int:
        state = await self._load_state()
        return len(state.messages)

    async def clear_history(self):
        """Drop every stored message"""

        async with self._lock:
            state = await self._load_state()
            await self._save_state(state.evolve(messages=[]))
        logger.info("Conversation history cleared", conversation_key=self.key)

    async def trim_history(self, max_length: Optional[int] = None):
        """Re-apply the history cap"""

        limit = self.settings.max_history_length if max_length is None else max_length
        async with self._lock:
            state = await self._load_state()
            if len(state.messages) > limit:
                await self._save_state(state.evolve(messages=trim_history(state.messages, limit)))

    async def get_status(self) -> Dict[str, Any]:
        """Get a summary of the actor's state"""

        state = await self._load_state()
        summary = state.get_state_summary()
        summary["processing"] = self._running
        summary["wakeup_scheduled"] = self.scheduler.is_scheduled()
        return summary

    async def set_metadata(self, key: str, value: Any):
        async with self._lock:
            state = await self._load_state()
            metadata = dict(state.metadata)
            metadata[key] = value
            await self._save_state(state.evolve(metadata=metadata))

    async def get_metadata(self, key: Optional[str] = None) -> Any:
        state = await self._load_state()
        if key is None:
            return dict(state.metadata)
        return state.metadata.get(key)

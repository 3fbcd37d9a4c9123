from typing import Callable, Dict, List, Optional

from hitl_agent.domain.clock import Clock, utc_now
from hitl_agent.domain.context.state.state_manager import StateStore
from hitl_agent.domain.orchestration.core.conversation_actor import ConversationActor, ReplySink, ThinkingSink
from hitl_agent.domain.orchestration.subagent.base_subagent import BaseResponder
from hitl_agent.domain.scheduling.wakeup import AsyncioWakeupScheduler, WakeupScheduler
from hitl_agent.infrastructure.config.settings import AgentSettings, get_settings

SchedulerFactory = Callable[[ConversationActor], WakeupScheduler]


def asyncio_scheduler(actor: ConversationActor) -> WakeupScheduler:
    return AsyncioWakeupScheduler(actor.on_process_message)


class ActorRegistry:
    """One conversation actor per stable conversation key"""

    def __init__(
        self,
        store: StateStore,
        responder: BaseResponder,
        settings: Optional[AgentSettings] = None,
        scheduler_factory: SchedulerFactory = asyncio_scheduler,
        reply_sink: Optional[ReplySink] = None,
        thinking_sink: Optional[ThinkingSink] = None,
        clock: Clock = utc_now
    ):
        self.store = store
        self.responder = responder
        self.settings = settings or get_settings()
        self.scheduler_factory = scheduler_factory
        self.reply_sink = reply_sink
        self.thinking_sink = thinking_sink
        self.clock = clock
        self.actors: Dict[str, ConversationActor] = {}

    def get_or_create(self, key: str) -> ConversationActor:
        """Get the actor for a key, creating it on first use"""

        actor = self.actors.get(key)
        if actor is None:
            actor = ConversationActor(
                key=key,
                store=self.store,
                responder=self.responder,
                settings=self.settings,
                reply_sink=self.reply_sink,
                thinking_sink=self.thinking_sink,
                clock=self.clock
            )
            actor.scheduler = self.scheduler_factory(actor)
            self.actors[key] = actor
        return actor

    def get(self, key: str) -> Optional[ConversationActor]:
        return self.actors.get(key)

    def keys(self) -> List[str]:
        return list(self.actors.keys())

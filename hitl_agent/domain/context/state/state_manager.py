from typing import Dict, List, Optional, Protocol
import asyncio

from hitl_agent.domain.models.agent_state import ConversationActorState


class StateStore(Protocol):
    """Durable per-conversation state storage"""

    async def get(self, key: str) -> Optional[ConversationActorState]:
        ...

    async def put(self, key: str, state: ConversationActorState) -> None:
        ...


class InMemoryStateStore:
    """Process-local state store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self.states: Dict[str, ConversationActorState] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[ConversationActorState]:
        """Get the stored state for a conversation"""

        async with self._lock:
            state = self.states.get(key)
            return state.model_copy(deep=True) if state is not None else None

    async def put(self, key: str, state: ConversationActorState):
        """Store the state for a conversation"""

        async with self._lock:
            self.states[key] = state.model_copy(deep=True)

    async def delete(self, key: str):
        """Forget a conversation"""

        async with self._lock:
            self.states.pop(key, None)

    async def keys(self) -> List[str]:
        async with self._lock:
            return list(self.states.keys())

from abc import ABC, abstractmethod
from typing import Dict, Any, Awaitable, Callable, List
from pydantic import BaseModel, Field

from hitl_agent.domain.models.agent_state import AgentResult, ExecutionContext, Message, MessageRole, NextAction
from hitl_agent.domain.models.hitl_state import HITLState
from hitl_agent.domain.orchestration.core.llm_provider import LLMResponse


class ResponderOutcome(BaseModel):
    """What a responder hands back to the conversation actor"""
    result: AgentResult
    hitl_state: HITLState
    new_messages: List[Message] = Field(
        default_factory=list,
        description="Turns to append to the durable history"
    )
    reset_history: bool = Field(False, description="Drop the stored history before appending")

    @property
    def next_action(self) -> NextAction:
        return self.result.next_action


# Hands an LLM response that proposes tool calls to the confirmation gate
ToolGate = Callable[[str, ExecutionContext, HITLState, LLMResponse], Awaitable[ResponderOutcome]]


class BaseResponder(ABC):
    """Base class for strategies that turn a query into a reply"""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    @abstractmethod
    async def handle(self, query: str, context: ExecutionContext, hitl_state: HITLState) -> ResponderOutcome:
        """Produce a reply for the query"""
        pass

    def get_info(self) -> Dict[str, Any]:
        """Get responder information"""
        return {
            "name": self.name,
            "description": self.description
        }


def build_llm_messages(
    system_prompt: str,
    history: List[Message],
    query: str,
    history_window: int
) -> List[Message]:
    """System prompt, the newest history_window turns, then the query"""

    window = history[-history_window:] if history_window > 0 else []
    messages = []
    if system_prompt:
        messages.append(Message(role=MessageRole.SYSTEM, content=system_prompt))
    messages.extend(window)
    messages.append(Message(role=MessageRole.USER, content=query))
    return messages


def user_turn(content: str) -> Message:
    return Message(role=MessageRole.USER, content=content)


def assistant_turn(content: str) -> Message:
    return Message(role=MessageRole.ASSISTANT, content=content)

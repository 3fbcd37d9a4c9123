from typing import Dict, Any, List, Optional, Protocol
from pydantic import BaseModel, Field

from hitl_agent.domain.errors import AgentCoreError, ProviderError
from hitl_agent.domain.models.agent_state import Message


class LLMResponse(BaseModel):
    """Completion returned by an LLM provider"""
    content: str = ""
    tool_calls: Optional[List[Dict[str, Any]]] = Field(
        None,
        description="Native tool calls, when the provider supports them"
    )
    usage: Dict[str, Any] = Field(default_factory=dict)


class LLMProvider(Protocol):
    """Chat completion transport"""

    async def chat(self, messages: List[Message]) -> LLMResponse:
        ...


async def call_provider(provider: LLMProvider, messages: List[Message]) -> LLMResponse:
    """Single provider call; failures surface as ProviderError and are never retried"""

    try:
        response = await provider.chat(messages)
    except AgentCoreError:
        raise
    except Exception as e:
        raise ProviderError(str(e) or type(e).__name__, provider=type(provider).__name__) from e

    if isinstance(response, str):
        return LLMResponse(content=response)
    return response

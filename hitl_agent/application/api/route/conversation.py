"""Conversation actor endpoints"""
from typing import Annotated, Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from hitl_agent.domain.models.agent_state import AgentResult, Message, ParsedInput, Platform, ReceiveResult
from hitl_agent.domain.orchestration.core.actor_registry import ActorRegistry

router = APIRouter()


def get_registry(request: Request) -> ActorRegistry:
    return request.app.state.registry


RegistryDep = Annotated[ActorRegistry, Depends(get_registry)]


class MessageRequest(BaseModel):
    text: str
    user_id: Union[str, int]
    chat_id: Optional[Union[str, int]] = None
    username: Optional[str] = None
    message_ref: Optional[Union[str, int]] = None
    platform: Platform = Platform.API
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessResponse(BaseModel):
    processed: bool
    result: Optional[AgentResult] = None


class HistoryResponse(BaseModel):
    key: str
    messages: List[Message]


@router.post("/{key}/messages", response_model=ReceiveResult, status_code=202)
async def post_message(key: str, body: MessageRequest, registry: RegistryDep) -> ReceiveResult:
    actor = registry.get_or_create(key)
    parsed = ParsedInput(
        text=body.text,
        user_id=body.user_id,
        chat_id=body.chat_id if body.chat_id is not None else key,
        username=body.username,
        message_ref=body.message_ref,
        metadata=body.metadata
    )
    return await actor.receive_message(parsed, platform=body.platform)


@router.post("/{key}/process", response_model=ProcessResponse)
async def process(key: str, registry: RegistryDep) -> ProcessResponse:
    result = await registry.get_or_create(key).on_process_message()
    return ProcessResponse(processed=result is not None, result=result)


@router.get("/{key}/history", response_model=HistoryResponse)
async def get_history(key: str, registry: RegistryDep) -> HistoryResponse:
    messages = await registry.get_or_create(key).get_history()
    return HistoryResponse(key=key, messages=messages)


@router.delete("/{key}/history")
async def clear_history(key: str, registry: RegistryDep) -> Dict[str, Any]:
    await registry.get_or_create(key).clear_history()
    return {"key": key, "cleared": True}


@router.get("/{key}/status")
async def get_status(key: str, registry: RegistryDep) -> Dict[str, Any]:
    return await registry.get_or_create(key).get_status()

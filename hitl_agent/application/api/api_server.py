"""FastAPI application factory"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from hitl_agent.domain.context.state.state_manager import InMemoryStateStore, StateStore
from hitl_agent.domain.errors import ConfigurationError
from hitl_agent.domain.orchestration.core.actor_registry import ActorRegistry
from hitl_agent.domain.orchestration.core.conversation_actor import ReplySink
from hitl_agent.domain.orchestration.core.llm_provider import LLMProvider
from hitl_agent.domain.orchestration.subagent.hitl_responder import HITLResponder
from hitl_agent.domain.orchestration.subagent.router import RouterResponder
from hitl_agent.domain.orchestration.subagent.simple_responder import SimpleResponder
from hitl_agent.domain.tool.tool_executor import ToolExecutionCoordinator
from hitl_agent.domain.tool.tool_registry import ToolRegistry
from hitl_agent.infrastructure.config.settings import AgentSettings, get_settings
from hitl_agent.infrastructure.observability.logging import setup_logging
from hitl_agent.infrastructure.persistence.json_file_store import JsonFileStateStore

logger = structlog.get_logger(__name__)


def build_store(settings: AgentSettings) -> StateStore:
    if settings.state_dir:
        return JsonFileStateStore(settings.state_dir)
    return InMemoryStateStore()


def build_registry(
    settings: AgentSettings,
    provider: Optional[LLMProvider],
    store: Optional[StateStore] = None,
    tool_registry: Optional[ToolRegistry] = None,
    reply_sink: Optional[ReplySink] = None
) -> ActorRegistry:
    """Wire responders, tools and storage into an actor registry"""

    if provider is None:
        raise ConfigurationError("An LLM provider is required")

    tools = tool_registry or ToolRegistry()
    hitl = HITLResponder(
        provider,
        classifier=tools.build_classifier(),
        threshold=settings.confirmation_threshold,
        executor=tools.as_executor(),
        coordinator=ToolExecutionCoordinator(
            continue_on_error=settings.continue_on_error,
            timeout_seconds=settings.tool_timeout_seconds
        ),
        system_prompt=settings.system_prompt,
        history_window=settings.history_window,
        confirmation_expiry_seconds=settings.confirmation_expiry_seconds
    )
    simple = SimpleResponder(
        provider,
        system_prompt=settings.system_prompt,
        history_window=settings.history_window,
        tool_gate=hitl.gate_tool_calls
    )

    return ActorRegistry(
        store=store or build_store(settings),
        responder=RouterResponder(simple, hitl),
        settings=settings,
        reply_sink=reply_sink
    )


def create_app(
    registry: Optional[ActorRegistry] = None,
    settings: Optional[AgentSettings] = None,
    provider: Optional[LLMProvider] = None,
    tool_registry: Optional[ToolRegistry] = None
) -> FastAPI:
    settings = settings or get_settings()
    registry = registry or build_registry(settings, provider, tool_registry=tool_registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        logger.info("Agent API started", service=settings.service_name)
        yield
        logger.info("Agent API shutdown", conversations=len(registry.keys()))

    app = FastAPI(title="HITL Agent", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = registry
    app.state.settings = settings

    from hitl_agent.application.api.route import conversation, health

    app.include_router(health.router)
    app.include_router(conversation.router, prefix="/api/v1/conversations", tags=["conversations"])

    return app

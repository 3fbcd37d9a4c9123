from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Union

import pytest

from hitl_agent.domain.context.state.state_manager import InMemoryStateStore
from hitl_agent.domain.models.agent_state import Message
from hitl_agent.domain.orchestration.core.llm_provider import LLMResponse
from hitl_agent.infrastructure.config.settings import AgentSettings


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class FakeProvider:
    """LLM provider replaying scripted responses"""

    def __init__(self, responses: Optional[List[Union[str, LLMResponse, Exception]]] = None):
        self.responses = list(responses or [])
        self.calls: List[List[Message]] = []

    def queue(self, *responses: Union[str, LLMResponse, Exception]):
        self.responses.extend(responses)

    async def chat(self, messages: List[Message]) -> LLMResponse:
        self.calls.append(list(messages))
        response = self.responses.pop(0) if self.responses else "ok"
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return LLMResponse(content=response)
        return response


class ManualScheduler:
    """Wake-up scheduler that only records requests"""

    def __init__(self):
        self.scheduled = False
        self.requests: List[float] = []

    def schedule_once(self, delay_seconds: float):
        if self.scheduled:
            return
        self.scheduled = True
        self.requests.append(delay_seconds)

    def is_scheduled(self) -> bool:
        return self.scheduled

    def fire(self):
        self.scheduled = False


class RecordingExecutor:
    """Tool executor recording every call"""

    def __init__(self, failures: Optional[dict] = None):
        self.calls: List[Any] = []
        self.failures = failures or {}

    async def __call__(self, tool_name: str, args: dict):
        self.calls.append((tool_name, args))
        if tool_name in self.failures:
            raise RuntimeError(self.failures[tool_name])
        return {"tool": tool_name, "ok": True}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(
        _env_file=None,
        max_history_length=100,
        history_window=20,
        thinking_interval_seconds=60,
        deadline_seconds=30,
        log_format="console",
    )

"""Agent settings, loaded from env / .env"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hitl_agent.domain.models.hitl_state import RiskLevel

DEFAULT_WELCOME_MESSAGE = (
    "Hello! I'm your assistant. Send me a message and I'll help out. "
    "Risky actions always ask for your approval first. Type /help for commands."
)

DEFAULT_HELP_MESSAGE = (
    "Available commands:\n"
    "/start - Show the welcome message\n"
    "/help - Show this help\n"
    "/clear - Clear the conversation history\n\n"
    "When I ask for confirmation, reply **yes** or **no**, "
    "or **approve 1** / **reject 2** for specific items."
)


class AgentSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HITL_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- history ---
    max_history_length: int = Field(100, ge=0, description="Durable history cap")
    history_window: int = Field(20, ge=0, description="Turns sent to the LLM")

    # --- confirmations ---
    confirmation_threshold: RiskLevel = RiskLevel.HIGH
    confirmation_expiry_seconds: float = Field(300, gt=0)
    continue_on_error: bool = True
    tool_timeout_seconds: Optional[float] = 30.0

    # --- scheduling ---
    wakeup_delay_seconds: float = Field(0.0, ge=0)
    thinking_interval_seconds: float = Field(5.0, gt=0)
    deadline_seconds: float = Field(30, gt=0)

    # --- LLM ---
    default_provider: str = "openai"
    default_model: str = "gpt-4o-mini"
    system_prompt: str = "You are a helpful assistant."

    # --- commands ---
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    help_message: str = DEFAULT_HELP_MESSAGE

    # --- storage ---
    state_dir: Optional[Path] = None

    # --- logging ---
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "hitl-agent"

    @field_validator("confirmation_threshold", mode="before")
    @classmethod
    def _lenient_threshold(cls, value):
        # Unknown thresholds fall back to high
        if isinstance(value, str) and value.strip().lower() not in {r.value for r in RiskLevel}:
            return RiskLevel.HIGH
        return value.strip().lower() if isinstance(value, str) else value


@lru_cache
def get_settings() -> AgentSettings:
    return AgentSettings()

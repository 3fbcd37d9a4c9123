from typing import Optional


class AgentCoreError(Exception):
    """Base class for errors raised by the agent core"""


class StateStoreError(AgentCoreError):
    """Durable state could not be read or written"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ProviderError(AgentCoreError):
    """The LLM provider failed to produce a response"""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ToolExecutionError(AgentCoreError):
    """A tool handler failed"""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class ConfigurationError(AgentCoreError):
    """Invalid or missing configuration"""

from typing import Dict, List, Any, Optional
import structlog

from hitl_agent.domain.errors import ToolExecutionError
from hitl_agent.domain.models.hitl_state import RiskLevel
from hitl_agent.domain.tool.risk_classifier import RiskClassifier
from hitl_agent.domain.tool.tool_executor import ToolExecutor, ToolResult, no_executor_configured, to_tool_result

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """Registry for managing available tools and their handlers"""

    def __init__(self):
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.handlers: Dict[str, ToolExecutor] = {}
        self.tool_categories: Dict[str, List[str]] = {}

    def register_tool(
        self,
        tool_config: Dict[str, Any],
        handler: Optional[ToolExecutor] = None
    ):
        """Register a new tool.

        tool_config carries at least an "id"; "description", "category",
        "parameters" and "risk_level" are optional. A handler receives the tool
        name and arguments and returns a ToolResult or a plain value.
        """

        tool_id = tool_config["id"]
        category = tool_config.get("category", "general")

        self.tools[tool_id] = tool_config
        if handler is not None:
            self.handlers[tool_id] = handler

        if category not in self.tool_categories:
            self.tool_categories[category] = []
        if tool_id not in self.tool_categories[category]:
            self.tool_categories[category].append(tool_id)

        logger.debug("Tool registered", tool_id=tool_id, category=category)

    async def get_available_tools(self) -> List[Dict[str, Any]]:
        """Get all available tools"""

        return list(self.tools.values())

    async def get_tool_info(self, tool_id: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool"""

        return self.tools.get(tool_id)

    async def get_tools_by_category(self, category: str) -> List[Dict[str, Any]]:
        """Get tools by category"""

        tool_ids = self.tool_categories.get(category, [])
        return [self.tools[tool_id] for tool_id in tool_ids if tool_id in self.tools]

    async def search_tools(self, query: str) -> List[Dict[str, Any]]:
        """Search tools by id or description"""

        query_lower = query.lower()
        matching_tools = []

        for tool in self.tools.values():
            name = tool.get("name", tool["id"]).lower()
            description = tool.get("description", "").lower()

            if query_lower in name or query_lower in description:
                matching_tools.append(tool)

        return matching_tools

    def risk_overrides(self) -> Dict[str, RiskLevel]:
        """Risk levels pinned by tool configs"""

        overrides = {}
        for tool_id, tool in self.tools.items():
            if tool.get("risk_level"):
                overrides[tool_id.lower()] = RiskLevel(tool["risk_level"])
        return overrides

    def build_classifier(self) -> RiskClassifier:
        """Risk classifier honouring this registry's overrides"""

        return RiskClassifier(overrides=self.risk_overrides())

    async def execute(self, tool_name: str, args: Dict[str, Any]) -> ToolResult:
        """Run a registered tool, falling back to the unconfigured-executor failure"""

        handler = self.handlers.get(tool_name)
        if handler is None:
            return await no_executor_configured(tool_name, args)

        try:
            outcome = await handler(tool_name, args)
        except ToolExecutionError as e:
            return ToolResult(success=False, error=str(e))

        return to_tool_result(outcome)

    def as_executor(self) -> ToolExecutor:
        return self.execute

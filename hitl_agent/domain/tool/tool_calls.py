"""Extraction of proposed tool calls from LLM output"""
from typing import Dict, Any, List, Optional
import json
import re
import structlog

from hitl_agent.domain.models.hitl_state import ToolCallRequest

logger = structlog.get_logger(__name__)

TOOL_CALL_TAG = re.compile(r"<tool_call\s+name=\"([^\"]+)\"[^>]*>(.*?)</tool_call>", re.I | re.S)
FUNCTION_CALL_JSON = re.compile(
    r"\{[^{}]*\"function\"\s*:\s*\"([^\"]+)\"[^{}]*\"arguments\"\s*:\s*(\{[^{}]*\})[^{}]*\}",
    re.I
)


def _describe(tool_name: str) -> str:
    return f"Execute {tool_name} with provided arguments"


def _load_args(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        args = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return args if isinstance(args, dict) else None


def _from_native(call: Dict[str, Any]) -> Optional[ToolCallRequest]:
    # OpenAI style {"function": {"name", "arguments"}} or flat {"name", "arguments"}
    function = call.get("function")
    if isinstance(function, dict):
        name = function.get("name")
        raw_args = function.get("arguments")
    else:
        name = call.get("name") or function
        raw_args = call.get("arguments", call.get("args"))

    args = _load_args(raw_args)
    if not name or args is None:
        logger.debug("Skipping malformed native tool call", call=call)
        return None
    return ToolCallRequest(tool_name=str(name), tool_args=args, description=_describe(str(name)))


def extract_tool_calls(content: str, native_calls: Optional[List[Dict[str, Any]]] = None) -> List[ToolCallRequest]:
    """Collect tool calls from native provider output and content patterns.

    Native calls win: content is only scanned when the provider returned none.
    Calls whose arguments are not a JSON object are skipped.
    """

    if native_calls:
        calls = [_from_native(call) for call in native_calls if isinstance(call, dict)]
        return [call for call in calls if call is not None]

    calls: List[ToolCallRequest] = []
    text = content or ""

    for match in TOOL_CALL_TAG.finditer(text):
        name, raw_args = match.group(1), match.group(2).strip()
        args = _load_args(raw_args)
        if args is None:
            logger.debug("Skipping tool call with invalid arguments", tool_name=name)
            continue
        calls.append(ToolCallRequest(tool_name=name, tool_args=args, description=_describe(name)))

    for match in FUNCTION_CALL_JSON.finditer(text):
        name = match.group(1)
        args = _load_args(match.group(2))
        if args is None:
            logger.debug("Skipping function call with invalid arguments", tool_name=name)
            continue
        calls.append(ToolCallRequest(tool_name=name, tool_args=args, description=_describe(name)))

    return calls

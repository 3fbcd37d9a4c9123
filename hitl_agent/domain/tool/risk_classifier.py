"""Static risk classification for proposed tool calls.

Pure and total: classification never raises, so a malformed tool call can never
stall a conversation. Anything that cannot be classified is treated as high risk.
"""
from typing import Dict, Any, Iterable, Mapping, Optional, Tuple, Union
import json
import re
import structlog

from hitl_agent.domain.models.hitl_state import RiskLevel

logger = structlog.get_logger(__name__)


HIGH_RISK_TOOL_NAMES: Tuple[str, ...] = (
    "bash",
    "shell",
    "exec",
    "delete",
    "remove",
    "drop",
    "truncate",
    "write",
    "modify",
    "update",
    "deploy",
    "push",
    "merge",
    "publish",
)

LOW_RISK_TOOL_NAMES: Tuple[str, ...] = ("read", "get", "list", "search", "query")

CRITICAL_ARG_PATTERNS = (
    re.compile(r"\brm\s+-[a-z]*r[a-z]*f|\brm\s+-[a-z]*f[a-z]*r", re.I),
    re.compile(r"\bdrop\s+(database|table|schema)\b", re.I),
    re.compile(r"\bmkfs\b", re.I),
    re.compile(r"--no-preserve-root", re.I),
    re.compile(r"\bdd\s+if=", re.I),
)

HIGH_ARG_MARKERS: Tuple[str, ...] = ("delete", "remove", "drop", "--force", "-f ")
MEDIUM_ARG_MARKERS: Tuple[str, ...] = ("write", "update", "modify", "create")


def _args_text(args: Optional[Mapping[str, Any]]) -> str:
    if not args:
        return ""
    return json.dumps(args, default=str, sort_keys=True).lower()


def _contains_any(text: str, markers: Iterable[str]) -> bool:
    return any(marker in text for marker in markers)


def parse_risk_level(value: Union[RiskLevel, str, None], default: RiskLevel = RiskLevel.HIGH) -> RiskLevel:
    """Coerce a configured threshold into a RiskLevel"""

    if isinstance(value, RiskLevel):
        return value
    try:
        return RiskLevel(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown risk level, using default", value=value, default=default.value)
        return default


class RiskClassifier:
    """Maps tool names and argument patterns to a risk level"""

    def __init__(self, overrides: Optional[Dict[str, RiskLevel]] = None):
        self.overrides: Dict[str, RiskLevel] = {
            name.lower(): level for name, level in (overrides or {}).items()
        }

    def set_override(self, tool_name: str, level: RiskLevel):
        """Pin a tool to a fixed risk level"""
        self.overrides[tool_name.lower()] = level

    def determine_risk_level(self, tool_name: str, args: Optional[Mapping[str, Any]] = None) -> RiskLevel:
        """Classify a tool call"""

        try:
            return self._classify(tool_name, args)
        except Exception as e:
            logger.warning("Risk classification failed, assuming high", tool_name=tool_name, error=str(e))
            return RiskLevel.HIGH

    def requires_confirmation(
        self,
        tool_name: str,
        args: Optional[Mapping[str, Any]] = None,
        threshold: Union[RiskLevel, str] = RiskLevel.HIGH
    ) -> bool:
        """True iff the call's risk level is at or above the threshold"""

        level = self.determine_risk_level(tool_name, args)
        return level.rank >= parse_risk_level(threshold).rank

    def _classify(self, tool_name: str, args: Optional[Mapping[str, Any]]) -> RiskLevel:
        name = str(tool_name or "").lower()
        args_text = _args_text(args)

        # Destructive arguments escalate even pinned tools
        if any(pattern.search(args_text) for pattern in CRITICAL_ARG_PATTERNS):
            return RiskLevel.CRITICAL

        if name in self.overrides:
            return self.overrides[name]

        if _contains_any(name, HIGH_RISK_TOOL_NAMES):
            return RiskLevel.HIGH

        if args_text:
            if _contains_any(args_text, HIGH_ARG_MARKERS):
                return RiskLevel.HIGH
            if _contains_any(args_text, MEDIUM_ARG_MARKERS):
                return RiskLevel.MEDIUM

        if _contains_any(name, LOW_RISK_TOOL_NAMES):
            return RiskLevel.LOW

        return RiskLevel.MEDIUM


default_classifier = RiskClassifier()


def requires_confirmation(
    tool_name: str,
    args: Optional[Mapping[str, Any]] = None,
    threshold: Union[RiskLevel, str] = RiskLevel.HIGH
) -> bool:
    """Module-level shortcut using the default static table"""
    return default_classifier.requires_confirmation(tool_name, args, threshold)


def determine_risk_level(tool_name: str, args: Optional[Mapping[str, Any]] = None) -> RiskLevel:
    return default_classifier.determine_risk_level(tool_name, args)

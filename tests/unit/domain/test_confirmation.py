"""Unit tests for confirmation reply parsing and prompt formatting."""

from datetime import datetime, timedelta, timezone

import pytest

from hitl_agent.domain.hitl.confirmation import (
    ConfirmationAction,
    create_tool_confirmation,
    format_confirmation_request,
    format_multiple_confirmations,
    has_tool_confirmation,
    parse_confirmation_response,
    select_confirmations,
)
from hitl_agent.domain.models.hitl_state import ConfirmationStatus, RiskLevel, ToolCallRequest

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make(tool_name: str = "bash", args=None, risk=RiskLevel.HIGH):
    call = ToolCallRequest(tool_name=tool_name, tool_args=args or {}, description=f"Run {tool_name}")
    return create_tool_confirmation(call, risk, NOW)


class TestParseConfirmationResponse:
    """Interpretation of replies while awaiting confirmation."""

    @pytest.mark.parametrize("text", ["yes", "Y", "ok", "okay", "approve", "confirm", "go ahead",
                                      "proceed", "do it", "run", "accept", "Yes!", "✅", "👍"])
    def test_approvals(self, text):
        result = parse_confirmation_response(text)
        assert result.is_confirmation
        assert result.action == ConfirmationAction.APPROVE
        assert result.target_confirmation_id is None

    @pytest.mark.parametrize("text", ["no", "n", "cancel", "reject", "stop", "abort", "nope",
                                      "decline", "don't", "❌", "👎"])
    def test_rejections(self, text):
        result = parse_confirmation_response(text)
        assert result.is_confirmation
        assert result.action == ConfirmationAction.REJECT
        assert result.reason is None

    def test_rejection_with_reason(self):
        result = parse_confirmation_response("no, too risky")
        assert result.action == ConfirmationAction.REJECT
        assert result.reason == "too risky"

    def test_cancel_with_reason(self):
        result = parse_confirmation_response("cancel that is the prod database")
        assert result.action == ConfirmationAction.REJECT
        assert result.reason == "that is the prod database"

    def test_explicit_id(self):
        result = parse_confirmation_response("approve confirm_ab12")
        assert result.action == ConfirmationAction.APPROVE
        assert result.target_confirmation_id == "confirm_ab12"

    def test_explicit_index(self):
        result = parse_confirmation_response("reject 2")
        assert result.action == ConfirmationAction.REJECT
        assert result.target_confirmation_id == "2"

    @pytest.mark.parametrize("text", ["reject 2, too risky", "reject 2 - too risky", "reject #2: too risky"])
    def test_explicit_index_with_reason(self, text):
        result = parse_confirmation_response(text)
        assert result.action == ConfirmationAction.REJECT
        assert result.target_confirmation_id == "2"
        assert result.reason == "too risky"

    def test_explicit_approval_with_trailing_words(self):
        result = parse_confirmation_response("approve 1 please")
        assert result.action == ConfirmationAction.APPROVE
        assert result.target_confirmation_id == "1"
        assert result.reason is None

    @pytest.mark.parametrize("text", ["what does this do?", "maybe later", "", "nothing to add"])
    def test_unparseable(self, text):
        result = parse_confirmation_response(text)
        assert not result.is_confirmation
        assert result.action == ConfirmationAction.NONE

    def test_has_tool_confirmation(self):
        assert has_tool_confirmation(" YES ")
        assert has_tool_confirmation("no")
        assert not has_tool_confirmation("tell me a joke")


class TestSelectConfirmations:
    """Resolution of reply targets."""

    def test_no_target_selects_all(self):
        pending = [make("a"), make("b")]
        assert select_confirmations(pending, None) == pending

    def test_index_is_one_based(self):
        pending = [make("a"), make("b")]
        assert select_confirmations(pending, "2") == [pending[1]]
        assert select_confirmations(pending, "3") == []
        assert select_confirmations(pending, "0") == []

    def test_by_id(self):
        pending = [make("a"), make("b")]
        assert select_confirmations(pending, pending[0].id.upper()) == [pending[0]]
        assert select_confirmations(pending, "confirm_missing") == []


class TestCreateAndFormat:
    """Confirmation construction and user-facing text."""

    def test_create_tool_confirmation(self):
        confirmation = make("bash", {"command": "ls"})
        assert confirmation.id.startswith("confirm_")
        assert confirmation.status == ConfirmationStatus.PENDING
        assert confirmation.expires_at == NOW + timedelta(minutes=5)
        assert confirmation.tool_args == {"command": "ls"}

    def test_ids_are_unique(self):
        assert make().id != make().id

    def test_format_single(self):
        text = format_confirmation_request(make("bash", {"command": "ls"}), now=NOW)
        assert "**Confirmation Required**" in text
        assert "`bash`" in text
        assert "**Risk Level:** high" in text
        assert '"command": "ls"' in text
        assert "Expires in 5 minutes" in text
        assert "Reply **yes** to approve or **no** to reject." in text

    def test_format_multiple_enumerates_every_confirmation(self):
        pending = [make("bash"), make("deploy_app", risk=RiskLevel.CRITICAL)]
        text = format_multiple_confirmations(pending, now=NOW)
        assert "2 Confirmations Required" in text
        assert "**1.**" in text and "`bash`" in text
        assert "**2.**" in text and "`deploy_app`" in text and "critical" in text
        assert "**approve 1** / **reject 2**" in text

    def test_format_multiple_empty(self):
        assert format_multiple_confirmations([]) == "No pending confirmations."

"""Unit tests for the tool execution coordinator and tool registry."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from hitl_agent.domain.errors import ToolExecutionError
from hitl_agent.domain.hitl.state_machine import (
    RequestConfirmation,
    UserApproved,
    UserRejected,
    apply_events,
    create_initial_hitl_state,
)
from hitl_agent.domain.models.hitl_state import HITLStatus, RiskLevel, ToolConfirmation
from hitl_agent.domain.tool.tool_executor import (
    ToolExecutionCoordinator,
    ToolResult,
    format_execution_results,
    no_executor_configured,
    to_tool_result,
)
from hitl_agent.domain.tool.tool_registry import ToolRegistry

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_confirmation(confirmation_id: str, tool_name: str) -> ToolConfirmation:
    return ToolConfirmation(
        id=confirmation_id,
        tool_name=tool_name,
        tool_args={"n": confirmation_id},
        risk_level=RiskLevel.HIGH,
        requested_at=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )


def approved_state(*confirmations: ToolConfirmation):
    events = [RequestConfirmation(confirmation=c) for c in confirmations]
    events += [UserApproved(confirmation_id=c.id) for c in confirmations]
    state = apply_events(create_initial_hitl_state("chat-1"), events)
    return state, state.approved_confirmations


class TestToolExecutionCoordinator:
    """Sequential execution with partial-failure semantics."""

    @pytest.mark.asyncio
    async def test_executes_in_order_exactly_once(self, executor):
        state, approved = approved_state(
            make_confirmation("c1", "deploy"),
            make_confirmation("c2", "publish"),
            make_confirmation("c3", "push"),
        )

        batch = await ToolExecutionCoordinator().execute_approved(approved, executor, state)

        assert [call[0] for call in executor.calls] == ["deploy", "publish", "push"]
        assert [r.confirmation_id for r in batch.results] == ["c1", "c2", "c3"]
        assert batch.success_count == 3
        assert batch.all_succeeded
        assert batch.state.status == HITLStatus.COMPLETED
        assert [e.confirmation_id for e in batch.state.completed_executions] == ["c1", "c2", "c3"]
        assert batch.state.approved_confirmations == []

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, executor):
        executor.failures["publish"] = "registry unavailable"
        state, approved = approved_state(
            make_confirmation("c1", "deploy"),
            make_confirmation("c2", "publish"),
            make_confirmation("c3", "push"),
        )

        batch = await ToolExecutionCoordinator().execute_approved(approved, executor, state)

        assert len(executor.calls) == 3
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.results[1].error == "registry unavailable"
        assert batch.success_count == 2
        assert batch.failure_count == 1
        assert not batch.all_succeeded
        assert len(batch.state.completed_executions) == 3

    @pytest.mark.asyncio
    async def test_stop_on_first_failure_skips_rest(self, executor):
        executor.failures["deploy"] = "boom"
        state, approved = approved_state(
            make_confirmation("c1", "deploy"),
            make_confirmation("c2", "publish"),
        )

        coordinator = ToolExecutionCoordinator(continue_on_error=False)
        batch = await coordinator.execute_approved(approved, executor, state)

        assert [call[0] for call in executor.calls] == ["deploy"]
        assert [r.success for r in batch.results] == [False, False]
        assert "Skipped" in batch.results[1].error
        assert len(batch.state.completed_executions) == 2

    @pytest.mark.asyncio
    async def test_progress_callback_sync_and_async(self, executor):
        state, approved = approved_state(make_confirmation("c1", "deploy"), make_confirmation("c2", "push"))
        seen = []

        async def on_progress(entry, index, total):
            seen.append((entry.tool_name, index, total))

        await ToolExecutionCoordinator().execute_approved(approved, executor, state, on_progress)
        await ToolExecutionCoordinator().execute_approved(
            approved, executor, state, lambda entry, index, total: seen.append(index)
        )

        assert seen == [("deploy", 0, 2), ("push", 1, 2), 0, 1]

    @pytest.mark.asyncio
    async def test_timeout_becomes_failure(self):
        async def slow(tool_name, args):
            await asyncio.sleep(1)

        state, approved = approved_state(make_confirmation("c1", "deploy"))
        batch = await ToolExecutionCoordinator(timeout_seconds=0.01).execute_approved(approved, slow, state)

        assert not batch.results[0].success
        assert "timed out" in batch.results[0].error

    @pytest.mark.asyncio
    async def test_missing_executor(self):
        state, approved = approved_state(make_confirmation("c1", "deploy"))
        batch = await ToolExecutionCoordinator().execute_approved(approved, None, state)

        assert batch.results[0].error == "No executor configured for deploy"

    @pytest.mark.asyncio
    async def test_tool_result_passthrough(self):
        async def failing(tool_name, args):
            return ToolResult(success=False, error="denied")

        state, approved = approved_state(make_confirmation("c1", "deploy"))
        batch = await ToolExecutionCoordinator().execute_approved(approved, failing, state)

        assert batch.results[0].error == "denied"
        assert "[x] **deploy**" in format_execution_results(batch)
        assert "Error: denied" in format_execution_results(batch)

    @pytest.mark.asyncio
    async def test_mapping_failure_result_is_a_failure(self):
        async def denied(tool_name, args):
            return {"success": False, "error": "permission denied"}

        state, approved = approved_state(make_confirmation("c1", "deploy"))
        batch = await ToolExecutionCoordinator().execute_approved(approved, denied, state)

        assert batch.results[0].success is False
        assert batch.results[0].error == "permission denied"
        assert batch.failure_count == 1
        assert "All" not in format_execution_results(batch)

    def test_to_tool_result(self):
        assert to_tool_result({"success": True, "result": 3}) == ToolResult(success=True, result=3)
        assert to_tool_result({"rows": 2}) == ToolResult(success=True, result={"rows": 2})
        assert to_tool_result("done") == ToolResult(success=True, result="done")

    @pytest.mark.asyncio
    async def test_only_approved_confirmations_run(self, executor):
        first = make_confirmation("c1", "deploy")
        second = make_confirmation("c2", "push")
        events = [RequestConfirmation(confirmation=first), RequestConfirmation(confirmation=second)]
        events += [UserApproved(confirmation_id="c1"), UserRejected(confirmation_id="c2")]
        state = apply_events(create_initial_hitl_state("chat-1"), events)
        rejected = state.resolved_confirmations[0]

        batch = await ToolExecutionCoordinator().execute_approved(
            state.approved_confirmations + [rejected], executor, state
        )

        assert [call[0] for call in executor.calls] == ["deploy"]
        assert [r.confirmation_id for r in batch.results] == ["c1"]
        assert len(batch.state.completed_executions) == len(batch.results)

    def test_no_timeout_by_default(self):
        assert ToolExecutionCoordinator().timeout_seconds is None

    @pytest.mark.asyncio
    async def test_format_all_succeeded(self, executor):
        state, approved = approved_state(make_confirmation("c1", "deploy"))
        batch = await ToolExecutionCoordinator().execute_approved(approved, executor, state)

        text = format_execution_results(batch)
        assert text.startswith("[ok] **All 1 tool(s) executed successfully**")
        assert "Total time:" in text


class TestToolRegistry:
    """Tool registration and lookup execution."""

    @pytest.mark.asyncio
    async def test_no_executor_configured(self):
        result = await no_executor_configured("bash", {})
        assert result == ToolResult(success=False, error="No executor configured for bash")

    @pytest.mark.asyncio
    async def test_registered_handler_runs(self):
        registry = ToolRegistry()

        async def echo(tool_name, args):
            return args["text"]

        registry.register_tool({"id": "echo", "description": "Echo text", "category": "util"}, echo)
        execute = registry.as_executor()

        assert await execute("echo", {"text": "hi"}) == ToolResult(success=True, result="hi")
        assert (await execute("missing", {})).error == "No executor configured for missing"

    @pytest.mark.asyncio
    async def test_handler_mapping_result(self):
        registry = ToolRegistry()

        async def locked(tool_name, args):
            return {"success": False, "error": "locked"}

        registry.register_tool({"id": "unlock"}, locked)

        assert await registry.execute("unlock", {}) == ToolResult(success=False, error="locked")

    @pytest.mark.asyncio
    async def test_tool_execution_error_becomes_failure(self):
        registry = ToolRegistry()

        async def broken(tool_name, args):
            raise ToolExecutionError("disk full", tool_name=tool_name)

        registry.register_tool({"id": "save"}, broken)
        result = await registry.execute("save", {})

        assert result.success is False
        assert result.error == "disk full"

    @pytest.mark.asyncio
    async def test_lookup_and_search(self):
        registry = ToolRegistry()
        registry.register_tool({"id": "search_web", "description": "Search the web", "category": "search"})
        registry.register_tool({"id": "send_email", "description": "Send an email", "category": "comms"})

        assert len(await registry.get_available_tools()) == 2
        assert (await registry.get_tool_info("send_email"))["category"] == "comms"
        assert [t["id"] for t in await registry.get_tools_by_category("search")] == ["search_web"]
        assert [t["id"] for t in await registry.search_tools("email")] == ["send_email"]

    def test_risk_overrides_feed_classifier(self):
        registry = ToolRegistry()
        registry.register_tool({"id": "weather", "risk_level": "high"})

        classifier = registry.build_classifier()

        assert classifier.determine_risk_level("weather", {}) == RiskLevel.HIGH
